"""
Rescan Backend — Vision Response Parser
========================================

What:  Turns a vision model's free-form reply into a MaterialResult.
How:   JSON first (code fences stripped, first {...} block if the model
       wrapped it in prose), then a line-oriented regex fallback for
       replies like "material: plastic / ric: 1 / confidence: 85".

Normalization:
    - ric_code kept only when it is an integer 1-7
    - confidence accepted as 0-1 or 0-100 (percent), clamped to 0.0-1.0
    - recyclable defaults from the material catalog when absent
"""

import json
import logging
import re
from typing import Any, Dict, Optional

from rescan.exceptions import UnrecognizedMaterialError
from rescan.schemas.scan import MaterialResult
from rescan.services.materials import default_recyclability

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

_FALLBACK_PATTERNS = {
    "material_type": re.compile(r"material(?:[_ ]type)?\s*[:=]\s*\"?([a-z][a-z ]*?)\"?\s*(?:[,\n]|$)", re.IGNORECASE),
    "ric_code": re.compile(r"ric(?:[_ ]code)?\s*[:=]\s*\"?(\d+)", re.IGNORECASE),
    "confidence": re.compile(r"confidence\s*[:=]\s*\"?(\d+(?:\.\d+)?)\s*(%?)", re.IGNORECASE),
    "recyclable": re.compile(r"recyclable\s*[:=]\s*\"?(true|false|yes|no)", re.IGNORECASE),
    "description": re.compile(r"description\s*[:=]\s*\"?([^\"\n]+)", re.IGNORECASE),
}

_TRUE_WORDS = {"true", "yes", "1"}
_FALSE_WORDS = {"false", "no", "0"}


def normalize_ric_code(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        code = int(str(value).strip().lstrip("#"))
    except ValueError:
        return None
    return code if 1 <= code <= 7 else None


def normalize_confidence(value: Any) -> Optional[float]:
    """0-1 stays as is, 1-100 is read as a percentage; result clamped to 0-1."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip().rstrip("%"))
    except ValueError:
        return None
    if number > 1.0:
        number /= 100.0
    return round(min(max(number, 0.0), 1.0), 4)


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if value is None:
        return None
    word = str(value).strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    return None


def _load_json(text: str) -> Optional[Dict[str, Any]]:
    cleaned = _CODE_FENCE.sub("", text.strip())
    candidates = [cleaned]
    match = _JSON_OBJECT.search(cleaned)
    if match and match.group(0) != cleaned:
        candidates.append(match.group(0))
    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(data, dict):
            return data
    return None


def _scan_fields(text: str) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    for field, pattern in _FALLBACK_PATTERNS.items():
        match = pattern.search(text)
        if not match:
            continue
        if field == "confidence":
            data[field] = match.group(1) + match.group(2)
        else:
            data[field] = match.group(1).strip()
    return data


def parse_analysis(text: str) -> MaterialResult:
    """
    Parse a model reply into a MaterialResult.

    Raises:
        UnrecognizedMaterialError: neither JSON nor the fallback patterns
            found a material type or RIC code.
    """
    data = _load_json(text or "")
    if data is None:
        data = _scan_fields(text or "")
        if data:
            logger.info("Vision reply was not JSON; used pattern fallback")

    ric_code = normalize_ric_code(data.get("ric_code", data.get("ric")))
    material_type = str(data.get("material_type") or data.get("material") or "").strip().lower()
    if not material_type and ric_code is not None:
        material_type = "plastic"
    if not material_type or material_type == "unknown":
        raise UnrecognizedMaterialError(
            context={"reply_preview": (text or "")[:200]},
        )

    recyclable = _as_bool(data.get("recyclable", data.get("is_recyclable")))
    if recyclable is None:
        recyclable = default_recyclability(material_type, ric_code)

    description = data.get("description")
    return MaterialResult(
        material_type=material_type[:50],
        is_recyclable=recyclable,
        confidence=normalize_confidence(data.get("confidence")),
        ric_code=ric_code,
        description=str(description)[:2000] if description else None,
    )
