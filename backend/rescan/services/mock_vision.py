"""
Rescan Backend — Mock Vision Service
=====================================

What:  Deterministic material identification for classrooms without an API key.
How:   Picks a canned scenario from keywords in the upload filename
       ("bottle" → PET, "cardboard" → cardboard, ...). Filenames without a
       keyword map to a scenario by a stable hash, so the same photo always
       gets the same answer.
"""

import logging
import zlib
from typing import Dict, List, Tuple

from rescan.schemas.scan import MaterialResult
from rescan.services.vision_base import VisionService

logger = logging.getLogger(__name__)

SCENARIOS: Dict[str, MaterialResult] = {
    "pet": MaterialResult(
        material_type="plastic",
        ric_code=1,
        is_recyclable=True,
        confidence=0.85,
        description="PET (Polyethylene Terephthalate) plastic bottle",
    ),
    "hdpe": MaterialResult(
        material_type="plastic",
        ric_code=2,
        is_recyclable=True,
        confidence=0.78,
        description="HDPE (High-Density Polyethylene) container",
    ),
    "ldpe": MaterialResult(
        material_type="plastic",
        ric_code=4,
        is_recyclable=False,
        confidence=0.74,
        description="LDPE (Low-Density Polyethylene) film bag",
    ),
    "pp": MaterialResult(
        material_type="plastic",
        ric_code=5,
        is_recyclable=True,
        confidence=0.70,
        description="PP (Polypropylene) container",
    ),
    "ps": MaterialResult(
        material_type="plastic",
        ric_code=6,
        is_recyclable=False,
        confidence=0.81,
        description="PS (Polystyrene) foam takeout container",
    ),
    "cardboard": MaterialResult(
        material_type="cardboard",
        is_recyclable=True,
        confidence=0.92,
        description="Corrugated cardboard packaging",
    ),
    "blurry": MaterialResult(
        material_type="plastic",
        is_recyclable=False,
        confidence=0.1,
        description="Recycling symbol not readable",
    ),
}

# First matching keyword wins
KEYWORDS: List[Tuple[str, str]] = [
    ("blurry", "blurry"),
    ("bottle", "pet"),
    ("jug", "hdpe"),
    ("milk", "hdpe"),
    ("bag", "ldpe"),
    ("yogurt", "pp"),
    ("cap", "pp"),
    ("foam", "ps"),
    ("styrofoam", "ps"),
    ("cardboard", "cardboard"),
    ("box", "cardboard"),
]

# Scenarios eligible for keyword-less filenames
_DEFAULT_ROTATION = ["pet", "hdpe", "cardboard", "pp"]


class MockVisionService(VisionService):
    """Canned identifications; always healthy."""

    name = "mock"

    def pick_scenario(self, filename: str) -> str:
        lowered = (filename or "").lower()
        for keyword, scenario in KEYWORDS:
            if keyword in lowered:
                return scenario
        index = zlib.crc32(lowered.encode("utf-8")) % len(_DEFAULT_ROTATION)
        return _DEFAULT_ROTATION[index]

    async def analyze_image(self, image_path: str, filename: str) -> MaterialResult:
        scenario = self.pick_scenario(filename)
        logger.info("Mock vision picked scenario %r for %s", scenario, filename)
        return SCENARIOS[scenario].model_copy()

    async def health_check(self) -> bool:
        return True
