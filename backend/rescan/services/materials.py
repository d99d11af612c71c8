"""
Rescan Backend — Material Catalog
==================================

What:  Read-only reference data for Resin Identification Codes (RIC 1-7)
       and common non-plastic materials, plus the educational feedback
       shown after a scan.
Who:   GET /api/materials, ScanService (feedback), the vision parsers
       (default recyclability when a model omits it).

This is reference data, not state: nothing here is persisted or mutated.
"""

from typing import Dict, List, Optional

from rescan.exceptions import NotFoundError
from rescan.schemas.material import MaterialInfo
from rescan.schemas.scan import EducationalContent, MaterialResult

RIC_CATALOG: Dict[int, MaterialInfo] = {
    1: MaterialInfo(
        code=1,
        name="PET/PETE",
        full_name="Polyethylene Terephthalate",
        description="Clear plastic bottles, food containers",
        recyclability="Highly recyclable, widely accepted",
        commonly_recyclable=True,
        common_products=["Water bottles", "Soda bottles", "Food jars"],
        recycling_rate="29.1% in US (2018)",
        educational_note="One of the most commonly recycled plastics",
    ),
    2: MaterialInfo(
        code=2,
        name="HDPE",
        full_name="High-Density Polyethylene",
        description="Milk jugs, detergent bottles, shopping bags",
        recyclability="Widely recyclable",
        commonly_recyclable=True,
        common_products=["Milk containers", "Cleaning product bottles", "Shopping bags"],
        recycling_rate="29.3% in US (2018)",
        educational_note="Very commonly accepted in curbside recycling",
    ),
    3: MaterialInfo(
        code=3,
        name="PVC",
        full_name="Polyvinyl Chloride",
        description="Pipes, vinyl siding, some packaging",
        recyclability="Limited recycling options",
        commonly_recyclable=False,
        common_products=["Pipes", "Wire insulation", "Some bottles"],
        recycling_rate="Less than 1% in US",
        educational_note="Difficult to recycle due to chemical additives",
    ),
    4: MaterialInfo(
        code=4,
        name="LDPE",
        full_name="Low-Density Polyethylene",
        description="Plastic bags, squeeze bottles, lids",
        recyclability="Limited curbside, special collection often needed",
        commonly_recyclable=False,
        common_products=["Plastic bags", "Bread bags", "Squeeze bottles"],
        recycling_rate="5.7% in US (2018)",
        educational_note="Often requires special drop-off locations",
    ),
    5: MaterialInfo(
        code=5,
        name="PP",
        full_name="Polypropylene",
        description="Yogurt containers, bottle caps, straws",
        recyclability="Increasingly accepted in recycling programs",
        commonly_recyclable=True,
        common_products=["Yogurt cups", "Bottle caps", "Food containers"],
        recycling_rate="1.2% in US (2018)",
        educational_note="Growing acceptance in recycling programs",
    ),
    6: MaterialInfo(
        code=6,
        name="PS",
        full_name="Polystyrene",
        description="Styrofoam cups, takeout containers, packing peanuts",
        recyclability="Very limited recycling options",
        commonly_recyclable=False,
        common_products=["Disposable cups", "Takeout containers", "Packing materials"],
        recycling_rate="Less than 1% in US",
        educational_note="One of the least recyclable plastics",
    ),
    7: MaterialInfo(
        code=7,
        name="Other",
        full_name="Other plastics or mixed materials",
        description="Mixed plastics, some water bottles, electronics",
        recyclability="Generally not recyclable in standard programs",
        commonly_recyclable=False,
        common_products=["Some water bottles", "Electronics", "Composite materials"],
        recycling_rate="Varies widely",
        educational_note="Catch-all category for plastics not covered by 1-6",
    ),
}

# Learner-facing text per RIC code: (name, uses, recycling, tips)
_PLASTIC_GUIDES: Dict[int, tuple] = {
    1: (
        "PET Plastic (Polyethylene Terephthalate)",
        "Water bottles, food containers, clothing fibers",
        "Widely recyclable - can be made into new bottles, clothing, and carpet",
        "Remove caps and labels, rinse clean before recycling",
    ),
    2: (
        "HDPE Plastic (High-Density Polyethylene)",
        "Milk jugs, detergent bottles, shopping bags",
        "Highly recyclable - becomes new containers, pipes, and plastic lumber",
        "Rinse containers and remove paper labels for best recycling results",
    ),
    3: (
        "PVC Plastic (Polyvinyl Chloride)",
        "Bottles, blister packaging, vinyl records",
        "Limited recycling - check local programs for special handling",
        "Often not accepted in curbside recycling due to chemical concerns",
    ),
    4: (
        "LDPE Plastic (Low-Density Polyethylene)",
        "Plastic bags, squeeze bottles, lids",
        "Special recycling required - bring bags to grocery store collection bins",
        "Never put plastic bags in curbside recycling - they jam machinery",
    ),
    5: (
        "PP Plastic (Polypropylene)",
        "Yogurt containers, bottle caps, straws",
        "Increasingly recyclable - becomes new containers and automotive parts",
        "Check if your local program accepts #5 plastics",
    ),
    6: (
        "PS Plastic (Polystyrene)",
        "Disposable cups, takeout containers, foam packaging",
        "Rarely recyclable in most areas - avoid when possible",
        "Look for foam-free alternatives and reusable options",
    ),
    7: (
        "Other Plastics (Mixed or Other)",
        "Multi-layer packaging, some water bottles, electronics",
        "Usually not recyclable - varies by specific material",
        "Focus on reducing use of mixed-material items",
    ),
}

_MATERIAL_GUIDES: Dict[str, tuple] = {
    "cardboard": (
        "Corrugated Cardboard",
        "Shipping boxes, packaging, cereal boxes",
        "Highly recyclable when clean and dry - becomes new boxes and paperboard",
        "Flatten boxes and keep them dry; greasy pizza boxes go in the trash",
    ),
    "paper": (
        "Paper",
        "Office paper, newspapers, magazines, mail",
        "Widely recyclable - turned into new paper products",
        "Keep paper dry and free of food; shredded paper may need to be bagged",
    ),
    "glass": (
        "Glass",
        "Bottles and jars for food and drinks",
        "Endlessly recyclable without loss of quality",
        "Rinse jars and remove lids; window glass and ceramics are not accepted",
    ),
    "metal": (
        "Metal (Steel or Tin)",
        "Food cans, aerosol cans, lids",
        "Highly recyclable - steel can be recycled again and again",
        "Rinse cans and make sure aerosols are empty",
    ),
    "aluminum": (
        "Aluminum",
        "Drink cans, foil, trays",
        "Highly recyclable - a recycled can can be back on the shelf in 60 days",
        "Rinse cans and ball up clean foil so it is not lost in sorting",
    ),
}

_UNKNOWN_GUIDE = (
    "Unknown Material",
    "Material not clearly identified",
    "Unable to determine recyclability",
    "Try taking a clearer photo with better lighting",
)

# Non-plastic materials accepted by typical curbside programs
RECYCLABLE_MATERIALS = frozenset({"cardboard", "paper", "glass", "metal", "aluminum"})


def list_materials() -> List[MaterialInfo]:
    return [RIC_CATALOG[code] for code in sorted(RIC_CATALOG)]


def get_material(ric_code: int) -> MaterialInfo:
    """Raises NotFoundError for codes outside 1-7."""
    material = RIC_CATALOG.get(ric_code)
    if material is None:
        raise NotFoundError(resource="material", resource_id=str(ric_code))
    return material


def default_recyclability(material_type: str, ric_code: Optional[int]) -> bool:
    """Best guess when an identification does not state recyclability."""
    if ric_code is not None and ric_code in RIC_CATALOG:
        return RIC_CATALOG[ric_code].commonly_recyclable
    return material_type.strip().lower() in RECYCLABLE_MATERIALS


def educational_content(material: MaterialResult, points_awarded: int) -> EducationalContent:
    """Feedback shown to the learner after a scan was credited."""
    if material.ric_code is not None and material.ric_code in _PLASTIC_GUIDES:
        name, uses, recycling, tips = _PLASTIC_GUIDES[material.ric_code]
    else:
        name, uses, recycling, tips = _MATERIAL_GUIDES.get(material.material_type, _UNKNOWN_GUIDE)

    if material.is_recyclable:
        points_explanation = (
            f"Great job! You earned {points_awarded} points for identifying a recyclable item."
        )
        impact = "Recycling this material helps reduce landfill waste and conserves natural resources!"
    else:
        points_explanation = (
            f"Good learning! You earned {points_awarded} points for practicing material identification."
        )
        impact = "While not recyclable, knowing this helps you make better choices in the future."

    return EducationalContent(
        material_name=name,
        common_uses=uses,
        recycling_info=recycling,
        helpful_tips=tips,
        points_explanation=points_explanation,
        environmental_impact=impact,
    )
