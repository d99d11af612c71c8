"""Read-only RIC material catalog (codes 1-7)."""

from fastapi import APIRouter, Response

from rescan.schemas.common import ErrorResponse
from rescan.schemas.material import MaterialInfo, MaterialListResponse
from rescan.services.materials import get_material, list_materials

router = APIRouter(prefix="/api/materials", tags=["Materials"])

# The catalog only changes with a deploy
CATALOG_CACHE_CONTROL = "public, max-age=3600"


@router.get("", response_model=MaterialListResponse, summary="List all RIC materials")
async def materials_index(response: Response) -> MaterialListResponse:
    materials = list_materials()
    response.headers["Cache-Control"] = CATALOG_CACHE_CONTROL
    return MaterialListResponse(materials=materials, count=len(materials))


@router.get(
    "/{ric_code}",
    response_model=MaterialInfo,
    responses={404: {"description": "Unknown RIC code", "model": ErrorResponse}},
    summary="Details for one RIC code",
)
async def material_detail(ric_code: int, response: Response) -> MaterialInfo:
    material = get_material(ric_code)
    response.headers["Cache-Control"] = CATALOG_CACHE_CONTROL
    return material
