"""Response models for the RIC material catalog."""

from typing import List

from pydantic import BaseModel, Field


class MaterialInfo(BaseModel):
    code: int = Field(description="Resin Identification Code (1-7)")
    name: str = Field(description="Short name, e.g. PET/PETE")
    full_name: str
    description: str
    recyclability: str
    commonly_recyclable: bool = Field(
        description="Whether curbside programs usually accept this resin",
    )
    common_products: List[str]
    recycling_rate: str
    educational_note: str


class MaterialListResponse(BaseModel):
    materials: List[MaterialInfo]
    count: int
