"""
Rescan Backend — Scan Request/Response Schemas
===============================================

What:  Pydantic models for material identification results, scan records,
       upload responses, feedback and ledger statistics.

MaterialResult is the value object passed from a VisionService to the
ledger. ScanRecordInput is the validated payload ScanRecorder inserts.
"""

import uuid
from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from rescan.models.scan_record import ScanRecord
from rescan.schemas.address import AddressResponse

ScanMethod = Literal["upload", "camera", "manual"]
# Ledger-only method for direct point credits; never accepted from clients
ADJUSTMENT = "adjustment"
RecordMethod = Literal["upload", "camera", "manual", "adjustment"]
Feedback = Literal["correct", "incorrect", "partially_correct", "unsure"]


class MaterialResult(BaseModel):
    """Outcome of a material identification (from vision or manual entry)."""
    material_type: str = Field(
        min_length=1,
        max_length=50,
        description="plastic, cardboard, paper, glass, metal, aluminum, ...",
    )
    is_recyclable: bool
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    ric_code: Optional[int] = Field(default=None, ge=1, le=7)
    description: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("material_type")
    @classmethod
    def normalize_material_type(cls, v: str) -> str:
        normalized = v.strip().lower()
        if not normalized:
            raise ValueError("material_type must not be blank")
        return normalized


class ScanRecordInput(BaseModel):
    """Everything ScanRecorder needs to append one record."""
    address_key: str
    material_type: str
    is_recyclable: bool
    confidence: Optional[float] = None
    ric_code: Optional[int] = None
    description: Optional[str] = None
    points_awarded: int = Field(ge=0)
    bonus_points: int = Field(default=0, ge=0)
    scan_method: RecordMethod = "upload"
    original_filename: Optional[str] = Field(default=None, max_length=255)
    image_path: Optional[str] = Field(default=None, max_length=255)


class ScanRecordResponse(BaseModel):
    id: uuid.UUID
    street_address: str
    material_type: str
    ric_code: Optional[int] = None
    is_recyclable: bool
    confidence: Optional[float] = None
    description: Optional[str] = None
    points_awarded: int
    bonus_points: int
    scan_method: str
    original_filename: Optional[str] = None
    image_url: Optional[str] = Field(default=None, description="URL path of the stored image")
    user_feedback: Optional[str] = None
    feedback_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_record(cls, record: ScanRecord) -> "ScanRecordResponse":
        return cls(
            id=record.id,
            street_address=record.address_key,
            material_type=record.material_type,
            ric_code=record.ric_code,
            is_recyclable=record.is_recyclable,
            confidence=record.confidence,
            description=record.description,
            points_awarded=record.points_awarded,
            bonus_points=record.bonus_points,
            scan_method=record.scan_method,
            original_filename=record.original_filename,
            image_url=f"/api/files/{record.image_path}" if record.image_path else None,
            user_feedback=record.user_feedback,
            feedback_at=record.feedback_at,
            created_at=record.created_at,
        )


class EducationalContent(BaseModel):
    material_name: str
    common_uses: str
    recycling_info: str
    helpful_tips: str
    points_explanation: str
    environmental_impact: str


class ScanUploadResponse(BaseModel):
    """
    Returned by POST /api/scan/upload and POST /api/scans with HTTP 201.

    Only built after the ledger transaction committed, so `scan.points_awarded`
    and `address.points_total` are always durable values.
    """
    message: str
    scan: ScanRecordResponse
    address: Optional[AddressResponse] = None
    educational_content: EducationalContent


class ManualScanRequest(BaseModel):
    street_address: str
    material: MaterialResult
    scan_method: ScanMethod = "manual"


class ScanListResponse(BaseModel):
    street_address: str
    scans: List[ScanRecordResponse]
    count: int
    limit: int
    offset: int


class FeedbackRequest(BaseModel):
    feedback: str = Field(
        description="One of: correct, incorrect, partially_correct, unsure",
        examples=["correct"],
    )


class ScanStatistics(BaseModel):
    """Aggregates computed from scan_records (optionally for one address)."""
    street_address: Optional[str] = None
    total_scans: int
    recyclable_scans: int
    non_recyclable_scans: int
    total_points: int
    recycling_rate: float = Field(description="Share of recyclable scans, 0.0-1.0")
    address_count: int = Field(description="Distinct addresses with at least one scan")
    materials: Dict[str, int] = Field(default_factory=dict, description="Scan count per material type")

