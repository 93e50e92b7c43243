"""
Report Pydantic schemas.

Defines request and response schemas for report endpoints.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from civicconnect.app.models.report_enums import ReportStatus, ReportCategory, ReportPriority
from civicconnect.app.schemas.common import PaginationMeta


class Address(BaseModel):
    street: Optional[str] = Field(default=None, max_length=255)
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=100)
    zip_code: Optional[str] = Field(default=None, max_length=20)


class LocationIn(BaseModel):
    """`coordinates` is a [longitude, latitude] pair."""
    coordinates: List[float] = Field(..., min_length=2, max_length=2)
    address: Optional[Address] = None


class ReportCreate(BaseModel):
    """
    Schema for creating a report.

    Used by POST /reports. Coordinate ranges are checked by the service so
    the failure carries a per-field reason.
    """
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)
    category: ReportCategory
    priority: ReportPriority = ReportPriority.MEDIUM
    location: LocationIn


class StatusUpdateRequest(BaseModel):
    # Plain string: an unknown status is a 400, not a schema error
    status: str
    comment: Optional[str] = Field(default=None, max_length=500)


class AssignRequest(BaseModel):
    assigned_to: int
    comment: Optional[str] = Field(default=None, max_length=500)


class FeedbackRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(default=None, max_length=500)


class LocationOut(BaseModel):
    type: str = "Point"
    coordinates: List[float]
    address: Address


class TimelineEntryResponse(BaseModel):
    status: ReportStatus
    comment: Optional[str] = None
    updated_by: int
    timestamp: datetime

    class Config:
        from_attributes = True


class ReportImageResponse(BaseModel):
    id: int
    url: str
    caption: Optional[str] = None
    uploaded_at: datetime

    class Config:
        from_attributes = True


class FeedbackResponse(BaseModel):
    rating: int
    comment: Optional[str] = None
    submitted_at: Optional[datetime] = None


class ReportResponse(BaseModel):
    id: int
    title: str
    description: str
    category: ReportCategory
    priority: ReportPriority
    status: ReportStatus
    location: LocationOut
    submitted_by: int
    assigned_to: Optional[int] = None
    images: List[ReportImageResponse] = []
    timeline: List[TimelineEntryResponse] = []
    feedback: Optional[FeedbackResponse] = None
    created_at: datetime
    updated_at: datetime


class ReportEnvelope(BaseModel):
    success: bool = True
    report: ReportResponse


class ReportListResponse(BaseModel):
    success: bool = True
    reports: List[ReportResponse]
    pagination: PaginationMeta


class MapReportItem(BaseModel):
    id: int
    title: str
    category: ReportCategory
    priority: ReportPriority
    status: ReportStatus
    coordinates: List[float]
    address_city: Optional[str] = None
    created_at: datetime


class MapReportsResponse(BaseModel):
    success: bool = True
    count: int
    reports: List[MapReportItem]


class ImageUploadResponse(BaseModel):
    success: bool = True
    report_id: int
    images: List[ReportImageResponse]


class FieldWorkerImageItem(BaseModel):
    report_id: int
    report_title: str
    image: ReportImageResponse


class FieldWorkerImagesResponse(BaseModel):
    success: bool = True
    count: int
    images: List[FieldWorkerImageItem]
