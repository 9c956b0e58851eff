"""
Pydantic models for environmental reports.

Persisted documents use camelCase field names (shared with the web frontend);
Python attributes are snake_case with camelCase aliases.
"""

from pydantic import AliasChoices, BaseModel, Field
from datetime import datetime
from typing import Any, Dict, List, Optional
from enum import Enum


class ReportCategory(str, Enum):
    WASTE_DUMPING = "waste_dumping"
    AIR_POLLUTION = "air_pollution"
    WATER_POLLUTION = "water_pollution"
    VEHICLE_EMISSIONS = "vehicle_emissions"
    INDUSTRIAL_EMISSIONS = "industrial_emissions"
    OTHER = "other"


class ReportStatus(str, Enum):
    """
    Report lifecycle states.

    Submitted → In Review → Resolved, with Submitted → Resolved allowed
    directly and Archived reachable from every other state.
    """
    SUBMITTED = "Submitted"
    IN_REVIEW = "In Review"
    RESOLVED = "Resolved"
    ARCHIVED = "Archived"


SEVERITY_LABELS: Dict[int, str] = {
    1: "Low",
    2: "Medium",
    3: "High",
    4: "Critical",
}


class Coordinates(BaseModel):
    """Latitude/longitude pair. Accepts `lat`/`lng` on input."""
    latitude: float = Field(..., validation_alias=AliasChoices("latitude", "lat"))
    longitude: float = Field(..., validation_alias=AliasChoices("longitude", "lng"))

    @property
    def in_range(self) -> bool:
        return -90 <= self.latitude <= 90 and -180 <= self.longitude <= 180


class ReportImage(BaseModel):
    """Metadata for one uploaded image. The binary lives in object storage."""
    path: str = Field(..., description="Storage key, reports/{reportId}/images/{filename}")
    url: str = Field(..., description="Retrieval URL returned by object storage")
    content_type: str = Field(..., alias="contentType")
    size_bytes: int = Field(..., ge=0, alias="sizeBytes")

    class Config:
        populate_by_name = True


class StatusHistoryEntry(BaseModel):
    """Status transition audit entry."""
    from_status: str = Field(..., alias="from", description="Previous status ('' at creation)")
    to_status: str = Field(..., alias="to")
    changed_by: str = Field(..., alias="changedBy")
    timestamp: datetime
    note: str = ""

    class Config:
        populate_by_name = True


class DraftReport(BaseModel):
    """
    Report under construction on the client.

    Every field is optional so an in-progress form can be represented;
    the lifecycle engine decides whether a draft is complete enough to submit.
    """
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    category: Optional[str] = None
    severity: Optional[int] = None
    coords: Optional[Coordinates] = None

    class Config:
        json_schema_extra = {
            "example": {
                "title": "Illegal dumping near river",
                "description": "Construction rubble and plastic bags dumped on the river bank.",
                "category": "waste_dumping",
                "severity": 3,
                "coords": {"latitude": -1.29, "longitude": 36.82},
            }
        }
        extra = "ignore"


class Report(BaseModel):
    """A persisted report as delivered by the store."""
    id: str = Field(..., description="Store-assigned document ID")
    user_id: str = Field(..., alias="userId")
    title: str
    description: str
    category: ReportCategory
    severity: int = Field(..., ge=1, le=4)
    coords: Optional[Coordinates] = None
    status: ReportStatus = ReportStatus.SUBMITTED
    images: List[ReportImage] = Field(default_factory=list)
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")
    submitted_at: datetime = Field(..., alias="submittedAt")
    reviewed_at: Optional[datetime] = Field(None, alias="reviewedAt")
    resolved_at: Optional[datetime] = Field(None, alias="resolvedAt")
    status_history: List[StatusHistoryEntry] = Field(default_factory=list, alias="statusHistory")
    version: int = Field(default=1, ge=1)

    class Config:
        populate_by_name = True

    @property
    def is_locatable(self) -> bool:
        return self.coords is not None

    @property
    def severity_label(self) -> str:
        return SEVERITY_LABELS.get(self.severity, "Unknown")

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "Report":
        payload = dict(data)
        payload["id"] = doc_id
        return cls.model_validate(payload)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"id"})


class StatusPatch(BaseModel):
    """
    Partial update produced by the lifecycle engine.
    Restricted to status, timestamp, audit and version fields.
    """
    status: ReportStatus
    updated_at: datetime
    reviewed_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    clear_resolved_at: bool = False
    history_entry: Optional[StatusHistoryEntry] = None
    version: int

    def to_fields(self) -> Dict[str, Any]:
        """Scalar document fields to write (history is appended separately)."""
        fields: Dict[str, Any] = {
            "status": self.status.value,
            "updatedAt": self.updated_at,
            "version": self.version,
        }
        if self.reviewed_at is not None:
            fields["reviewedAt"] = self.reviewed_at
        if self.resolved_at is not None:
            fields["resolvedAt"] = self.resolved_at
        elif self.clear_resolved_at:
            fields["resolvedAt"] = None
        return fields

    def apply_to(self, report: Report) -> Report:
        """Return a copy of `report` with this patch applied."""
        update: Dict[str, Any] = {
            "status": self.status,
            "updated_at": self.updated_at,
            "version": self.version,
        }
        if self.reviewed_at is not None:
            update["reviewed_at"] = self.reviewed_at
        if self.resolved_at is not None:
            update["resolved_at"] = self.resolved_at
        elif self.clear_resolved_at:
            update["resolved_at"] = None
        if self.history_entry is not None:
            update["status_history"] = [*report.status_history, self.history_entry]
        return report.model_copy(update=update)


class StatusUpdateRequest(BaseModel):
    """Council request to move a report to a new status."""
    status: ReportStatus = Field(..., description="Target status")
    note: Optional[str] = Field(None, max_length=500, description="Optional note explaining the change")
    expected_version: Optional[int] = Field(
        None,
        ge=1,
        alias="expectedVersion",
        description="Reject the update with 409 if the stored version differs",
    )

    class Config:
        populate_by_name = True


class ImageUploadFailure(BaseModel):
    filename: str
    reason: str


class ImageUploadResult(BaseModel):
    """Outcome of a multi-image upload; failures are isolated per image."""
    report: Report
    uploaded: List[ReportImage] = Field(default_factory=list)
    failed: List[ImageUploadFailure] = Field(default_factory=list)
