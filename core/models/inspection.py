# =============================================================================
# core/models/inspection.py - Cleaning Inspection Schemas
# =============================================================================
# These models define the inspection-record domain:
# - CleaningInspection: one property inspection with nested sections,
#   checklists, photos, damage reports and check-in/check-out evidence
# - PropertyTemplate: reusable checklist definition for a property
# - InspectionEmployee: cleaner profile shown in the inspection wizard
#
# Image slots hold either an inline data URI (data:image/...;base64,...) or
# an object-storage URL. Remote rows keep the whole record in a jsonb
# `payload` column next to a few indexed columns.
# =============================================================================

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import Field, field_validator

from .base import CamelModel, OptionalText


class InspectionStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"


# =============================================================================
# Nested Parts
# =============================================================================

class ChecklistItem(CamelModel):
    """A single checklist item within a room section."""

    id: str
    label: str
    label_en: OptionalText = None
    checked: bool = False
    required_photo: bool = False
    photo: OptionalText = None


class ChecklistTemplateItem(CamelModel):
    """Checklist item as defined on a property template (no result fields)."""

    id: str | None = None
    label: str
    label_en: OptionalText = None
    required_photo: bool = False


class ReferenceImage(CamelModel):
    """Admin-uploaded image showing the expected standard."""

    image: str
    description: OptionalText = None


class RoomSection(CamelModel):
    id: str
    name: str
    description: str = ""
    reference_images: list[ReferenceImage] = Field(default_factory=list)
    photos: list[str] = Field(default_factory=list)
    notes: str = ""
    checklist: list[ChecklistItem] = Field(default_factory=list)
    # Set on the light (locally cached) variant only
    photo_count: int | None = None

    @field_validator("photos", mode="before")
    @classmethod
    def _photo_urls(cls, value: Any) -> Any:
        # The wizard stores upload-widget entries; keep their URL
        if not isinstance(value, list):
            return value
        photos = []
        for entry in value:
            if isinstance(entry, dict):
                entry = entry.get("url") or entry.get("thumbUrl")
            if entry:
                photos.append(entry)
        return photos


class DamageReport(CamelModel):
    """Pre-clean damage documentation."""

    id: str
    description: str = ""
    photo: str = ""
    location: str = ""
    timestamp: str = ""


class CheckInOut(CamelModel):
    """GPS + timestamp + optional photo for check-in or check-out."""

    timestamp: str
    gps_lat: float | None = None
    gps_lng: float | None = None
    gps_address: str = ""
    photo: OptionalText = None
    key_return_method: OptionalText = None


class InspectionEmployee(CamelModel):
    """Cleaner profile managed in the inspection admin panel."""

    id: str = Field(..., min_length=1)
    name: str
    name_en: OptionalText = None
    phone: OptionalText = None
    notes: OptionalText = None

    def to_row(self) -> dict[str, Any]:
        """Row for cleaning_inspection_employees."""
        return {"id": self.id, "name": self.name, "payload": self.to_local()}


# =============================================================================
# Inspection Record
# =============================================================================

class CleaningInspection(CamelModel):
    """Complete inspection record."""

    id: str = Field(..., min_length=1)
    property_id: str
    property_address: str = ""
    property_notes: OptionalText = None
    property_notes_zh: OptionalText = None
    property_note_images: list[str] = Field(default_factory=list)
    check_out_date: str
    submitted_at: OptionalText = None
    sections: list[RoomSection] = Field(default_factory=list)
    submitter_name: OptionalText = None
    status: InspectionStatus = InspectionStatus.PENDING
    template_name: OptionalText = None
    check_in: CheckInOut | None = None
    check_out: CheckInOut | None = None
    damage_reports: list[DamageReport] = Field(default_factory=list)
    assigned_employee: InspectionEmployee | None = None
    # Set on the light (locally cached) variant only
    photo_count: int | None = None

    @property
    def freshness(self) -> str:
        """Sort key: submission time, newest first when sorted descending."""
        return self.submitted_at or ""

    def to_row(self) -> dict[str, Any]:
        """Row for cleaning_inspections: indexed columns + the full payload."""
        return {
            "id": self.id,
            "property_id": self.property_id,
            "status": self.status.value,
            "check_out_date": self.check_out_date,
            "submitted_at": self.submitted_at,
            "payload": self.to_local(),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "CleaningInspection":
        """Rebuild from a remote row; the payload wins over indexed columns."""
        payload = dict(row.get("payload") or {})
        payload.setdefault("id", row.get("id"))
        payload.setdefault("propertyId", row.get("property_id") or "")
        payload.setdefault("checkOutDate", row.get("check_out_date") or "")
        if row.get("status"):
            payload.setdefault("status", row["status"])
        if row.get("submitted_at"):
            payload.setdefault("submittedAt", row["submitted_at"])
        return cls.model_validate(payload)


# =============================================================================
# Property Template
# =============================================================================

class PropertyTemplate(CamelModel):
    """Admin-defined property template."""

    id: str = Field(..., min_length=1)
    name: str
    address: str = ""
    notes: OptionalText = None
    notes_zh: OptionalText = None
    note_images: list[str] = Field(default_factory=list)
    sections: list[str] = Field(default_factory=list)
    reference_images: dict[str, list[ReferenceImage]] = Field(default_factory=dict)
    checklists: dict[str, list[ChecklistTemplateItem]] | None = None

    def to_row(self) -> dict[str, Any]:
        """Row for cleaning_inspection_properties."""
        return {"id": self.id, "name": self.name, "payload": self.to_local()}

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "PropertyTemplate":
        payload = dict(row.get("payload") or {})
        payload.setdefault("id", row.get("id"))
        payload.setdefault("name", row.get("name") or "")
        return cls.model_validate(payload)


def inspection_employee_from_row(row: dict[str, Any]) -> InspectionEmployee:
    payload = dict(row.get("payload") or {})
    payload.setdefault("id", row.get("id"))
    payload.setdefault("name", row.get("name") or "")
    return InspectionEmployee.model_validate(payload)
