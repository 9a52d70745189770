"""
Update Report Models for dockcup
Pydantic models for the JSON report shared by the CLI (--raw) and the HTTP API
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from updates.image import Image, UpdateStatus
from updates.update_checker import UpdateRun, count_statuses


class ImageReport(BaseModel):
    """Check result for one image"""
    reference: str
    registry: str
    repository: str
    tag: str
    current_digest: Optional[str] = None
    latest_digest: Optional[str] = None
    status: str
    update_available: Optional[bool] = None
    error: Optional[str] = None

    @classmethod
    def from_image(cls, image: Image) -> 'ImageReport':
        return cls(**image.to_dict())


class ReportMetrics(BaseModel):
    """Totals per verdict"""
    monitored_images: int = 0
    up_to_date: int = 0
    updates_available: int = 0
    unknown: int = 0    # No local digest to compare, or not checked
    errors: int = 0


class UpdateReport(BaseModel):
    """
    Full report for one run.

    `images` maps reference → True (update available), False (up to date)
    or None (no verdict); `details` carries the per-image data.
    """
    metrics: ReportMetrics
    images: Dict[str, Optional[bool]] = Field(default_factory=dict)
    details: List[ImageReport] = Field(default_factory=list)
    invalid_references: Dict[str, str] = Field(default_factory=dict)
    checked_at: Optional[datetime] = None
    duration_ms: int = 0

    @classmethod
    def from_run(cls, run: UpdateRun) -> 'UpdateReport':
        counts = count_statuses(run.images)
        metrics = ReportMetrics(
            monitored_images=len(run.images),
            up_to_date=counts[UpdateStatus.UP_TO_DATE.value],
            updates_available=counts[UpdateStatus.UPDATE_AVAILABLE.value],
            unknown=counts[UpdateStatus.UNKNOWN.value] + counts[UpdateStatus.PENDING.value],
            errors=counts[UpdateStatus.ERROR.value],
        )
        return cls(
            metrics=metrics,
            images={image.reference: image.update_available for image in run.images},
            details=[ImageReport.from_image(image) for image in run.images],
            invalid_references=dict(run.invalid_references),
            checked_at=run.checked_at,
            duration_ms=run.duration_ms,
        )
