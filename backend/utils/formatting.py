"""
Result Rendering

Turns checked images into human-readable text or the JSON report.
"""

from typing import List, Optional, Sequence

from models.update_models import UpdateReport
from updates.image import Image, UpdateStatus
from updates.update_checker import UpdateRun

# Sort order for text output: most actionable first
_STATUS_ORDER = {
    UpdateStatus.UPDATE_AVAILABLE: 0,
    UpdateStatus.ERROR: 1,
    UpdateStatus.UNKNOWN: 2,
    UpdateStatus.PENDING: 3,
    UpdateStatus.UP_TO_DATE: 4,
}

_LABELS = {
    UpdateStatus.UPDATE_AVAILABLE: "Update available",
    UpdateStatus.UP_TO_DATE: "Up to date",
    UpdateStatus.UNKNOWN: "Unknown",
    UpdateStatus.PENDING: "Not checked",
    UpdateStatus.ERROR: "Error",
}

_ICONS = {
    UpdateStatus.UPDATE_AVAILABLE: "⬆",
    UpdateStatus.UP_TO_DATE: "✓",
    UpdateStatus.UNKNOWN: "?",
    UpdateStatus.PENDING: "…",
    UpdateStatus.ERROR: "✗",
}


def short_digest(digest: Optional[str]) -> str:
    """
    Shorten a digest for display.

    Examples:
        >>> short_digest("sha256:abc123def456789...")
        "abc123def456"
        >>> short_digest(None)
        "-"
    """
    if not digest:
        return "-"
    return digest.split(":", 1)[-1][:12]


def sort_images(images: Sequence[Image]) -> List[Image]:
    return sorted(images, key=lambda image: (_STATUS_ORDER[image.status], image.reference))


def render_text(images: Sequence[Image], icons: bool = False) -> str:
    """
    Render results as an aligned table, one image per line.

    Errors are appended after the status so every image stays on one line.
    """
    if not images:
        return "No images found"

    rows = []
    for image in sort_images(images):
        label = _LABELS[image.status]
        if icons:
            label = f"{_ICONS[image.status]} {label}"
        detail = f"{short_digest(image.current_digest)} → {short_digest(image.latest_digest)}"
        if image.error:
            detail = image.error
        rows.append((image.reference, label, detail))

    ref_width = max(len("IMAGE"), *(len(row[0]) for row in rows))
    label_width = max(len("STATUS"), *(len(row[1]) for row in rows))

    lines = [f"{'IMAGE':<{ref_width}}  {'STATUS':<{label_width}}  DETAIL"]
    lines.extend(f"{ref:<{ref_width}}  {label:<{label_width}}  {detail}" for ref, label, detail in rows)
    return "\n".join(lines)


def render_summary(run: UpdateRun) -> str:
    report = UpdateReport.from_run(run)
    metrics = report.metrics
    summary = (
        f"Checked {metrics.monitored_images} images in {run.duration_ms}ms: "
        f"{metrics.updates_available} update(s) available, {metrics.up_to_date} up to date, "
        f"{metrics.unknown} unknown, {metrics.errors} error(s)"
    )
    for reference, reason in run.invalid_references.items():
        summary += f"\nSkipped invalid reference '{reference}': {reason}"
    return summary


def render_json(run: UpdateRun, indent: Optional[int] = 2) -> str:
    """Render the run as the JSON report served by the API."""
    return UpdateReport.from_run(run).model_dump_json(indent=indent)
