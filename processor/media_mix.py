"""소재 유형 분포 (video / image / carousel)."""

from __future__ import annotations

from collections.abc import Iterable

from processor.models import Creative, MediaTypeBreakdown


def media_type_breakdown(creatives: Iterable[Creative]) -> MediaTypeBreakdown:
    """Counts per media kind; percentages are over classified creatives only."""
    out = MediaTypeBreakdown()
    for creative in creatives:
        kind = creative.media_kind if creative.media_kind in ("video", "image", "carousel") else "unknown"
        setattr(out, kind, getattr(out, kind) + 1)

    classified = out.video + out.image + out.carousel
    if classified:
        out.video_percentage = out.video / classified * 100
        out.image_percentage = out.image / classified * 100
        out.carousel_percentage = out.carousel / classified * 100
    return out
