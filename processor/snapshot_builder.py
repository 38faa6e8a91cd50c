"""수집 결과 -> 저장용 스냅샷 레코드 (flat dict).

Storage itself belongs to the caller; this only flattens an
:class:`AcquisitionResult` into JSON-friendly scalars plus two nested blobs.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from processor.models import AcquisitionResult
from processor.pipeline import build_report

TOP_REGION_COUNT = 3


def _age_days(started_at: datetime, now: datetime) -> float:
    if started_at.tzinfo is None:
        started_at = started_at.replace(tzinfo=timezone.utc)
    return (now - started_at).total_seconds() / 86_400


def build_snapshot(result: AcquisitionResult, now: datetime | None = None) -> dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    facets = result.facets or build_report(result.creatives)
    creatives = result.creatives

    total_reach = sum(c.effective_reach for c in creatives)
    ages = [_age_days(c.started_at, now) for c in creatives if c.started_at is not None]

    demo = facets.demographics
    gender = demo.gender[0] if demo.gender else None
    # age breakdown is ordered by bracket; dominant = highest share
    age = max(demo.age, key=lambda a: a.percentage) if demo.age else None

    snapshot: dict[str, Any] = {
        "page_id": result.page_id,
        "page_name": result.page_name,
        "strategy": result.strategy,
        "fetched_at": result.fetched_at.isoformat(),
        "total_found": result.total_found,
        "active_count": sum(1 for c in creatives if c.is_active),
        "total_reach": total_reach,
        "avg_reach_per_creative": total_reach / len(creatives) if creatives else 0.0,
        "estimated_spend_usd": facets.spend.total_estimated_spend,
        "video_count": facets.media.video,
        "image_count": facets.media.image,
        "carousel_count": facets.media.carousel,
        "video_percentage": facets.media.video_percentage,
        "image_percentage": facets.media.image_percentage,
        "carousel_percentage": facets.media.carousel_percentage,
        "avg_creative_age_days": sum(ages) / len(ages) if ages else 0.0,
        "dominant_gender": gender.gender if gender else None,
        "dominant_gender_pct": gender.percentage if gender else None,
        "dominant_age_range": age.age if age else None,
        "dominant_age_pct": age.percentage if age else None,
    }
    for i in range(TOP_REGION_COUNT):
        region = demo.regions[i] if i < len(demo.regions) else None
        snapshot[f"top_region_{i + 1}_code"] = region.region if region else None
        snapshot[f"top_region_{i + 1}_pct"] = region.percentage if region else None

    snapshot["demographics"] = asdict(demo) if demo.creatives_with_demographics else None
    snapshot["spend_by_region"] = [asdict(r) for r in facets.spend.by_region] or None
    return snapshot
