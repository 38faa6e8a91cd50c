"""브랜드 KPI -- 볼륨 / 도달 / 소재 속도 / 수명 / 타겟팅 요약과 전략 프로파일.

All time windows are relative to ``now`` (injectable for tests). Creatives
without a start date are left out of the velocity and lifespan figures but
still count towards volume and reach.
"""

from __future__ import annotations

import math
import statistics
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone

from processor.models import (
    AggregatedDemographics,
    BrandKpis,
    Creative,
    HookGroup,
    MediaTypeBreakdown,
)

# ── 임계값 ──

VELOCITY_WINDOW_WEEKS = 8
EVERGREEN_DAYS = 30
DOMINANT_FORMAT_PCT = 60
TOP_MARKETS = 3


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def lifespan_days(creative: Creative, now: datetime) -> int | None:
    """Whole days from start to stop (or ``now`` while still running)."""
    if creative.started_at is None:
        return None
    end = _aware(creative.stopped_at) if creative.stopped_at else now
    days = math.floor((end - _aware(creative.started_at)).total_seconds() / 86_400)
    return max(days, 0)


def _freshness(per_week: float) -> str:
    if per_week >= 5:
        return "high"
    if per_week >= 2:
        return "medium"
    return "low"


def _preferred_format(media: MediaTypeBreakdown | None) -> str:
    if media is None:
        return "balanced"
    if media.video_percentage > DOMINANT_FORMAT_PCT:
        return "video"
    if media.image_percentage > DOMINANT_FORMAT_PCT:
        return "image"
    if media.carousel_percentage > DOMINANT_FORMAT_PCT:
        return "carousel"
    return "balanced"


def strategy_profile(kpis: BrandKpis) -> str:
    """First matching profile wins; ``emerging`` is the fallback."""
    if kpis.active_creatives > 30 and kpis.total_reach > 500_000 and kpis.creatives_per_week >= 3:
        return "scale-focused"
    if kpis.creatives_per_week >= 5 and kpis.avg_lifespan_days < 21:
        return "testing-focused"
    if kpis.evergreen_creatives >= 5 and kpis.avg_lifespan_days > 30:
        return "evergreen-focused"
    if kpis.active_rate < 30 and kpis.total_creatives > 20:
        return "seasonal"
    return "emerging"


def analyze_brand(
    creatives: Sequence[Creative],
    demographics: AggregatedDemographics | None = None,
    media: MediaTypeBreakdown | None = None,
    hooks: Sequence[HookGroup] = (),
    now: datetime | None = None,
) -> BrandKpis:
    now = _aware(now or datetime.now(timezone.utc))
    kpis = BrandKpis(total_creatives=len(creatives))
    if not creatives:
        return kpis

    # 볼륨
    kpis.active_creatives = sum(1 for c in creatives if c.is_active)
    kpis.inactive_creatives = kpis.total_creatives - kpis.active_creatives
    kpis.active_rate = kpis.active_creatives / kpis.total_creatives * 100

    # 도달 (0 제외)
    reaches = [c.effective_reach for c in creatives if c.effective_reach > 0]
    kpis.total_reach = sum(reaches)
    kpis.avg_reach_per_creative = kpis.total_reach / len(reaches) if reaches else 0.0
    kpis.median_reach = float(statistics.median(reaches)) if reaches else 0.0
    kpis.top_creative_reach = max(reaches, default=0)

    # 소재 속도
    dated = [_aware(c.started_at) for c in creatives if c.started_at is not None]
    kpis.creatives_last_30_days = sum(1 for d in dated if d >= now - timedelta(days=30))
    kpis.creatives_last_7_days = sum(1 for d in dated if d >= now - timedelta(days=7))
    window_start = now - timedelta(weeks=VELOCITY_WINDOW_WEEKS)
    kpis.creatives_per_week = sum(1 for d in dated if d >= window_start) / VELOCITY_WINDOW_WEEKS
    kpis.creative_freshness = _freshness(kpis.creatives_per_week)

    # 수명
    lifespans = [d for d in (lifespan_days(c, now) for c in creatives) if d is not None]
    if lifespans:
        kpis.avg_lifespan_days = sum(lifespans) / len(lifespans)
        kpis.longest_running_days = max(lifespans)
        kpis.evergreen_creatives = sum(1 for d in lifespans if d >= EVERGREEN_DAYS)

    kpis.preferred_format = _preferred_format(media)

    # 타겟팅
    if demographics is not None and demographics.gender:
        kpis.primary_gender = demographics.gender[0].gender
        shares = {g.gender: g.percentage for g in demographics.gender}
        kpis.gender_skew = abs(shares.get("female", 0.0) - shares.get("male", 0.0))
    if demographics is not None and demographics.age:
        # age breakdown is ordered by bracket
        kpis.primary_age_group = max(demographics.age, key=lambda a: a.percentage).age
    if demographics is not None and demographics.regions:
        top = demographics.regions[:TOP_MARKETS]
        kpis.top_markets = [r.region for r in top]
        kpis.market_concentration = sum(r.percentage for r in top)

    kpis.unique_hooks = len(hooks)

    kpis.strategy_profile = strategy_profile(kpis)
    kpis.ad_volume = "high" if kpis.total_creatives > 50 else "medium" if kpis.total_creatives > 20 else "low"
    kpis.creative_diversity = _freshness(kpis.creatives_per_week)
    if kpis.market_concentration < 50:
        kpis.market_presence = "broad"
    elif kpis.market_concentration < 75:
        kpis.market_presence = "focused"
    else:
        kpis.market_presence = "niche"
    return kpis
