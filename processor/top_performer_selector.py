"""인구통계 수집 대상 선정 -- bounds the expensive per-creative detail scrape.

Ranking: reach-range midpoint desc (0 if unknown), then days running desc.
Only creatives with a detail id are eligible since enrichment needs a
navigable detail view.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

from processor.models import Creative

DEFAULT_CAP = 3


def reach_midpoint(creative: Creative) -> float:
    if creative.reach_lower is not None and creative.reach_upper is not None:
        return (creative.reach_lower + creative.reach_upper) / 2
    # observed total reach acts as a degenerate range
    if creative.total_reach > 0:
        return float(creative.total_reach)
    return 0.0


def days_running(creative: Creative, now: datetime | None = None) -> int:
    if creative.started_at is None:
        return 0
    now = now or datetime.now(timezone.utc)
    started = creative.started_at
    if started.tzinfo is None and now.tzinfo is not None:
        started = started.replace(tzinfo=timezone.utc)
    elif started.tzinfo is not None and now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return max((now - started).days, 0)


def select_top_performers(
    creatives: Iterable[Creative],
    cap: int = DEFAULT_CAP,
    now: datetime | None = None,
) -> list[Creative]:
    if cap <= 0:
        return []
    now = now or datetime.now(timezone.utc)
    eligible = [c for c in creatives if c.detail_id]
    eligible.sort(key=lambda c: (reach_midpoint(c), days_running(c, now)), reverse=True)
    return eligible[:cap]
