"""Spend estimation engine -- region-apportioned reach x static CPM.

Per creative and per region of its demographic sample:

    reach_region = round_half_up(total_reach * pct / 100)
    spend_region = reach_region / 1000 * CPM(region)

Regions are summed across creatives for the global breakdown, creatives are
ranked by their own spend, and the average CPM is spend / reach * 1000.

Creatives without a demographic sample, or with zero reach, are excluded
entirely (not zero-filled). The result is an estimate: CPM is a benchmark
average, not the advertiser's real bid.
"""

from __future__ import annotations

import math
from collections.abc import Iterable

from processor.media_pricing import country_name, get_cpm
from processor.models import Creative, CreativeSpend, RegionSpend, SpendAnalysis

TOP_CREATIVES = 10
TITLE_LENGTH = 50


def round_half_up(value: float) -> int:
    """0.5 always rounds up (Python's ``round`` is banker's rounding)."""
    return int(math.floor(value + 0.5))


def apportion_reach(total_reach: int, percentage: float) -> int:
    return round_half_up(total_reach * percentage / 100)


def calculate_spend(reach: int, region: str, cpm_table: dict[str, float] | None = None) -> float:
    return reach / 1000 * get_cpm(region, cpm_table)


def creative_title(creative: Creative) -> str:
    if creative.link_title:
        return creative.link_title
    if creative.body:
        return creative.body[:TITLE_LENGTH]
    return f"Ad {creative.creative_id}"


def estimate_creative_spend(
    creative: Creative, cpm_table: dict[str, float] | None = None,
) -> CreativeSpend | None:
    """Spend for one creative, or None when it has no sample or no reach."""
    sample = creative.demographics
    reach = creative.effective_reach
    if sample is None or reach <= 0:
        return None

    rows: list[RegionSpend] = []
    for entry in sample.regions:
        region = entry.region.upper()
        region_reach = apportion_reach(reach, entry.percentage)
        rows.append(RegionSpend(
            region=region,
            region_name=country_name(region),
            reach=region_reach,
            cpm=get_cpm(region, cpm_table),
            estimated_spend=calculate_spend(region_reach, region, cpm_table),
        ))
    rows.sort(key=lambda r: r.estimated_spend, reverse=True)

    return CreativeSpend(
        creative_id=creative.creative_id,
        detail_id=creative.detail_id,
        title=creative_title(creative),
        description=creative.body,
        total_reach=reach,
        estimated_spend=sum(r.estimated_spend for r in rows),
        by_region=rows,
        started_at=creative.started_at,
        is_active=creative.is_active,
    )


def analyze_spend(
    creatives: Iterable[Creative],
    cpm_table: dict[str, float] | None = None,
    top_n: int = TOP_CREATIVES,
) -> SpendAnalysis:
    """Aggregate spend over all eligible creatives. Empty input -> zeroed analysis."""
    per_creative: list[CreativeSpend] = []
    totals: dict[str, list[float]] = {}  # region -> [reach, spend]

    for creative in creatives:
        spend = estimate_creative_spend(creative, cpm_table)
        if spend is None:
            continue
        per_creative.append(spend)
        for row in spend.by_region:
            bucket = totals.setdefault(row.region, [0, 0.0])
            bucket[0] += row.reach
            bucket[1] += row.estimated_spend

    per_creative.sort(key=lambda s: s.estimated_spend, reverse=True)

    by_region = [
        RegionSpend(
            region=region,
            region_name=country_name(region),
            reach=int(reach),
            cpm=get_cpm(region, cpm_table),
            estimated_spend=spend,
        )
        for region, (reach, spend) in totals.items()
    ]
    by_region.sort(key=lambda r: r.estimated_spend, reverse=True)

    total_spend = sum(r.estimated_spend for r in by_region)
    total_reach = sum(r.reach for r in by_region)
    return SpendAnalysis(
        total_estimated_spend=total_spend,
        total_reach=total_reach,
        by_region=by_region,
        top_creatives=per_creative[:top_n],
        average_cpm=total_spend / total_reach * 1000 if total_reach > 0 else 0.0,
        currency="USD",
    )


def format_currency(amount: float, currency: str = "USD") -> str:
    symbol = "$" if currency == "USD" else f"{currency} "
    return f"{symbol}{round_half_up(amount):,}"


def format_number(value: int) -> str:
    if value >= 1_000_000:
        return f"{value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"{value / 1_000:.1f}K"
    return str(value)
