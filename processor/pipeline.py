"""수집된 소재 -> 파생 지표 파이프라인.

Every facet is derived independently from the same finalized creative list,
except the brand KPIs, which summarize the other facets. None of the steps
raise for empty input.
"""

from collections.abc import Sequence
from datetime import datetime

from loguru import logger

from processor.brand_analyzer import analyze_brand
from processor.demographic_aggregator import aggregate_demographics
from processor.hook_extractor import extract_hooks
from processor.media_mix import media_type_breakdown
from processor.models import Creative, ReportFacets
from processor.product_market import build_product_matrix
from processor.spend_estimator import analyze_spend
from processor.trend_engine import Period, build_trend_report


def build_report(
    creatives: Sequence[Creative],
    period: Period = "monthly",
    cpm_table: dict[str, float] | None = None,
    now: datetime | None = None,
) -> ReportFacets:
    demographics = aggregate_demographics(creatives)
    spend = analyze_spend(creatives, cpm_table=cpm_table)
    products = build_product_matrix(creatives)
    media = media_type_breakdown(creatives)
    trends = build_trend_report(creatives, period)
    hooks = extract_hooks(creatives)
    brand = analyze_brand(creatives, demographics, media, hooks, now=now)

    logger.info(
        "[pipeline] {} creatives | demographics={} (unit-weight {}) | "
        "spend=${:.2f} | products={} | buckets={} trend={} | hooks={} profile={}",
        len(creatives),
        demographics.creatives_with_demographics,
        demographics.creatives_without_reach,
        spend.total_estimated_spend,
        len(products.products),
        len(trends.groups),
        trends.signal.trend,
        len(hooks),
        brand.strategy_profile,
    )
    return ReportFacets(
        demographics=demographics,
        spend=spend,
        products=products,
        media=media,
        trends=trends,
        hooks=hooks,
        brand=brand,
    )
