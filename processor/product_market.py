"""상품 x 시장 매트릭스 -- creatives grouped into pseudo-products, reach by market."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from processor.media_pricing import country_name
from processor.models import Creative, MarketReach, ProductMarketMatrix, ProductSummary
from processor.spend_estimator import apportion_reach

MAX_PRODUCTS = 20
KEY_LENGTH = 50


def product_key(creative: Creative) -> str:
    """Link title, else the first 50 chars of the body, else ``Ad <id>``."""
    if creative.link_title:
        return creative.link_title
    if creative.body:
        prefix = creative.body[:KEY_LENGTH].strip()
        return prefix + ("..." if len(creative.body) > KEY_LENGTH else "")
    return f"Ad {creative.creative_id}"


@dataclass
class _ProductBucket:
    creatives: list[Creative] = field(default_factory=list)
    total_reach: int = 0
    market_reach: dict[str, int] = field(default_factory=dict)


def build_product_matrix(
    creatives: Iterable[Creative], max_products: int = MAX_PRODUCTS,
) -> ProductMarketMatrix:
    buckets: dict[str, _ProductBucket] = {}
    markets: list[str] = []

    for creative in creatives:
        reach = creative.effective_reach
        if creative.demographics is None or reach <= 0:
            continue

        bucket = buckets.setdefault(product_key(creative), _ProductBucket())
        bucket.creatives.append(creative)
        bucket.total_reach += reach

        for entry in creative.demographics.regions:
            region = entry.region.upper()
            if region not in markets:
                markets.append(region)
            bucket.market_reach[region] = (
                bucket.market_reach.get(region, 0) + apportion_reach(reach, entry.percentage)
            )

    products: list[ProductSummary] = []
    for name, bucket in buckets.items():
        market_rows = [
            MarketReach(
                region=region,
                region_name=country_name(region),
                reach=reach,
                percentage=reach / bucket.total_reach * 100 if bucket.total_reach > 0 else 0.0,
            )
            for region, reach in bucket.market_reach.items()
        ]
        market_rows.sort(key=lambda m: m.reach, reverse=True)

        starts = [c.started_at for c in bucket.creatives if c.started_at is not None]
        first = bucket.creatives[0]
        products.append(ProductSummary(
            product_id=first.creative_id,
            product_name=name,
            description=first.body,
            creative_count=len(bucket.creatives),
            total_reach=bucket.total_reach,
            is_active=any(c.is_active for c in bucket.creatives),
            started_at=min(starts) if starts else None,
            markets=market_rows,
            creative_ids=[c.detail_id or c.creative_id for c in bucket.creatives],
        ))

    products.sort(key=lambda p: p.total_reach, reverse=True)
    return ProductMarketMatrix(
        products=products[:max_products],
        markets=markets,
        total_reach=sum(p.total_reach for p in products),
    )
