"""광고 소재 도메인 모델 -- 수집 결과와 파생 지표.

Creative / DemographicSample are produced by the crawlers; everything else is
derived by the processor modules and recomputed on every run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

MediaKind = Literal["video", "image", "carousel", "unknown"]
MEDIA_KINDS: tuple[str, ...] = ("video", "image", "carousel", "unknown")


# ── 수집 단위 ──

@dataclass(frozen=True)
class AgeGenderShare:
    age: str
    gender: str
    percentage: float


@dataclass(frozen=True)
class RegionShare:
    region: str
    percentage: float


@dataclass(frozen=True)
class DemographicSample:
    """Per-creative audience breakdown. Percentages are raw (not normalized)."""

    detail_id: str
    age_gender: tuple[AgeGenderShare, ...] = ()
    regions: tuple[RegionShare, ...] = ()
    total_reach: int | None = None
    impressions_lower: int | None = None
    impressions_upper: int | None = None
    unrecognized_locations: tuple[str, ...] = ()


@dataclass(frozen=True)
class Creative:
    creative_id: str
    detail_id: str | None = None
    page_id: str | None = None
    page_name: str | None = None
    started_at: datetime | None = None
    stopped_at: datetime | None = None
    body: str | None = None
    link_title: str | None = None
    link_caption: str | None = None
    destination_url: str | None = None
    total_reach: int = 0
    media_kind: MediaKind = "unknown"
    reach_lower: int | None = None
    reach_upper: int | None = None
    ad_count: int = 1
    library_links: tuple[str, ...] = ()
    platforms: tuple[str, ...] = ()
    demographics: DemographicSample | None = None

    @property
    def is_active(self) -> bool:
        return self.stopped_at is None

    @property
    def effective_reach(self) -> int:
        """Observed reach, falling back to the enrichment sample's total."""
        if self.total_reach > 0:
            return self.total_reach
        if self.demographics and self.demographics.total_reach:
            return self.demographics.total_reach
        return 0


# ── 인구통계 집계 ──

@dataclass
class AgeShare:
    age: str
    percentage: float


@dataclass
class GenderShare:
    gender: str
    percentage: float


@dataclass
class AggregatedDemographics:
    age: list[AgeShare] = field(default_factory=list)
    gender: list[GenderShare] = field(default_factory=list)
    age_gender: list[AgeGenderShare] = field(default_factory=list)
    regions: list[RegionShare] = field(default_factory=list)
    total_weight: float = 0.0
    creatives_with_demographics: int = 0
    creatives_without_reach: int = 0


# ── 매체비 추정 ──

@dataclass
class RegionSpend:
    region: str
    region_name: str
    reach: int
    cpm: float
    estimated_spend: float


@dataclass
class CreativeSpend:
    creative_id: str
    detail_id: str | None
    title: str
    description: str | None
    total_reach: int
    estimated_spend: float
    by_region: list[RegionSpend]
    started_at: datetime | None
    is_active: bool


@dataclass
class SpendAnalysis:
    total_estimated_spend: float = 0.0
    total_reach: int = 0
    by_region: list[RegionSpend] = field(default_factory=list)
    top_creatives: list[CreativeSpend] = field(default_factory=list)
    average_cpm: float = 0.0
    currency: str = "USD"


# ── 상품 x 시장 ──

@dataclass
class MarketReach:
    region: str
    region_name: str
    reach: int
    percentage: float


@dataclass
class ProductSummary:
    product_id: str
    product_name: str
    description: str | None
    creative_count: int
    total_reach: int
    is_active: bool
    started_at: datetime | None
    markets: list[MarketReach]
    creative_ids: list[str]


@dataclass
class ProductMarketMatrix:
    products: list[ProductSummary] = field(default_factory=list)
    markets: list[str] = field(default_factory=list)
    total_reach: int = 0


# ── 시계열 ──

@dataclass
class TimePeriodGroup:
    key: str
    label: str
    creatives: list[Creative]


@dataclass
class CountryReachPoint:
    label: str
    reach: dict[str, int]


@dataclass
class MediaMixPoint:
    label: str
    video: int = 0
    image: int = 0
    carousel: int = 0


@dataclass
class VelocityPoint:
    label: str
    creatives_launched: int
    total_reach: int


@dataclass
class TrajectoryPoint:
    label: str
    total_reach: int
    avg_reach_per_creative: int


@dataclass
class TrendSignal:
    trend: Literal["scaling", "stable", "declining"] = "stable"
    change_percent: float = 0.0
    peak_label: str = ""
    peak_count: int = 0


@dataclass
class TrendReport:
    period: str
    groups: list[TimePeriodGroup] = field(default_factory=list)
    countries: list[str] = field(default_factory=list)
    country_reach: list[CountryReachPoint] = field(default_factory=list)
    media_mix: list[MediaMixPoint] = field(default_factory=list)
    velocity: list[VelocityPoint] = field(default_factory=list)
    trajectory: list[TrajectoryPoint] = field(default_factory=list)
    signal: TrendSignal = field(default_factory=TrendSignal)


@dataclass
class MediaTypeBreakdown:
    video: int = 0
    image: int = 0
    carousel: int = 0
    unknown: int = 0
    video_percentage: float = 0.0
    image_percentage: float = 0.0
    carousel_percentage: float = 0.0


# ── 훅 / 브랜드 지표 ──

@dataclass
class HookGroup:
    hook_text: str              # first-seen display text
    normalized_text: str
    frequency: int
    total_reach: int
    avg_reach_per_creative: float
    creative_ids: list[str] = field(default_factory=list)


@dataclass
class BrandKpis:
    total_creatives: int = 0
    active_creatives: int = 0
    inactive_creatives: int = 0
    active_rate: float = 0.0
    total_reach: int = 0
    avg_reach_per_creative: float = 0.0
    median_reach: float = 0.0
    top_creative_reach: int = 0
    creatives_per_week: float = 0.0
    creatives_last_30_days: int = 0
    creatives_last_7_days: int = 0
    creative_freshness: Literal["high", "medium", "low"] = "low"
    avg_lifespan_days: float = 0.0
    longest_running_days: int = 0
    evergreen_creatives: int = 0
    preferred_format: Literal["video", "image", "carousel", "balanced"] = "balanced"
    primary_gender: str | None = None
    gender_skew: float = 0.0
    primary_age_group: str | None = None
    top_markets: list[str] = field(default_factory=list)
    market_concentration: float = 0.0
    unique_hooks: int = 0
    strategy_profile: Literal[
        "scale-focused", "testing-focused", "evergreen-focused", "seasonal", "emerging",
    ] = "emerging"
    ad_volume: Literal["high", "medium", "low"] = "low"
    creative_diversity: Literal["high", "medium", "low"] = "low"
    market_presence: Literal["broad", "focused", "niche"] = "broad"


@dataclass
class ReportFacets:
    demographics: AggregatedDemographics
    spend: SpendAnalysis
    products: ProductMarketMatrix
    media: MediaTypeBreakdown
    trends: TrendReport
    hooks: list[HookGroup] = field(default_factory=list)
    brand: BrandKpis = field(default_factory=BrandKpis)


# ── 수집 결과 (외부 경계) ──

@dataclass
class EnrichmentStats:
    attempted: int = 0
    scraped: int = 0
    failed: int = 0


@dataclass
class AcquisitionResult:
    page_id: str
    page_name: str | None
    creatives: list[Creative]
    total_found: int
    strategy: str
    fetched_at: datetime
    total_active_on_page: int | None = None
    countries: list[str] = field(default_factory=list)
    partial: bool = False
    enrichment: EnrichmentStats = field(default_factory=EnrichmentStats)
    facets: ReportFacets | None = None
    success: Literal[True] = True


@dataclass
class AcquisitionFailure:
    error: str
    kind: Literal["invalid_input", "upstream", "acquisition", "timeout"]
    code: int | None = None
    subcode: int | None = None
    user_message: str = ""
    retryable: bool = False
    success: Literal[False] = False


AcquisitionResponse = AcquisitionResult | AcquisitionFailure
