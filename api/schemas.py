"""Pydantic 스키마 -- 수집 요청 검증.

응답은 도메인 dataclass(AcquisitionResult / AcquisitionFailure)를
jsonable_encoder로 그대로 직렬화한다 (``success`` 필드로 구분).
"""

from typing import Literal

from pydantic import BaseModel, Field, model_validator

from crawler.response_harvester import ScrapeOptions


class ScrapeRequest(BaseModel):
    reference: str | None = Field(default=None, description="Ad Library URL 또는 숫자 page id")
    url: str | None = Field(default=None, description="reference 별칭")
    countries: list[str] = Field(default_factory=list, description="ISO 국가 코드 (API 기본 NL)")
    active_status: Literal["ACTIVE", "ALL", "INACTIVE"] = "ACTIVE"
    limit: int | None = Field(default=None, ge=1, le=5000)
    enrich: bool = False
    max_enriched: int = Field(default=3, ge=0, le=50)
    period: Literal["monthly", "weekly"] = "monthly"
    deadline_sec: float | None = Field(default=None, gt=0, le=900)
    require_complete: bool = False
    strategy: Literal["auto", "browser", "api"] = "auto"

    @model_validator(mode="after")
    def _need_reference(self):
        if not (self.reference or self.url):
            raise ValueError("reference or url is required")
        return self

    @property
    def page_reference(self) -> str:
        return self.reference or self.url or ""

    def to_options(self) -> ScrapeOptions:
        return ScrapeOptions(
            countries=[c.strip().upper() for c in self.countries if c.strip()],
            active_status=self.active_status,
            limit=self.limit,
            enrich=self.enrich,
            max_enriched=self.max_enriched,
            period=self.period,
            deadline_sec=self.deadline_sec,
            require_complete=self.require_complete,
            strategy=self.strategy,
        )
