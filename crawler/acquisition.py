"""수집 컨트롤러 -- 전략 선택, 데드라인, 결과 조립.

``AcquisitionController.run`` never raises: every outcome is either an
:class:`AcquisitionResult` or an :class:`AcquisitionFailure`.

Strategy choice (``ScrapeOptions.strategy`` -> ``ADREACH_STRATEGY`` -> auto):
  - api:     Graph API ``ads_archive`` (requires META_ACCESS_TOKEN)
  - browser: Playwright on the public Ad Library page
  - auto:    api when a token is configured, otherwise browser
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Protocol

from loguru import logger

from crawler.ad_library import AdLibraryCrawler
from crawler.ad_library_api import AdLibraryApiClient
from crawler.config import ADREACH_STRATEGY, META_ACCESS_TOKEN, CrawlerSettings, crawler_settings
from crawler.response_harvester import DiscoveryState, ScrapeOptions
from processor.errors import (
    AdReachError,
    InvalidReferenceError,
    UpstreamError,
    is_retryable,
    user_friendly_message,
)
from processor.models import AcquisitionFailure, AcquisitionResponse, AcquisitionResult
from processor.pipeline import build_report
from processor.validation import parse_page_reference

__all__ = ["AcquisitionController", "AcquisitionStrategy", "ScrapeOptions"]


class AcquisitionStrategy(Protocol):
    name: str

    async def discover_creatives(
        self, page_id: str, options: ScrapeOptions, state: DiscoveryState,
    ) -> None: ...


class AcquisitionController:
    channel = "acquisition"

    def __init__(
        self,
        browser: AcquisitionStrategy | None = None,
        api: AcquisitionStrategy | None = None,
        settings: CrawlerSettings | None = None,
        default_strategy: str | None = None,
        access_token: str | None = None,
    ):
        self.settings = settings or crawler_settings
        self._browser = browser
        self._api = api
        self.default_strategy = (default_strategy or ADREACH_STRATEGY or "auto").lower()
        self.access_token = META_ACCESS_TOKEN if access_token is None else access_token

    # ── 전략 선택 ──

    def _browser_strategy(self) -> AcquisitionStrategy:
        if self._browser is None:
            self._browser = AdLibraryCrawler(self.settings)
        return self._browser

    def _api_strategy(self) -> AcquisitionStrategy:
        if self._api is None:
            self._api = AdLibraryApiClient(access_token=self.access_token)
        return self._api

    def choose_strategy(self, options: ScrapeOptions) -> AcquisitionStrategy:
        wanted = options.strategy if options.strategy != "auto" else self.default_strategy
        if wanted == "api":
            return self._api_strategy()
        if wanted == "browser":
            return self._browser_strategy()
        return self._api_strategy() if self.access_token else self._browser_strategy()

    # ── 실패 변환 ──

    def _failure(self, error: BaseException, kind: str | None = None) -> AcquisitionFailure:
        code = subcode = None
        message = str(error) or type(error).__name__
        if isinstance(error, UpstreamError):
            code, subcode, message = error.code, error.subcode, error.message
        if kind is None:
            kind = error.kind if isinstance(error, AdReachError) else "acquisition"
        return AcquisitionFailure(
            error=message,
            kind=kind,
            code=code,
            subcode=subcode,
            user_message=user_friendly_message(error),
            retryable=is_retryable(error),
        )

    # ── 실행 ──

    async def run(self, reference: str, options: ScrapeOptions | None = None) -> AcquisitionResponse:
        options = options or ScrapeOptions()

        try:
            page_id = parse_page_reference(reference)
        except InvalidReferenceError as e:
            logger.info("[{}] invalid reference: {!r}", self.channel, reference)
            return self._failure(e)

        strategy = self.choose_strategy(options)
        state = DiscoveryState(page_id=page_id)
        deadline = options.deadline_sec or self.settings.deadline_sec
        partial = False
        logger.info(
            "[{}] page={} strategy={} deadline={}s enrich={}",
            self.channel, page_id, strategy.name, deadline, options.enrich,
        )

        try:
            await asyncio.wait_for(strategy.discover_creatives(page_id, options, state), timeout=deadline)
        except asyncio.TimeoutError:
            logger.warning(
                "[{}] page={} deadline {}s 초과 (수집분 {}개)",
                self.channel, page_id, deadline, len(state.snapshot_creatives()),
            )
            if options.require_complete:
                return self._failure(
                    TimeoutError(f"Acquisition timed out after {deadline:g}s"), kind="timeout",
                )
            partial = True
        except AdReachError as e:
            logger.error("[{}] page={} {} 실패: {}", self.channel, page_id, e.kind, e)
            return self._failure(e)
        except Exception as e:
            logger.error("[{}] page={} 수집 실패: {}", self.channel, page_id, e)
            return self._failure(e, kind="acquisition")

        creatives = state.snapshot_creatives()
        facets = build_report(creatives, options.period)
        return AcquisitionResult(
            page_id=page_id,
            page_name=state.page_name,
            creatives=creatives,
            total_found=len(creatives),
            strategy=strategy.name,
            fetched_at=datetime.now(timezone.utc),
            total_active_on_page=state.total_active_on_page,
            countries=list(state.countries),
            partial=partial,
            enrichment=state.enrichment,
            facets=facets,
        )
