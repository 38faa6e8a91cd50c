"""Meta 광고 라이브러리 브라우저 수집기 -- 페이지 단위 소재 탐색 + 인구통계 보강.

수집 흐름:
  1. view_all_page_id 목록 페이지 접속, 응답 리스너로 GraphQL/async 응답 수집
  2. 신규 URL이 끊길 때까지 스크롤 (연속 N회 무변화 또는 하드 상한)
  3. DOM의 a[href] / data-* 속성에서 URL 2차 수집
  4. URL 기준 병합 -> 등장 횟수 순 소재 목록
  5. (옵션) 상위 소재 상세 페이지에서 인구통계 수집 (같은 페이지 재사용)
"""

from __future__ import annotations

import re
from dataclasses import replace

from loguru import logger
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, Response

from crawler.base_crawler import BaseCrawler
from crawler.demographic_scraper import DemographicScraper
from crawler.response_harvester import (
    CandidateAccumulator,
    DiscoveryState,
    ScrapeOptions,
    is_intercept_target,
)
from processor.errors import AcquisitionError
from processor.top_performer_selector import select_top_performers
from processor.validation import build_page_url

SEE_MORE_TEXTS = ["see more", "show more", "load more"]

# "770 ads", "About 770 results" 등 페이지 상단 총계 문구
TOTAL_ACTIVE_PATTERNS = [
    re.compile(r"(\d{1,3}(?:,\d{3})*)\s+ads?\s+(?:use|using)", re.IGNORECASE),
    re.compile(r"(\d{1,3}(?:,\d{3})*)\s+active\s+ads?", re.IGNORECASE),
    re.compile(r"(\d{1,3}(?:,\d{3})*)\s+ads?\s+from", re.IGNORECASE),
    re.compile(r"showing\s+(\d{1,3}(?:,\d{3})*)\s+ads?", re.IGNORECASE),
    re.compile(r"(\d{1,3}(?:,\d{3})*)\s+results?", re.IGNORECASE),
    re.compile(r"(\d{1,3}(?:,\d{3})*)\s+ads?(?:\s|$)", re.IGNORECASE),
]

DOM_URLS_JS = """() => {
    const urls = [];
    document.querySelectorAll('a[href]').forEach(a => {
        const href = a.getAttribute('href');
        if (href) urls.push(href);
    });
    document.querySelectorAll('[data-link-url], [data-href], [data-url]').forEach(el => {
        const url = el.getAttribute('data-link-url') || el.getAttribute('data-href') || el.getAttribute('data-url');
        if (url) urls.push(url);
    });
    return urls;
}"""


def parse_total_active(text: str) -> int | None:
    for pattern in TOTAL_ACTIVE_PATTERNS:
        match = pattern.search(text or "")
        if match:
            value = int(match.group(1).replace(",", ""))
            if 0 < value < 1_000_000:
                return value
    return None


class AdLibraryCrawler(BaseCrawler):
    """스크립트 브라우저 전략."""

    channel = "ad_library"
    name = "browser"

    # ── 응답 리스너 ──

    def _make_listener(self, accumulator: CandidateAccumulator):
        async def _on_response(response: Response):
            if not is_intercept_target(response.url):
                return
            try:
                added = accumulator.ingest_body(await response.text())
                if added:
                    logger.debug("[{}] +{} url (total {})", self.channel, added, len(accumulator))
            except Exception as e:
                logger.debug("[{}] response skip: {}", self.channel, e)

        return _on_response

    # ── 페이지 정보 ──

    async def _read_page_name(self, page: Page) -> str | None:
        try:
            name = await page.evaluate(
                "() => { const h1 = document.querySelector('h1'); return h1 ? h1.textContent.trim() : null; }"
            )
            return name or None
        except PlaywrightError as e:
            logger.debug("[{}] page name 읽기 실패: {}", self.channel, e)
            return None

    async def _read_total_active(self, page: Page) -> int | None:
        try:
            return parse_total_active(await page.evaluate("document.body.innerText"))
        except PlaywrightError as e:
            logger.debug("[{}] 총계 읽기 실패: {}", self.channel, e)
            return None

    # ── 스크롤 루프 ──

    async def scroll_until_idle(self, page: Page, accumulator: CandidateAccumulator) -> int:
        """Scroll until no new URL for ``scroll_idle_limit`` iterations or ``max_scrolls``.

        Returns the number of iterations started.
        """
        s = self.settings
        previous = 0
        idle = 0
        iterations = 0

        for i in range(s.max_scrolls):
            current = len(accumulator)
            if current == previous:
                idle += 1
                if idle >= s.scroll_idle_limit:
                    break
            else:
                idle = 0
                previous = current

            iterations += 1
            await self._scroll_to_bottom(page)
            await page.wait_for_timeout(s.scroll_wait_ms)
            await self._click_by_text(page, SEE_MORE_TEXTS)

            if i > 0 and i % s.scroll_burst_every == 0:
                await self._scroll_burst(page, s.scroll_burst_count, s.scroll_burst_wait_ms)

        logger.info(
            "[{}] 스크롤 종료: {}회, URL {}개 (idle={})",
            self.channel, iterations, len(accumulator), idle,
        )
        return iterations

    # ── 인구통계 보강 ──

    async def enrich(self, page: Page, state: DiscoveryState, cap: int) -> None:
        """Attach demographic samples to the top ``cap`` creatives in ``state``."""
        targets = select_top_performers(state.creatives, cap)
        state.enrichment.attempted = len(targets)
        if not targets:
            return

        scraper = DemographicScraper(page, self.settings)
        positions = {c.creative_id: i for i, c in enumerate(state.creatives)}

        for creative in targets:
            try:
                sample = await scraper.scrape(creative.detail_id)
            except PlaywrightError as e:
                # 브라우저 종료 -> 남은 대상 중단
                state.enrichment.failed += 1
                logger.error("[{}] 인구통계 중단 ({}): {}", self.channel, creative.detail_id, e)
                break

            if sample is None:
                state.enrichment.failed += 1
                continue

            state.enrichment.scraped += 1
            idx = positions[creative.creative_id]
            state.creatives[idx] = replace(
                creative,
                demographics=sample,
                total_reach=creative.total_reach or sample.total_reach or 0,
            )

        logger.info(
            "[{}] 인구통계 {}/{} 성공 (실패 {})",
            self.channel, state.enrichment.scraped, state.enrichment.attempted, state.enrichment.failed,
        )

    # ── 메인 진입점 ──

    async def discover_creatives(
        self,
        page_id: str,
        options: ScrapeOptions,
        state: DiscoveryState,
    ) -> None:
        cap = options.limit or self.settings.browser_result_cap
        country = options.countries[0].upper() if len(options.countries) == 1 else "ALL"
        state.page_id = page_id
        state.cap = cap
        state.countries = [country]

        async with self.session() as page:
            listener = self._make_listener(state.accumulator)
            page.on("response", listener)

            url = build_page_url(page_id, country, options.active_status)
            try:
                await self._with_retry(page.goto, url, wait_until="domcontentloaded")
            except PlaywrightError as e:
                raise AcquisitionError(f"Ad Library page did not load: {e}") from e
            await page.wait_for_timeout(self.settings.initial_settle_ms)

            state.page_name = await self._read_page_name(page)
            state.total_active_on_page = await self._read_total_active(page)

            await self.scroll_until_idle(page, state.accumulator)

            try:
                dom_urls = await page.evaluate(DOM_URLS_JS)
                added = state.accumulator.ingest_dom_urls(dom_urls or [])
                logger.debug("[{}] DOM 2차 수집 +{} url", self.channel, added)
            except PlaywrightError as e:
                logger.warning("[{}] DOM URL 수집 실패: {}", self.channel, e)

            state.page_name = state.page_name or state.accumulator.page_name()
            state.creatives = state.accumulator.build_creatives(page_id, state.page_name, cap)
            logger.info(
                "[{}] page={} ({}) 소재 {}개 (URL {}개, 페이지 표기 {})",
                self.channel, page_id, state.page_name, len(state.creatives),
                len(state.accumulator), state.total_active_on_page,
            )

            # 소재 확정 이후 상세 뷰 응답은 목록 누적기에 넣지 않음
            page.remove_listener("response", listener)

            if options.enrich and state.creatives:
                await self.enrich(page, state, options.max_enriched)
