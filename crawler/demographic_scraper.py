"""광고 상세 페이지 인구통계 수집기.

One detail view per call, strictly sequential, each preceded by a randomized
delay. Navigation or layout failures degrade to ``None``; only a closed
browser/page propagates.
"""

from __future__ import annotations

import asyncio
import random

from loguru import logger
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, Response

from crawler.config import CrawlerSettings, crawler_settings
from crawler.response_harvester import is_intercept_target, parse_json_documents
from processor.demographic_parser import extract, extract_from_payload
from processor.models import DemographicSample
from processor.validation import build_detail_url

DETAILS_TEXTS = ["see ad details", "see summary details", "ad details"]
DETAILS_SELECTORS = [
    'div[role="button"][aria-label*="See ad details"]',
    'div[role="button"][aria-label*="see ad details"]',
    '[data-testid="ad_details_button"]',
]
LOCATION_TEXTS = [
    "breakdown by location",
    "location breakdown",
    "reach by location",
    "location, age and gender",
    "age, gender and location",
]

EXPAND_ALL_JS = """(limit) => {
    const els = Array.from(document.querySelectorAll('[aria-expanded="false"]')).slice(0, limit);
    els.forEach(el => el.click());
    return els.length;
}"""

_CLOSED_MARKERS = ("target closed", "has been closed", "browser has been closed", "context closed")


def _is_closed_error(exc: BaseException) -> bool:
    return any(marker in str(exc).lower() for marker in _CLOSED_MARKERS)


class DemographicScraper:
    """Reads the per-location reach table of one creative's detail view."""

    channel = "demographics"

    def __init__(self, page: Page, settings: CrawlerSettings | None = None):
        self.page = page
        self.settings = settings or crawler_settings

    async def _delay(self):
        s = self.settings
        delay_ms = random.randint(s.enrichment_delay_min_ms, max(s.enrichment_delay_min_ms, s.enrichment_delay_max_ms))
        await asyncio.sleep(delay_ms / 1000)

    async def _click_details(self) -> bool:
        page = self.page
        for selector in DETAILS_SELECTORS:
            try:
                element = await page.query_selector(selector)
                if element:
                    await element.click()
                    return True
            except PlaywrightError as e:
                if _is_closed_error(e):
                    raise
                continue

        clicked = await page.evaluate(
            """(needles) => {
                const els = document.querySelectorAll('div[role="button"], button, a[role="link"]');
                for (const el of els) {
                    const text = (el.textContent || '').toLowerCase();
                    if (needles.some(n => text.includes(n))) { el.click(); return true; }
                }
                return false;
            }""",
            DETAILS_TEXTS,
        )
        return bool(clicked)

    async def _open_location_breakdown(self) -> bool:
        page = self.page
        clicked = await page.evaluate(
            """(needles) => {
                const els = document.querySelectorAll('div[role="button"], button, [aria-expanded], span');
                for (const el of els) {
                    const text = (el.textContent || '').toLowerCase().trim();
                    if (text.length < 120 && needles.some(n => text.includes(n))) { el.click(); return true; }
                }
                return false;
            }""",
            LOCATION_TEXTS,
        )
        if clicked:
            return True
        # 텍스트 매칭 실패 시 접힌 섹션 일괄 펼침
        expanded = await page.evaluate(EXPAND_ALL_JS, 10)
        return bool(expanded)

    async def scrape(self, detail_id: str) -> DemographicSample | None:
        """Demographic sample for ``detail_id`` or None when unavailable."""
        await self._delay()

        s = self.settings
        page = self.page
        payload_samples: list[DemographicSample] = []

        async def _on_response(response: Response):
            if not is_intercept_target(response.url):
                return
            try:
                for doc in parse_json_documents(await response.text()):
                    sample = extract_from_payload(doc, detail_id)
                    if sample:
                        payload_samples.append(sample)
            except Exception as e:
                logger.debug("[{}] response skip ({}): {}", self.channel, detail_id, e)

        page.on("response", _on_response)
        try:
            await page.goto(
                build_detail_url(detail_id),
                wait_until="domcontentloaded",
                timeout=s.detail_navigation_timeout_ms,
            )
            await page.wait_for_timeout(s.detail_settle_ms)

            if await self._click_details():
                await page.wait_for_timeout(s.disclosure_settle_ms)
            if await self._open_location_breakdown():
                await page.wait_for_timeout(s.disclosure_settle_ms)
            await page.wait_for_timeout(s.final_settle_ms)

            raw_text = await page.evaluate("document.body.innerText")
            sample = extract(raw_text or "", detail_id)
            if sample is None and payload_samples:
                sample = payload_samples[-1]

            if sample:
                logger.debug(
                    "[{}] {} -> {} age/gender rows, {} regions, reach={}",
                    self.channel, detail_id, len(sample.age_gender), len(sample.regions), sample.total_reach,
                )
            else:
                logger.debug("[{}] {} -> no demographic data", self.channel, detail_id)
            return sample

        except PlaywrightError as e:
            if _is_closed_error(e):
                raise
            logger.warning("[{}] {} 수집 실패: {}", self.channel, detail_id, e)
            return None
        finally:
            try:
                page.remove_listener("response", _on_response)
            except Exception as e:
                logger.debug("[{}] listener 해제 실패: {}", self.channel, e)
