"""크롤러 베이스 클래스 -- 브라우저 기반 수집기의 부모."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator

from loguru import logger
from playwright.async_api import Browser, BrowserContext, Page, async_playwright

from crawler.config import CrawlerSettings, crawler_settings

if TYPE_CHECKING:
    from crawler.response_harvester import DiscoveryState, ScrapeOptions

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

STEALTH_SCRIPT = """
    Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
    Object.defineProperty(navigator, 'plugins', {
        get: () => {
            const p = [
                { name: 'Chrome PDF Plugin', filename: 'internal-pdf-viewer' },
                { name: 'Chrome PDF Viewer', filename: 'mhjfbmdgcfjbbpaeojofohoefgiehjai' },
            ];
            p.length = 2;
            return p;
        }
    });
    Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
    if (!window.chrome) window.chrome = {};
    if (!window.chrome.runtime) window.chrome.runtime = { connect: () => {}, sendMessage: () => {} };
"""

CLICK_BY_TEXT_JS = """([selector, needles]) => {
    let clicked = 0;
    document.querySelectorAll(selector).forEach(el => {
        const text = (el.textContent || '').toLowerCase();
        if (needles.some(n => text.includes(n))) {
            el.click();
            clicked++;
        }
    });
    return clicked;
}"""


class BaseCrawler(ABC):
    """Playwright 수명주기 + 세션 뮤텍스 + 스크롤/재시도 헬퍼."""

    channel: str = ""  # 하위 클래스에서 override
    name: str = ""

    def __init__(self, settings: CrawlerSettings | None = None):
        self.settings = settings or crawler_settings
        self._playwright = None
        self._browser: Browser | None = None
        # 하나의 브라우저를 여러 호출이 공유할 때 동시 탐색 방지
        self._session_lock = asyncio.Lock()

    # ── Lifecycle ──

    @property
    def is_started(self) -> bool:
        return self._browser is not None

    async def start(self):
        """Playwright 브라우저 시작."""
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.settings.headless,
            slow_mo=self.settings.slow_mo_ms or None,
            args=[
                "--disable-blink-features=AutomationControlled",
                "--no-first-run",
                "--no-default-browser-check",
                "--disable-infobars",
            ],
        )
        logger.info("[{}] 브라우저 시작 (headless={})", self.channel, self.settings.headless)

    async def stop(self):
        """브라우저 종료."""
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
        logger.info("[{}] 브라우저 종료", self.channel)

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, *args):
        await self.stop()

    # ── Context / 세션 ──

    async def _create_context(self) -> BrowserContext:
        s = self.settings
        context = await self._browser.new_context(
            viewport={"width": s.viewport_width, "height": s.viewport_height},
            user_agent=USER_AGENT,
            locale=s.locale,
            timezone_id=s.timezone_id,
        )
        context.set_default_timeout(s.page_timeout_ms)
        context.set_default_navigation_timeout(s.navigation_timeout_ms)

        # Stealth: 봇 감지 회피
        await context.add_init_script(STEALTH_SCRIPT)
        return context

    @asynccontextmanager
    async def session(self) -> AsyncIterator[Page]:
        """Exclusive page on this crawler's browser.

        Starts the browser when it is not running and stops it again on exit;
        a pooled (already started) browser is left running. Cancellation closes
        the context on the way out.
        """
        async with self._session_lock:
            owns_browser = not self.is_started
            if owns_browser:
                await self.start()
            context: BrowserContext | None = None
            try:
                context = await self._create_context()
                page = await context.new_page()
                yield page
            finally:
                if context is not None:
                    try:
                        await context.close()
                    except Exception as e:
                        logger.debug("[{}] context close 실패: {}", self.channel, e)
                if owns_browser:
                    await self.stop()

    # ── 페이지 헬퍼 ──

    async def _scroll_to_bottom(self, page: Page):
        await page.evaluate("window.scrollTo(0, document.body.scrollHeight)")

    async def _click_by_text(
        self,
        page: Page,
        needles: list[str],
        selector: str = 'div[role="button"], button',
    ) -> int:
        """Click every element under ``selector`` whose text contains a needle."""
        lowered = [n.lower() for n in needles]
        clicked = await page.evaluate(CLICK_BY_TEXT_JS, [selector, lowered])
        return int(clicked or 0)

    async def _scroll_burst(self, page: Page, count: int, wait_ms: int):
        for _ in range(count):
            await self._scroll_to_bottom(page)
            await page.wait_for_timeout(wait_ms)

    # ── 재시도 래퍼 ──

    async def _with_retry(self, coro_func, *args, **kwargs):
        """재시도 로직 래퍼."""
        for attempt in range(1, self.settings.max_retries + 1):
            try:
                return await coro_func(*args, **kwargs)
            except Exception as e:
                logger.warning(
                    "[{}] 시도 {}/{} 실패: {}", self.channel, attempt, self.settings.max_retries, e,
                )
                if attempt == self.settings.max_retries:
                    logger.error("[{}] 최대 재시도 초과: {}", self.channel, e)
                    raise
                await asyncio.sleep(self.settings.retry_delay_sec * attempt)

    # ── 추상 메서드 ──

    @abstractmethod
    async def discover_creatives(
        self,
        page_id: str,
        options: "ScrapeOptions",
        state: "DiscoveryState",
    ) -> None:
        """Populate ``state`` with the page's creatives.

        Progress is written to ``state`` as it happens so a cancelled run still
        leaves the partial result behind.
        """
        ...
