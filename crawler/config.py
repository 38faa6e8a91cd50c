"""크롤러 전역 설정."""

import os

from pydantic_settings import BaseSettings


class CrawlerSettings(BaseSettings):
    # 타임아웃
    page_timeout_ms: int = 30_000
    navigation_timeout_ms: int = 60_000
    detail_navigation_timeout_ms: int = 15_000

    # 재시도
    max_retries: int = 3
    retry_delay_sec: float = 2.0

    # 브라우저
    headless: bool = True
    slow_mo_ms: int = 0
    locale: str = "en-US"
    timezone_id: str = "Europe/Amsterdam"
    viewport_width: int = 1920
    viewport_height: int = 1080

    # ── 목록 스크롤 ──
    scroll_idle_limit: int = 5     # 신규 URL 없는 연속 스크롤 횟수
    max_scrolls: int = 300         # 하드 상한
    scroll_wait_ms: int = 800
    scroll_burst_every: int = 10
    scroll_burst_count: int = 3
    scroll_burst_wait_ms: int = 300
    initial_settle_ms: int = 3_000

    # ── 상세(인구통계) ──
    enrichment_delay_min_ms: int = 500
    enrichment_delay_max_ms: int = 1_000
    detail_settle_ms: int = 1_000
    disclosure_settle_ms: int = 800
    final_settle_ms: int = 200

    # 기본 수집량 / 데드라인
    browser_result_cap: int = 100
    api_result_cap: int = 1_000
    deadline_sec: float = 240.0

    model_config = {"env_prefix": "CRAWLER_"}


crawler_settings = CrawlerSettings()


# ── Graph API (ads_archive) ──
META_ACCESS_TOKEN = os.getenv("META_ACCESS_TOKEN", "")
META_API_VERSION = os.getenv("META_API_VERSION", "v19.0")
META_GRAPH_BASE = os.getenv("META_GRAPH_BASE", "https://graph.facebook.com")
META_MAX_RETRIES = int(os.getenv("META_MAX_RETRIES", "3"))
META_RETRY_BACKOFF_MS = int(os.getenv("META_RETRY_BACKOFF_MS", "1000"))
META_TIMEOUT_SEC = float(os.getenv("META_TIMEOUT_SEC", "30"))

# auto | browser | api
ADREACH_STRATEGY = os.getenv("ADREACH_STRATEGY", "auto").strip().lower()
