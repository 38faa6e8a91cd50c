"""브라우저 전략 -- 가짜 Page 객체로 스크롤 루프 / 보강 / 상세 파서 검증."""

from contextlib import asynccontextmanager
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

import pytest
from playwright.async_api import Error as PlaywrightError

import crawler.ad_library as ad_library
import crawler.demographic_scraper as demographic_scraper
from crawler.ad_library import AdLibraryCrawler, parse_total_active
from crawler.config import CrawlerSettings
from crawler.demographic_scraper import DemographicScraper
from crawler.response_harvester import CandidateAccumulator, DiscoveryState, ScrapeOptions
from processor.models import Creative, DemographicSample

FAST = CrawlerSettings(
    scroll_wait_ms=0,
    scroll_burst_wait_ms=0,
    enrichment_delay_min_ms=0,
    enrichment_delay_max_ms=0,
    detail_settle_ms=0,
    disclosure_settle_ms=0,
    final_settle_ms=0,
)


class FakePage:
    """Minimal async Page stand-in; ``on_scroll`` runs on every scrollTo."""

    def __init__(self, on_scroll=None, inner_text=""):
        self.on_scroll = on_scroll
        self.inner_text = inner_text
        self.scrolls = 0
        self.listeners = []
        self.visited = []

    async def evaluate(self, script, arg=None):
        if script.startswith("window.scrollTo"):
            self.scrolls += 1
            if self.on_scroll:
                self.on_scroll(self.scrolls)
            return None
        if script == "document.body.innerText":
            return self.inner_text
        return 0

    async def wait_for_timeout(self, ms):
        return None

    async def goto(self, url, **kwargs):
        self.visited.append(url)

    async def query_selector(self, selector):
        return None

    def on(self, event, handler):
        self.listeners.append(handler)

    def remove_listener(self, event, handler):
        self.listeners.remove(handler)


def test_parse_total_active():
    assert parse_total_active("~1,240 ads use this creative") == 1240
    assert parse_total_active("About 770 results") == 770
    assert parse_total_active("nothing here") is None


@pytest.mark.asyncio
async def test_scroll_stops_after_idle_iterations():
    acc = CandidateAccumulator()
    acc.add("https://shop.example.com/a")
    page = FakePage()

    iterations = await AdLibraryCrawler(FAST).scroll_until_idle(page, acc)

    assert iterations == FAST.scroll_idle_limit
    assert iterations < FAST.max_scrolls
    assert len(acc) == 1


@pytest.mark.asyncio
async def test_scroll_continues_while_urls_arrive():
    acc = CandidateAccumulator()

    def grow(n):
        if n <= 8:
            acc.add(f"https://shop.example.com/{n}")

    page = FakePage(on_scroll=grow)
    iterations = await AdLibraryCrawler(FAST).scroll_until_idle(page, acc)

    assert len(acc) == 8
    assert FAST.scroll_idle_limit < iterations < FAST.max_scrolls


@pytest.mark.asyncio
async def test_scroll_respects_hard_ceiling():
    acc = CandidateAccumulator()
    page = FakePage(on_scroll=lambda n: acc.add(f"https://shop.example.com/{n}"))
    settings = FAST.model_copy(update={"max_scrolls": 7})

    assert await AdLibraryCrawler(settings).scroll_until_idle(page, acc) == 7


class _FakeScraper:
    results = {}

    def __init__(self, page, settings=None):
        pass

    async def scrape(self, detail_id):
        outcome = self.results[detail_id]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.mark.asyncio
async def test_enrich_attaches_samples_and_counts_failures(monkeypatch):
    sample = DemographicSample(detail_id="1", total_reach=4321)
    _FakeScraper.results = {"1": sample, "2": None}
    monkeypatch.setattr(ad_library, "DemographicScraper", _FakeScraper)

    state = DiscoveryState(creatives=[
        Creative(creative_id="ad-1", detail_id="1", reach_lower=900, reach_upper=1000),
        Creative(creative_id="ad-2", detail_id="2", reach_lower=10, reach_upper=20),
        Creative(creative_id="ad-3", detail_id=None),
    ])
    await AdLibraryCrawler(FAST).enrich(FakePage(), state, cap=3)

    assert (state.enrichment.attempted, state.enrichment.scraped, state.enrichment.failed) == (2, 1, 1)
    assert state.creatives[0].demographics is sample
    assert state.creatives[0].total_reach == 4321
    assert state.creatives[1].demographics is None


@pytest.mark.asyncio
async def test_enrich_stops_when_browser_closes(monkeypatch):
    _FakeScraper.results = {
        "1": PlaywrightError("Target page, context or browser has been closed"),
        "2": DemographicSample(detail_id="2"),
    }
    monkeypatch.setattr(ad_library, "DemographicScraper", _FakeScraper)

    state = DiscoveryState(creatives=[
        Creative(creative_id="ad-1", detail_id="1", total_reach=500),
        Creative(creative_id="ad-2", detail_id="2", total_reach=100),
    ])
    await AdLibraryCrawler(FAST).enrich(FakePage(), state, cap=2)

    assert state.enrichment.failed == 1
    assert state.enrichment.scraped == 0
    assert all(c.demographics is None for c in state.creatives)


@pytest.mark.asyncio
async def test_demographic_scraper_reads_rendered_table():
    text = "Reach\n1,000\nLocation\nAge Range\nGender\nReach\nNetherlands\n18-24\nWomen\n1,000\nClose"
    page = FakePage(inner_text=text)

    sample = await DemographicScraper(page, FAST).scrape("777")

    assert page.visited == ["https://www.facebook.com/ads/library/?id=777"]
    assert sample.total_reach == 1000
    assert [r.region for r in sample.regions] == ["NL"]
    assert page.listeners == []


@pytest.mark.asyncio
async def test_demographic_scraper_returns_none_without_data():
    sample = await DemographicScraper(FakePage(inner_text="Sponsored"), FAST).scrape("1")
    assert sample is None


@pytest.mark.asyncio
async def test_listing_listener_detached_before_enrichment(monkeypatch):
    state = DiscoveryState()
    page = FakePage(on_scroll=lambda n: state.accumulator.add("https://shop.example.com/x", "42"))
    crawler = AdLibraryCrawler(FAST)
    listeners_during_enrich = []

    @asynccontextmanager
    async def fake_session():
        yield page

    async def fake_enrich(p, s, cap):
        listeners_during_enrich.append(len(p.listeners))

    monkeypatch.setattr(crawler, "session", fake_session)
    monkeypatch.setattr(crawler, "enrich", fake_enrich)

    await crawler.discover_creatives("123", ScrapeOptions(enrich=True), state)

    assert [c.detail_id for c in state.creatives] == ["42"]
    assert listeners_during_enrich == [0]


@pytest.mark.asyncio
async def test_demographic_scraper_waits_random_delay_before_navigation(monkeypatch):
    events = []

    class RecordingPage(FakePage):
        async def goto(self, url, **kwargs):
            events.append(("goto", url))
            await super().goto(url, **kwargs)

    def fake_randint(low, high):
        events.append(("randint", low, high))
        return 2500

    async def fake_sleep(seconds):
        events.append(("sleep", seconds))

    monkeypatch.setattr(demographic_scraper.random, "randint", fake_randint)
    monkeypatch.setattr(demographic_scraper.asyncio, "sleep", fake_sleep)
    settings = FAST.model_copy(update={"enrichment_delay_min_ms": 1500, "enrichment_delay_max_ms": 4000})

    await DemographicScraper(RecordingPage(inner_text="Sponsored"), settings).scrape("9")

    assert events[:3] == [
        ("randint", 1500, 4000),
        ("sleep", 2.5),
        ("goto", "https://www.facebook.com/ads/library/?id=9"),
    ]
