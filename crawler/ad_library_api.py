"""Meta Graph API (ads_archive) 수집기 -- META_ACCESS_TOKEN 필요.

Query modes:
  - 6개국 이상 + page id: 주요 EU 시장별 개별 조회 (3개국씩 병렬 배치), id 기준 중복 제거
  - 그 외: 단일 쿼리 + paging.next 따라가기 (cap 도달 시 중단)

Demographics come inline from ``age_country_gender_reach_breakdown``; media
kinds are classified with two id-only queries filtered by media_type.
"""

from __future__ import annotations

import asyncio
import json
import math
from collections.abc import Callable
from dataclasses import replace
from typing import Any

import httpx
from loguru import logger

from crawler.config import (
    META_ACCESS_TOKEN,
    META_API_VERSION,
    META_GRAPH_BASE,
    META_MAX_RETRIES,
    META_RETRY_BACKOFF_MS,
    META_TIMEOUT_SEC,
    crawler_settings,
)
from crawler.response_harvester import DiscoveryState, ScrapeOptions, parse_timestamp
from processor.demographic_parser import from_reach_breakdown
from processor.errors import AcquisitionError, UpstreamError
from processor.media_pricing import KEY_EU_MARKETS
from processor.models import Creative, MediaKind
from processor.validation import build_detail_url

# ── 설정 ──

AUTH_ERROR_CODES = {102, 104, 190}
QUOTA_ERROR_CODES = {4, 17, 32, 613}

DEFAULT_COUNTRIES = ["NL"]
MULTI_COUNTRY_THRESHOLD = 5
COUNTRY_BATCH_SIZE = 3
MEDIA_COUNT_LIMIT = 500

AD_FIELDS = [
    "id",
    "page_id",
    "page_name",
    "ad_delivery_start_time",
    "ad_delivery_stop_time",
    "ad_creative_bodies",
    "ad_creative_link_titles",
    "ad_creative_link_descriptions",
    "ad_creative_link_captions",
    "eu_total_reach",
    "age_country_gender_reach_breakdown",
    "beneficiary_payers",
    "target_ages",
    "target_gender",
    "target_locations",
    "languages",
    "publisher_platforms",
]


def _first_text(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        cleaned = " ".join(value.split()).strip()
        return cleaned or None
    if isinstance(value, dict):
        for key in ("text", "title", "name", "body", "value"):
            candidate = value.get(key)
            if isinstance(candidate, str) and candidate.strip():
                return " ".join(candidate.split()).strip()
        return None
    if isinstance(value, list):
        for item in value:
            found = _first_text(item)
            if found:
                return found
    return None


def _int_or_none(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def classify_meta_api_error(
    status_code: int, payload: dict | None, response_text: str = "",
) -> tuple[str, bool, str]:
    """Classify Meta API failures into operational categories.

    Returns ``(category, retryable, message)`` with category one of
    auth / quota / transient / fatal / unknown.
    """
    error = payload.get("error") if isinstance(payload, dict) else None

    message = ""
    if isinstance(error, dict):
        message = str(error.get("message") or "").strip()
    if not message:
        message = (response_text or "").strip()
    message = message[:240]

    code_int = _int_or_none(error.get("code")) if isinstance(error, dict) else None

    lower_message = message.lower()
    if (
        status_code in {401, 403}
        or code_int in AUTH_ERROR_CODES
        or ("oauth" in lower_message and "invalid" in lower_message)
    ):
        return ("auth", False, message or "authentication error")

    if (
        status_code == 429
        or code_int in QUOTA_ERROR_CODES
        or "rate limit" in lower_message
        or "request limit" in lower_message
    ):
        return ("quota", True, message or "rate limit error")

    if status_code >= 500 or status_code in {408, 409, 425}:
        return ("transient", True, message or "transient server error")

    if status_code >= 400 or error is not None:
        return ("fatal", False, message or f"http {status_code}")

    return ("unknown", False, message or f"http {status_code}")


def to_creative(item: dict, fallback_page_id: str | None = None, fallback_page_name: str | None = None) -> Creative:
    """One ``ads_archive`` record -> Creative (demographics converted inline)."""
    ad_id = str(item.get("id"))
    reach = _int_or_none(item.get("eu_total_reach")) or 0
    return Creative(
        creative_id=ad_id,
        detail_id=ad_id,
        page_id=str(item.get("page_id") or fallback_page_id or "") or None,
        page_name=item.get("page_name") or fallback_page_name,
        started_at=parse_timestamp(item.get("ad_delivery_start_time")),
        stopped_at=parse_timestamp(item.get("ad_delivery_stop_time")),
        body=_first_text(item.get("ad_creative_bodies")),
        link_title=_first_text(item.get("ad_creative_link_titles")),
        link_caption=_first_text(item.get("ad_creative_link_captions")),
        destination_url=None,
        total_reach=reach,
        library_links=(build_detail_url(ad_id),),
        platforms=tuple(str(p).lower() for p in item.get("publisher_platforms") or []),
        demographics=from_reach_breakdown(
            item.get("age_country_gender_reach_breakdown"), ad_id, reach or None,
        ),
    )


# ── 클라이언트 ──

class AdLibraryApiClient:
    """구조화 API 전략."""

    channel = "ad_library_api"
    name = "api"

    def __init__(
        self,
        access_token: str | None = None,
        api_version: str | None = None,
        client: httpx.AsyncClient | None = None,
        max_retries: int | None = None,
        retry_backoff_ms: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.access_token = (access_token if access_token is not None else META_ACCESS_TOKEN).strip()
        self.api_version = (api_version or META_API_VERSION).strip()
        self.max_retries = max(0, META_MAX_RETRIES if max_retries is None else max_retries)
        self.retry_backoff_ms = max(0, META_RETRY_BACKOFF_MS if retry_backoff_ms is None else retry_backoff_ms)
        self._client = client
        self._owns_client = client is None
        self._transport = transport
        # 동시 실행이 하나의 클라이언트를 공유 -> 사용자 수로 수명 관리
        self._lifecycle_lock = asyncio.Lock()
        self._users = 0

    @property
    def endpoint(self) -> str:
        return f"{META_GRAPH_BASE}/{self.api_version}/ads_archive"

    @property
    def is_started(self) -> bool:
        return self._client is not None

    # ── Lifecycle ──

    async def start(self):
        async with self._lifecycle_lock:
            self._users += 1
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(META_TIMEOUT_SEC, connect=10.0),
                    transport=self._transport,
                )
                self._owns_client = True
                logger.info("[{}] API client started (version={})", self.channel, self.api_version)

    async def stop(self):
        async with self._lifecycle_lock:
            self._users = max(0, self._users - 1)
            if self._users or self._client is None or not self._owns_client:
                return
            await self._client.aclose()
            self._client = None
            logger.info("[{}] API client stopped", self.channel)

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, *args):
        await self.stop()

    # ── 요청 ──

    async def _request_ads_archive(self, url: str, params: dict | None, label: str, page_index: int) -> dict:
        if self._client is None:
            raise AcquisitionError("AdLibraryApiClient client is not initialized")

        max_attempts = self.max_retries + 1
        for attempt in range(1, max_attempts + 1):
            try:
                response = await self._client.get(url, params=params)
            except httpx.RequestError as exc:
                if attempt >= max_attempts:
                    raise UpstreamError(
                        f"Meta API request failed: {exc}", category="transient", retryable=True,
                    ) from exc
                wait_ms = self.retry_backoff_ms * (2 ** (attempt - 1))
                logger.warning(
                    "[{}] request error {} page={} attempt {}/{}; retry in {}ms: {}",
                    self.channel, label, page_index, attempt, max_attempts, wait_ms, exc,
                )
                await asyncio.sleep(wait_ms / 1000)
                continue

            payload: dict | None = None
            try:
                parsed = response.json()
                if isinstance(parsed, dict):
                    payload = parsed
            except ValueError:
                payload = None

            if response.status_code == 200 and payload is not None and "error" not in payload:
                return payload

            category, retryable, message = classify_meta_api_error(
                status_code=response.status_code,
                payload=payload,
                response_text=response.text,
            )
            error = (payload or {}).get("error") if isinstance((payload or {}).get("error"), dict) else {}

            if category in ("auth", "quota"):
                logger.error(
                    "[{}][ALERT] {} error {} page={} status={} msg={}",
                    self.channel, category, label, page_index, response.status_code, message,
                )
            else:
                logger.warning(
                    "[{}] API error [{}] {} page={} status={} msg={}",
                    self.channel, category, label, page_index, response.status_code, message,
                )

            if retryable and attempt < max_attempts:
                wait_ms = self.retry_backoff_ms * (2 ** (attempt - 1))
                await asyncio.sleep(wait_ms / 1000)
                continue

            raise UpstreamError(
                message,
                code=_int_or_none(error.get("code")),
                subcode=_int_or_none(error.get("error_subcode")),
                status=response.status_code,
                category=category,
                retryable=retryable,
            )

        raise UpstreamError("Meta API request exhausted retries", category="transient", retryable=True)

    def _base_params(self, countries: list[str], active_status: str, limit: int) -> dict:
        return {
            "access_token": self.access_token,
            "ad_reached_countries": json.dumps(countries),
            "ad_type": "ALL",
            "ad_active_status": active_status,
            "fields": ",".join(AD_FIELDS),
            "limit": limit,
        }

    async def _fetch_paged(
        self,
        params: dict,
        cap: int,
        label: str,
        on_record: Callable[[dict], None] | None = None,
    ) -> list[dict]:
        """Follow ``paging.next`` until ``cap`` records or exhaustion.

        A failing first page raises; a failing later page is logged and ends
        paging with what was already fetched.
        """
        records: list[dict] = []
        next_url: str | None = self.endpoint
        next_params: dict | None = params
        page_index = 0

        while next_url and len(records) < cap:
            page_index += 1
            try:
                payload = await self._request_ads_archive(next_url, next_params, label, page_index)
            except UpstreamError as e:
                if page_index == 1:
                    raise
                logger.warning("[{}] {} page {} 실패, 수집분 유지: {}", self.channel, label, page_index, e)
                break

            data = payload.get("data") or []
            for item in data:
                if not isinstance(item, dict) or not item.get("id") or len(records) >= cap:
                    continue
                records.append(item)
                if on_record is not None:
                    on_record(item)
            next_url = (payload.get("paging") or {}).get("next")
            next_params = None

        return records

    async def _count_media(self, page_id: str, countries: list[str], media_type: str) -> set[str]:
        """Ids of the page's creatives with the given media type (failures -> empty)."""
        params = {
            "access_token": self.access_token,
            "ad_reached_countries": json.dumps(countries),
            "ad_type": "ALL",
            "search_page_ids": page_id,
            "media_type": media_type,
            "fields": "id",
            "limit": MEDIA_COUNT_LIMIT,
        }
        try:
            payload = await self._request_ads_archive(self.endpoint, params, f"media={media_type}", 1)
        except UpstreamError as e:
            logger.warning("[{}] media_type={} 조회 실패: {}", self.channel, media_type, e)
            return set()
        return {str(item.get("id")) for item in payload.get("data") or [] if isinstance(item, dict)}

    async def classify_media(self, page_id: str, countries: list[str]) -> dict[str, MediaKind]:
        video_ids, image_ids = await asyncio.gather(
            self._count_media(page_id, countries, "VIDEO"),
            self._count_media(page_id, countries, "IMAGE"),
        )
        kinds: dict[str, MediaKind] = {ad_id: "image" for ad_id in image_ids}
        kinds.update({ad_id: "video" for ad_id in video_ids})
        return kinds

    async def _fetch_multi_country(
        self, page_id: str, options: ScrapeOptions, cap: int, state: DiscoveryState,
    ) -> list[dict]:
        per_country = math.ceil(cap / len(KEY_EU_MARKETS))
        seen: set[str] = set()
        records: list[dict] = []
        errors: list[BaseException] = []
        succeeded = 0

        for i in range(0, len(KEY_EU_MARKETS), COUNTRY_BATCH_SIZE):
            batch = KEY_EU_MARKETS[i:i + COUNTRY_BATCH_SIZE]
            results = await asyncio.gather(
                *[
                    self._fetch_paged(
                        {**self._base_params([c], options.active_status, per_country), "search_page_ids": page_id},
                        per_country,
                        label=f"country={c}",
                    )
                    for c in batch
                ],
                return_exceptions=True,
            )
            for country, result in zip(batch, results):
                if isinstance(result, BaseException):
                    if isinstance(result, asyncio.CancelledError):
                        raise result
                    errors.append(result)
                    logger.warning("[{}] country={} 조회 실패, 건너뜀: {}", self.channel, country, result)
                    continue
                succeeded += 1
                for item in result:
                    ad_id = str(item["id"])
                    if ad_id in seen:
                        continue
                    seen.add(ad_id)
                    records.append(item)
                    state.creatives.append(to_creative(item, page_id))

        if not succeeded and errors:
            first_upstream = next((e for e in errors if isinstance(e, UpstreamError)), None)
            if first_upstream is not None:
                raise first_upstream
            raise AcquisitionError(f"All country queries failed: {errors[0]}")
        return records

    # ── 메인 진입점 ──

    async def discover_creatives(
        self,
        page_id: str,
        options: ScrapeOptions,
        state: DiscoveryState,
    ) -> None:
        if not self.access_token:
            raise UpstreamError("META_ACCESS_TOKEN is not configured", category="auth")

        countries = [c.upper() for c in options.countries] or list(DEFAULT_COUNTRIES)
        cap = options.limit or crawler_settings.api_result_cap
        state.page_id = page_id
        state.cap = cap
        state.countries = countries

        async with self:
            if len(countries) > MULTI_COUNTRY_THRESHOLD and page_id:
                logger.info("[{}] page={} 국가별 분할 조회 ({}개 시장)", self.channel, page_id, len(KEY_EU_MARKETS))
                records = await self._fetch_multi_country(page_id, options, cap, state)
            else:
                params = {**self._base_params(countries, options.active_status, min(cap, 1000)), "search_page_ids": page_id}
                records = await self._fetch_paged(
                    params, cap, label=f"page={page_id}",
                    on_record=lambda item: state.creatives.append(to_creative(item, page_id)),
                )

            page_name = next((r.get("page_name") for r in records if r.get("page_name")), None)
            state.page_name = page_name

            creatives = [to_creative(item, page_id, page_name) for item in records]
            creatives.sort(key=lambda c: c.total_reach, reverse=True)
            creatives = creatives[:cap]
            state.creatives = creatives

            kinds = await self.classify_media(page_id, countries)
            if kinds:
                state.creatives = [
                    c if c.creative_id not in kinds else replace(c, media_kind=kinds[c.creative_id])
                    for c in creatives
                ]

        with_demo = sum(1 for c in state.creatives if c.demographics is not None)
        state.enrichment.attempted = len(state.creatives)
        state.enrichment.scraped = with_demo
        state.enrichment.failed = len(state.creatives) - with_demo
        logger.info(
            "[{}] page={} ({}) 소재 {}개, 인구통계 {}개",
            self.channel, page_id, page_name, len(state.creatives), with_demo,
        )
