"""광고 라이브러리 응답 수집기 -- 브라우저 없이 테스트 가능한 누적/파싱 로직.

Intercepted network responses (GraphQL / async listing / ads_archive) are
semi-structured: the visitor walks any JSON value looking for known URL and id
field names instead of typing the upstream schema. Bodies that are not JSON
fall back to a permissive external-URL regex scan.

:class:`CandidateAccumulator` owns every piece of mutable state gathered while
scrolling (url -> count, url -> detail ids, detail id -> metadata) and is handed
to the response listener explicitly.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal
from urllib.parse import unquote, urlparse

from processor.models import Creative, EnrichmentStats, MediaKind
from processor.validation import build_detail_url

# ── 필드 어휘 ──

INTERNAL_DOMAINS = (
    "facebook.com",
    "fb.com",
    "instagram.com",
    "meta.com",
    "fbcdn.net",
    "fbsbx.com",
)

URL_FIELDS = (
    "link_url",
    "destination_url",
    "website_url",
    "cta_url",
    "call_to_action_url",
    "display_url",
    "landing_page_url",
    "object_url",
    "link",
)

ID_FIELDS = ("ad_archive_id", "adArchiveID", "id", "ad_id", "adId", "archive_id")
ARCHIVE_ID_FIELDS = ("ad_archive_id", "adArchiveID", "archive_id")

INTERCEPT_MARKERS = ("/api/graphql", "/ads/library/async", "ads_archive")

DISPLAY_FORMATS: dict[str, MediaKind] = {
    "VIDEO": "video",
    "IMAGE": "image",
    "CAROUSEL": "carousel",
    "DCO": "carousel",
    "DPA": "carousel",
}

_RAW_URL = re.compile(r"""https?://(?!(?:www\.)?(?:facebook|fb|instagram|meta)\.com)[^\s"'<>]+""")
_TRAILING_JUNK = re.compile(r"""[\\",})\]]+$""")
_REDIRECT_PARAM = re.compile(r"[?&]u=([^&]+)")
_NUMERIC = re.compile(r"^\d+$")
_JSON_GUARD = "for (;;);"


def is_intercept_target(url: str) -> bool:
    return any(marker in url for marker in INTERCEPT_MARKERS)


def is_external_url(url: str | None) -> bool:
    """http(s) URL whose host is not a Meta-owned domain."""
    if not url or not url.startswith("http"):
        return False
    try:
        host = urlparse(url).hostname or ""
    except ValueError:
        return False
    if not host:
        return False
    return not any(domain in host for domain in INTERNAL_DOMAINS)


def unwrap_redirect(href: str) -> str:
    """``l.facebook.com/l.php?u=<encoded>`` -> decoded target; other hrefs unchanged."""
    if "l.facebook.com/l.php" in href or "?u=" in href:
        match = _REDIRECT_PARAM.search(href)
        if match:
            return unquote(match.group(1))
    return href


def find_detail_id(node: dict) -> str | None:
    for key in ID_FIELDS:
        value = node.get(key)
        if isinstance(value, str) and _NUMERIC.match(value):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
    return None


# ── 소재 메타데이터 ──

@dataclass
class CreativeMeta:
    detail_id: str
    page_id: str | None = None
    page_name: str | None = None
    started_at: datetime | None = None
    stopped_at: datetime | None = None
    is_active: bool | None = None
    body: str | None = None
    link_title: str | None = None
    link_caption: str | None = None
    media_kind: MediaKind = "unknown"
    platforms: tuple[str, ...] = ()
    reach_lower: int | None = None
    reach_upper: int | None = None

    def merge(self, other: "CreativeMeta") -> None:
        """Fill fields still empty on ``self`` from ``other``."""
        for name in (
            "page_id", "page_name", "started_at", "stopped_at", "is_active",
            "body", "link_title", "link_caption", "reach_lower", "reach_upper",
        ):
            if getattr(self, name) is None and getattr(other, name) is not None:
                setattr(self, name, getattr(other, name))
        if self.media_kind == "unknown":
            self.media_kind = other.media_kind
        if not self.platforms:
            self.platforms = other.platforms


def _text(value: Any) -> str | None:
    if isinstance(value, str):
        cleaned = " ".join(value.split()).strip()
        return cleaned or None
    if isinstance(value, dict):
        for key in ("text", "markup", "__html"):
            found = _text(value.get(key))
            if found:
                return found
    if isinstance(value, list):
        for item in value:
            found = _text(item)
            if found:
                return found
    return None


_TZ_BASIC = re.compile(r"([+-]\d{2})(\d{2})$")


def parse_timestamp(value: Any) -> datetime | None:
    """Epoch seconds, ISO date or ISO datetime (``+0000`` offsets allowed) -> aware datetime."""
    if isinstance(value, bool) or value in (None, "", 0):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return datetime.fromtimestamp(int(text), tz=timezone.utc)
        text = _TZ_BASIC.sub(r"\1:\2", text.replace("Z", "+00:00")) if "T" in text else text
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def _int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def _meta_from_node(detail_id: str, node: dict) -> CreativeMeta:
    snapshot = node.get("snapshot") if isinstance(node.get("snapshot"), dict) else {}
    cards = snapshot.get("cards") if isinstance(snapshot.get("cards"), list) else []
    first_card = cards[0] if cards and isinstance(cards[0], dict) else {}

    display_format = str(snapshot.get("display_format") or node.get("display_format") or "").upper()
    media_kind: MediaKind = DISPLAY_FORMATS.get(display_format, "unknown")
    if media_kind == "unknown":
        if snapshot.get("videos"):
            media_kind = "video"
        elif len(cards) > 1:
            media_kind = "carousel"
        elif snapshot.get("images"):
            media_kind = "image"

    platforms = node.get("publisher_platform") or node.get("publisher_platforms") or []
    reach = node.get("reach_estimate") if isinstance(node.get("reach_estimate"), dict) else {}
    is_active = node.get("is_active")

    return CreativeMeta(
        detail_id=detail_id,
        page_id=str(node.get("page_id") or snapshot.get("page_id") or "") or None,
        page_name=_text(node.get("page_name")) or _text(snapshot.get("page_name")),
        started_at=parse_timestamp(node.get("start_date")),
        stopped_at=parse_timestamp(node.get("end_date")) if is_active is False else None,
        is_active=is_active if isinstance(is_active, bool) else None,
        body=_text(snapshot.get("body")) or _text(first_card.get("body")),
        link_title=_text(snapshot.get("title")) or _text(first_card.get("title")),
        link_caption=_text(snapshot.get("caption")) or _text(snapshot.get("link_description")),
        media_kind=media_kind,
        platforms=tuple(str(p).lower() for p in platforms if isinstance(p, str)),
        reach_lower=_int(reach.get("lower_bound")),
        reach_upper=_int(reach.get("upper_bound")),
    )


# ── 페이로드 방문자 ──

@dataclass
class PayloadHarvest:
    candidates: list[tuple[str, str | None]] = field(default_factory=list)
    metadata: dict[str, CreativeMeta] = field(default_factory=dict)


def visit_payload(data: Any) -> PayloadHarvest:
    """Collect ``(url, detail_id)`` pairs and per-archive-id metadata.

    A node's detail id is inherited by its descendants so a ``link_url`` nested
    under ``snapshot`` is still attributed to the enclosing archive entry.
    """
    harvest = PayloadHarvest()
    stack: list[tuple[Any, str | None]] = [(data, None)]

    while stack:
        node, parent_id = stack.pop()
        if isinstance(node, list):
            stack.extend((item, parent_id) for item in reversed(node))
            continue
        if not isinstance(node, dict):
            continue

        current_id = find_detail_id(node) or parent_id

        archive_id = None
        for key in ARCHIVE_ID_FIELDS:
            value = node.get(key)
            if value is not None and _NUMERIC.match(str(value)):
                archive_id = str(value)
                break
        if archive_id:
            meta = _meta_from_node(archive_id, node)
            existing = harvest.metadata.get(archive_id)
            if existing:
                existing.merge(meta)
            else:
                harvest.metadata[archive_id] = meta

        for key in URL_FIELDS:
            value = node.get(key)
            if isinstance(value, str) and value and is_external_url(value):
                harvest.candidates.append((value, current_id))

        children = [v for v in node.values() if isinstance(v, (dict, list))]
        stack.extend((child, current_id) for child in reversed(children))

    return harvest


def scan_raw_body(text: str) -> list[str]:
    """Permissive URL scan used when a body is not JSON."""
    urls: list[str] = []
    for match in _RAW_URL.finditer(text or ""):
        url = _TRAILING_JUNK.sub("", match.group(0))
        if is_external_url(url):
            urls.append(url)
    return urls


def parse_json_documents(text: str) -> list[Any]:
    """Parse a response body that may hold one document or newline-separated documents.

    Raises ``ValueError`` when nothing in the body is JSON.
    """
    body = (text or "").strip()
    if body.startswith(_JSON_GUARD):
        body = body[len(_JSON_GUARD):]
    try:
        return [json.loads(body)]
    except ValueError:
        pass

    docs = []
    for line in body.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            docs.append(json.loads(line))
        except ValueError:
            continue
    if not docs:
        raise ValueError("response body is not JSON")
    return docs


# ── 누적기 ──

@dataclass
class CandidateAccumulator:
    counts: dict[str, int] = field(default_factory=dict)
    detail_ids: dict[str, list[str]] = field(default_factory=dict)
    metadata: dict[str, CreativeMeta] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.counts)

    def add(self, url: str, detail_id: str | None = None) -> None:
        self.counts[url] = self.counts.get(url, 0) + 1
        if detail_id:
            ids = self.detail_ids.setdefault(url, [])
            if detail_id not in ids:
                ids.append(detail_id)

    def add_metadata(self, metadata: dict[str, CreativeMeta]) -> None:
        for detail_id, meta in metadata.items():
            existing = self.metadata.get(detail_id)
            if existing:
                existing.merge(meta)
            else:
                self.metadata[detail_id] = meta

    def ingest_body(self, text: str) -> int:
        """Feed one response body; returns the number of new distinct URLs."""
        before = len(self)
        try:
            docs = parse_json_documents(text)
        except ValueError:
            for url in scan_raw_body(text):
                self.add(url)
            return len(self) - before

        for doc in docs:
            harvest = visit_payload(doc)
            for url, detail_id in harvest.candidates:
                self.add(url, detail_id)
            self.add_metadata(harvest.metadata)
        return len(self) - before

    def ingest_dom_urls(self, urls: list[str]) -> int:
        before = len(self)
        for href in urls:
            url = unwrap_redirect(href)
            if is_external_url(url):
                self.add(url)
        return len(self) - before

    def page_name(self) -> str | None:
        for meta in self.metadata.values():
            if meta.page_name:
                return meta.page_name
        return None

    def build_creatives(
        self,
        page_id: str | None,
        page_name: str | None = None,
        cap: int | None = None,
    ) -> list[Creative]:
        """Creatives ordered by occurrence count desc, truncated to ``cap``."""
        numbered = [(f"ad-{i + 1}", url, count) for i, (url, count) in enumerate(self.counts.items())]
        numbered.sort(key=lambda row: row[2], reverse=True)
        if cap is not None:
            numbered = numbered[:cap]

        creatives: list[Creative] = []
        for creative_id, url, count in numbered:
            ids = self.detail_ids.get(url, [])
            detail_id = ids[0] if ids else None
            meta = self.metadata.get(detail_id) if detail_id else None
            creatives.append(Creative(
                creative_id=creative_id,
                detail_id=detail_id,
                page_id=(meta.page_id if meta and meta.page_id else page_id),
                page_name=(meta.page_name if meta and meta.page_name else page_name),
                started_at=meta.started_at if meta else None,
                stopped_at=meta.stopped_at if meta else None,
                body=meta.body if meta else None,
                link_title=meta.link_title if meta else None,
                link_caption=meta.link_caption if meta else None,
                destination_url=url,
                media_kind=meta.media_kind if meta else "unknown",
                reach_lower=meta.reach_lower if meta else None,
                reach_upper=meta.reach_upper if meta else None,
                ad_count=count,
                library_links=tuple(build_detail_url(i) for i in ids),
                platforms=meta.platforms if meta else (),
            ))
        return creatives


# ── 실행 옵션 / 공유 상태 ──

Strategy = Literal["auto", "browser", "api"]


@dataclass
class ScrapeOptions:
    countries: list[str] = field(default_factory=list)
    active_status: Literal["ACTIVE", "INACTIVE", "ALL"] = "ACTIVE"
    limit: int | None = None                  # None -> strategy default
    enrich: bool = False
    max_enriched: int = 3
    period: Literal["monthly", "weekly"] = "monthly"
    deadline_sec: float | None = None         # None -> settings default
    require_complete: bool = False
    strategy: Strategy = "auto"


@dataclass
class DiscoveryState:
    """Everything a strategy has gathered so far; survives a deadline cancel."""

    accumulator: CandidateAccumulator = field(default_factory=CandidateAccumulator)
    creatives: list[Creative] = field(default_factory=list)
    page_id: str | None = None
    page_name: str | None = None
    total_active_on_page: int | None = None
    countries: list[str] = field(default_factory=list)
    enrichment: EnrichmentStats = field(default_factory=EnrichmentStats)
    cap: int | None = None

    def snapshot_creatives(self) -> list[Creative]:
        """Finalized creatives if the strategy got that far, else whatever was accumulated."""
        if self.creatives:
            return list(self.creatives)
        return self.accumulator.build_creatives(
            self.page_id, self.page_name or self.accumulator.page_name(), self.cap,
        )
