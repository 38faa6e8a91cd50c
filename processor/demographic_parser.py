"""광고 상세 페이지 인구통계 파서.

Three input shapes produce the same :class:`DemographicSample`:

- ``extract(raw_text)``: the rendered ``body.innerText`` of an Ad Library
  detail view after the "breakdown by location" disclosure was opened.
- ``extract_from_payload(data, detail_id)``: any intercepted JSON response
  (recursive traversal for ``demographic_distribution`` / ``delivery_by_region``).
- ``from_reach_breakdown(breakdown, detail_id)``: Graph API
  ``age_country_gender_reach_breakdown`` (absolute reach per country/age/gender).

The text layout is positional and may change without notice. Every step is a
pattern match that simply yields nothing when it does not apply.
"""

from __future__ import annotations

import re
from typing import Any

from loguru import logger

from processor.media_pricing import country_code_for_label
from processor.models import AgeGenderShare, DemographicSample, RegionShare

# ── 텍스트 레이아웃 어휘 ──

REACH_LABELS = ("reach", "eu reach", "european union reach", "total reach")
TABLE_HEADER = ("location", "age range", "gender", "reach")
TRAILING_MARKERS = (
    "about the advertiser",
    "beneficiary and payer",
    "advertiser and payer",
    "about ads and data use",
    "close",
)

GENDER_VOCAB: dict[str, str] = {
    "men": "male",
    "male": "male",
    "women": "female",
    "female": "female",
    "unknown": "unknown",
    "all genders": "unknown",
}

_AGE_BRACKET = re.compile(r"^(?:\d{2}\s*[-–]\s*\d{2}|\d{2}\+)$")
_HEADER_ONE_LINE = re.compile(r"^location\s+age\s+range\s+gender\s+reach$", re.IGNORECASE)
_GENDER_SHARE = re.compile(
    r"^(men|women|male|female)\s*[:\-]?\s*(\d+(?:[.,]\d+)?)\s*%$", re.IGNORECASE,
)
_COUNT = re.compile(r"^(\d[\d,.\s]*)\s*([kKmM])?$")


def parse_count(text: str) -> int | None:
    """"12,345" / "12.345" / "1.2K" -> int. None when not a count."""
    match = _COUNT.match((text or "").strip())
    if not match:
        return None
    digits, suffix = match.group(1).replace(" ", ""), match.group(2)
    if suffix:
        try:
            value = float(digits.replace(",", "."))
        except ValueError:
            return None
        return int(value * (1_000 if suffix.lower() == "k" else 1_000_000))
    try:
        return int(digits.replace(",", "").replace(".", ""))
    except ValueError:
        return None


def normalize_age(text: str) -> str | None:
    value = " ".join((text or "").split())
    if not _AGE_BRACKET.match(value):
        return None
    return re.sub(r"\s*[-–]\s*", "-", value)


def normalize_gender(text: str) -> str | None:
    return GENDER_VOCAB.get(" ".join((text or "").split()).lower())


def _is_marker(line: str) -> bool:
    return line.lower() in TRAILING_MARKERS


# ── 텍스트 파서 ──

def _find_total_reach(lines: list[str]) -> int | None:
    for i, line in enumerate(lines[:-1]):
        if line.lower() in REACH_LABELS:
            value = parse_count(lines[i + 1])
            if value is not None:
                return value
    return None


def _find_table_start(lines: list[str]) -> int | None:
    """Index of the first record line after the table header, or None."""
    lowered = [line.lower() for line in lines]
    width = len(TABLE_HEADER)
    for i in range(len(lowered)):
        if tuple(lowered[i:i + width]) == TABLE_HEADER:
            return i + width
        if _HEADER_ONE_LINE.match(lines[i]):
            return i + 1
    return None


def _consume_rows(
    lines: list[str], start: int,
) -> tuple[list[tuple[str, str, str, int]], list[str]]:
    """Consume 4-line records until one fails validation or a marker appears.

    Returns ``(rows, unrecognized_labels)`` where each row is
    ``(region, age, gender, reach)``.
    """
    rows: list[tuple[str, str, str, int]] = []
    unrecognized: list[str] = []
    i = start
    while i + 3 < len(lines):
        location, age_raw, gender_raw, reach_raw = lines[i:i + 4]
        if _is_marker(location):
            break
        age = normalize_age(age_raw)
        gender = normalize_gender(gender_raw)
        reach = parse_count(reach_raw)
        if age is None or gender is None or reach is None:
            break

        region = country_code_for_label(location)
        if region is None:
            region = location
            if location not in unrecognized:
                unrecognized.append(location)
        rows.append((region, age, gender, reach))
        i += 4
    return rows, unrecognized


def _gender_fallback(lines: list[str]) -> list[AgeGenderShare]:
    shares: list[AgeGenderShare] = []
    seen: set[str] = set()
    for line in lines:
        match = _GENDER_SHARE.match(line)
        if not match:
            continue
        gender = normalize_gender(match.group(1))
        if gender is None or gender in seen:
            continue
        seen.add(gender)
        shares.append(AgeGenderShare(
            age="unknown",
            gender=gender,
            percentage=float(match.group(2).replace(",", ".")),
        ))
    return shares


def extract(raw_text: str, detail_id: str = "") -> DemographicSample | None:
    """Parse a rendered detail view. None when neither rows nor gender shares exist."""
    lines = [line.strip() for line in (raw_text or "").splitlines() if line.strip()]
    if not lines:
        return None

    total_reach = _find_total_reach(lines)
    rows: list[tuple[str, str, str, int]] = []
    unrecognized: list[str] = []
    start = _find_table_start(lines)
    if start is not None:
        rows, unrecognized = _consume_rows(lines, start)

    if unrecognized:
        logger.warning(
            "[demographics] {} unrecognized location label(s) for {}: {}",
            len(unrecognized), detail_id or "?", ", ".join(unrecognized),
        )

    if rows:
        row_sum = sum(r[3] for r in rows)
        denominator = row_sum or total_reach or 0
        if denominator <= 0:
            return None

        age_gender: dict[tuple[str, str], int] = {}
        regions: dict[str, int] = {}
        for region, age, gender, reach in rows:
            age_gender[(age, gender)] = age_gender.get((age, gender), 0) + reach
            regions[region] = regions.get(region, 0) + reach

        return DemographicSample(
            detail_id=detail_id,
            age_gender=tuple(
                AgeGenderShare(age=a, gender=g, percentage=value / denominator * 100)
                for (a, g), value in age_gender.items()
            ),
            regions=tuple(
                RegionShare(region=r, percentage=value / denominator * 100)
                for r, value in sorted(regions.items(), key=lambda kv: kv[1], reverse=True)
            ),
            total_reach=total_reach or row_sum,
            unrecognized_locations=tuple(unrecognized),
        )

    fallback = _gender_fallback(lines)
    if not fallback:
        return None
    return DemographicSample(
        detail_id=detail_id,
        age_gender=tuple(fallback),
        total_reach=total_reach,
    )


# ── JSON 페이로드 ──

def _to_percentage(value: Any) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    # 0~1 비율은 퍼센트로 환산
    return number * 100 if number <= 1 else number


def _to_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def extract_from_payload(data: Any, detail_id: str) -> DemographicSample | None:
    """Recursive traversal of an intercepted JSON value for demographic fields."""
    age_gender: list[AgeGenderShare] = []
    regions: list[RegionShare] = []
    state: dict[str, int | None] = {"reach": None, "lower": None, "upper": None}

    def visit(node: Any) -> None:
        if isinstance(node, list):
            for item in node:
                visit(item)
            return
        if not isinstance(node, dict):
            return

        for key in ("demographic_distribution", "age_gender_distribution"):
            entries = node.get(key)
            if isinstance(entries, list):
                for entry in entries:
                    if not isinstance(entry, dict):
                        continue
                    pct = _to_percentage(entry.get("percentage"))
                    if entry.get("age") and entry.get("gender") and pct is not None:
                        age_gender.append(AgeGenderShare(
                            age=str(entry["age"]),
                            gender=normalize_gender(str(entry["gender"])) or str(entry["gender"]).lower(),
                            percentage=pct,
                        ))

        region_entries = node.get("delivery_by_region") or node.get("region_distribution")
        if isinstance(region_entries, list):
            for entry in region_entries:
                if not isinstance(entry, dict):
                    continue
                pct = _to_percentage(entry.get("percentage"))
                if entry.get("region") and pct is not None:
                    label = str(entry["region"])
                    regions.append(RegionShare(
                        region=country_code_for_label(label) or label, percentage=pct,
                    ))

        reach = _to_int(node.get("eu_total_reach"))
        if reach is not None:
            state["reach"] = reach

        impressions = node.get("impressions")
        if isinstance(impressions, dict):
            lower = _to_int(impressions.get("lower_bound"))
            upper = _to_int(impressions.get("upper_bound"))
            if lower is not None:
                state["lower"] = lower
            if upper is not None:
                state["upper"] = upper

        for value in node.values():
            if isinstance(value, (dict, list)):
                visit(value)

    visit(data)

    if not age_gender and not regions:
        return None
    return DemographicSample(
        detail_id=detail_id,
        age_gender=tuple(age_gender),
        regions=tuple(regions),
        total_reach=state["reach"],
        impressions_lower=state["lower"],
        impressions_upper=state["upper"],
    )


def from_reach_breakdown(
    breakdown: list[dict] | None,
    detail_id: str,
    total_reach: int | None = None,
) -> DemographicSample | None:
    """Convert Graph API ``age_country_gender_reach_breakdown`` into percentages.

    Each entry is ``{"country": "DE", "age_gender_breakdowns": [{"age_range":
    "25-34", "male": 120, "female": 80, "unknown": 3}, ...]}``.
    """
    if not breakdown:
        return None

    age_gender: dict[tuple[str, str], int] = {}
    regions: dict[str, int] = {}
    grand_total = 0
    for country in breakdown:
        if not isinstance(country, dict):
            continue
        code = str(country.get("country") or "").upper()
        country_total = 0
        for row in country.get("age_gender_breakdowns") or []:
            age = str(row.get("age_range") or "unknown")
            for gender in ("male", "female", "unknown"):
                reach = _to_int(row.get(gender)) or 0
                if reach > 0:
                    age_gender[(age, gender)] = age_gender.get((age, gender), 0) + reach
                    country_total += reach
        if code:
            regions[code] = regions.get(code, 0) + country_total
        grand_total += country_total

    if grand_total == 0:
        return None

    ag = sorted(age_gender.items(), key=lambda kv: kv[1], reverse=True)
    rg = sorted(regions.items(), key=lambda kv: kv[1], reverse=True)
    return DemographicSample(
        detail_id=detail_id,
        age_gender=tuple(
            AgeGenderShare(age=a, gender=g, percentage=v / grand_total * 100) for (a, g), v in ag
        ),
        regions=tuple(RegionShare(region=r, percentage=v / grand_total * 100) for r, v in rg),
        total_reach=total_reach or grand_total,
    )
