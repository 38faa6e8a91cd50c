"""국가별 Meta 광고 단가(CPM) 테이블 + 국가 어휘.

CPM = USD per 1,000 accounts reached. Values follow the 2024 Facebook Ads
benchmark (enhencer.com/blog/cpm-of-facebook-ads-2024); "estimated" rows are
regional averages where no published figure exists.
"""

from __future__ import annotations

# ──────────────────────────────────────────────
# 국가별 CPM (USD)
# ──────────────────────────────────────────────
CPM_BY_COUNTRY: dict[str, float] = {
    # Nordics
    "SE": 9.51,
    "NO": 9.67,
    "FI": 6.87,
    "DK": 9.29,
    # Western Europe
    "DE": 10.05,
    "NL": 9.49,
    "GB": 10.85,
    "AT": 9.24,
    "BE": 9.18,
    "FR": 8.05,
    "CH": 9.75,
    "IE": 11.66,
    "LU": 7.22,
    # Southern Europe
    "ES": 9.41,
    "IT": 8.06,
    "PT": 9.88,
    "GR": 4.14,
    # Eastern Europe
    "PL": 9.41,
    "LT": 5.50,  # estimated
    "LV": 5.00,  # estimated
    "EE": 5.50,  # estimated
    "CZ": 6.50,  # estimated
    "HU": 5.11,
    "RO": 4.50,  # estimated
    "SK": 5.50,  # estimated
    "BG": 4.00,  # estimated
    "HR": 5.00,  # estimated
    "SI": 6.00,  # estimated
    # Other major markets
    "US": 20.48,
    "CA": 14.03,
    "AU": 11.04,
    "IN": 2.70,
}

DEFAULT_CPM = 8.00

# ──────────────────────────────────────────────
# 국가 코드 ↔ 이름
# ──────────────────────────────────────────────
COUNTRY_NAMES: dict[str, str] = {
    "SE": "Sweden",
    "NO": "Norway",
    "FI": "Finland",
    "DK": "Denmark",
    "DE": "Germany",
    "NL": "Netherlands",
    "GB": "United Kingdom",
    "AT": "Austria",
    "BE": "Belgium",
    "FR": "France",
    "CH": "Switzerland",
    "IE": "Ireland",
    "ES": "Spain",
    "IT": "Italy",
    "PT": "Portugal",
    "GR": "Greece",
    "PL": "Poland",
    "LT": "Lithuania",
    "LV": "Latvia",
    "EE": "Estonia",
    "CZ": "Czech Republic",
    "HU": "Hungary",
    "RO": "Romania",
    "SK": "Slovakia",
    "BG": "Bulgaria",
    "HR": "Croatia",
    "SI": "Slovenia",
    "MT": "Malta",
    "CY": "Cyprus",
    "LU": "Luxembourg",
    "IS": "Iceland",
    "LI": "Liechtenstein",
    "US": "United States",
    "CA": "Canada",
    "AU": "Australia",
    "IN": "India",
}

# 상세 페이지에 표기되는 별칭 (UI 문구 기준)
COUNTRY_ALIASES: dict[str, str] = {
    "czechia": "CZ",
    "the netherlands": "NL",
    "uk": "GB",
    "great britain": "GB",
    "usa": "US",
    "united states of america": "US",
}

# 국가별 분할 조회 대상 (EU 광고 시장 상위)
KEY_EU_MARKETS: tuple[str, ...] = ("DE", "FR", "NL", "SE", "FI", "DK", "ES", "IT", "PL", "BE")


# ──────────────────────────────────────────────
# 유틸리티
# ──────────────────────────────────────────────

def get_cpm(country_code: str, cpm_table: dict[str, float] | None = None) -> float:
    """CPM for a country; unmapped codes get :data:`DEFAULT_CPM`."""
    table = CPM_BY_COUNTRY if cpm_table is None else cpm_table
    return table.get((country_code or "").upper(), DEFAULT_CPM)


def country_name(country_code: str) -> str:
    code = (country_code or "").upper()
    return COUNTRY_NAMES.get(code, code)


def country_code_for_label(label: str) -> str | None:
    """Resolve a rendered location label ("Germany", "DE") to an ISO code."""
    text = " ".join((label or "").split()).strip()
    if not text:
        return None
    upper = text.upper()
    if upper in COUNTRY_NAMES:
        return upper
    lowered = text.lower()
    if lowered in COUNTRY_ALIASES:
        return COUNTRY_ALIASES[lowered]
    for code, name in COUNTRY_NAMES.items():
        if name.lower() == lowered:
            return code
    return None
