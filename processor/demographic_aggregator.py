"""Demographic aggregation -- combines per-creative samples into weighted summaries.

High-reach creatives contribute more. Age-only and gender-only views are
derived from the age x gender weighted means (not recomputed independently) so
the combined and marginal views stay consistent with each other.

Weight priority per creative:
  1. sample total reach (> 0)
  2. impression range midpoint (> 0)
  3. 1  (still contributes; counted as "without reach")
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import replace
from typing import TypeVar

from processor.models import (
    AgeGenderShare,
    AgeShare,
    AggregatedDemographics,
    Creative,
    DemographicSample,
    GenderShare,
    RegionShare,
)

# Already-normalized tolerance and rounding precision
NORMALIZE_TOLERANCE = 0.1
DECIMALS = 2

_Share = TypeVar("_Share", AgeShare, GenderShare, AgeGenderShare, RegionShare)


def sample_weight(sample: DemographicSample | None) -> tuple[float, bool]:
    """Return ``(weight, has_reach_signal)`` for one sample.

    A missing sample weighs 0 and never contributes.
    """
    if sample is None:
        return 0.0, False
    if sample.total_reach and sample.total_reach > 0:
        return float(sample.total_reach), True
    if sample.impressions_lower is not None and sample.impressions_upper is not None:
        midpoint = (sample.impressions_lower + sample.impressions_upper) / 2
        if midpoint > 0:
            return midpoint, True
    return 1.0, False


def weighted_mean(values: Sequence[float], weights: Sequence[float]) -> float:
    """sum(v*w) / sum(w); 0 when the weights sum to 0."""
    value_sum = 0.0
    weight_sum = 0.0
    for value, weight in zip(values, weights):
        value_sum += value * weight
        weight_sum += weight
    return value_sum / weight_sum if weight_sum > 0 else 0.0


def normalize_breakdown(entries: list[_Share]) -> list[_Share]:
    """Scale shares so they sum to 100 (2-decimal rounding).

    Within 0.1 of 100 the shares are only rounded; an all-zero group is
    returned unchanged. After rounding, the residual (at most a few
    hundredths) is folded into the largest share so the group sums to 100.
    """
    if not entries:
        return entries

    total = sum(e.percentage for e in entries)
    if total == 0:
        return entries

    if abs(total - 100) < NORMALIZE_TOLERANCE:
        scaled = [replace(e, percentage=round(e.percentage, DECIMALS)) for e in entries]
    else:
        scaled = [
            replace(e, percentage=round(e.percentage / total * 100, DECIMALS))
            for e in entries
        ]

    residual = round(100 - sum(e.percentage for e in scaled), DECIMALS)
    if residual != 0:
        idx = max(range(len(scaled)), key=lambda i: scaled[i].percentage)
        scaled[idx] = replace(
            scaled[idx], percentage=round(scaled[idx].percentage + residual, DECIMALS)
        )
    return scaled


def _age_sort_key(age: str) -> tuple[int, str]:
    match = re.match(r"\d+", age or "")
    return (int(match.group()) if match else 10_000, age)


def aggregate_age_gender(
    samples: Sequence[DemographicSample], weights: Sequence[float],
) -> list[AgeGenderShare]:
    groups: dict[tuple[str, str], tuple[list[float], list[float]]] = {}
    for sample, weight in zip(samples, weights):
        for entry in sample.age_gender:
            values, ws = groups.setdefault((entry.age, entry.gender), ([], []))
            values.append(entry.percentage)
            ws.append(weight)

    return [
        AgeGenderShare(age=age, gender=gender, percentage=weighted_mean(values, ws))
        for (age, gender), (values, ws) in groups.items()
    ]


def derive_age_breakdown(age_gender: Iterable[AgeGenderShare]) -> list[AgeShare]:
    totals: dict[str, float] = {}
    for entry in age_gender:
        totals[entry.age] = totals.get(entry.age, 0.0) + entry.percentage
    shares = [AgeShare(age=age, percentage=pct) for age, pct in totals.items()]
    shares.sort(key=lambda s: _age_sort_key(s.age))
    return shares


def derive_gender_breakdown(age_gender: Iterable[AgeGenderShare]) -> list[GenderShare]:
    totals: dict[str, float] = {}
    for entry in age_gender:
        totals[entry.gender] = totals.get(entry.gender, 0.0) + entry.percentage
    shares = [GenderShare(gender=gender, percentage=pct) for gender, pct in totals.items()]
    shares.sort(key=lambda s: s.percentage, reverse=True)
    return shares


def aggregate_regions(
    samples: Sequence[DemographicSample], weights: Sequence[float],
) -> list[RegionShare]:
    groups: dict[str, tuple[list[float], list[float]]] = {}
    for sample, weight in zip(samples, weights):
        for entry in sample.regions:
            values, ws = groups.setdefault(entry.region, ([], []))
            values.append(entry.percentage)
            ws.append(weight)

    shares = [
        RegionShare(region=region, percentage=weighted_mean(values, ws))
        for region, (values, ws) in groups.items()
    ]
    shares.sort(key=lambda s: s.percentage, reverse=True)
    return shares


def aggregate_demographics(creatives: Iterable[Creative]) -> AggregatedDemographics:
    """Weighted demographic summary over creatives that carry a sample.

    Never raises for empty input: no samples means an empty result with all
    counters at 0.
    """
    samples = [c.demographics for c in creatives if c.demographics is not None]
    if not samples:
        return AggregatedDemographics()

    weights: list[float] = []
    without_reach = 0
    for sample in samples:
        weight, has_reach = sample_weight(sample)
        weights.append(weight)
        if not has_reach:
            without_reach += 1

    age_gender = aggregate_age_gender(samples, weights)
    age_gender.sort(key=lambda s: (_age_sort_key(s.age), s.gender))

    return AggregatedDemographics(
        age=normalize_breakdown(derive_age_breakdown(age_gender)),
        gender=normalize_breakdown(derive_gender_breakdown(age_gender)),
        age_gender=normalize_breakdown(age_gender),
        regions=normalize_breakdown(aggregate_regions(samples, weights)),
        total_weight=sum(weights),
        creatives_with_demographics=len(samples),
        creatives_without_reach=without_reach,
    )
