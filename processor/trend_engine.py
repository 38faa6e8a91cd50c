"""시계열 트렌드 엔진 -- creatives bucketed by start month / ISO week.

Buckets keep the 12 most recent periods in chronological order. All series
below are projections over the same bucket list:

  - country reach over time (top 5 regions)
  - media mix over time (percent of classified creatives)
  - creative velocity (launch count + summed reach)
  - reach trajectory (total + average reach)
  - trend signal (last 3 buckets vs the 3 before; +/-20% threshold)
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date, datetime
from typing import Literal

from processor.models import (
    CountryReachPoint,
    Creative,
    MediaMixPoint,
    TimePeriodGroup,
    TrajectoryPoint,
    TrendReport,
    TrendSignal,
    VelocityPoint,
)
from processor.spend_estimator import apportion_reach, round_half_up

Period = Literal["monthly", "weekly"]

MAX_BUCKETS = 12
TOP_REGIONS = 5
TREND_WINDOW = 3
MIN_BUCKETS_FOR_TREND = 4
TREND_THRESHOLD = 20.0

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


# ── 버킷 키/라벨 ──

def month_key(day: date) -> str:
    return f"{day.year}-{day.month:02d}"


def month_label(key: str) -> str:
    year, month = key.split("-")
    return f"{_MONTHS[int(month) - 1]} '{year[-2:]}"


def week_key(day: date) -> str:
    iso_year, iso_week, _ = day.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def week_label(key: str) -> str:
    """Monday of the ISO week, e.g. ``2025-W12`` -> ``Mar 17``."""
    year, week = key.split("-W")
    monday = date.fromisocalendar(int(year), int(week), 1)
    return f"{_MONTHS[monday.month - 1]} {monday.day}"


def _bucket_key(started_at: datetime, period: Period) -> str:
    day = started_at.date()
    return month_key(day) if period == "monthly" else week_key(day)


def group_by_period(
    creatives: Iterable[Creative], period: Period = "monthly",
) -> list[TimePeriodGroup]:
    """Dated creatives grouped into the most recent 12 buckets, oldest first."""
    if period not in ("monthly", "weekly"):
        raise ValueError(f"unknown period: {period}")

    buckets: dict[str, list[Creative]] = {}
    for creative in creatives:
        if creative.started_at is None:
            continue
        buckets.setdefault(_bucket_key(creative.started_at, period), []).append(creative)

    # "YYYY-MM" / "YYYY-Www" keys sort chronologically as strings
    keys = sorted(buckets)[-MAX_BUCKETS:]
    label = month_label if period == "monthly" else week_label
    return [TimePeriodGroup(key=k, label=label(k), creatives=buckets[k]) for k in keys]


# ── 파생 시계열 ──

def _region_reach(creative: Creative) -> dict[str, int]:
    if creative.demographics is None:
        return {}
    reach = creative.effective_reach
    out: dict[str, int] = {}
    for entry in creative.demographics.regions:
        region = entry.region.upper()
        out[region] = out.get(region, 0) + apportion_reach(reach, entry.percentage)
    return out


def country_reach_over_time(
    groups: Sequence[TimePeriodGroup], top_n: int = TOP_REGIONS,
) -> tuple[list[CountryReachPoint], list[str]]:
    per_group = [[_region_reach(c) for c in g.creatives] for g in groups]

    totals: dict[str, int] = {}
    for rows in per_group:
        for row in rows:
            for region, reach in row.items():
                totals[region] = totals.get(region, 0) + reach

    top = [r for r, _ in sorted(totals.items(), key=lambda kv: kv[1], reverse=True)[:top_n]]
    if not top:
        return [], []

    points: list[CountryReachPoint] = []
    for group, rows in zip(groups, per_group):
        reach = {region: 0 for region in top}
        for row in rows:
            for region in top:
                reach[region] += row.get(region, 0)
        points.append(CountryReachPoint(label=group.label, reach=reach))
    return points, top


def media_mix_over_time(groups: Sequence[TimePeriodGroup]) -> list[MediaMixPoint]:
    points: list[MediaMixPoint] = []
    for group in groups:
        counts = {"video": 0, "image": 0, "carousel": 0}
        for creative in group.creatives:
            if creative.media_kind in counts:
                counts[creative.media_kind] += 1
        classified = sum(counts.values())
        if classified == 0:
            points.append(MediaMixPoint(label=group.label))
            continue
        points.append(MediaMixPoint(
            label=group.label,
            video=round_half_up(counts["video"] / classified * 100),
            image=round_half_up(counts["image"] / classified * 100),
            carousel=round_half_up(counts["carousel"] / classified * 100),
        ))
    return points


def creative_velocity(groups: Sequence[TimePeriodGroup]) -> list[VelocityPoint]:
    return [
        VelocityPoint(
            label=g.label,
            creatives_launched=len(g.creatives),
            total_reach=sum(c.effective_reach for c in g.creatives),
        )
        for g in groups
    ]


def reach_trajectory(groups: Sequence[TimePeriodGroup]) -> list[TrajectoryPoint]:
    points: list[TrajectoryPoint] = []
    for g in groups:
        total = sum(c.effective_reach for c in g.creatives)
        avg = round_half_up(total / len(g.creatives)) if g.creatives else 0
        points.append(TrajectoryPoint(label=g.label, total_reach=total, avg_reach_per_creative=avg))
    return points


def detect_trend(groups: Sequence[TimePeriodGroup]) -> TrendSignal:
    signal = TrendSignal()
    for g in groups:
        if len(g.creatives) > signal.peak_count:
            signal.peak_count = len(g.creatives)
            signal.peak_label = g.label

    if len(groups) < MIN_BUCKETS_FOR_TREND:
        return signal

    recent = groups[-TREND_WINDOW:]
    older = groups[-2 * TREND_WINDOW:-TREND_WINDOW]
    recent_avg = sum(len(g.creatives) for g in recent) / len(recent)
    older_avg = sum(len(g.creatives) for g in older) / len(older) if older else 0.0
    if older_avg <= 0:
        return signal

    change = (recent_avg - older_avg) / older_avg * 100
    signal.change_percent = change
    if change > TREND_THRESHOLD:
        signal.trend = "scaling"
    elif change < -TREND_THRESHOLD:
        signal.trend = "declining"
    return signal


def build_trend_report(creatives: Iterable[Creative], period: Period = "monthly") -> TrendReport:
    groups = group_by_period(creatives, period)
    country_points, countries = country_reach_over_time(groups)
    return TrendReport(
        period=period,
        groups=groups,
        countries=countries,
        country_reach=country_points,
        media_mix=media_mix_over_time(groups),
        velocity=creative_velocity(groups),
        trajectory=reach_trajectory(groups),
        signal=detect_trend(groups),
    )
