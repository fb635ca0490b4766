from __future__ import annotations
import datetime as dt
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

DateLike = Union[str, dt.date, dt.datetime]


@dataclass(frozen=True)
class UsageRecord:
    date: DateLike
    category: str
    count: int


@dataclass(frozen=True)
class AggregatedView:
    records: Tuple[UsageRecord, ...] = ()
    categories: Tuple[str, ...] = ()
    by_category: Dict[str, Tuple[UsageRecord, ...]] = field(default_factory=dict)
    latest_by_category: Dict[str, int] = field(default_factory=dict)
    totals_by_date: Dict[DateLike, int] = field(default_factory=dict)


@dataclass(frozen=True)
class Summary:
    total_repositories: int
    versions_tracked: int
    latest_version: Optional[str]
    latest_usage: int


def records_frame(records: Sequence[UsageRecord]) -> pd.DataFrame:
    """
    Tabular copy of the records:
      key (date value as given), date (datetime64), version, count
    Row order follows the input.
    """
    return pd.DataFrame({
        "key": pd.Series([r.date for r in records], dtype=object),
        "date": pd.to_datetime(pd.Series([pd.Timestamp(r.date) for r in records], dtype=object)),
        "version": pd.Series([r.category for r in records], dtype=object),
        "count": pd.Series([int(r.count) for r in records], dtype="int64"),
    })


def aggregate(records: Sequence[UsageRecord]) -> AggregatedView:
    """
    Build the derived views for one load:
      records sorted by date (stable, ties keep input order),
      categories in code-point order, per-category runs,
      latest count per category and totals per date.
    """
    records = list(records)
    if not records:
        return AggregatedView()

    df = records_frame(records)
    # mergesort is the stable one
    order = np.argsort(df["date"].to_numpy(), kind="mergesort")
    ordered = tuple(records[i] for i in order)
    df = df.iloc[order].reset_index(drop=True)

    categories = tuple(sorted(df["version"].unique().tolist()))

    by_category: Dict[str, List[UsageRecord]] = {c: [] for c in categories}
    for rec in ordered:
        by_category[rec.category].append(rec)

    latest = df.groupby("version", sort=True)["count"].last()
    latest_by_category = {c: int(latest[c]) for c in categories}

    # group on the raw values so the keys come back as given
    totals = df.groupby("key", sort=False)["count"].sum()
    totals_by_date = {k: int(v) for k, v in totals.items()}

    return AggregatedView(
        records=ordered,
        categories=categories,
        by_category={c: tuple(rs) for c, rs in by_category.items()},
        latest_by_category=latest_by_category,
        totals_by_date=totals_by_date,
    )


def summarize(view: AggregatedView) -> Summary:
    # "latest" is the lexically last label, not the newest by date
    latest_version = view.categories[-1] if view.categories else None
    latest_usage = view.latest_by_category.get(latest_version, 0) if latest_version is not None else 0
    return Summary(
        total_repositories=int(sum(view.latest_by_category.values())),
        versions_tracked=len(view.categories),
        latest_version=latest_version,
        latest_usage=int(latest_usage),
    )


def totals_frame(view: AggregatedView) -> pd.DataFrame:
    """Aggregate series for the total-over-time chart, ascending by date."""
    out = pd.DataFrame({
        "date": pd.to_datetime(pd.Series([pd.Timestamp(k) for k in view.totals_by_date], dtype=object)),
        "total": pd.Series(list(view.totals_by_date.values()), dtype="int64"),
    })
    return out.sort_values("date", kind="mergesort").reset_index(drop=True)


def latest_frame(view: AggregatedView) -> pd.DataFrame:
    out = pd.DataFrame({
        "version": pd.Series(list(view.categories), dtype=object),
        "count": pd.Series([view.latest_by_category[c] for c in view.categories], dtype="int64"),
    })
    total = out["count"].sum()
    out["share"] = (100.0 * out["count"] / total) if total > 0 else 0.0
    return out
