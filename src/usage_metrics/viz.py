from __future__ import annotations
import os
from typing import Optional

from matplotlib import colors as mcolors
import matplotlib.dates as mdates
import matplotlib.pyplot as plt

from .metrics import AggregatedView, Summary, latest_frame, records_frame, totals_frame

PALETTE = [
    "#667eea", "#764ba2", "#f093fb", "#4facfe",
    "#43e97b", "#fa709a", "#fee140", "#30cfd0",
]

def _ensure_dir(p: Optional[str]) -> None:
    if p:
        d = os.path.dirname(p)
        if d and not os.path.exists(d):
            os.makedirs(d, exist_ok=True)

def color_for(index: int) -> str:
    return PALETTE[index % len(PALETTE)]

def _month_axis(ax: plt.Axes) -> None:
    ax.xaxis.set_major_locator(mdates.MonthLocator())
    ax.xaxis.set_major_formatter(mdates.DateFormatter("%b %Y"))
    ax.set_xlabel("Date")
    for label in ax.get_xticklabels():
        label.set_rotation(30)
        label.set_horizontalalignment("right")


class ChartHandle:
    """A rendered chart. Must be destroyed before a same-named chart is recreated."""

    def __init__(self, name: str, figure: plt.Figure):
        self.name = name
        self.figure = figure
        self.destroyed = False

    def save(self, out_path: str, dpi: int = 150) -> str:
        if self.destroyed:
            raise ValueError(f"chart {self.name!r} was already destroyed")
        _ensure_dir(out_path)
        self.figure.savefig(out_path, dpi=dpi, bbox_inches="tight")
        return out_path

    def destroy(self) -> None:
        if not self.destroyed:
            plt.close(self.figure)
            self.destroyed = True

    def __repr__(self) -> str:
        state = "destroyed" if self.destroyed else "live"
        return f"ChartHandle({self.name!r}, {state})"


def plot_stats_panel(summary: Summary, name: str = "stats-grid") -> ChartHandle:
    """
    Four stat cards in a row:
      Total Repositories, Versions Tracked, Latest Version, Latest Usage
    """
    cards = [
        ("Total Repositories", str(summary.total_repositories)),
        ("Versions Tracked", str(summary.versions_tracked)),
        ("Latest Version", summary.latest_version if summary.latest_version is not None else "n/a"),
        ("Latest Usage", str(summary.latest_usage)),
    ]
    fig, axes = plt.subplots(1, 4, figsize=(12, 2.2))
    for ax, (label, value) in zip(axes, cards):
        ax.set_xticks([]); ax.set_yticks([])
        for spine in ax.spines.values():
            spine.set_color(PALETTE[0])
        ax.text(0.5, 0.68, label, ha="center", va="center", fontsize=10, color="#555555",
                transform=ax.transAxes)
        ax.text(0.5, 0.32, value, ha="center", va="center", fontsize=20, weight="bold",
                transform=ax.transAxes)
    fig.tight_layout()
    return ChartHandle(name, fig)


def plot_version_trends(view: AggregatedView, name: str = "trendChart") -> ChartHandle:
    """One filled line per version, keyed by category order."""
    fig, ax = plt.subplots(figsize=(12, 5))
    df = records_frame(view.records)
    for i, version in enumerate(view.categories):
        sub = df[df["version"] == version]
        color = color_for(i)
        x = sub["date"].to_numpy()
        y = sub["count"].to_numpy()
        ax.plot(x, y, color=color, linewidth=1.8, label=version)
        ax.fill_between(x, y, color=color, alpha=0.12)

    ax.set_title("Usage by Version")
    ax.set_ylabel("Repository Count")
    ax.set_ylim(bottom=0)
    _month_axis(ax)
    if view.categories:
        ax.legend(loc="upper left", ncols=min(4, len(view.categories)), fontsize=9)
    else:
        ax.text(0.5, 0.5, "No data", ha="center", va="center", transform=ax.transAxes)
    fig.tight_layout()
    return ChartHandle(name, fig)


def plot_total_trend(view: AggregatedView, name: str = "versionChart") -> ChartHandle:
    """Single series: total repositories across all versions per date."""
    fig, ax = plt.subplots(figsize=(12, 5))
    totals = totals_frame(view)
    if totals.empty:
        ax.text(0.5, 0.5, "No data", ha="center", va="center", transform=ax.transAxes)
    else:
        x = totals["date"].to_numpy()
        y = totals["total"].to_numpy()
        ax.plot(x, y, color=PALETTE[0], linewidth=3, marker="o", markersize=6,
                markerfacecolor=PALETTE[0], markeredgecolor="#ffffff", markeredgewidth=2,
                label="Total Repositories")
        ax.fill_between(x, y, color=mcolors.to_rgba(PALETTE[0], 0.1))

    ax.set_title("Total Repositories Over Time")
    ax.set_ylabel("Total Repository Count")
    ax.set_ylim(bottom=0)
    _month_axis(ax)
    fig.tight_layout()
    return ChartHandle(name, fig)


def plot_latest_breakdown(view: AggregatedView, name: str = "latestChart") -> ChartHandle:
    """
    Donut of the latest count per version.
    Wedge labels read "<version>: <count> (<pct>%)".
    """
    fig, ax = plt.subplots(figsize=(8, 6))
    latest = latest_frame(view)
    ax.set_title("Latest Usage by Version")

    if latest.empty or latest["count"].sum() == 0:
        ax.text(0.5, 0.5, "No data", ha="center", va="center", transform=ax.transAxes)
        ax.axis("off")
        fig.tight_layout()
        return ChartHandle(name, fig)

    labels = [
        f"{v}: {c} ({s:.1f}%)"
        for v, c, s in zip(latest["version"], latest["count"], latest["share"])
    ]
    wedges, _ = ax.pie(
        latest["count"].to_numpy(),
        colors=[color_for(i) for i in range(len(latest))],
        startangle=90,
        counterclock=False,
        wedgeprops={"width": 0.45, "edgecolor": "#ffffff", "linewidth": 2},
    )
    ax.legend(wedges, labels, loc="center left", bbox_to_anchor=(1.0, 0.5), fontsize=9)
    ax.set_aspect("equal")
    fig.tight_layout()
    return ChartHandle(name, fig)
