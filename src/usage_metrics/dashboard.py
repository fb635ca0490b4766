from __future__ import annotations
import datetime as dt
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Optional, Protocol

import requests

from .data_prep import load_usage
from .errors import RenderError, UsageMetricsError
from .metrics import AggregatedView, aggregate, summarize
from .viz import (
    ChartHandle,
    _ensure_dir,
    plot_latest_breakdown,
    plot_stats_panel,
    plot_total_trend,
    plot_version_trends,
)

logger = logging.getLogger(__name__)

STATS_TARGET = "stats-grid"
TREND_TARGET = "trendChart"
TOTAL_TARGET = "versionChart"
LATEST_TARGET = "latestChart"
ALL_TARGETS = (STATS_TARGET, TREND_TARGET, TOTAL_TARGET, LATEST_TARGET)


class RenderTarget(Protocol):
    """Where the dashboard draws. Stands in for the page the charts live on."""

    def has(self, name: str) -> bool: ...
    def place(self, name: str, handle: ChartHandle) -> None: ...
    def show_error(self, message: str) -> None: ...
    def set_loading(self, visible: bool) -> None: ...
    def set_content(self, visible: bool) -> None: ...
    def set_update_time(self, when: dt.datetime) -> None: ...


@dataclass
class DashboardState:
    """
    Cross-load state owned by the caller:
      handles      at most one live chart per target name
      initialized  set while a load-and-render sequence runs or after it succeeded
    """
    handles: Dict[str, ChartHandle] = field(default_factory=dict)
    initialized: bool = False

    def replace(self, name: str, factory: Callable[[], ChartHandle]) -> ChartHandle:
        old = self.handles.pop(name, None)
        if old is not None:
            old.destroy()
        handle = factory()
        self.handles[name] = handle
        return handle

    def release_all(self) -> None:
        for handle in self.handles.values():
            handle.destroy()
        self.handles.clear()


class DirectoryTarget:
    """
    Writes each chart to <out_dir>/<name>.png and the page state to
    <out_dir>/status.json. Names outside `targets` have no container.
    """

    def __init__(self, out_dir: str, targets: Iterable[str] = ALL_TARGETS):
        self.out_dir = out_dir
        self.targets = set(targets)
        self.status = {"loading": True, "content": False, "error": None, "updated": None}

    def _write_status(self) -> None:
        path = os.path.join(self.out_dir, "status.json")
        _ensure_dir(path)
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(self.status, fh, indent=2)

    def has(self, name: str) -> bool:
        return name in self.targets

    def path_for(self, name: str) -> str:
        return os.path.join(self.out_dir, f"{name}.png")

    def place(self, name: str, handle: ChartHandle) -> None:
        if not self.has(name):
            raise RenderError(f"no container named {name!r}")
        try:
            handle.save(self.path_for(name))
        except OSError as e:
            raise RenderError(f"could not write {name}: {e}") from e

    def show_error(self, message: str) -> None:
        self.status.update(loading=False, error=message)
        self._write_status()

    def set_loading(self, visible: bool) -> None:
        self.status["loading"] = visible
        self._write_status()

    def set_content(self, visible: bool) -> None:
        self.status["content"] = visible
        self._write_status()

    def set_update_time(self, when: dt.datetime) -> None:
        self.status["updated"] = when.isoformat(timespec="seconds")
        self._write_status()


def _render(
    state: DashboardState,
    target: RenderTarget,
    name: str,
    factory: Callable[[], ChartHandle],
) -> Optional[ChartHandle]:
    # a missing container is not an error; the page may not carry every chart
    if not target.has(name):
        logger.debug("No container for %s; skipping", name)
        return None
    try:
        handle = state.replace(name, factory)
        target.place(name, handle)
    except RenderError as e:
        logger.debug("Chart %s not rendered: %s", name, e)
        return None
    return handle


def render_view(view: AggregatedView, target: RenderTarget, state: DashboardState) -> Dict[str, ChartHandle]:
    """Render the stats panel and the three charts; each one independently."""
    summary = summarize(view)
    logger.info(
        "Summary: total=%d versions=%d latest=%s latest_usage=%d",
        summary.total_repositories, summary.versions_tracked,
        summary.latest_version, summary.latest_usage,
    )
    steps = [
        (STATS_TARGET, lambda: plot_stats_panel(summary, STATS_TARGET)),
        (TREND_TARGET, lambda: plot_version_trends(view, TREND_TARGET)),
        (TOTAL_TARGET, lambda: plot_total_trend(view, TOTAL_TARGET)),
        (LATEST_TARGET, lambda: plot_latest_breakdown(view, LATEST_TARGET)),
    ]
    rendered = {}
    for name, factory in steps:
        handle = _render(state, target, name, factory)
        if handle is not None:
            rendered[name] = handle
    return rendered


def run_dashboard(
    source: str,
    target: RenderTarget,
    state: DashboardState,
    *,
    timeout: float = 30.0,
    session: Optional[requests.Session] = None,
) -> Optional[AggregatedView]:
    """
    One load-and-render sequence: fetch, parse, aggregate, render.

    Returns None without doing anything when a sequence already ran (or is
    running) for this state, or when the target has no trend chart.
    On a load failure the error is shown on the target, the guard is reset
    so a later call can try again, and None is returned.
    """
    if state.initialized:
        logger.debug("Dashboard already initialized; ignoring")
        return None
    if not target.has(TREND_TARGET):
        logger.debug("Target has no %s container; not a dashboard", TREND_TARGET)
        return None

    state.initialized = True
    try:
        records = load_usage(source, timeout=timeout, session=session)
        view = aggregate(records)
    except UsageMetricsError as e:
        state.initialized = False
        logger.error("Initialization failed: %s", e)
        target.show_error(f"Failed to load data: {e}")
        return None
    except Exception:
        state.initialized = False
        raise

    try:
        target.set_loading(False)
        target.set_content(True)
        render_view(view, target, state)
        target.set_update_time(dt.datetime.now())
    except Exception:
        state.initialized = False
        raise
    return view
