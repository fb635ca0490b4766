"""Unit tests for the dashboard load-and-render sequence."""

import json
import os
import shutil
import tempfile
import unittest
from unittest.mock import Mock

from usage_metrics.dashboard import (
    ALL_TARGETS,
    LATEST_TARGET,
    STATS_TARGET,
    TOTAL_TARGET,
    TREND_TARGET,
    DashboardState,
    DirectoryTarget,
    run_dashboard,
)
from usage_metrics.errors import RenderError

URL = "https://example.org/usage-metrics.csv"
CSV = "date,version,count\n2024-01-01,v1,10\n2024-02-01,v1,15\n2024-02-01,v2,5\n"


def _session(status=200, body=CSV):
    resp = Mock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.content = body.encode("utf-8")
    session = Mock()
    session.get.return_value = resp
    return session


class FakeTarget:
    """In-memory render target recording what the dashboard asked for."""

    def __init__(self, names=ALL_TARGETS, failing=()):
        self.names = set(names)
        self.failing = set(failing)
        self.placed = {}
        self.errors = []
        self.loading = True
        self.content = False
        self.updated = None

    def has(self, name):
        return name in self.names

    def place(self, name, handle):
        if name in self.failing:
            raise RenderError(f"cannot draw {name}")
        self.placed[name] = handle

    def show_error(self, message):
        self.loading = False
        self.errors.append(message)

    def set_loading(self, visible):
        self.loading = visible

    def set_content(self, visible):
        self.content = visible

    def set_update_time(self, when):
        self.updated = when


class TestRunDashboard(unittest.TestCase):
    """Test cases for run_dashboard()."""

    def setUp(self):
        self.state = DashboardState()

    def tearDown(self):
        self.state.release_all()

    def test_success(self):
        target = FakeTarget()
        view = run_dashboard(URL, target, self.state, session=_session())

        self.assertIsNotNone(view)
        self.assertEqual(list(view.categories), ["v1", "v2"])
        self.assertEqual(set(target.placed), set(ALL_TARGETS))
        self.assertFalse(target.loading)
        self.assertTrue(target.content)
        self.assertIsNotNone(target.updated)
        self.assertEqual(target.errors, [])
        self.assertTrue(self.state.initialized)
        self.assertEqual(set(self.state.handles), set(ALL_TARGETS))

    def test_second_run_is_ignored(self):
        session = _session()
        run_dashboard(URL, FakeTarget(), self.state, session=session)
        again = FakeTarget()
        self.assertIsNone(run_dashboard(URL, again, self.state, session=session))
        self.assertEqual(session.get.call_count, 1)
        self.assertEqual(again.placed, {})

    def test_not_a_dashboard_page(self):
        session = _session()
        target = FakeTarget(names=[STATS_TARGET, LATEST_TARGET])
        self.assertIsNone(run_dashboard(URL, target, self.state, session=session))
        session.get.assert_not_called()
        self.assertFalse(self.state.initialized)

    def test_fetch_failure_shows_error_and_resets_guard(self):
        target = FakeTarget()
        with self.assertLogs("usage_metrics.dashboard", level="ERROR"):
            view = run_dashboard(URL, target, self.state, session=_session(status=500))

        self.assertIsNone(view)
        self.assertEqual(target.errors, ["Failed to load data: HTTP error! status: 500"])
        self.assertFalse(target.loading)
        self.assertFalse(target.content)
        self.assertEqual(target.placed, {})
        self.assertFalse(self.state.initialized)

        retry = FakeTarget()
        self.assertIsNotNone(run_dashboard(URL, retry, self.state, session=_session()))
        self.assertEqual(set(retry.placed), set(ALL_TARGETS))

    def test_unusable_csv_is_a_load_failure(self):
        target = FakeTarget()
        with self.assertLogs("usage_metrics", level="WARNING"):
            view = run_dashboard(URL, target, self.state,
                                 session=_session(body="date,version,count\nbad,v1,x\n"))
        self.assertIsNone(view)
        self.assertEqual(len(target.errors), 1)
        self.assertTrue(target.errors[0].startswith("Failed to load data:"))
        self.assertFalse(self.state.initialized)

    def test_non_finite_counts_show_error(self):
        target = FakeTarget()
        body = "date,version,count\n2024-01-01,v1,inf\n2024-02-01,v1,1e400\n"
        with self.assertLogs("usage_metrics", level="WARNING"):
            view = run_dashboard(URL, target, self.state, session=_session(body=body))
        self.assertIsNone(view)
        self.assertEqual(len(target.errors), 1)
        self.assertTrue(target.errors[0].startswith("Failed to load data:"))
        self.assertEqual(target.placed, {})
        self.assertFalse(self.state.initialized)

    def test_one_non_finite_count_is_skipped(self):
        target = FakeTarget()
        body = CSV + "2024-03-01,v2,inf\n"
        with self.assertLogs("usage_metrics.data_prep", level="WARNING"):
            view = run_dashboard(URL, target, self.state, session=_session(body=body))
        self.assertEqual(len(view.records), 3)
        self.assertEqual(target.errors, [])

    def test_mixed_timezones_render(self):
        target = FakeTarget()
        body = "date,version,count\n2024-01-01,v1,10\n2024-01-02T10:00:00Z,v1,3\n2024-01-03T12:00:00+02:00,v2,4\n"
        view = run_dashboard(URL, target, self.state, session=_session(body=body))
        self.assertEqual(view.latest_by_category, {"v1": 3, "v2": 4})
        self.assertEqual(target.errors, [])
        self.assertEqual(set(target.placed), set(ALL_TARGETS))

    def test_header_only_csv_renders_empty_dashboard(self):
        target = FakeTarget()
        view = run_dashboard(URL, target, self.state, session=_session(body="date,version,count\n"))
        self.assertEqual(view.categories, ())
        self.assertEqual(set(target.placed), set(ALL_TARGETS))

    def test_missing_chart_container_is_skipped(self):
        target = FakeTarget(names=[STATS_TARGET, TREND_TARGET, TOTAL_TARGET])
        self.assertIsNotNone(run_dashboard(URL, target, self.state, session=_session()))
        self.assertEqual(set(target.placed), {STATS_TARGET, TREND_TARGET, TOTAL_TARGET})

    def test_render_error_does_not_stop_other_charts(self):
        target = FakeTarget(failing=[TOTAL_TARGET])
        self.assertIsNotNone(run_dashboard(URL, target, self.state, session=_session()))
        self.assertEqual(set(target.placed), {STATS_TARGET, TREND_TARGET, LATEST_TARGET})
        self.assertTrue(self.state.initialized)

    def test_rerun_destroys_previous_handles(self):
        run_dashboard(URL, FakeTarget(), self.state, session=_session())
        first = dict(self.state.handles)

        self.state.initialized = False
        run_dashboard(URL, FakeTarget(), self.state, session=_session())

        for name, handle in first.items():
            self.assertTrue(handle.destroyed)
            self.assertIsNot(self.state.handles[name], handle)
            self.assertFalse(self.state.handles[name].destroyed)


class TestDashboardState(unittest.TestCase):
    """Test cases for DashboardState."""

    def test_replace_destroys_before_create(self):
        state = DashboardState()
        calls = []
        old = Mock()
        old.destroy.side_effect = lambda: calls.append("destroy")
        state.handles["trendChart"] = old

        def factory():
            calls.append("create")
            return Mock()

        new = state.replace("trendChart", factory)
        self.assertEqual(calls, ["destroy", "create"])
        self.assertIs(state.handles["trendChart"], new)

    def test_release_all(self):
        state = DashboardState()
        handles = {name: Mock() for name in ALL_TARGETS}
        state.handles.update(handles)
        state.release_all()
        self.assertEqual(state.handles, {})
        for h in handles.values():
            h.destroy.assert_called_once_with()


class TestDirectoryTarget(unittest.TestCase):
    """Test cases for DirectoryTarget."""

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.out_dir = os.path.join(self.test_dir, "dashboard")
        self.state = DashboardState()

    def tearDown(self):
        self.state.release_all()
        if os.path.exists(self.test_dir):
            shutil.rmtree(self.test_dir)

    def _status(self):
        with open(os.path.join(self.out_dir, "status.json"), encoding="utf-8") as fh:
            return json.load(fh)

    def test_writes_charts_and_status(self):
        target = DirectoryTarget(self.out_dir)
        run_dashboard(URL, target, self.state, session=_session())

        for name in ALL_TARGETS:
            self.assertTrue(os.path.exists(target.path_for(name)), name)
        status = self._status()
        self.assertFalse(status["loading"])
        self.assertTrue(status["content"])
        self.assertIsNone(status["error"])
        self.assertIsNotNone(status["updated"])

    def test_error_status(self):
        target = DirectoryTarget(self.out_dir)
        with self.assertLogs("usage_metrics.dashboard", level="ERROR"):
            run_dashboard(URL, target, self.state, session=_session(status=404))
        status = self._status()
        self.assertEqual(status["error"], "Failed to load data: HTTP error! status: 404")
        self.assertFalse(status["loading"])
        self.assertFalse(os.path.exists(target.path_for(TREND_TARGET)))

    def test_place_unknown_name(self):
        target = DirectoryTarget(self.out_dir, targets=[TREND_TARGET])
        with self.assertRaises(RenderError):
            target.place(LATEST_TARGET, Mock())


if __name__ == "__main__":
    unittest.main()
