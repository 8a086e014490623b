"""Tests for the plugin contract and per-region fan-out."""

import threading
import time

from cache.source_cache import SourceCache
from models.base_models import FindingStatus, PluginDescriptor, RegionState
from plugins.base_plugin import BasePlugin, PLUGIN_REGISTRY, register_plugin


DESCRIPTOR = PluginDescriptor(title="Fan Out", category="Test", description="Exercises fan-out")


class FanOutPlugin(BasePlugin):
    plugin_id = "aws.test.fan_out"
    provider = "aws"
    descriptor = DESCRIPTOR

    def __init__(self, task):
        super().__init__()
        self.task = task

    def run(self, invocation):
        invocation.results.add_result(0, "before fan-out")
        invocation.fan_out(invocation.regions["ec2"], self.task)
        return None


def _execute(task, region_list, config, cancel_event=None):
    return FanOutPlugin(task).execute(SourceCache({}), config, {"ec2": region_list}, cancel_event)


def test_region_states_cover_every_outcome(config):
    def task(region, results):
        if region == "bad":
            raise KeyError("missing field")
        if region == "unknown":
            results.add_result(3, "Unable to query", region)
        if region == "ok":
            results.add_result(0, "fine", region)

    result = _execute(task, ["ok", "empty", "unknown", "bad"], config)

    assert result.region_states == {
        "ok": RegionState.OK,
        "empty": RegionState.EMPTY,
        "unknown": RegionState.ERROR,
        "bad": RegionState.ERROR,
    }
    bad = [f for f in result.findings if f.region == "bad"]
    assert len(bad) == 1
    assert bad[0].status == FindingStatus.UNKNOWN
    assert bad[0].message.startswith("Unable to evaluate region:")
    assert bad[0].extra == {"exception": "KeyError"}


def test_findings_merge_in_region_order_after_join(config):
    delays = {"r1": 0.15, "r2": 0.05, "r3": 0.0}

    def task(region, results):
        time.sleep(delays[region])
        results.add_result(0, f"done {region}", region)

    result = _execute(task, ["r1", "r2", "r3"], config)

    assert [f.message for f in result.findings] == ["before fan-out", "done r1", "done r2", "done r3"]


def test_regions_run_concurrently(make_config):
    barrier = threading.Barrier(3, timeout=5)

    def task(region, results):
        # Deadlocks (and times out) unless all three run at the same time
        barrier.wait()
        results.add_result(0, "met", region)

    result = _execute(task, ["a", "b", "c"], make_config(max_region_workers=3))
    assert [f.status for f in result.findings[1:]] == [0, 0, 0]


def test_duplicate_regions_run_once(config):
    calls = []

    def task(region, results):
        calls.append(region)

    _execute(task, ["a", "a", "b"], config)
    assert sorted(calls) == ["a", "b"]


def test_cancelled_invocation_dispatches_nothing(config):
    cancel = threading.Event()
    cancel.set()
    calls = []

    def task(region, results):
        calls.append(region)

    result = _execute(task, ["a", "b"], config, cancel_event=cancel)
    assert calls == []
    assert result.region_states == {"a": RegionState.CANCELLED, "b": RegionState.CANCELLED}
    assert [f.message for f in result.findings] == ["before fan-out"]


def test_execute_returns_trace_and_plugin_id(config):
    class Reader(BasePlugin):
        plugin_id = "aws.test.reader"
        provider = "aws"
        descriptor = DESCRIPTOR

        def run(self, invocation):
            invocation.source.add_source(["iam", "listUsers", "us-east-1"])
            return "nothing to do"

    result = Reader().execute(SourceCache({}), config)
    assert result.plugin_id == "aws.test.reader"
    assert result.error == "nothing to do"
    assert result.source == {"iam": {"listUsers": {"us-east-1": None}}}


def test_register_plugin_adds_to_registry():
    @register_plugin("aws.test.registered")
    class Registered(BasePlugin):
        descriptor = DESCRIPTOR

        def run(self, invocation):
            return None

    try:
        assert PLUGIN_REGISTRY["aws.test.registered"] is Registered
        assert Registered.provider == "aws"
        assert Registered.metadata().title == "Fan Out"
    finally:
        PLUGIN_REGISTRY.pop("aws.test.registered", None)
