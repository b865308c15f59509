# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""Tests for HealthMonitor and alert notifiers (FakeRedis + injected clock)."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from conftest import RecordingNotifier

from prompt_catalog.services.health_monitor import COUNT, RATE, AlertPolicy, HealthMonitor
from prompt_catalog.services.notifier import (
    ALERT_CLOSED,
    ALERT_OPEN,
    Alert,
    LogNotifier,
    WebhookNotifier,
    build_notifier,
)


def _monitor(redis, notifier, clock) -> HealthMonitor:
    return HealthMonitor(
        redis=redis,
        notifier=notifier,
        pipeline_policy=AlertPolicy(
            name="pipeline_failure_rate",
            metric="pipeline_execution_failure_rate",
            window_seconds=300,
            threshold=0.2,
            mode=RATE,
            min_events=5,
        ),
        warehouse_policy=AlertPolicy(
            name="warehouse_write_failures",
            metric="warehouse_write_failure_count",
            window_seconds=3600,
            threshold=10,
            mode=COUNT,
        ),
        cooldown_seconds=1800,
        auto_close_seconds=1800,
        clock=clock,
    )


async def _fail_pipeline(monitor, times):
    for _ in range(times):
        await monitor.record_pipeline_execution(False)


class TestPipelineFailureRate:
    @pytest.mark.asyncio
    async def test_needs_minimum_executions(self, fake_redis, notifier, clock):
        monitor = _monitor(fake_redis, notifier, clock)
        await _fail_pipeline(monitor, 4)
        assert notifier.sent == []

        evaluation = await monitor.record_pipeline_execution(False)
        assert evaluation.breached is True
        assert evaluation.total == 5
        assert len(notifier.sent) == 1
        alert = notifier.sent[0]
        assert alert.policy == "pipeline_failure_rate"
        assert alert.state == ALERT_OPEN
        assert alert.observed_value == pytest.approx(1.0)
        assert alert.threshold == 0.2

    @pytest.mark.asyncio
    async def test_rate_must_exceed_threshold(self, fake_redis, notifier, clock):
        monitor = _monitor(fake_redis, notifier, clock)
        for _ in range(8):
            await monitor.record_pipeline_execution(True)
        await _fail_pipeline(monitor, 2)
        assert notifier.sent == []  # 2 / 10 is not above 0.2

        await monitor.record_pipeline_execution(False)  # 3 / 11
        assert len(notifier.sent) == 1
        assert notifier.sent[0].observed_value == pytest.approx(3 / 11)

    @pytest.mark.asyncio
    async def test_old_events_leave_the_window(self, fake_redis, notifier, clock):
        monitor = _monitor(fake_redis, notifier, clock)
        await _fail_pipeline(monitor, 4)
        clock.advance(301)

        evaluation = await monitor.record_pipeline_execution(False)
        assert evaluation.total == 1
        assert evaluation.breached is False
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_success_does_not_evaluate(self, fake_redis, notifier, clock):
        monitor = _monitor(fake_redis, notifier, clock)
        assert await monitor.record_pipeline_execution(True) is None


class TestWarehouseFailureCount:
    @pytest.mark.asyncio
    async def test_count_must_exceed_threshold(self, fake_redis, notifier, clock):
        monitor = _monitor(fake_redis, notifier, clock)
        for _ in range(10):
            await monitor.record_warehouse_write(False)
        assert notifier.sent == []

        await monitor.record_warehouse_write(False)
        assert len(notifier.sent) == 1
        assert notifier.sent[0].policy == "warehouse_write_failures"
        assert notifier.sent[0].observed_value == 11.0

    @pytest.mark.asyncio
    async def test_policies_are_independent(self, fake_redis, notifier, clock):
        monitor = _monitor(fake_redis, notifier, clock)
        await _fail_pipeline(monitor, 5)
        evaluation = await monitor.evaluate(monitor.warehouse_policy)
        assert evaluation.failures == 0
        assert [a.policy for a in notifier.sent] == ["pipeline_failure_rate"]


class TestCooldownAndAutoClose:
    @pytest.mark.asyncio
    async def test_repeats_suppressed_during_cooldown(self, fake_redis, notifier, clock):
        monitor = _monitor(fake_redis, notifier, clock)
        await _fail_pipeline(monitor, 5)
        clock.advance(60)
        await _fail_pipeline(monitor, 5)

        assert len(notifier.sent) == 1

    @pytest.mark.asyncio
    async def test_undelivered_alert_is_retried(self, fake_redis, clock):
        notifier = RecordingNotifier(deliver=False)
        monitor = _monitor(fake_redis, notifier, clock)
        await _fail_pipeline(monitor, 6)

        assert len(notifier.sent) == 2

    @pytest.mark.asyncio
    async def test_auto_close_after_quiet_period(self, fake_redis, notifier, clock):
        monitor = _monitor(fake_redis, notifier, clock)
        await _fail_pipeline(monitor, 5)

        clock.advance(1799)
        assert await monitor.sweep() == []

        clock.advance(2)
        assert await monitor.sweep() == ["pipeline_failure_rate"]
        closed = notifier.sent[-1]
        assert closed.state == ALERT_CLOSED
        assert closed.policy == "pipeline_failure_rate"

        states = await monitor.alert_states()
        assert states["pipeline_failure_rate"]["state"] == ALERT_CLOSED

    @pytest.mark.asyncio
    async def test_new_breach_extends_open_alert(self, fake_redis, notifier, clock):
        monitor = _monitor(fake_redis, notifier, clock)
        await _fail_pipeline(monitor, 5)
        clock.advance(1000)
        await _fail_pipeline(monitor, 5)

        clock.advance(1000)
        assert await monitor.sweep() == []
        clock.advance(801)
        assert await monitor.sweep() == ["pipeline_failure_rate"]

    @pytest.mark.asyncio
    async def test_breach_after_close_alerts_again(self, fake_redis, notifier, clock):
        monitor = _monitor(fake_redis, notifier, clock)
        await _fail_pipeline(monitor, 5)
        clock.advance(1801)
        await monitor.sweep()

        await _fail_pipeline(monitor, 5)
        assert [a.state for a in notifier.sent] == [ALERT_OPEN, ALERT_CLOSED, ALERT_OPEN]

    @pytest.mark.asyncio
    async def test_alert_states_reports_open(self, fake_redis, notifier, clock):
        monitor = _monitor(fake_redis, notifier, clock)
        await _fail_pipeline(monitor, 5)

        states = await monitor.alert_states()
        assert states["pipeline_failure_rate"]["state"] == ALERT_OPEN
        assert states["pipeline_failure_rate"]["failures"] == 5
        assert states["warehouse_write_failures"]["state"] == ALERT_CLOSED


class TestMonitorResilience:
    @pytest.mark.asyncio
    async def test_redis_outage_is_not_fatal(self, notifier, clock):
        broken = MagicMock()
        broken.zadd = AsyncMock(side_effect=RedisConnectionError("down"))
        monitor = _monitor(broken, notifier, clock)

        assert await monitor.record_pipeline_execution(False) is None
        assert notifier.sent == []

    def test_from_settings(self, fake_redis, notifier):
        settings = SimpleNamespace(
            PIPELINE_FAILURE_WINDOW_SECONDS=120,
            PIPELINE_FAILURE_RATE_THRESHOLD=0.5,
            PIPELINE_MIN_EXECUTIONS=2,
            WAREHOUSE_FAILURE_WINDOW_SECONDS=600,
            WAREHOUSE_FAILURE_COUNT_THRESHOLD=3,
            ALERT_COOLDOWN_SECONDS=10,
            ALERT_AUTO_CLOSE_SECONDS=20,
            ALERT_SWEEP_INTERVAL=5,
        )
        monitor = HealthMonitor.from_settings(fake_redis, notifier, settings)
        assert monitor.pipeline_policy.window_seconds == 120
        assert monitor.pipeline_policy.min_events == 2
        assert monitor.warehouse_policy.mode == COUNT
        assert monitor.warehouse_policy.threshold == 3


class TestNotifiers:
    def test_payload_shape(self):
        payload = Alert(
            policy="warehouse_write_failures",
            metric="warehouse_write_failure_count",
            observed_value=12.0,
            threshold=10,
            timestamp=0.0,
        ).to_payload()
        assert set(payload) == {"policy", "metric", "observed_value", "threshold", "state", "timestamp"}
        assert payload["state"] == ALERT_OPEN
        assert payload["timestamp"].startswith("1970-01-01T00:00:00")

    def test_build_notifier(self):
        assert isinstance(build_notifier(""), LogNotifier)
        assert isinstance(build_notifier("https://hooks.example.com/x"), WebhookNotifier)

    @pytest.mark.asyncio
    async def test_webhook_posts_payload(self):
        response = MagicMock()
        response.raise_for_status = MagicMock()
        alert = Alert("pipeline_failure_rate", "pipeline_execution_failure_rate", 0.5, 0.2)

        with patch.object(httpx.AsyncClient, "post", AsyncMock(return_value=response)) as post:
            assert await WebhookNotifier("https://hooks.example.com/x").send(alert) is True

        assert post.call_args[0][0] == "https://hooks.example.com/x"
        assert post.call_args[1]["json"]["policy"] == "pipeline_failure_rate"

    @pytest.mark.asyncio
    async def test_webhook_failure_returns_false(self):
        alert = Alert("pipeline_failure_rate", "pipeline_execution_failure_rate", 0.5, 0.2)
        with patch.object(
            httpx.AsyncClient, "post", AsyncMock(side_effect=httpx.ConnectError("refused")),
        ):
            assert await WebhookNotifier("https://hooks.example.com/x").send(alert) is False
