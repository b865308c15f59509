# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
Health Monitor — Sliding-window failure alerts for ingestion and warehouse writes.

Two independent policies:
  - pipeline_failure_rate     failed / total pipeline executions, short window
  - warehouse_write_failures  number of failed warehouse writes, long window

State lives in Redis so that concurrent invocations share one window:
  catalog:health:{policy}:events    ZSET of all observations (score = ts)
  catalog:health:{policy}:failures  ZSET of failed observations
  catalog:health:{policy}:cooldown  STRING, set NX with EX = cooldown
  catalog:health:{policy}:alert     HASH {state, opened_at, last_breach, observed_value}

A breach raises an alert unless the cooldown key exists. An open alert is
closed by the sweep loop once no breach has been seen for auto_close seconds.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from prompt_catalog.services.notifier import ALERT_CLOSED, ALERT_OPEN, Alert, Notifier

logger = logging.getLogger("catalog.health")

RATE = "rate"
COUNT = "count"


@dataclass
class AlertPolicy:
    name: str
    metric: str
    window_seconds: int
    threshold: float
    mode: str = RATE
    min_events: int = 1


@dataclass
class Evaluation:
    policy: str
    observed_value: float
    total: int
    failures: int
    breached: bool


class HealthMonitor:
    """
    Observes execution outcomes and raises alerts through a Notifier.

    Observation is best-effort: a Redis outage is logged and never fails the
    caller's ingestion or usage write.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        notifier: Notifier,
        pipeline_policy: AlertPolicy,
        warehouse_policy: AlertPolicy,
        cooldown_seconds: int = 1800,
        auto_close_seconds: int = 1800,
        sweep_interval: int = 60,
        clock: Callable[[], float] = time.time,
        key_prefix: str = "catalog:health",
    ) -> None:
        self._redis = redis
        self._notifier = notifier
        self.pipeline_policy = pipeline_policy
        self.warehouse_policy = warehouse_policy
        self._cooldown = cooldown_seconds
        self._auto_close = auto_close_seconds
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._prefix = key_prefix
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, redis: aioredis.Redis, notifier: Notifier, settings: Any) -> "HealthMonitor":
        return cls(
            redis=redis,
            notifier=notifier,
            pipeline_policy=AlertPolicy(
                name="pipeline_failure_rate",
                metric="pipeline_execution_failure_rate",
                window_seconds=settings.PIPELINE_FAILURE_WINDOW_SECONDS,
                threshold=settings.PIPELINE_FAILURE_RATE_THRESHOLD,
                mode=RATE,
                min_events=settings.PIPELINE_MIN_EXECUTIONS,
            ),
            warehouse_policy=AlertPolicy(
                name="warehouse_write_failures",
                metric="warehouse_write_failure_count",
                window_seconds=settings.WAREHOUSE_FAILURE_WINDOW_SECONDS,
                threshold=settings.WAREHOUSE_FAILURE_COUNT_THRESHOLD,
                mode=COUNT,
            ),
            cooldown_seconds=settings.ALERT_COOLDOWN_SECONDS,
            auto_close_seconds=settings.ALERT_AUTO_CLOSE_SECONDS,
            sweep_interval=settings.ALERT_SWEEP_INTERVAL,
        )

    @property
    def policies(self) -> List[AlertPolicy]:
        return [self.pipeline_policy, self.warehouse_policy]

    def _key(self, policy: AlertPolicy, suffix: str) -> str:
        return f"{self._prefix}:{policy.name}:{suffix}"

    # ── Signals ───────────────────────────────────────────────

    async def record_pipeline_execution(self, success: bool) -> Optional[Evaluation]:
        return await self._observe(self.pipeline_policy, success)

    async def record_warehouse_write(self, success: bool) -> Optional[Evaluation]:
        return await self._observe(self.warehouse_policy, success)

    async def _observe(self, policy: AlertPolicy, success: bool) -> Optional[Evaluation]:
        try:
            now = self._clock()
            member = f"{now}:{uuid.uuid4().hex}"
            events_key = self._key(policy, "events")
            failures_key = self._key(policy, "failures")

            await self._redis.zadd(events_key, {member: now})
            if not success:
                await self._redis.zadd(failures_key, {member: now})
            for key in (events_key, failures_key):
                await self._redis.expire(key, policy.window_seconds * 2)

            if success:
                return None
            evaluation = await self.evaluate(policy)
            if evaluation.breached:
                await self._raise(policy, evaluation, now)
            return evaluation
        except RedisError as e:
            logger.warning("Health signal for %s dropped: %s", policy.name, e)
            return None

    async def evaluate(self, policy: AlertPolicy) -> Evaluation:
        """Trim the window and compute the policy's observed value."""
        cutoff = self._clock() - policy.window_seconds
        events_key = self._key(policy, "events")
        failures_key = self._key(policy, "failures")
        await self._redis.zremrangebyscore(events_key, "-inf", cutoff)
        await self._redis.zremrangebyscore(failures_key, "-inf", cutoff)

        total = await self._redis.zcard(events_key)
        failures = await self._redis.zcard(failures_key)

        if policy.mode == RATE:
            observed = failures / total if total else 0.0
            breached = total >= policy.min_events and observed > policy.threshold
        else:
            observed = float(failures)
            breached = observed > policy.threshold

        return Evaluation(
            policy=policy.name,
            observed_value=observed,
            total=total,
            failures=failures,
            breached=breached,
        )

    # ── Alerting ──────────────────────────────────────────────

    async def _raise(self, policy: AlertPolicy, evaluation: Evaluation, now: float) -> bool:
        alert_key = self._key(policy, "alert")
        state = await self._redis.hgetall(alert_key)
        mapping = {"last_breach": now, "observed_value": evaluation.observed_value}
        if state.get("state") != ALERT_OPEN:
            mapping.update({"state": ALERT_OPEN, "opened_at": now})
        await self._redis.hset(alert_key, mapping=mapping)

        cooldown_key = self._key(policy, "cooldown")
        acquired = await self._redis.set(cooldown_key, now, nx=True, ex=self._cooldown)
        if not acquired:
            logger.debug("Alert %s suppressed by cooldown", policy.name)
            return False

        delivered = await self._notifier.send(Alert(
            policy=policy.name,
            metric=policy.metric,
            observed_value=evaluation.observed_value,
            threshold=policy.threshold,
            state=ALERT_OPEN,
            timestamp=now,
        ))
        if not delivered:
            # Undelivered alerts do not start a cooldown.
            await self._redis.delete(cooldown_key)
        return delivered

    async def sweep(self) -> List[str]:
        """Close open alerts that have seen no breach for auto_close seconds."""
        now = self._clock()
        closed: List[str] = []
        for policy in self.policies:
            alert_key = self._key(policy, "alert")
            state = await self._redis.hgetall(alert_key)
            if state.get("state") != ALERT_OPEN:
                continue
            if now - float(state.get("last_breach", now)) < self._auto_close:
                continue

            await self._notifier.send(Alert(
                policy=policy.name,
                metric=policy.metric,
                observed_value=float(state.get("observed_value", 0.0)),
                threshold=policy.threshold,
                state=ALERT_CLOSED,
                timestamp=now,
            ))
            await self._redis.delete(alert_key, self._key(policy, "cooldown"))
            closed.append(policy.name)
            logger.info("Alert %s auto-closed", policy.name, extra={"policy": policy.name})
        return closed

    async def alert_states(self) -> Dict[str, Dict[str, Any]]:
        states: Dict[str, Dict[str, Any]] = {}
        for policy in self.policies:
            evaluation = await self.evaluate(policy)
            alert = await self._redis.hgetall(self._key(policy, "alert"))
            states[policy.name] = {
                "state": alert.get("state", ALERT_CLOSED),
                "observed_value": evaluation.observed_value,
                "threshold": policy.threshold,
                "window_seconds": policy.window_seconds,
                "events": evaluation.total,
                "failures": evaluation.failures,
            }
        return states

    # ── Background sweep ──────────────────────────────────────

    async def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info("Health Monitor started — sweep interval=%ds", self._sweep_interval)

    async def _sweep_loop(self) -> None:
        while self._running:
            try:
                await self.sweep()
            except asyncio.CancelledError:
                break
            except RedisError as e:
                logger.error("Health Monitor sweep error: %s", e, exc_info=True)

            try:
                await asyncio.sleep(self._sweep_interval)
            except asyncio.CancelledError:
                break

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Health Monitor stopped.")
