from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import random
import time

import httpx
from opentelemetry import trace

from postqueue_worker.core.config import Settings, get_settings
from postqueue_worker.core.telemetry import (
    configure_worker_logging,
    setup_worker_telemetry,
    shutdown_worker_telemetry,
)
from postqueue_worker.jobs.cadence import IngestTarget, is_due, parse_ingest_targets
from postqueue_worker.services.trigger_client import TriggerClient

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(slots=True)
class CycleState:
    last_ingest_at: float | None = None
    last_dispatch_at: float | None = None


async def run_ingest_targets(client: TriggerClient, targets: list[IngestTarget]) -> int:
    """Trigger ingestion for each target; returns the number of entries inserted."""
    inserted = 0
    for target in targets:
        with tracer.start_as_current_span("worker.ingest") as span:
            span.set_attribute("ingest.source", target.source)
            span.set_attribute("ingest.category", target.category)
            try:
                report = await client.ingest(target.source, target.category)
            except httpx.HTTPError as exc:
                # One broken source must not starve the rest of the cycle.
                logger.warning("ingest trigger failed source=%s category=%s: %s", target.source, target.category, exc)
                continue
            added = sum(int(result.get("inserted", 0)) for result in report.get("results", []))
            inserted += added
            logger.info(
                "ingest source=%s category=%s success=%s inserted=%s message=%s",
                target.source,
                target.category,
                report.get("success"),
                added,
                report.get("message"),
            )
    return inserted


async def run_dispatch(client: TriggerClient, settings: Settings) -> dict | None:
    with tracer.start_as_current_span("worker.dispatch") as span:
        result = await client.dispatch_next(publish=settings.dispatch_publish, hashtags=settings.dispatch_hashtags)
        entry = result.get("data")
        if entry is None:
            logger.info("dispatch found nothing to post: %s", result.get("message"))
            return None
        span.set_attribute("entry.id", entry["id"])
        if not result.get("success"):
            logger.warning(
                "dispatch post rejected id=%s claimed=%s: %s",
                entry["id"],
                result.get("claimed"),
                result.get("post_error"),
            )
            return None
        post = result.get("post") or {}
        logger.info("dispatched entry id=%s remote_post_id=%s", entry["id"], post.get("tweet_id"))
        return entry


async def run_cycle(client: TriggerClient, settings: Settings, state: CycleState, *, now: float) -> None:
    with tracer.start_as_current_span("worker.poll_cycle"):
        if is_due(state.last_ingest_at, settings.ingest_interval_seconds, now=now):
            await run_ingest_targets(client, parse_ingest_targets(settings.ingest_targets))
            state.last_ingest_at = now

        if settings.dispatch_enabled and is_due(state.last_dispatch_at, settings.dispatch_interval_seconds, now=now):
            # Marked before the call so a failing post is not retried on every poll.
            state.last_dispatch_at = now
            await run_dispatch(client, settings)


async def run_worker() -> None:
    settings = get_settings()
    configure_worker_logging()
    telemetry_runtime = setup_worker_telemetry(settings)
    client = TriggerClient(
        settings.api_base_url,
        settings.api_key,
        timeout_seconds=settings.request_timeout_seconds,
    )
    state = CycleState()
    backoff = settings.poll_interval_seconds

    try:
        while True:
            try:
                await run_cycle(client, settings, state, now=time.monotonic())
                backoff = settings.poll_interval_seconds
                await asyncio.sleep(settings.poll_interval_seconds)
            except Exception as exc:  # pragma: no cover - loop robustness
                jitter = random.uniform(0.0, 0.5)
                sleep_for = min(backoff * (2.0 + jitter), settings.max_backoff_seconds)
                logger.exception("worker iteration failed: %s; retry in %.1fs", exc, sleep_for)
                await asyncio.sleep(sleep_for)
                backoff = sleep_for
    finally:
        shutdown_worker_telemetry(telemetry_runtime)


if __name__ == "__main__":
    asyncio.run(run_worker())
