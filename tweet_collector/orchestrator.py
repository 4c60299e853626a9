"""Collection orchestrator: primary API collection with one-way escalation to the rendered view.

States:
    IDLE -> PROFILE_LOOKUP -> PRIMARY_COLLECTING -> COMPLETE
    PROFILE_LOOKUP -> ESCALATING (lookup failed)
    PRIMARY_COLLECTING -> ESCALATING
    ESCALATING -> FALLBACK_COLLECTING -> COMPLETE
    ESCALATING -> COMPLETE (fallback disabled)

The primary collector is never re-invoked once escalation has happened.
Whatever was merged before a failure is always returned.
"""

from __future__ import annotations

import asyncio
import logging
import random
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol

from .analytics import summarize
from .backoff import rate_limit_policy, transport_policy
from .collectors.api import ApiCollector, search_query
from .collectors.rendered import ProgressCallback, RenderedCollector, RenderedResult
from .config import Settings
from .cookies import Cookie
from .error_log import ErrorLog
from .errors import (
    AuthExpiredError,
    CollectorError,
    ConfigError,
    RateLimitError,
    RemoteError,
    StateTransitionError,
    TransportError,
    ValidationError,
)
from .merge import IdentityMap
from .models import CollectionReport, Profile, ProgressEvent, Record, SessionStats, TimelinePage
from .parsers.tweet import is_truncated, record_from_tweet_result, tweet_id_of

logger = logging.getLogger(__name__)


class CollectionState(str, Enum):
    IDLE = "idle"
    PROFILE_LOOKUP = "profile_lookup"
    PRIMARY_COLLECTING = "primary_collecting"
    ESCALATING = "escalating"
    FALLBACK_COLLECTING = "fallback_collecting"
    COMPLETE = "complete"


TRANSITIONS: dict[CollectionState, frozenset[CollectionState]] = {
    CollectionState.IDLE: frozenset({CollectionState.PROFILE_LOOKUP}),
    CollectionState.PROFILE_LOOKUP: frozenset({
        CollectionState.PRIMARY_COLLECTING,
        CollectionState.ESCALATING,
    }),
    CollectionState.PRIMARY_COLLECTING: frozenset({
        CollectionState.COMPLETE,
        CollectionState.ESCALATING,
    }),
    CollectionState.ESCALATING: frozenset({
        CollectionState.FALLBACK_COLLECTING,
        CollectionState.COMPLETE,
    }),
    CollectionState.FALLBACK_COLLECTING: frozenset({CollectionState.COMPLETE}),
    CollectionState.COMPLETE: frozenset(),
}


class EscalationReason(str, Enum):
    LOOKUP_FAILED = "lookup_failed"
    STAGNATION = "stagnation"
    RATE_LIMIT = "rate_limit"
    TRANSPORT = "transport_exhausted"
    SHORTFALL = "shortfall"


class PrimaryCollector(Protocol):
    async def lookup_profile(self, account: str) -> Profile: ...

    def iter_pages(
        self, handle: str, expected_total: int | None, cursor: str | None = None,
    ) -> AsyncIterator[TimelinePage]: ...

    async def fetch_full_text(self, record_id: str) -> str | None: ...


class FallbackCollector(Protocol):
    async def collect(
        self, query: str, author_hint: str = "", on_progress: ProgressCallback | None = None,
    ) -> RenderedResult: ...


class CollectionOrchestrator:
    """Runs one collection for one account.

    Collectors are injected so the state machine can be driven by fakes.
    Stats, the identity map and the error log are created fresh per run.
    """

    def __init__(
        self,
        settings: Settings,
        primary: PrimaryCollector | None,
        fallback: FallbackCollector | None,
        *,
        on_progress: ProgressCallback | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.settings = settings
        self.primary = primary
        self.fallback = fallback
        self.on_progress = on_progress
        self.log = log or logger
        self._sleep = sleep
        self._rate_policy = rate_limit_policy(settings, rng)
        self._transport_policy = transport_policy(settings, rng)

        self.state = CollectionState.IDLE
        self.history: list[CollectionState] = [self.state]
        self.identity = IdentityMap()
        self.stats = SessionStats()
        self.errors = ErrorLog(settings.error_log_size)
        self.expected_total: int | None = None

    # ──────────────────────────────────────
    # State machine
    # ──────────────────────────────────────

    def _transition(self, target: CollectionState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise StateTransitionError(f"illegal transition {self.state.value} -> {target.value}")
        self.log.debug("State %s -> %s", self.state.value, target.value)
        self.state = target
        self.history.append(target)

    def _record_error(self, error: BaseException, stage: str) -> None:
        self.errors.record(error, stage, self.stats.snapshot())

    # ──────────────────────────────────────
    # Run
    # ──────────────────────────────────────

    async def run(self, account: str) -> CollectionReport:
        """Collect every post by ``account`` and return the merged report."""
        if self.state is not CollectionState.IDLE:
            raise StateTransitionError("orchestrator instances are single-use")

        handle = account.strip().lstrip("@")
        if not handle:
            raise ConfigError("account identifier must be non-empty")

        self.log.info("Collection started for @%s", handle)
        self._transition(CollectionState.PROFILE_LOOKUP)
        profile = await self._lookup(handle)

        reason: EscalationReason | None
        if profile is None:
            reason = EscalationReason.LOOKUP_FAILED
        else:
            handle = profile.handle
            self.expected_total = profile.statuses_count
            self._transition(CollectionState.PRIMARY_COLLECTING)
            reason = await self._collect_primary(handle)

        if reason is None:
            self._transition(CollectionState.COMPLETE)
        else:
            await self._escalate(handle, reason)

        return self._report(handle)

    async def _lookup(self, handle: str) -> Profile | None:
        if self.primary is None:
            self._record_error(ConfigError("structured API is not configured"), "profile_lookup")
            return None
        self.stats.request_count += 1
        try:
            return await self.primary.lookup_profile(handle)
        except CollectorError as e:
            self._record_error(e, "profile_lookup")
            return None

    async def _collect_primary(self, handle: str) -> EscalationReason | None:
        """Drain the primary collector, resuming from the last good cursor on transient errors.

        Returns the escalation reason, or None when primary collection is
        sufficient on its own.
        """
        settings = self.settings
        cursor: str | None = None
        fetched = 0
        processed = 0
        last_checkpoint_size = 0
        stagnant = 0
        failures = 0

        while True:
            remaining = None
            if self.expected_total and self.expected_total > 0:
                remaining = max(self.expected_total - fetched, 1)
            try:
                async for page in self.primary.iter_pages(handle, remaining, cursor):
                    self.stats.request_count += 1
                    failures = 0
                    fetched += len(page.records)

                    for raw in page.records:
                        processed += 1
                        record = await self._normalize(raw, handle)
                        if record is not None:
                            self._insert(record)

                        if processed % settings.checkpoint_interval == 0:
                            size = len(self.identity)
                            stagnant = stagnant + 1 if size == last_checkpoint_size else 0
                            last_checkpoint_size = size
                            await self._emit_progress("primary")
                            if stagnant >= settings.stagnation_checkpoints:
                                self.log.warning(
                                    "No new records across %d checkpoints (%d processed)",
                                    stagnant, processed,
                                )
                                return EscalationReason.STAGNATION

                        if len(self.identity) >= settings.max_records:
                            self.log.info("Reached max_records=%d", settings.max_records)
                            return None

                    if page.next_cursor:
                        cursor = page.next_cursor
                break

            except RateLimitError as e:
                self.stats.request_count += 1
                self.stats.rate_limit_hits += 1
                self._record_error(e, "primary")
                if self.stats.rate_limit_hits >= settings.rate_limit_threshold:
                    return EscalationReason.RATE_LIMIT
                delay = self._rate_policy.compute_delay(self.stats.rate_limit_hits)
                if e.retry_after:
                    delay = min(max(delay, e.retry_after), settings.rate_limit_max_delay)
                await self._retry_wait(delay)

            except (TransportError, RemoteError) as e:
                self.stats.request_count += 1
                failures += 1
                self._record_error(e, "primary")
                if failures >= settings.max_attempts:
                    return EscalationReason.TRANSPORT
                await self._retry_wait(self._transport_policy.compute_delay(failures))

        await self._emit_progress("primary")
        collected = len(self.identity)
        if self.expected_total and collected < settings.completion_ratio * self.expected_total:
            self.log.info(
                "Primary exhausted at %d/%d (below %.0f%%)",
                collected, self.expected_total, settings.completion_ratio * 100,
            )
            return EscalationReason.SHORTFALL
        return None

    async def _retry_wait(self, delay: float) -> None:
        self.stats.retries_count += 1
        self.log.info("Backing off %.1fs before retry %d", delay, self.stats.retries_count)
        await self._sleep(delay)

    async def _normalize(self, raw: dict[str, Any], handle: str) -> Record | None:
        full_text = None
        if is_truncated(raw):
            post_id = tweet_id_of(raw)
            if post_id and post_id not in self.identity:
                full_text = await self._fetch_full_text(post_id)
        try:
            return record_from_tweet_result(raw, handle, full_text)
        except ValidationError as e:
            self.stats.invalid_dropped += 1
            self.log.debug("Dropping invalid record: %s", e)
            return None

    async def _fetch_full_text(self, post_id: str) -> str | None:
        self.stats.request_count += 1
        try:
            return await self.primary.fetch_full_text(post_id)
        except CollectorError as e:
            # Truncated text is kept
            self._record_error(e, "full_text")
            return None

    def _insert(self, record: Record) -> bool:
        if not self.identity.add(record):
            return False
        self.stats.records_collected += 1
        self.stats.observe(record)
        return True

    async def _escalate(self, handle: str, reason: EscalationReason) -> None:
        self._transition(CollectionState.ESCALATING)
        self.stats.escalation_reason = reason.value
        self.log.warning(
            "Escalating to rendered view for @%s (%s, %d collected)",
            handle, reason.value, len(self.identity),
        )

        if not self.settings.fallback_enabled or self.fallback is None:
            self.log.info("Fallback disabled; finishing with %d records", len(self.identity))
            self._transition(CollectionState.COMPLETE)
            return

        self._transition(CollectionState.FALLBACK_COLLECTING)
        self.stats.fallback_used = True
        try:
            result = await self.fallback.collect(
                search_query(handle), author_hint=handle, on_progress=self.on_progress,
            )
        except AuthExpiredError as e:
            self._record_error(e, "fallback")
        except Exception as e:
            self.log.exception("Fallback collection failed")
            self._record_error(e, "fallback")
        else:
            if result.error is not None:
                self._record_error(result.error, "fallback")
            added = sum(1 for record in result.records if self._insert(record))
            self.stats.fallback_count += added
            self.stats.invalid_dropped += result.dropped
            self.log.info(
                "Fallback added %d new records (%d seen, stop=%s)",
                added, len(result.records), result.stop_reason,
            )

        self._transition(CollectionState.COMPLETE)

    async def _emit_progress(self, phase: str) -> None:
        collected = len(self.identity)
        expected = self.expected_total
        if expected and expected > 0:
            message = f"{collected}/{expected} records ({collected / expected * 100:.1f}%)"
        else:
            message = f"{collected} records"
        event = ProgressEvent(phase, collected, expected, message)
        self.log.info("Progress: %s", message)
        if self.on_progress is not None:
            await self.on_progress(event)

    def _report(self, handle: str) -> CollectionReport:
        records = self.identity.sorted_records()
        self.log.info(
            "Collection complete for @%s: %d records (fallback=%s, errors=%d)",
            handle, len(records), self.stats.fallback_used, self.errors.total,
        )
        return CollectionReport(
            account=handle,
            records=records,
            stats=self.stats,
            analytics=summarize(records),
            errors=self.errors.entries(),
            state_history=[s.value for s in self.history],
        )


async def collect_account(
    account: str,
    settings: Settings,
    cookies: list[Cookie] | None = None,
    on_progress: ProgressCallback | None = None,
) -> CollectionReport:
    """Wire the real collectors and run one collection."""
    fallback = RenderedCollector(settings, cookies) if settings.fallback_enabled else None
    if not settings.rapidapi_url:
        orchestrator = CollectionOrchestrator(settings, None, fallback, on_progress=on_progress)
        return await orchestrator.run(account)

    async with ApiCollector(settings) as api:
        orchestrator = CollectionOrchestrator(settings, api, fallback, on_progress=on_progress)
        return await orchestrator.run(account)
