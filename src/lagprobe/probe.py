# Copyright (c) Syntropy Systems
"""Consistency probe: write an entity, then poll until the write is visible."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from typing_extensions import assert_never

from lagprobe.datastore.base import EntityNotFoundError, Query, QueryError, StorageError
from lagprobe.models.record import ProbeRecord
from lagprobe.strategy import PROJECTED_PROPERTIES, ReadStrategy
from lagprobe.summary import Summary

if TYPE_CHECKING:
    from collections.abc import Callable

    from lagprobe.datastore.base import Datastore, Entity, Key

DEFAULT_TRIAL_COUNT = 100
DEFAULT_ATTEMPT_DELAY = 0.005
DEFAULT_MAX_ATTEMPTS = 400
DEFAULT_KIND = "testkind"


class ProbeLogger(Protocol):
    """Logging capability used by the probe runner."""

    def info(self, msg: str, *args: object) -> None:
        ...

    def error(self, msg: str, *args: object) -> None:
        ...


class ProbeAbortedError(Exception):
    """A probe run hit a fatal storage error and was abandoned."""


class TrialOutcome(str, Enum):
    """How a single write-then-poll trial ended."""

    SUCCESS = "success"
    EXHAUSTED = "exhausted"
    SKIPPED = "skipped"


@dataclass
class TrialResult:
    """Outcome of one trial."""

    index: int
    outcome: TrialOutcome
    attempts: int = 0
    elapsed_ms: float = 0.0


@dataclass
class ProbeResult:
    """Summaries and outcome counts for a finished probe run."""

    strategy: ReadStrategy
    run_prefix: str
    retry: Summary = field(default_factory=Summary)
    duration: Summary = field(default_factory=Summary)
    succeeded: int = 0
    exhausted: int = 0
    skipped: int = 0

    def record(self, trial: TrialResult) -> None:
        """Fold a trial into the summaries.

        Exhausted trials are recorded like successful ones so the tail of
        the distribution stays visible; skipped trials add no sample.
        """
        if trial.outcome is TrialOutcome.SKIPPED:
            self.skipped += 1
            return
        self.retry.add(trial.attempts)
        self.duration.add(trial.elapsed_ms)
        if trial.outcome is TrialOutcome.EXHAUSTED:
            self.exhausted += 1
        else:
            self.succeeded += 1

    def summaries(self) -> tuple[Summary, Summary]:
        """Return (retry summary, duration summary)."""
        return self.retry, self.duration


def make_run_prefix(now: datetime | None = None) -> str:
    """Return a microsecond timestamp prefix that namespaces one run."""
    if now is None:
        now = datetime.now()
    return now.strftime("%Y-%m-%d %H:%M:%S.%f ")


def _visibility_problem(entities: list[Entity], expected_value: str) -> str | None:
    """Describe why a read does not yet show the write, or None if it does."""
    if len(entities) != 1:
        return f"len(entities) == {len(entities)}"
    value = entities[0].get("value")
    if value != expected_value:
        return f"value == {value!r}"
    return None


class ProbeRunner:
    """Runs write-then-poll trials against a datastore.

    Each trial writes one entity and reads it back with the run's read
    strategy at a fixed interval until the written value is returned or the
    attempt ceiling is passed. Attempts and write-to-visible latency of every
    trial are collected into a ProbeResult.
    """

    datastore: Datastore
    kind: str
    _logger: ProbeLogger
    _clock: Callable[[], float]
    _sleep: Callable[[float], None]

    def __init__(
        self,
        datastore: Datastore,
        *,
        logger: ProbeLogger | None = None,
        kind: str = DEFAULT_KIND,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize a probe runner.

        Args:
            datastore: Storage backend under test
            logger: Receives trial diagnostics (defaults to this module's logger)
            kind: Entity kind to write
            clock: Monotonic clock in seconds
            sleep: Called with the attempt delay between reads

        """
        self.datastore = datastore
        self.kind = kind
        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self._clock = clock
        self._sleep = sleep

    def run(
        self,
        strategy: ReadStrategy | str,
        trial_count: int = DEFAULT_TRIAL_COUNT,
        attempt_delay: float = DEFAULT_ATTEMPT_DELAY,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        *,
        run_prefix: str | None = None,
    ) -> ProbeResult:
        """Run ``trial_count`` trials with one read strategy.

        Args:
            strategy: Read strategy for every trial of the run
            trial_count: Number of trials
            attempt_delay: Seconds to sleep between read attempts
            max_attempts: Attempts after which a trial is recorded as exhausted
            run_prefix: Entity name prefix (defaults to a fresh timestamp)

        Returns:
            ProbeResult with retry and duration[ms] summaries

        Raises:
            ProbeAbortedError: The ancestor write failed, a read failed with
                anything but "not found", or a query could not be built

        """
        strategy = ReadStrategy(strategy)
        if trial_count < 0:
            msg = f"trial_count must be >= 0, got {trial_count}"
            raise ValueError(msg)
        if max_attempts < 0:
            msg = f"max_attempts must be >= 0, got {max_attempts}"
            raise ValueError(msg)
        if attempt_delay < 0:
            msg = f"attempt_delay must be >= 0, got {attempt_delay}"
            raise ValueError(msg)

        if run_prefix is None:
            run_prefix = make_run_prefix()
        result = ProbeResult(strategy=strategy, run_prefix=run_prefix)

        ancestor = None
        if strategy.needs_ancestor:
            ancestor = self._create_ancestor(run_prefix)

        self._logger.info(
            "Probe started: strategy=%s trials=%d prefix=%r",
            strategy.value,
            trial_count,
            run_prefix,
        )
        for index in range(trial_count):
            trial = self._run_trial(
                index, strategy, run_prefix, ancestor, attempt_delay, max_attempts
            )
            result.record(trial)

        self._logger.info(
            "Probe finished: strategy=%s succeeded=%d exhausted=%d skipped=%d",
            strategy.value,
            result.succeeded,
            result.exhausted,
            result.skipped,
        )
        return result

    def _create_ancestor(self, run_prefix: str) -> Key:
        """Write the root entity that parents every trial entity of the run."""
        key = self.datastore.key_of(self.kind, f"{run_prefix}name-root")
        try:
            return self.datastore.put(key, ProbeRecord().to_properties())
        except StorageError as e:
            self._logger.error("datastore put failed for ancestor: %s", e)
            msg = f"datastore put failed for ancestor: {e}"
            raise ProbeAbortedError(msg) from e

    def _build_read(
        self,
        strategy: ReadStrategy,
        key: Key,
        name: str,
        ancestor: Key | None,
    ) -> Callable[[], list[Entity]]:
        """Return a callable performing one read attempt for the strategy."""
        if strategy is ReadStrategy.LOOKUP_BY_KEY:
            return lambda: [self.datastore.get(key)]

        query = Query(self.kind).filter("name", name)
        if strategy is ReadStrategy.INDEXED_QUERY:
            pass
        elif strategy is ReadStrategy.PROJECTION_QUERY:
            query = query.project(*PROJECTED_PROPERTIES)
        elif strategy is ReadStrategy.ANCESTOR_QUERY:
            if ancestor is None:
                msg = "ancestor query without an ancestor key"
                raise QueryError(msg)
            query = query.with_ancestor(ancestor)
        else:
            assert_never(strategy)
        return lambda: self.datastore.run_query(query)

    def _read(self, strategy: ReadStrategy, read: Callable[[], list[Entity]]) -> list[Entity]:
        """Perform one read attempt, mapping "not found" on lookups to no results."""
        try:
            return read()
        except EntityNotFoundError as e:
            if strategy is ReadStrategy.LOOKUP_BY_KEY:
                return []
            self._logger.error("read failed: %s", e)
            msg = f"read failed: {e}"
            raise ProbeAbortedError(msg) from e
        except StorageError as e:
            self._logger.error("read failed: %s", e)
            msg = f"read failed: {e}"
            raise ProbeAbortedError(msg) from e

    def _run_trial(
        self,
        index: int,
        strategy: ReadStrategy,
        run_prefix: str,
        ancestor: Key | None,
        attempt_delay: float,
        max_attempts: int,
    ) -> TrialResult:
        name = f"{run_prefix}name{index}"
        expected_value = f"{run_prefix}value{index}"
        now = datetime.now(timezone.utc)
        record = ProbeRecord(name=name, value=expected_value, created_at=now, updated_at=now)

        try:
            key = self.datastore.put(
                self.datastore.key_of(self.kind, name, ancestor),
                record.to_properties(),
            )
        except StorageError as e:
            self._logger.error("datastore put failed for trial %d: %s", index, e)
            return TrialResult(index=index, outcome=TrialOutcome.SKIPPED)
        last_write = self._clock()

        try:
            read = self._build_read(strategy, key, name, ancestor)
        except QueryError as e:
            self._logger.error("query construction failed: %s", e)
            msg = f"query construction failed: {e}"
            raise ProbeAbortedError(msg) from e

        # Only the first miss of a trial is logged
        already_logged = False
        attempts = 0
        while True:
            attempts += 1
            entities = self._read(strategy, read)
            problem = _visibility_problem(entities, expected_value)
            if problem is None:
                return TrialResult(
                    index=index,
                    outcome=TrialOutcome.SUCCESS,
                    attempts=attempts,
                    elapsed_ms=(self._clock() - last_write) * 1000,
                )
            if not already_logged:
                self._logger.info("trial %d not visible yet: %s", index, problem)
                already_logged = True

            self._sleep(attempt_delay)

            if attempts > max_attempts:
                self._logger.error(
                    "trial %d exhausted: attempts=%d > %d", index, attempts, max_attempts
                )
                return TrialResult(
                    index=index,
                    outcome=TrialOutcome.EXHAUSTED,
                    attempts=attempts,
                    elapsed_ms=(self._clock() - last_write) * 1000,
                )


def run_probe(
    datastore: Datastore,
    strategy: ReadStrategy | str,
    trial_count: int = DEFAULT_TRIAL_COUNT,
    attempt_delay: float = DEFAULT_ATTEMPT_DELAY,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    *,
    logger: ProbeLogger | None = None,
    kind: str = DEFAULT_KIND,
) -> ProbeResult:
    """Run a probe with a fresh ProbeRunner. See ProbeRunner.run."""
    runner = ProbeRunner(datastore, logger=logger, kind=kind)
    return runner.run(strategy, trial_count, attempt_delay, max_attempts)
