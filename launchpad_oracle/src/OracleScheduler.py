"""OracleScheduler: Periodic reconciliation of the market price with the oracle.

Each tick fetches a price from the PriceSourceAggregator and compares it with
the last price known to be on-chain. An update is pushed only when the price
moved by at least ``update_threshold_percent`` AND the cooldown since the last
successful update has expired.

State machine::

    STOPPED --start()--> IDLE --tick--> CHECKING --qualifies--> UPDATING
       ^                  ^                |                        |
       |                  +----------------+------------------------+
       +--stop() / error budget exhausted

Rules:
    - The first successful observation only seeds ``last_known_price``.
    - ``last_known_price`` and ``last_update_time`` advance only on a
      confirmed update; a failed submit leaves the baseline untouched.
    - ``consecutive_error_count`` resets on any successful fetch and the loop
      stops itself once it reaches ``max_consecutive_errors``.
    - A tick requested while another one is running is skipped.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .OracleConfig import AutomationConfig
from .OracleUpdateSubmitter import TransactionError
from .PriceSourceAggregator import AllSourcesFailedError

if TYPE_CHECKING:
    from .OracleUpdateSubmitter import OracleUpdateSubmitter
    from .PriceSourceAggregator import PriceSourceAggregator

logger = logging.getLogger(__name__)

REASON_INITIAL = "initial_observation"
REASON_UPDATE = "threshold_and_cooldown_met"
REASON_BELOW_THRESHOLD = "below_threshold"
REASON_COOLDOWN = "cooldown_active"
REASON_FETCH_FAILED = "all_sources_failed"
REASON_SUBMIT_FAILED = "submit_failed"
REASON_TICK_ERROR = "tick_error"


class SchedulerState(Enum):
    """Lifecycle states of the reconciliation loop."""

    STOPPED = "stopped"
    IDLE = "idle"
    CHECKING = "checking"
    UPDATING = "updating"


@dataclass
class ReconciliationState:
    """Mutable reconciliation state owned by a single scheduler.

    :ivar last_known_price: Last price confirmed on-chain (0 = never observed).
    :ivar last_update_time: Unix timestamp of the last confirmed update.
    :ivar consecutive_error_count: Failures since the last successful fetch.
    :ivar running: Whether the loop is armed.
    """

    last_known_price: float = 0.0
    last_update_time: float = 0.0
    consecutive_error_count: int = 0
    running: bool = False


@dataclass(frozen=True)
class UpdateDecision:
    """Whether a fetched price should be pushed on-chain, and why.

    :ivar should_update: True if threshold and cooldown are both satisfied.
    :ivar reason: Machine-readable reason.
    :ivar pct_change: Absolute change vs last known price in percent.
    """

    should_update: bool
    reason: str
    pct_change: float | None = None


@dataclass(frozen=True)
class AutomationStatus:
    """Snapshot of the scheduler returned by get_status()."""

    running: bool
    enabled: bool
    state: SchedulerState
    last_known_price: float
    last_update_time: float | None
    consecutive_errors: int
    next_check_in_ms: int | None
    last_reason: str | None
    fatal: bool


class FatalAutomationError(Exception):
    """Raised when the loop stopped itself after too many consecutive errors.

    :ivar consecutive_errors: Error count that exhausted the budget.
    :ivar reason: Reason of the last failure.
    """

    def __init__(self, consecutive_errors: int, reason: str):
        self.consecutive_errors = consecutive_errors
        self.reason = reason
        super().__init__(
            f"Oracle automation stopped after {consecutive_errors} "
            f"consecutive errors (last: {reason})"
        )


def decide_update(
    state: ReconciliationState,
    current_price: float,
    config: AutomationConfig,
    now: float,
) -> UpdateDecision:
    """Decide whether ``current_price`` should be pushed on-chain.

    :param state: Current reconciliation state.
    :param current_price: Freshly fetched price.
    :param config: Automation configuration.
    :param now: Current unix timestamp.
    :returns: UpdateDecision.

    .. code-block:: python

        >>> state = ReconciliationState(last_known_price=1.00)
        >>> decide_update(state, 1.02, AutomationConfig(), now=1e9).should_update
        True
    """
    if state.last_known_price == 0:
        return UpdateDecision(should_update=False, reason=REASON_INITIAL)

    pct_change = (
        abs(current_price - state.last_known_price) / state.last_known_price * 100
    )
    threshold_met = pct_change >= config.update_threshold_percent
    cooldown_expired = (
        now - state.last_update_time >= config.min_time_between_updates_seconds
    )

    if threshold_met and cooldown_expired:
        return UpdateDecision(True, REASON_UPDATE, pct_change)
    if not threshold_met:
        return UpdateDecision(False, REASON_BELOW_THRESHOLD, pct_change)
    return UpdateDecision(False, REASON_COOLDOWN, pct_change)


class OracleReconciliationScheduler:
    """Single-instance control loop keeping the on-chain oracle in sync.

    Only one scheduler may run against a given oracle: cooldown enforcement
    relies on process-local state.

    :ivar aggregator: Price source aggregator queried each tick.
    :ivar submitter: On-chain update submitter.
    """

    def __init__(
        self,
        config: AutomationConfig,
        aggregator: PriceSourceAggregator,
        submitter: OracleUpdateSubmitter,
    ) -> None:
        """Initialize the scheduler in the STOPPED state.

        :param config: Validated automation configuration.
        :param aggregator: Price source aggregator.
        :param submitter: Oracle update submitter.
        """
        self._config = config
        self.aggregator = aggregator
        self.submitter = submitter

        self.state = ReconciliationState()
        self.phase = SchedulerState.STOPPED

        self._busy = False
        self._task: asyncio.Task | None = None
        self._wake: asyncio.Event | None = None
        self._next_check_at: float | None = None
        self._last_reason: str | None = None
        self._fatal_error: FatalAutomationError | None = None

        logger.info(
            f"Oracle automation initialized: "
            f"check_interval={config.check_interval_seconds}s, "
            f"threshold={config.update_threshold_percent}%, "
            f"cooldown={config.min_time_between_updates_seconds}s, "
            f"sources={aggregator.source_names}"
        )

    @property
    def config(self) -> AutomationConfig:
        return self._config

    @property
    def is_running(self) -> bool:
        return self.state.running

    def start(self) -> bool:
        """Arm the loop: check immediately, then every ``check_interval_ms``.

        Must be called from within a running event loop. A restart keeps the
        last known price and update time, only the error count is reset.

        :returns: True if the loop was started.
        """
        if self.state.running:
            logger.warning("Automation already running")
            return False

        if not self._config.enabled:
            logger.warning("Automation is disabled in config")
            return False

        loop = asyncio.get_running_loop()

        logger.info("Starting price oracle automation")
        # Baseline and last update time survive restarts to keep the cooldown
        self.state.consecutive_error_count = 0
        self.state.running = True
        self.phase = SchedulerState.IDLE
        self._fatal_error = None
        self._last_reason = None
        self._wake = asyncio.Event()
        self._task = loop.create_task(self._run_loop(self._wake))
        return True

    def stop(self) -> bool:
        """Halt future ticks. An in-flight submit is allowed to finish.

        :returns: True if the loop was running.
        """
        if not self.state.running:
            logger.warning("Automation is not running")
            return False

        logger.info("Stopping price oracle automation")
        self.state.running = False
        self.phase = SchedulerState.STOPPED
        self._next_check_at = None
        if self._wake is not None:
            self._wake.set()
        return True

    async def run(self) -> None:
        """Start the loop and wait until it stops.

        :raises FatalAutomationError: If the loop stopped itself.
        """
        if not self.start():
            return

        await self._task

        if self._fatal_error is not None:
            raise self._fatal_error

    def update_config(self, config: AutomationConfig) -> None:
        """Replace the whole configuration atomically.

        A running loop is re-armed: it checks immediately and then uses the
        new interval. Reconciliation state is kept so the cooldown still holds.

        :param config: New validated configuration.
        :raises TypeError: If ``config`` is not an AutomationConfig.
        """
        if not isinstance(config, AutomationConfig):
            raise TypeError("update_config expects a complete AutomationConfig")

        self._config = config
        logger.info(f"Configuration updated: {config}")

        if not self.state.running:
            return
        if not config.enabled:
            self.stop()
        elif self._wake is not None:
            self._wake.set()

    def get_status(self) -> AutomationStatus:
        """Return a snapshot of the scheduler state."""
        next_check_in_ms = None
        if self.state.running and self._next_check_at is not None:
            next_check_in_ms = max(0, int((self._next_check_at - time.time()) * 1000))

        return AutomationStatus(
            running=self.state.running,
            enabled=self._config.enabled,
            state=self.phase,
            last_known_price=self.state.last_known_price,
            last_update_time=self.state.last_update_time or None,
            consecutive_errors=self.state.consecutive_error_count,
            next_check_in_ms=next_check_in_ms,
            last_reason=self._last_reason,
            fatal=self._fatal_error is not None,
        )

    async def check_now(self) -> UpdateDecision | None:
        """Run one reconciliation tick.

        Never raises for network or chain failures; they are logged and
        counted against the error budget.

        :returns: The update decision, or None if the tick was skipped or the
            price could not be fetched.
        """
        if self._busy:
            logger.warning("Price check already in progress, skipping tick")
            return None

        self._busy = True
        self.phase = SchedulerState.CHECKING
        try:
            return await self._check_and_update()
        except Exception as e:
            logger.error(f"Error in price check: {e!r}")
            self._last_reason = REASON_TICK_ERROR
            self._record_error(REASON_TICK_ERROR)
            return None
        finally:
            self._busy = False
            self.phase = (
                SchedulerState.IDLE if self.state.running else SchedulerState.STOPPED
            )

    async def _check_and_update(self) -> UpdateDecision | None:
        config = self._config

        try:
            quote = await self.aggregator.fetch_price()
        except AllSourcesFailedError as e:
            logger.warning(f"Could not fetch price from any source: {e}")
            self._last_reason = REASON_FETCH_FAILED
            self._record_error(REASON_FETCH_FAILED)
            return None

        self.state.consecutive_error_count = 0

        decision = decide_update(self.state, quote.value, config, time.time())
        self._last_reason = decision.reason

        if decision.reason == REASON_INITIAL:
            self.state.last_known_price = quote.value
            logger.info(f"Initial price stored: ${quote.value:.6f} ({quote.source_id})")
            return decision

        logger.info(
            f"Price ${quote.value:.6f} vs last known "
            f"${self.state.last_known_price:.6f}: change {decision.pct_change:.2f}%"
        )

        if not decision.should_update:
            if decision.reason == REASON_BELOW_THRESHOLD:
                logger.info(
                    f"Change below threshold ({config.update_threshold_percent}%)"
                )
            else:
                remaining = config.min_time_between_updates_seconds - (
                    time.time() - self.state.last_update_time
                )
                logger.info(f"Cooldown active ({max(0.0, remaining):.0f}s remaining)")
            return decision

        logger.info("Threshold met, updating oracle")
        self.phase = SchedulerState.UPDATING
        try:
            result = await asyncio.to_thread(self.submitter.submit, quote.value)
        except TransactionError as e:
            logger.error(f"Failed to update oracle: {e}")
            self._last_reason = REASON_SUBMIT_FAILED
            self._record_error(REASON_SUBMIT_FAILED)
            return decision

        old_price = self.state.last_known_price
        self.state.last_known_price = quote.value
        self.state.last_update_time = time.time()
        logger.info(
            f"Oracle updated: ${old_price:.6f} -> ${quote.value:.6f} (tx={result.tx_id})"
        )
        return decision

    def _record_error(self, reason: str) -> None:
        self.state.consecutive_error_count += 1
        count = self.state.consecutive_error_count

        if count < self._config.max_consecutive_errors:
            return

        logger.error(f"Too many consecutive errors ({count}), stopping automation")
        self._fatal_error = FatalAutomationError(count, reason)
        if self.state.running:
            self.stop()

    async def _run_loop(self, wake: asyncio.Event) -> None:
        while self.state.running and self._task is asyncio.current_task():
            # Cleared before the tick so a wake-up requested during it is kept
            wake.clear()
            await self.check_now()
            if not self.state.running:
                break

            interval = self._config.check_interval_seconds
            self._next_check_at = time.time() + interval
            try:
                await asyncio.wait_for(wake.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Oracle automation loop exited")
