"""Gate and execute capital moves between registered pools."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import ExitStack, contextmanager
from dataclasses import replace
from functools import partial
from typing import Any

from yield_rebalancer.data.constants import DEFAULT_EXECUTION_TIMEOUT, DEFAULT_HISTORY_SIZE
from yield_rebalancer.data.interfaces import (
    AaveExecutor,
    AccessControl,
    ApyOracle,
    SafeExecutor,
)
from yield_rebalancer.data.state_store import JsonStateStore
from yield_rebalancer.engine.journal import (
    RebalanceAttempt,
    RebalanceJournal,
    RebalanceStatus,
)
from yield_rebalancer.errors import (
    ExecutionFailed,
    InsufficientBalance,
    InvalidAmount,
    OracleUnavailable,
    PoolBusy,
    Unauthorized,
)
from yield_rebalancer.protocol.gating import RebalanceDecision, evaluate_gain
from yield_rebalancer.protocol.parameters import RebalanceParameters
from yield_rebalancer.protocol.pool import AaveVenue, Pool
from yield_rebalancer.protocol.registry import PoolRegistry

logger = logging.getLogger(__name__)


class _AdapterCall:
    """One execution adapter call running on its own daemon thread.

    A call the engine stopped waiting for is marked abandoned; its eventual
    outcome is logged so the on-chain side can be reconciled.
    """

    def __init__(self, fn: Callable[[], bool], description: str) -> None:
        self.description = description
        self.result: bool | None = None
        self.error: Exception | None = None
        self._done = threading.Event()
        self._lock = threading.Lock()
        self._abandoned = False
        self._thread = threading.Thread(
            target=self._run, args=(fn,), name=f"rebalance {description}", daemon=True
        )
        self._thread.start()

    def _run(self, fn: Callable[[], bool]) -> None:
        try:
            self.result = fn()
        except Exception as exc:
            self.error = exc
        finally:
            with self._lock:
                self._done.set()
                abandoned = self._abandoned
            if abandoned:
                self._report_late_outcome()

    def _report_late_outcome(self) -> None:
        if self.error is not None:
            logger.warning("Abandoned execution %s failed: %s", self.description, self.error)
        elif self.result:
            logger.error(
                "Abandoned execution %s completed after its timeout; "
                "funds moved but pool balances were not updated",
                self.description,
            )
        else:
            logger.warning("Abandoned execution %s was rejected by the adapter", self.description)

    def wait(self, timeout: float) -> bool:
        return self._done.wait(timeout)

    def done(self) -> bool:
        return self._done.is_set()

    def abandon(self) -> bool:
        """Mark the call abandoned; False if it had already finished."""
        with self._lock:
            if self._done.is_set():
                return False
            self._abandoned = True
            return True


class RebalanceDecisionEngine:
    """Decides whether capital may move between two pools and moves it.

    A rebalance holds the locks of both pools from the APY read until the
    balances are committed, so two attempts touching a common pool never
    interleave. Each adapter call runs on its own thread and is abandoned
    after ``execution_timeout`` seconds; an abandoned call never mutates
    balances, and both of its pools refuse new rebalances until it has
    finished.

    Parameters
    ----------
    registry : PoolRegistry
        Pool records and balances.
    oracle : ApyOracle
        Source of current APYs.
    safe : SafeExecutor
        Moves capital between pool custody addresses and the Safe.
    aave : AaveExecutor
        Aave withdraw/deposit path, used when either pool is Aave-backed.
    access_control : AccessControl
        Administrator check for rebalances and parameter setters.
    parameters : RebalanceParameters | None
        Initial parameters; ignored when ``store`` already holds some.
    store : JsonStateStore | None
        Durable home of the parameters.
    execution_timeout : float
        Seconds to wait on the execution adapter.
    history_size : int
        Attempts kept in :attr:`history`.
    """

    def __init__(
        self,
        registry: PoolRegistry,
        oracle: ApyOracle,
        safe: SafeExecutor,
        aave: AaveExecutor,
        access_control: AccessControl,
        parameters: RebalanceParameters | None = None,
        store: JsonStateStore | None = None,
        execution_timeout: float = DEFAULT_EXECUTION_TIMEOUT,
        history_size: int = DEFAULT_HISTORY_SIZE,
    ) -> None:
        self.registry = registry
        self.oracle = oracle
        self.safe = safe
        self.aave = aave
        self.access_control = access_control
        self.execution_timeout = execution_timeout
        self.history = RebalanceJournal(max_attempts=history_size)

        self._store = store
        stored = store.load_parameters() if store is not None else None
        self._params = stored or parameters or RebalanceParameters()
        self._params_lock = threading.Lock()

        self._pool_locks: dict[str, threading.Lock] = {}
        self._pool_locks_guard = threading.Lock()
        self._unsettled: dict[str, _AdapterCall] = {}

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    @property
    def parameters(self) -> RebalanceParameters:
        with self._params_lock:
            return self._params

    @property
    def min_rebalance_threshold(self) -> int:
        return self.parameters.min_rebalance_threshold

    @property
    def safety_margin_applied(self) -> int:
        return self.parameters.safety_margin_applied

    def _update_parameters(self, caller: str, **changes: int) -> RebalanceParameters:
        self._require_admin(caller)
        with self._params_lock:
            params = replace(self._params, **changes)
            if self._store is not None:
                self._store.save_parameters(params)
            self._params = params
        logger.info("Rebalance parameters updated by %s: %s", caller, changes)
        return params

    def set_min_rebalance_threshold(self, caller: str, value: int) -> RebalanceParameters:
        return self._update_parameters(caller, min_rebalance_threshold=value)

    def set_safety_margin_applied(self, caller: str, value: int) -> RebalanceParameters:
        return self._update_parameters(caller, safety_margin_applied=value)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_admin(self, caller: str) -> None:
        if not self.access_control.is_admin(caller):
            logger.warning("Rejected call from non-administrator %s", caller)
            raise Unauthorized(caller)

    def _lock_for(self, pool_id: str) -> threading.Lock:
        with self._pool_locks_guard:
            lock = self._pool_locks.get(pool_id)
            if lock is None:
                lock = self._pool_locks[pool_id] = threading.Lock()
            return lock

    @contextmanager
    def _locked(self, *pool_ids: str) -> Iterator[None]:
        """Hold every listed pool's lock, acquired in sorted order."""
        with ExitStack() as stack:
            for pool_id in sorted(set(pool_ids)):
                stack.enter_context(self._lock_for(pool_id))
            yield

    def unsettled_pool_ids(self) -> set[str]:
        """Pools whose timed-out adapter call is still running."""
        with self._pool_locks_guard:
            for pool_id, call in list(self._unsettled.items()):
                if call.done():
                    del self._unsettled[pool_id]
            return set(self._unsettled)

    def _require_settled(self, *pool_ids: str) -> None:
        unsettled = self.unsettled_pool_ids()
        for pool_id in pool_ids:
            if pool_id in unsettled:
                raise PoolBusy(pool_id)

    def _read_apy(self, pool: Pool) -> int:
        try:
            apy = self.oracle.get_current_apy(pool)
        except OracleUnavailable:
            raise
        except Exception as exc:
            logger.warning("APY read failed for pool %s", pool.pool_id, exc_info=True)
            raise OracleUnavailable(f"APY oracle unavailable for pool {pool.pool_id}") from exc
        if isinstance(apy, bool) or not isinstance(apy, int):
            logger.warning("APY oracle returned %r for pool %s", apy, pool.pool_id)
            raise OracleUnavailable(f"APY oracle returned {apy!r} for pool {pool.pool_id}")
        return apy

    def _decide(self, source: Pool, target: Pool) -> RebalanceDecision:
        source_apy = self._read_apy(source)
        target_apy = self._read_apy(target)
        return evaluate_gain(source_apy, target_apy, self.parameters)

    def _dispatch(self, source: Pool, target: Pool, amount: int) -> bool:
        if not source.is_aave_pool and not target.is_aave_pool:
            return self.safe.transfer(source.token_address, source.pool_id, target.pool_id, amount)

        # Aave on either side: the capital passes through the Safe
        if isinstance(source.venue, AaveVenue):
            venue = source.venue
            ok = self.aave.withdraw(
                venue.lending_pool_address, venue.data_provider_address, venue.token_address, amount
            )
        else:
            ok = self.safe.collect(source.token_address, source.pool_id, amount)
        if not ok:
            return False

        if isinstance(target.venue, AaveVenue):
            venue = target.venue
            ok = self.aave.deposit(
                venue.lending_pool_address, venue.data_provider_address, venue.token_address, amount
            )
        else:
            ok = self.safe.release(target.token_address, target.pool_id, amount)
        if not ok:
            logger.error(
                "Moving %d %s into %s failed after it left %s; the funds are held by the Safe",
                amount, source.token_address, target.pool_id, source.pool_id,
            )
        return ok

    def _execute(self, source: Pool, target: Pool, amount: int) -> None:
        call = _AdapterCall(
            partial(self._dispatch, source, target, amount),
            description=f"{source.pool_id} -> {target.pool_id} ({amount})",
        )
        if not call.wait(self.execution_timeout) and call.abandon():
            with self._pool_locks_guard:
                self._unsettled[source.pool_id] = call
                self._unsettled[target.pool_id] = call
            logger.warning(
                "Execution of %s -> %s timed out after %.1fs; the adapter call may still land",
                source.pool_id, target.pool_id, self.execution_timeout,
            )
            raise ExecutionFailed(f"Execution timed out after {self.execution_timeout}s")

        if call.error is not None:
            logger.warning(
                "Execution adapter failed for %s -> %s",
                source.pool_id, target.pool_id, exc_info=call.error,
            )
            raise ExecutionFailed(f"Execution adapter failed: {call.error}") from call.error
        if not call.result:
            raise ExecutionFailed(
                f"Execution adapter rejected moving {amount} from {source.pool_id} to {target.pool_id}"
            )

    def _reject(self, attempt: RebalanceAttempt, exc: Exception, **details: Any) -> None:
        self.history.record(attempt.advance(RebalanceStatus.REJECTED, error=str(exc), **details))
        logger.info(
            "Rebalance %s -> %s rejected: %s", attempt.source_pool_id, attempt.target_pool_id, exc
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def evaluate_rebalance(self, source_pool_id: str, target_pool_id: str) -> RebalanceDecision:
        """Apply the gating policy without moving anything."""
        source = self.registry.get_pool_details(source_pool_id)
        target = self.registry.get_pool_details(target_pool_id)
        return self._decide(source, target)

    def execute_rebalance(
        self,
        caller: str,
        source_pool_id: str,
        target_pool_id: str,
        amount: int,
    ) -> RebalanceAttempt:
        """Move ``amount`` from the source pool to the target pool.

        Checks run in this order: administrator, pool existence, amount,
        no unsettled execution on either pool, APY improvement, threshold,
        source balance. Any failure before the adapter call leaves the
        attempt rejected; adapter failure or timeout leaves it failed.
        Balances change only on success.

        Returns:
            The committed attempt.
        """
        self._require_admin(caller)
        attempt = self.history.open(caller, source_pool_id, target_pool_id, amount)

        try:
            self.registry.get_pool_details(source_pool_id)
            self.registry.get_pool_details(target_pool_id)
            if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
                raise InvalidAmount(f"amount must be a positive integer, got {amount!r}")
        except Exception as exc:
            self._reject(attempt, exc)
            raise

        with self._locked(source_pool_id, target_pool_id):
            details: dict[str, Any] = {}
            try:
                self._require_settled(source_pool_id, target_pool_id)
                source = self.registry.get_pool_details(source_pool_id)
                target = self.registry.get_pool_details(target_pool_id)
                decision = self._decide(source, target)
                details = {
                    "source_apy": decision.source_apy,
                    "target_apy": decision.target_apy,
                    "adjusted_gain": decision.adjusted_gain,
                }
                decision.raise_if_rejected()
                if amount > source.current_balance:
                    raise InsufficientBalance(source_pool_id, source.current_balance, amount)
            except Exception as exc:
                self._reject(attempt, exc, **details)
                raise

            attempt = self.history.record(attempt.advance(RebalanceStatus.VALIDATED, **details))
            attempt = self.history.record(attempt.advance(RebalanceStatus.EXECUTING))

            try:
                self._execute(source, target, amount)
            except ExecutionFailed as exc:
                self.history.record(attempt.advance(RebalanceStatus.FAILED, error=str(exc)))
                raise

            try:
                self.registry.transfer_balance(source_pool_id, target_pool_id, amount)
            except Exception as exc:
                logger.error(
                    "Funds moved %s -> %s but balances were not committed",
                    source_pool_id, target_pool_id, exc_info=True,
                )
                self.history.record(attempt.advance(RebalanceStatus.FAILED, error=str(exc)))
                raise

            attempt = self.history.record(attempt.advance(RebalanceStatus.COMMITTED))

        logger.info(
            "Rebalanced %d from %s to %s (gain %d bps after margin)",
            amount, source_pool_id, target_pool_id, decision.adjusted_gain,
        )
        return attempt

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        unsettled = self.unsettled_pool_ids()
        if unsettled:
            logger.warning(
                "Closing with unsettled executions on pools %s", ", ".join(sorted(unsettled))
            )

    def __enter__(self) -> "RebalanceDecisionEngine":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
