"""Process-wide reporter façade with primary/fallback failover.

Every test-runner process (including each parallel worker) owns one
``RelayReporter``. It drives a primary backend and, when that one breaks,
moves the results collected so far into the fallback backend and carries on
there. Mode decisions are stamped into the shared run state so sibling
processes started later skip a backend that is already known to be broken.

Backend and run-state failures never escape the public operations: they are
logged and the façade degrades, ultimately to dropping results silently.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, ClassVar, Dict, List, Optional

from config import Mode, ReporterConfig, load_config
from console import ResultConsole
from exceptions import ConfigurationError, DisabledError, RunStateError
from reporters import BaseReporter, ReporterFactory, create_reporter
from state import RunState, RunStateStore
from test_types import TestResult


class ReporterState(Enum):
    """Which backend receives the next call."""

    PRIMARY = "primary"
    SECONDARY = "secondary"
    DISABLED = "disabled"


# Fallback is one-way and DISABLED is terminal.
_TRANSITIONS = {
    ReporterState.PRIMARY: frozenset({ReporterState.SECONDARY, ReporterState.DISABLED}),
    ReporterState.SECONDARY: frozenset({ReporterState.DISABLED}),
    ReporterState.DISABLED: frozenset(),
}


class RelayReporter:
    """Fan test-run calls out to whichever backend is authoritative."""

    _instance: ClassVar[Optional["RelayReporter"]] = None

    def __init__(
        self,
        options: Optional[Dict[str, Any]] = None,
        store: Optional[RunStateStore] = None,
        factory: ReporterFactory = create_reporter,
        config_path: Optional[Path] = None,
        logger: Optional[logging.Logger] = None,
        console: Optional[ResultConsole] = None,
    ):
        self.logger = logger or logging.getLogger("relay_reporter")
        self.store = store or RunStateStore()
        self.console = console or ResultConsole()
        self.primary: Optional[BaseReporter] = None
        self.secondary: Optional[BaseReporter] = None
        self._factory = factory
        self._state = ReporterState.PRIMARY
        self._start_operation: Optional[Awaitable[None]] = None

        persisted = self._read_state()
        try:
            self.config = load_config(
                options,
                config_path=config_path,
                overrides=self._state_overrides(persisted),
            )
        except ConfigurationError as exc:
            self.logger.error(f"Invalid reporter configuration: {exc}")
            self.config = ReporterConfig()
            self._transition(ReporterState.DISABLED)

        if self.config.debug:
            self.logger.setLevel(logging.DEBUG)
        self.logger.debug(f"Config: {self.config.masked_dump()}")

        self.primary = self._build_primary()
        if self._state is not ReporterState.DISABLED:
            self.secondary = self._build_secondary()

        if persisted is None:
            self._stamp_initial_state()

    @classmethod
    def get_instance(cls, options: Optional[Dict[str, Any]] = None, **kwargs: Any) -> "RelayReporter":
        """Return the process-wide reporter, building it on first access.

        Arguments of every call after the first are ignored.
        """
        if cls._instance is None:
            cls._instance = cls(options, **kwargs)
        return cls._instance

    @property
    def state(self) -> ReporterState:
        return self._state

    @property
    def disabled(self) -> bool:
        return self._state is ReporterState.DISABLED

    @property
    def use_fallback(self) -> bool:
        return self._state is ReporterState.SECONDARY

    def is_capture_logs(self) -> bool:
        return self.config.capture_logs

    def get_results(self) -> List[TestResult]:
        active = self._active()
        return active.get_test_results() if active else []

    def set_test_results(self, results: List[TestResult]) -> None:
        active = self._active()
        if active:
            active.set_test_results(results)

    def start_test_run(self) -> None:
        """Begin the run on the active backend without waiting for it.

        Inside a running event loop the start is scheduled right away;
        otherwise it runs on the first call that awaits it.
        """
        if self.disabled or self._start_operation is not None:
            return

        self.logger.debug("Starting test run")
        operation = self._start_run()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.logger.debug("No running event loop; the start waits for the first async call")
            self._start_operation = operation
        else:
            self._start_operation = loop.create_task(operation)

    async def start_test_run_async(self) -> None:
        self.start_test_run()
        await self._wait_for_start()

    async def add_test_result(self, result: TestResult) -> None:
        if self.disabled:
            return

        await self._wait_for_start()
        if self.disabled:
            return

        self.console.log_result(result)

        if self.use_fallback:
            await self._add_to_secondary(result)
            return

        try:
            await self.primary.add_test_result(result)
        except Exception as exc:
            self.logger.error(f"Unable to add the result to the primary reporter: {exc}", exc_info=True)

            if self.secondary is None:
                self._disable()
                return

            self._fail_over()
            await self._add_to_secondary(result)

    async def send_results(self) -> None:
        if self.disabled:
            return

        await self._wait_for_start()
        if self.disabled:
            return

        if self.use_fallback:
            await self._send_secondary()
            return

        try:
            await self.primary.send_results()
        except Exception as exc:
            self.logger.error(f"Unable to send the results to the primary reporter: {exc}", exc_info=True)

            if self.secondary is None:
                self._persist_mode(Mode.OFF)
                return

            self._fail_over()
            await self._send_secondary()

    async def publish(self) -> None:
        try:
            await self._publish()
        finally:
            self._clear_state()

    async def complete(self) -> bool:
        """Mark the run finished. Returns False when no backend managed to."""
        self._clear_state()
        if self.disabled:
            return False

        await self._wait_for_start()
        if self.disabled:
            return False

        if self.use_fallback:
            return await self._complete_secondary()

        try:
            await self.primary.complete()
        except Exception as exc:
            self.logger.error(f"Unable to complete the run in the primary reporter: {exc}", exc_info=True)

            if self.secondary is None:
                return False

            self._fail_over()
            return await self._complete_secondary()
        return True

    async def aclose(self) -> None:
        """Release backend resources such as HTTP connections."""
        if asyncio.iscoroutine(self._start_operation):
            operation, self._start_operation = self._start_operation, None
            self.logger.debug("Dropping a test run start that was never awaited")
            operation.close()

        for backend in (self.primary, self.secondary):
            if backend is None:
                continue
            try:
                await backend.aclose()
            except Exception as exc:
                self.logger.warning(f"Unable to close reporter: {exc}")

    # Construction

    def _build_primary(self) -> Optional[BaseReporter]:
        if self.disabled:
            return None
        try:
            return self._factory(self.config.mode, self.config, self.store, self.logger)
        except DisabledError:
            self._transition(ReporterState.DISABLED)
        except Exception as exc:
            self.logger.error(f"Unable to create primary reporter: {exc}", exc_info=True)
            if self._has_fallback():
                self._transition(ReporterState.SECONDARY)
            else:
                self._transition(ReporterState.DISABLED)
        return None

    def _build_secondary(self) -> Optional[BaseReporter]:
        # A fallback identical to the (possibly forced) mode adds nothing.
        if self.primary is not None and self.config.fallback == self.config.mode:
            return None
        try:
            return self._factory(self.config.fallback, self.config, self.store, self.logger)
        except DisabledError:
            pass
        except Exception as exc:
            self.logger.error(f"Unable to create fallback reporter: {exc}", exc_info=True)
        if self.use_fallback and self.primary is None:
            self._transition(ReporterState.DISABLED)
        return None

    def _has_fallback(self) -> bool:
        return self.config.fallback not in (None, Mode.OFF)

    def _state_overrides(self, persisted: Optional[RunState]) -> Dict[str, Any]:
        """Config values a sibling process already decided for this run."""
        if persisted is None:
            return {}
        overrides: Dict[str, Any] = {}
        if persisted.is_mode_changed and persisted.mode:
            overrides["mode"] = persisted.mode.value
        if persisted.run_id:
            overrides["testops.run.id"] = persisted.run_id
        return overrides

    def _stamp_initial_state(self) -> None:
        if self.disabled:
            mode = Mode.OFF
        elif self.use_fallback:
            mode = self.config.fallback
        else:
            mode = self.config.mode
        try:
            self.store.write(RunState(mode=mode))
        except RunStateError as exc:
            self.logger.error(f"Unable to write run state: {exc}")

    # State machine

    def _active(self) -> Optional[BaseReporter]:
        if self._state is ReporterState.PRIMARY:
            return self.primary
        if self._state is ReporterState.SECONDARY:
            return self.secondary
        return None

    def _transition(self, target: ReporterState) -> None:
        if target is self._state:
            return
        if target not in _TRANSITIONS[self._state]:
            self.logger.debug(f"Ignoring transition {self._state.value} -> {target.value}")
            return
        self.logger.debug(f"Reporter state {self._state.value} -> {target.value}")
        self._state = target

    def _fail_over(self) -> None:
        """Move the primary's buffered results into the secondary and switch to it."""
        if self._state is not ReporterState.PRIMARY:
            return
        self.secondary.set_test_results(self.primary.get_test_results() if self.primary else [])
        self._transition(ReporterState.SECONDARY)

    def _disable(self) -> None:
        self._transition(ReporterState.DISABLED)
        self._persist_mode(Mode.OFF)

    # Run state

    def _read_state(self) -> Optional[RunState]:
        if not self.store.exists():
            return None
        try:
            return self.store.read()
        except RunStateError as exc:
            self.logger.warning(f"Ignoring unreadable run state: {exc}")
            return None

    def _persist_mode(self, mode: Optional[Mode]) -> None:
        try:
            self.store.set_mode(mode or Mode.OFF)
        except RunStateError as exc:
            self.logger.error(f"Unable to update run state: {exc}")

    def _clear_state(self) -> None:
        try:
            self.store.clear()
        except RunStateError as exc:
            self.logger.error(f"Unable to clear run state: {exc}")

    def _run_abandoned(self) -> bool:
        """True when the run state says no backend should be used any more."""
        persisted = self._read_state()
        return bool(persisted and persisted.is_mode_changed and persisted.mode == Mode.OFF)

    # Operations

    async def _wait_for_start(self) -> None:
        operation, self._start_operation = self._start_operation, None
        if operation is not None:
            await operation

    async def _start_run(self) -> None:
        if self.disabled:
            return

        if self.use_fallback:
            await self._start_secondary()
            return

        try:
            await self.primary.start_test_run()
        except Exception as exc:
            self.logger.error(f"Unable to start test run in the primary reporter: {exc}", exc_info=True)

            if self.secondary is None:
                self._disable()
                return

            self._fail_over()
            await self._start_secondary()

    async def _start_secondary(self) -> None:
        try:
            await self.secondary.start_test_run()
        except Exception as exc:
            self.logger.error(f"Unable to start test run in the fallback reporter: {exc}", exc_info=True)
            self._disable()
            return
        self._persist_mode(self.config.fallback)

    async def _add_to_secondary(self, result: TestResult) -> None:
        try:
            await self.secondary.add_test_result(result)
        except Exception as exc:
            self.logger.error(f"Unable to add the result to the fallback reporter: {exc}", exc_info=True)
            self._disable()
            return
        self._persist_mode(self.config.fallback)

    async def _send_secondary(self) -> None:
        try:
            await self.secondary.send_results()
        except Exception as exc:
            self.logger.error(f"Unable to send the results to the fallback reporter: {exc}", exc_info=True)
            self._persist_mode(Mode.OFF)
            return
        self._persist_mode(self.config.fallback)

    async def _publish(self) -> None:
        if self.disabled:
            return

        await self._wait_for_start()
        if self.disabled:
            return

        if self._run_abandoned():
            self.logger.warning("Run state is 'off'; skipping publish")
            return

        self.logger.debug("Publishing test run results")

        if self.use_fallback:
            await self._publish_secondary()
            return

        try:
            await self.primary.publish()
        except Exception as exc:
            self.logger.error(f"Unable to publish the run results to the primary reporter: {exc}", exc_info=True)

            if self.secondary is None:
                self._disable()
                return

            self._fail_over()
            await self._publish_secondary()

    async def _publish_secondary(self) -> None:
        try:
            await self.secondary.publish()
        except Exception as exc:
            self.logger.error(f"Unable to publish the run results to the fallback reporter: {exc}", exc_info=True)
            self._disable()
            return
        self._persist_mode(self.config.fallback)

    async def _complete_secondary(self) -> bool:
        try:
            await self.secondary.complete()
        except Exception as exc:
            self.logger.error(f"Unable to complete the run in the fallback reporter: {exc}", exc_info=True)
            return False
        return True
