"""File-backed run state shared by every process of one logical test run.

Parallel workers each build their own reporter, but they must agree on the
remote run they report into and on whether the primary backend was already
given up on. The record is tiny and rewritten whole; there is no locking, so
concurrent read-modify-write updates resolve as last-writer-wins.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from config import Mode
from exceptions import RunStateError, RunStateNotFoundError


STATE_FILE_NAME = "reporter_state.json"
STATE_PATH_ENV = "RELAY_STATE_PATH"

logger = logging.getLogger(__name__)


class RunState(BaseModel):
    """Cross-process coordination record."""

    model_config = ConfigDict(populate_by_name=True)

    run_id: Optional[int] = Field(default=None, alias="RunId")
    mode: Optional[Mode] = Field(default=None, alias="Mode")
    is_mode_changed: Optional[bool] = Field(default=None, alias="IsModeChanged")


def default_state_path() -> Path:
    """Location every cooperating process agrees on."""
    env_path = os.getenv(STATE_PATH_ENV)
    if env_path:
        return Path(env_path)
    return Path.cwd() / STATE_FILE_NAME


class RunStateStore:
    """Read, write and clear the persisted run state."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else default_state_path()

    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> RunState:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise RunStateNotFoundError(str(self.path)) from None
        except OSError as exc:
            raise RunStateError(f"Unable to read run state: {exc}", str(self.path)) from exc

        try:
            return RunState.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise RunStateError(f"Corrupt run state: {exc}", str(self.path)) from exc

    def write(self, state: RunState) -> None:
        """Overwrite the whole record.

        The payload goes to a sibling temp file that is renamed over the
        target, so a concurrent reader sees either the old or the new record.
        """
        payload = json.dumps(state.model_dump(by_alias=True, mode="json"), indent=2)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise RunStateError(f"Unable to write run state: {exc}", str(self.path)) from exc
        logger.debug(f"Run state written: {payload}")

    def set_mode(self, mode: Mode) -> None:
        """Record a forced mode transition, leaving RunId untouched."""
        state = self._read_or_new()
        state.mode = mode
        state.is_mode_changed = True
        self.write(state)

    def set_run_id(self, run_id: int) -> None:
        """Record the remote run every sibling should attach to."""
        state = self._read_or_new()
        state.run_id = run_id
        self.write(state)

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            raise RunStateError(f"Unable to clear run state: {exc}", str(self.path)) from exc

    def _read_or_new(self) -> RunState:
        try:
            return self.read()
        except RunStateNotFoundError:
            return RunState()
