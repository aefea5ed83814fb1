# checkpoint.py
# Durable storage for an in-flight plan across the host's hard reload.
#
# The reload is treated exactly like a crash: the checkpoint is written and
# fsynced before any step that could trigger it, and consumed once on the
# next process start. Everything else in the agent can be rebuilt from
# scratch; this file is the only state that survives.

import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from asset_agent.errors import PersistenceError
from asset_agent.models import Checkpoint, Phase, Plan, StepResult

DEFAULT_CHECKPOINT_PATH = "Temp/asset_agent_plan.json"


class CheckpointStore:
    """
    One checkpoint file, one writer, one reader.

    The host allows a single active process, so read-then-delete in
    try_resume() needs no further locking.
    """

    def __init__(self, path: str | os.PathLike[str] = DEFAULT_CHECKPOINT_PATH) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def save(
        self,
        plan: Plan,
        phase: Phase = Phase.POST_RESET,
        completed: list[StepResult] | None = None,
    ) -> Checkpoint:
        """Atomically replace the checkpoint with `plan`. Overwrites stale state."""
        checkpoint = Checkpoint.from_plan(plan, phase, completed)
        payload = checkpoint.model_dump_json(by_alias=True, indent=2)

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(payload)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise PersistenceError(f"Could not write checkpoint {self.path}: {exc}") from exc

        return checkpoint

    def try_resume(self) -> Plan | None:
        """
        Consume the pending checkpoint, if any.

        The file is deleted before the plan is handed back, so a crash during
        post-reset execution does not re-trigger it. Returns None in the
        normal case of no checkpoint.
        """
        checkpoint = self.consume()
        return checkpoint.to_plan() if checkpoint else None

    def consume(self) -> Checkpoint | None:
        """try_resume() returning the full checkpoint, completed results included."""
        if not self.exists():
            return None

        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(f"Could not read checkpoint {self.path}: {exc}") from exc
        self.clear()

        try:
            checkpoint = Checkpoint.model_validate_json(raw)
        except ValidationError as exc:
            raise PersistenceError(f"Checkpoint {self.path} is corrupt: {exc}") from exc

        if not checkpoint.original_request:
            raise PersistenceError(
                f"Checkpoint {self.path} has no originalRequest; cannot resume."
            )
        return checkpoint

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Could not remove checkpoint {self.path}: {exc}") from exc
