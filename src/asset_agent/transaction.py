# transaction.py
# Append-only audit trail for a single engine run.
#
# Entries accumulate in memory and are written in one atomic write by
# finalize(). A crash mid-run leaves no log file rather than a truncated
# one. Plain text for humans; nothing parses it back.

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any

from asset_agent.models import StepResult

DEFAULT_LOG_DIR = "Logs"

_RULE = "=" * 50
_SECTION_END = "-" * 50


class TransactionLog:
    """Accumulates one run's prompts, responses and tool executions."""

    def __init__(self, log_dir: str | os.PathLike[str] = DEFAULT_LOG_DIR) -> None:
        self.started_at = datetime.now()
        stamp = self.started_at.strftime("%Y-%m-%d_%H-%M-%S_%f")
        self.path = Path(log_dir) / f"Transaction_{stamp}.log"
        self._lines: list[str] = []
        self._finalized = False
        self._header(f"Transaction started at: {self.started_at.isoformat(sep=' ')}")

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def log_user_prompt(self, prompt: str) -> None:
        self._section("User Prompt", prompt)

    def log_prompt(self, prompt: str) -> None:
        self._section("Agentic Prompt Sent to AI", prompt)

    def log_response(self, response: str) -> None:
        self._section("Raw AI Plan Response", response)

    def log_step_execution(self, tool: str, arguments: dict[str, Any]) -> None:
        self._append(f"--- EXECUTING TOOL: {tool} ---")
        self._append(json.dumps(arguments, indent=2, ensure_ascii=False, default=str))
        self._append("------------------------")
        self._append("")

    def log_step_result(self, result: StepResult) -> None:
        self._append(f"[{result.outcome.value.upper()}] {result.step.tool}: {result.detail}")

    def log_message(self, message: str) -> None:
        self._append(f"[INFO] {message}")

    @property
    def text(self) -> str:
        return "\n".join(self._lines) + "\n"

    @property
    def finalized(self) -> bool:
        return self._finalized

    # ------------------------------------------------------------------
    # Flush
    # ------------------------------------------------------------------

    def finalize(self) -> Path:
        """Write the whole transaction to disk. Allowed exactly once per run."""
        if self._finalized:
            raise RuntimeError(f"Transaction log {self.path} was already finalized.")
        self._finalized = True
        self._header(f"Transaction ended at: {datetime.now().isoformat(sep=' ')}")

        self.path.parent.mkdir(parents=True, exist_ok=True)
        stem, n = self.path.stem, 1
        while self.path.exists():
            self.path = self.path.with_name(f"{stem}_{n}.log")
            n += 1
        tmp = self.path.with_suffix(".log.tmp")
        tmp.write_text(self.text, encoding="utf-8")
        os.replace(tmp, self.path)
        return self.path

    # ------------------------------------------------------------------
    # Formatting
    # ------------------------------------------------------------------

    def _append(self, line: str) -> None:
        if self._finalized:
            raise RuntimeError("Cannot append to a finalized transaction log.")
        self._lines.append(line)

    def _header(self, text: str) -> None:
        self._lines.extend([_RULE, text, _RULE, ""])

    def _section(self, title: str, content: str) -> None:
        self._append(f"########## {title.upper()} ##########")
        self._append(content)
        self._append(_SECTION_END)
        self._append("")
