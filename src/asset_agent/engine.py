# engine.py
# Plan execution engine.
#
# The engine is the kernel. The model is a passive responder. This class owns
# all control flow, state, checkpointing and logging for one run.
#
# Control flow:
#   request → prompt → backend → parse → classify
#   → checkpoint → pre-reload steps → (host reload, new process)
#   → resume() → post-reload steps → chained documentation plan
#
# Each run returns exactly one human-readable summary string. All terminal
# output is delegated to display.py.

import uuid
from collections.abc import Callable, Iterable

from asset_agent import display
from asset_agent.backends import Backend
from asset_agent.checkpoint import CheckpointStore
from asset_agent.errors import AgentError, BackendError, PersistenceError, PlanParseError
from asset_agent.models import Phase, Plan, RunState, Step, StepResult
from asset_agent.parser import parse_response
from asset_agent.phases import PhaseSplit, classify, phase_of
from asset_agent.prompts import build_agentic_prompt, build_documentation_prompt
from asset_agent.registry import CapabilityRegistry
from asset_agent.tools import DOCUMENTATION_TOOLS
from asset_agent.transaction import DEFAULT_LOG_DIR, TransactionLog

POST_RESET_MARKER = "--- POST-RESET EXECUTION PHASE ---"

# Allowed transitions; FAILED is reachable from every awaiting/executing state.
_TRANSITIONS: dict[RunState, set[RunState]] = {
    RunState.IDLE: {
        RunState.BUILDING_PROMPT,
        RunState.EXECUTING_PRE_RESET,
        RunState.EXECUTING_POST_RESET,
        RunState.FAILED,
    },
    RunState.BUILDING_PROMPT: {RunState.AWAITING_MODEL},
    RunState.AWAITING_MODEL: {
        RunState.EXECUTING_PRE_RESET,
        RunState.EXECUTING_POST_RESET,
        RunState.EXECUTING_CHAINED,
        RunState.DONE,
        RunState.FAILED,
    },
    RunState.EXECUTING_PRE_RESET: {
        RunState.CHECKPOINTED,
        RunState.EXECUTING_POST_RESET,
        RunState.FAILED,
    },
    RunState.EXECUTING_POST_RESET: {
        RunState.BUILDING_CHAINED_PROMPT,
        RunState.DONE,
        RunState.FAILED,
    },
    RunState.BUILDING_CHAINED_PROMPT: {RunState.AWAITING_MODEL},
    RunState.EXECUTING_CHAINED: {RunState.DONE, RunState.FAILED},
    RunState.CHECKPOINTED: set(),
    RunState.DONE: set(),
    RunState.FAILED: set(),
}


_RESTARTABLE = {RunState.IDLE, RunState.CHECKPOINTED, RunState.DONE, RunState.FAILED}

class PlanEngine:
    """
    Session handle for plan generation and execution.

    No state is global: every run goes through an explicit engine, so
    independent engines can coexist in one process (and in tests).

    Tool invocations run synchronously on the thread driving the event loop.
    Only the backend call is awaited, so an entry point that owns the loop on
    the host's main thread keeps all host operations on that thread.

    Example:
        host = Host(".")
        engine = PlanEngine(
            backend, build_registry(host), CheckpointStore(), reload_check=host.reload_pending
        )
        summary = await engine.resume() or await engine.run("Create a Ship script")
    """

    def __init__(
        self,
        backend: Backend,
        registry: CapabilityRegistry,
        store: CheckpointStore,
        log_dir: str = DEFAULT_LOG_DIR,
        chain_tools: Iterable[str] = DOCUMENTATION_TOOLS,
        reload_check: Callable[[], bool] | None = None,
    ) -> None:
        registry.freeze()
        self.backend = backend
        self.registry = registry
        self.store = store
        self.log_dir = log_dir
        self.chain_tools = tuple(chain_tools)
        self.reload_check = reload_check

        self.state = RunState.IDLE
        self.results: list[StepResult] = []
        self.log: TransactionLog | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def _transition(self, state: RunState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal engine transition {self.state.value} → {state.value}.")
        self.state = state

    def _begin(self) -> TransactionLog:
        if self.state not in _RESTARTABLE:
            raise RuntimeError(f"A run is already in progress ({self.state.value}).")
        self.state = RunState.IDLE
        self.results = []
        self.log = TransactionLog(self.log_dir)
        return self.log

    def _finalize(self, log: TransactionLog) -> None:
        try:
            path = log.finalize()
        except OSError as exc:
            display.log_failed(str(log.path), str(exc))
            return
        display.transaction_saved(str(path))

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def run(self, request: str, history: str = "") -> str:
        """
        Plan and execute `request`.

        Returns the run summary. When the plan writes scripts, the summary
        says the remaining steps will run after the host reloads; call
        resume() on the next process start to continue.
        """
        log = self._begin()
        log.log_user_prompt(request)
        display.prompt_received(request)

        try:
            self._transition(RunState.BUILDING_PROMPT)
            prompt = build_agentic_prompt(self.registry.describe(), request, history)
            log.log_prompt(prompt)

            plan = await self._request_plan(prompt, log)
            plan = plan.model_copy(
                update={
                    "original_request": request,
                    "correlation_id": plan.correlation_id or uuid.uuid4().hex,
                }
            )

            if plan.is_empty:
                display.empty_plan()
                return self._done("The plan contained no steps; nothing was executed.", log)

            split = classify(plan, self.registry)
            display.plan_parsed(plan, [phase_of(step, self.registry) for step in plan.steps])

            if not split.needs_checkpoint:
                log.log_message("No pre-reload steps; executing without a checkpoint.")
                return await self._run_post_reset(plan, split, log)

            return await self._run_pre_reset(plan, split, log)
        except AgentError as exc:
            return self._fail(exc, log)
        finally:
            self._finalize(log)

    async def resume(self) -> str | None:
        """
        Continue a plan interrupted by a host reload.

        Call once at process start, before anything that depends on the host
        being live. Returns None when no checkpoint is pending.
        """
        if not self.store.exists():
            return None

        log = self._begin()
        log.log_message(POST_RESET_MARKER)
        try:
            checkpoint = self.store.consume()
            if checkpoint is None:
                log.log_message("Checkpoint vanished before it could be read.")
                self.state = RunState.DONE
                return None

            plan = checkpoint.to_plan()
            log.log_user_prompt(plan.original_request or "")
            display.checkpoint_resumed(str(self.store.path), plan)

            split = classify(plan, self.registry)
            if checkpoint.phase is Phase.PRE_RESET:
                # The reload interrupted the pre-reload phase: run all of it again.
                log.log_message("Checkpoint predates the reload; re-running pre-reload steps.")
                return await self._run_pre_reset(plan, split, log)
            return await self._run_post_reset(plan, split, log, prior=checkpoint.completed)
        except AgentError as exc:
            return self._fail(exc, log)
        finally:
            self._finalize(log)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _run_pre_reset(self, plan: Plan, split: PhaseSplit, log: TransactionLog) -> str:
        # Write before act: any pre-reload step may trigger the reload.
        self.store.save(plan, Phase.PRE_RESET)
        display.checkpoint_saved(str(self.store.path), len(split.post_reset))
        log.log_message(f"AI plan saved to checkpoint: {self.store.path}")

        self._transition(RunState.EXECUTING_PRE_RESET)
        pre_results = self._execute(split.pre_reset, log, self.registry, "pre-reload phase")

        if not self._reload_triggered(pre_results):
            self.store.clear()
            display.checkpoint_cleared(str(self.store.path))
            log.log_message("No step triggered a host reload; continuing in-process.")
            return await self._run_post_reset(plan, split, log, prior=pre_results)

        # A reload before this point leaves the PRE_RESET checkpoint, and the
        # next start runs the pre-reload phase again.
        self.store.save(plan, Phase.POST_RESET, completed=pre_results)

        self._transition(RunState.CHECKPOINTED)
        display.reload_pending(len(split.post_reset))
        summary = (
            f"{self._summarize(pre_results)} "
            "Scripts were created. Waiting for the host to reload before continuing "
            f"with {len(split.post_reset)} remaining step(s)..."
        )
        log.log_message(summary)
        display.final_result(summary)
        return summary

    async def _run_post_reset(
        self,
        plan: Plan,
        split: PhaseSplit,
        log: TransactionLog,
        prior: list[StepResult] | None = None,
    ) -> str:
        prior = list(prior or [])
        self._transition(RunState.EXECUTING_POST_RESET)
        if prior and not self.results:
            # Resumed run: pre-reload results come from the checkpoint.
            self.results.extend(prior)
        post_results = self._execute(split.post_reset, log, self.registry, "post-reload phase")
        results = prior + post_results

        created = self._created_files(prior)
        if created and self.chain_tools:
            return await self._run_chained(plan, created, results, log)
        return self._done(self._summarize(results), log)

    async def _run_chained(
        self,
        plan: Plan,
        created: dict[str, str],
        results: list[StepResult],
        log: TransactionLog,
    ) -> str:
        self._transition(RunState.BUILDING_CHAINED_PROMPT)
        scoped = self.registry.subset(self.chain_tools)
        display.chain_start(list(created))
        log.log_message("Asset creation complete. Starting documentation sync cycle...")

        prompt = build_documentation_prompt(
            scoped.describe(),
            plan.original_request or "",
            created,
            [r for r in results if not r.ok],
        )
        log.log_prompt(prompt)

        try:
            doc_plan = await self._request_plan(prompt, log, chained=True)
        except (BackendError, PlanParseError) as exc:
            return self._fail(
                exc, log, prefix=f"{self._summarize(results)} The documentation update failed."
            )

        self._transition(RunState.EXECUTING_CHAINED)
        doc_results = self._execute(doc_plan.steps, log, scoped, "documentation")
        return self._done(self._summarize(results, doc_results), log)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _request_plan(self, prompt: str, log: TransactionLog, chained: bool = False) -> Plan:
        """One backend round-trip; raises BackendError or PlanParseError."""
        self._transition(RunState.AWAITING_MODEL)
        display.calling_model(self.backend.name, chained)

        response = await self.backend.send(prompt)
        if not response.success:
            raise BackendError(
                response.error_message or "The backend reported failure without a message."
            )

        log.log_response(response.message)
        return parse_response(response.message)

    def _execute(
        self,
        steps: list[Step],
        log: TransactionLog,
        registry: CapabilityRegistry,
        label: str,
    ) -> list[StepResult]:
        """Run steps in order. A failed step is recorded and the loop moves on."""
        results: list[StepResult] = []
        total = len(steps)
        display.phase_start(label, total)

        for index, step in enumerate(steps):
            display.step_start(index, total, step.tool, step.description)
            log.log_step_execution(step.tool, step.arguments)
            result = registry.run_step(step)
            log.log_step_result(result)
            display.step_result(result)
            results.append(result)

        self.results.extend(results)
        return results

    def _reload_triggered(self, results: list[StepResult]) -> bool:
        """
        A successful reload-triggering step means the host will reload, unless
        reload_check reports that the host already runs what was written.
        """
        for result in results:
            capability = self.registry.get(result.step.tool)
            if result.ok and capability is not None and capability.triggers_reload:
                return self.reload_check is None or self.reload_check()
        return False

    def _created_files(self, prior: list[StepResult]) -> dict[str, str]:
        """Artifacts worth documenting, file path → content, from successful steps only."""
        created: dict[str, str] = {}
        for step in (r.step for r in prior if r.ok):
            capability = self.registry.get(step.tool)
            if capability is None or not capability.produces_artifact:
                continue
            path = step.arguments.get("file_path")
            if path:
                created[str(path)] = str(step.arguments.get("content", ""))
        return created

    # ------------------------------------------------------------------
    # Terminal states
    # ------------------------------------------------------------------

    def _summarize(
        self, results: list[StepResult], doc_results: list[StepResult] | None = None
    ) -> str:
        succeeded = sum(1 for r in results if r.ok)
        failed = [r for r in results if not r.ok]
        lines = [f"Executed {len(results)} step(s): {succeeded} succeeded, {len(failed)} failed."]
        lines.extend(f"  ✗ {r.step.tool}: {r.detail}" for r in failed)

        if doc_results is not None:
            doc_failed = [r for r in doc_results if not r.ok]
            lines.append(
                f"Documentation: {len(doc_results) - len(doc_failed)} of "
                f"{len(doc_results)} step(s) succeeded."
            )
            lines.extend(f"  ✗ {r.step.tool}: {r.detail}" for r in doc_failed)
        return "\n".join(lines)

    def _done(self, summary: str, log: TransactionLog) -> str:
        self._transition(RunState.DONE)
        log.log_message(summary)
        display.execution_summary(self.results)
        display.final_result(summary)
        return summary

    def _fail(self, exc: AgentError, log: TransactionLog, prefix: str = "") -> str:
        if isinstance(exc, BackendError):
            display.backend_failed(str(exc))
            message = f"Error: the AI failed to generate a plan. {exc}"
        elif isinstance(exc, PlanParseError):
            display.parse_failed(str(exc))
            message = f"Error: the AI response could not be parsed into a plan. {exc}"
        elif isinstance(exc, PersistenceError):
            display.persistence_failed(str(exc))
            message = f"Error: the plan checkpoint failed. {exc}"
        else:
            message = f"Error: {exc}"

        self.state = RunState.FAILED
        summary = f"{prefix} {message}" if prefix else message
        log.log_message(summary)
        display.final_result(summary, failed=True)
        return summary
