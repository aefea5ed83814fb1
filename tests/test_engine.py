import asyncio
import json

import pytest
from conftest import ScriptedBackend, plan_json

from asset_agent.checkpoint import CheckpointStore
from asset_agent.engine import PlanEngine
from asset_agent.models import BackendResponse, Outcome, Phase, Plan, RunState, Step, StepResult
from asset_agent.registry import Capability, CapabilityRegistry
from asset_agent.tools import DOCS_DIR

FOO = "class Foo:\n    def __init__(self):\n        self.power = 7\n"

SCRIPT_STEP = {
    "tool": "create_script",
    "arguments": {"file_path": "Scripts/foo.py", "content": FOO},
    "description": "create script Foo",
}
ASSET_STEP = {
    "tool": "create_asset",
    "arguments": {"script_name": "Foo", "asset_path": "Assets/bar.json"},
    "description": "create asset Bar from Foo",
}
BAR = "class Bar:\n    def __init__(self):\n        self.hull = 3\n"
BAR_SCRIPT_STEP = {
    "tool": "create_script",
    "arguments": {"file_path": "Scripts/bar.py", "content": BAR},
    "description": "create script Bar",
}
DOC_PLAN = plan_json(
    {
        "tool": "update_system_doc",
        "arguments": {"system_name": "Foo System", "content": "# Foo"},
        "description": "document Foo",
    }
)


def _recorder(calls: list[str], name: str):
    def record() -> str:
        calls.append(name)
        return f"{name} ran"

    return record


def recording_registry(calls: list[str], pre: int = 3, post: int = 5) -> CapabilityRegistry:
    """p0..p{pre-1} run before the reload (p0 triggers it); q0.. run after."""
    registry = CapabilityRegistry()
    for i in range(pre):
        registry.register(
            Capability(
                name=f"p{i}",
                description="pre",
                phase=Phase.PRE_RESET,
                triggers_reload=(i == 0),
                func=_recorder(calls, f"p{i}"),
            )
        )
    for i in range(post):
        registry.register(
            Capability(
                name=f"q{i}",
                description="post",
                phase=Phase.POST_RESET,
                func=_recorder(calls, f"q{i}"),
            )
        )
    return registry


# ---------------------------------------------------------------------------
# Checkpoint / resume across the hard reload
# ---------------------------------------------------------------------------


def test_script_then_asset_across_reload(project, store, make_engine):
    first = make_engine(ScriptedBackend(plan_json(SCRIPT_STEP, ASSET_STEP)))
    summary = asyncio.run(first.run("create script Foo and asset Bar from Foo"))

    assert first.state is RunState.CHECKPOINTED
    assert "Waiting for the host to reload" in summary
    assert store.exists()
    assert (project / "Scripts" / "foo.py").read_text() == FOO
    assert not (project / "Assets" / "bar.json").exists()

    # Simulated restart: a new host loads the new script, new engine resumes.
    backend = ScriptedBackend(DOC_PLAN)
    second = make_engine(backend)
    summary = asyncio.run(second.resume())

    assert second.state is RunState.DONE
    assert not store.exists()
    assert "Executed 2 step(s): 2 succeeded, 0 failed." in summary
    assert "Documentation: 1 of 1 step(s) succeeded." in summary
    asset = json.loads((project / "Assets" / "bar.json").read_text())
    assert asset == {"type": "Foo", "fields": {"power": 7}}
    assert (project / DOCS_DIR / "Foo_System.md").read_text() == "# Foo"


@pytest.mark.parametrize("pre,post", [(1, 0), (1, 3), (3, 2), (2, 5)])
def test_every_step_runs_once_in_phase_order(project, store, make_engine, pre, post):
    calls: list[str] = []
    pre_steps = [{"tool": f"p{i}"} for i in range(pre)]
    post_steps = [{"tool": f"q{i}"} for i in range(post)]
    # Interleave so the classifier has to regroup them.
    mixed = []
    for i in range(max(pre, post)):
        mixed.extend(post_steps[i : i + 1] + pre_steps[i : i + 1])

    first = make_engine(
        ScriptedBackend(plan_json(*mixed)), registry=recording_registry(calls), chain_tools=()
    )
    asyncio.run(first.run("do it"))
    assert first.state is RunState.CHECKPOINTED
    assert calls == [f"p{i}" for i in range(pre)]

    second = make_engine(ScriptedBackend(), registry=recording_registry(calls), chain_tools=())
    summary = asyncio.run(second.resume())

    assert second.state is RunState.DONE
    assert calls == [f"p{i}" for i in range(pre)] + [f"q{i}" for i in range(post)]
    assert f"Executed {pre + post} step(s): {pre + post} succeeded" in summary
    assert not store.exists()


def test_checkpoint_is_written_before_first_pre_reset_step(store, make_engine):
    seen: list[bool] = []
    registry = CapabilityRegistry()

    @registry.tool("Probe.", triggers_reload=True)
    def probe() -> None:
        seen.append(CheckpointStore(store.path).exists())

    engine = make_engine(ScriptedBackend(plan_json({"tool": "probe"})), registry=registry)
    asyncio.run(engine.run("probe"))
    assert seen == [True]


def test_post_reset_only_plan_writes_no_checkpoint(store, make_engine):
    seen: list[bool] = []
    registry = CapabilityRegistry()

    @registry.tool("Probe.", phase=Phase.POST_RESET)
    def probe() -> None:
        seen.append(CheckpointStore(store.path).exists())

    engine = make_engine(ScriptedBackend(plan_json({"tool": "probe"})), registry=registry)
    summary = asyncio.run(engine.run("probe"))
    assert seen == [False]
    assert engine.state is RunState.DONE
    assert "1 succeeded" in summary


def test_failed_script_means_no_reload(project, store, make_engine):
    bad_script = {**SCRIPT_STEP, "arguments": {"file_path": "../foo.py", "content": FOO}}
    engine = make_engine(ScriptedBackend(plan_json(bad_script, ASSET_STEP)))
    summary = asyncio.run(engine.run("create script Foo and asset Bar from Foo"))

    assert engine.state is RunState.DONE
    assert not store.exists()
    assert "0 succeeded, 2 failed" in summary
    assert "outside the project root" in summary
    assert "not loaded" in summary


def test_resume_without_checkpoint(log_dir, make_engine):
    engine = make_engine(ScriptedBackend())
    assert asyncio.run(engine.resume()) is None
    assert engine.state is RunState.IDLE
    assert not log_dir.exists()


def test_resume_with_corrupt_checkpoint(store, make_engine):
    store.path.parent.mkdir(parents=True)
    store.path.write_text("not a plan at all")
    engine = make_engine(ScriptedBackend())

    summary = asyncio.run(engine.resume())
    assert engine.state is RunState.FAILED
    assert "checkpoint failed" in summary
    assert not store.exists()


def _write_foo(project) -> None:
    (project / "Scripts").mkdir()
    (project / "Scripts" / "foo.py").write_text(FOO)


def test_reload_during_pre_reset_phase_reruns_it(project, store, make_engine):
    # The reload hit after foo.py was written, before bar.py and before the
    # checkpoint was rewritten with results.
    bar_asset = {
        "tool": "create_asset",
        "arguments": {"script_name": "Bar", "asset_path": "Assets/bar.json"},
    }
    plan = Plan.model_validate(
        {
            "plan": [SCRIPT_STEP, BAR_SCRIPT_STEP, bar_asset],
            "originalRequest": "create Foo, Bar and a Bar asset",
        }
    )
    store.save(plan, Phase.PRE_RESET)
    _write_foo(project)

    backend = ScriptedBackend('{"plan": []}')
    second = make_engine(backend)
    summary = asyncio.run(second.resume())

    assert second.state is RunState.CHECKPOINTED
    assert "Waiting for the host to reload" in summary
    assert (project / "Scripts" / "bar.py").read_text() == BAR
    assert json.loads(store.path.read_text())["phase"] == Phase.POST_RESET.value
    assert not (project / "Assets" / "bar.json").exists()
    assert backend.prompts == []

    third = make_engine(backend)
    summary = asyncio.run(third.resume())

    assert third.state is RunState.DONE
    assert not store.exists()
    assert "Executed 3 step(s): 3 succeeded, 0 failed." in summary
    asset = json.loads((project / "Assets" / "bar.json").read_text())
    assert asset == {"type": "Bar", "fields": {"hull": 3}}
    prompt = backend.prompts[0]
    assert "--- FILE: Scripts/foo.py ---" in prompt
    assert "--- FILE: Scripts/bar.py ---" in prompt


def test_pre_reset_checkpoint_with_scripts_already_loaded(project, store, make_engine):
    plan = Plan.model_validate(
        {"plan": [SCRIPT_STEP, ASSET_STEP], "originalRequest": "create Foo and Bar"}
    )
    store.save(plan, Phase.PRE_RESET)
    _write_foo(project)

    engine = make_engine(ScriptedBackend(DOC_PLAN))
    summary = asyncio.run(engine.resume())

    assert engine.state is RunState.DONE
    assert not store.exists()
    assert "Executed 2 step(s): 2 succeeded, 0 failed." in summary
    assert (project / "Assets" / "bar.json").exists()


def test_only_successful_scripts_are_documented(project, store, make_engine):
    missing = Step(
        tool="create_script",
        arguments={"file_path": "Scripts/missing.py", "content": "class Missing: ..."},
    )
    plan = Plan.model_validate({"plan": [SCRIPT_STEP], "originalRequest": "create Foo"})
    store.save(
        plan.model_copy(update={"steps": [missing, Step.model_validate(SCRIPT_STEP)]}),
        Phase.POST_RESET,
        completed=[
            StepResult(step=missing, outcome=Outcome.FAILURE, detail="disk full"),
            StepResult(step=Step.model_validate(SCRIPT_STEP), outcome=Outcome.SUCCESS),
        ],
    )
    _write_foo(project)

    backend = ScriptedBackend('{"plan": []}')
    asyncio.run(make_engine(backend).resume())

    prompt = backend.prompts[0]
    assert "--- FILE: Scripts/foo.py ---" in prompt
    assert "--- FILE: Scripts/missing.py ---" not in prompt
    assert "- create_script: disk full" in prompt


def test_checkpoint_write_failure_is_fatal(project, log_dir):
    calls: list[str] = []
    blocker = project / "Temp"
    blocker.write_text("not a directory")
    engine = PlanEngine(
        backend=ScriptedBackend(plan_json({"tool": "p0"}, {"tool": "q0"})),
        registry=recording_registry(calls),
        store=CheckpointStore(blocker / "plan.json"),
        log_dir=str(log_dir),
    )
    summary = asyncio.run(engine.run("do it"))

    assert engine.state is RunState.FAILED
    assert "checkpoint failed" in summary
    assert calls == []


# ---------------------------------------------------------------------------
# Step failures
# ---------------------------------------------------------------------------


def test_unknown_tool_does_not_stop_siblings(project, store, make_engine):
    plan = plan_json(
        {"tool": "teleport", "arguments": {"where": "moon"}},
        {"tool": "update_file", "arguments": {"file_path": "notes.txt", "new_content": "hi"}},
    )
    engine = make_engine(ScriptedBackend(plan))
    summary = asyncio.run(engine.run("take notes"))

    assert engine.state is RunState.DONE
    assert (project / "notes.txt").read_text() == "hi"
    assert [(r.step.tool, r.ok) for r in engine.results] == [
        ("update_file", True),
        ("teleport", False),
    ]
    assert "1 succeeded, 1 failed" in summary
    assert "Unknown tool 'teleport'" in summary
    assert not store.exists()


# ---------------------------------------------------------------------------
# Plan generation
# ---------------------------------------------------------------------------


def test_prompt_contains_manifest_history_and_request(make_engine):
    backend = ScriptedBackend('{"plan": []}')
    engine = make_engine(backend)
    asyncio.run(engine.run("build a hangar", history="user: hello\nassistant: hi"))

    prompt = backend.prompts[0]
    assert "Tool: create_script" in prompt
    assert "Tool: create_asset" in prompt
    assert "user: hello\nassistant: hi" in prompt
    assert prompt.index("--- AVAILABLE TOOLS ---") < prompt.index("build a hangar")


def test_fenced_empty_plan_is_a_no_op(store, make_engine):
    calls: list[str] = []
    response = 'Here is my plan:\n```json\n{"plan":[]}\n```\nGood luck!'
    engine = make_engine(ScriptedBackend(response), registry=recording_registry(calls))
    summary = asyncio.run(engine.run("do nothing"))

    assert engine.state is RunState.DONE
    assert "no steps" in summary
    assert calls == []
    assert engine.results == []
    assert not store.exists()


def test_backend_failure(store, make_engine):
    engine = make_engine(ScriptedBackend(BackendResponse.error("rate limited (429)")))
    summary = asyncio.run(engine.run("create script Foo"))

    assert engine.state is RunState.FAILED
    assert summary.startswith("Error: the AI failed to generate a plan.")
    assert "rate limited (429)" in summary
    assert not store.exists()
    assert "rate limited (429)" in engine.log.path.read_text()


@pytest.mark.parametrize(
    "response",
    ["I'm sorry, I can't help with that.", '{"plan": [{"arguments": {}}]}', "{ nope }"],
)
def test_unparseable_response(store, make_engine, response):
    engine = make_engine(ScriptedBackend(response))
    summary = asyncio.run(engine.run("create script Foo"))

    assert engine.state is RunState.FAILED
    assert summary.startswith("Error: the AI response could not be parsed")
    assert not store.exists()


def test_transaction_log_records_run(make_engine):
    engine = make_engine(ScriptedBackend(plan_json(SCRIPT_STEP, ASSET_STEP)))
    asyncio.run(engine.run("create script Foo and asset Bar from Foo"))

    text = engine.log.path.read_text()
    assert "########## USER PROMPT ##########" in text
    assert "########## AGENTIC PROMPT SENT TO AI ##########" in text
    assert "########## RAW AI PLAN RESPONSE ##########" in text
    assert "--- EXECUTING TOOL: create_script ---" in text
    assert "EXECUTING TOOL: create_asset" not in text


def test_unwritable_log_dir_still_returns_summary(log_dir, make_engine):
    log_dir.write_text("a file where the log directory should be")
    engine = make_engine(ScriptedBackend('{"plan": []}'))

    summary = asyncio.run(engine.run("nothing"))

    assert summary == "The plan contained no steps; nothing was executed."
    assert engine.state is RunState.DONE
    assert log_dir.is_file()


def test_engine_can_run_again_after_finishing(make_engine):
    engine = make_engine(ScriptedBackend('{"plan": []}', BackendResponse.error("down")))
    asyncio.run(engine.run("first"))
    assert engine.state is RunState.DONE
    asyncio.run(engine.run("second"))
    assert engine.state is RunState.FAILED


# ---------------------------------------------------------------------------
# Chained documentation plan
# ---------------------------------------------------------------------------


def _checkpoint_script_only(make_engine) -> None:
    first = make_engine(ScriptedBackend(plan_json(SCRIPT_STEP)))
    asyncio.run(first.run("create script Foo"))
    assert first.state is RunState.CHECKPOINTED


def test_documentation_prompt_is_scoped(make_engine):
    _checkpoint_script_only(make_engine)
    backend = ScriptedBackend(DOC_PLAN)
    asyncio.run(make_engine(backend).resume())

    prompt = backend.prompts[0]
    assert "--- FILE: Scripts/foo.py ---" in prompt
    assert "self.power = 7" in prompt
    assert "create script Foo" in prompt
    assert "Tool: update_system_doc" in prompt
    assert "Tool: create_script" not in prompt


def test_documentation_plan_cannot_use_other_tools(project, make_engine):
    _checkpoint_script_only(make_engine)
    doc_plan = plan_json(
        {"tool": "create_script", "arguments": {"file_path": "Scripts/evil.py", "content": ""}},
        {"tool": "update_file", "arguments": {"file_path": "ai_knowledgebase.json", "new_content": "{}"}},
    )
    engine = make_engine(ScriptedBackend(doc_plan))
    summary = asyncio.run(engine.resume())

    assert engine.state is RunState.DONE
    assert not (project / "Scripts" / "evil.py").exists()
    assert (project / "ai_knowledgebase.json").read_text() == "{}"
    assert "Documentation: 1 of 2 step(s) succeeded." in summary


def test_documentation_backend_failure(make_engine):
    _checkpoint_script_only(make_engine)
    engine = make_engine(ScriptedBackend(BackendResponse.error("offline")))
    summary = asyncio.run(engine.resume())

    assert engine.state is RunState.FAILED
    assert "Executed 1 step(s): 1 succeeded, 0 failed." in summary
    assert "The documentation update failed." in summary
    assert "offline" in summary


def test_failed_steps_are_surfaced_to_documentation_prompt(make_engine):
    first = make_engine(
        ScriptedBackend(
            plan_json(
                SCRIPT_STEP,
                {"tool": "create_asset", "arguments": {"script_name": "Nope", "asset_path": "a.json"}},
            )
        )
    )
    asyncio.run(first.run("create Foo and an asset of Nope"))

    backend = ScriptedBackend('{"plan": []}')
    summary = asyncio.run(make_engine(backend).resume())

    assert "1 succeeded, 1 failed" in summary
    assert "--- STEPS THAT FAILED ---" in backend.prompts[0]
    assert "Type 'Nope' is not loaded" in backend.prompts[0]
