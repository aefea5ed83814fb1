# run.py
# Entry point. Config and wiring only; no logic lives here.
#
# Every start first tries to resume a checkpointed plan: if the previous
# process wrote scripts, the host reloaded and this is where the plan
# continues.
#
# Usage:
#   asset-agent "Create a ShipModule script and a default ShipModule asset"
#   asset-agent                      # resume only

import argparse
import asyncio
from pathlib import Path

from asset_agent import display
from asset_agent.backends import create_backend
from asset_agent.checkpoint import CheckpointStore
from asset_agent.config import Settings
from asset_agent.engine import PlanEngine
from asset_agent.errors import AgentError
from asset_agent.models import RunState
from asset_agent.tools import Host, build_registry


def build_engine(settings: Settings) -> PlanEngine:
    host = Host(settings.project_root)
    registry = build_registry(host)
    return PlanEngine(
        backend=create_backend(settings),
        registry=registry,
        store=CheckpointStore(settings.under_root(settings.checkpoint_path)),
        log_dir=str(settings.under_root(settings.log_dir)),
        reload_check=host.reload_pending,
    )


async def _main(request: str | None, history: str) -> int:
    settings = Settings.from_env()
    try:
        engine = build_engine(settings)
    except AgentError as exc:
        display.final_result(f"Error: {exc}", failed=True)
        return 1
    display.banner(engine.backend.name, settings.model, engine.registry.names)

    # Resume before anything else touches the host.
    await engine.resume()

    if request:
        await engine.run(request, history)
    return 1 if engine.state is RunState.FAILED else 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="asset-agent",
        description="Turn a request into script and asset operations in a project.",
    )
    parser.add_argument("request", nargs="?", help="What to build. Omit to only resume.")
    parser.add_argument(
        "--history",
        type=Path,
        help="Text file with prior conversation to include in the prompt.",
    )
    args = parser.parse_args()

    history = args.history.read_text(encoding="utf-8") if args.history else ""
    raise SystemExit(asyncio.run(_main(args.request, history)))


if __name__ == "__main__":
    main()
