# display.py
# All terminal output for the asset agent.
#
# This module owns presentation entirely. engine.py never formats strings for
# the terminal; it calls named functions here. Swap this file to change the
# entire UI.
#
# Colour language:
#   cyan    : routing and model calls
#   yellow  : checkpoint and reload events
#   green   : success
#   red     : failures and halts
#   magenta : individual tool executions

import json

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from asset_agent.models import Phase, Plan, StepResult

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    value = value.replace("\n", " ")
    if len(value) > max_len:
        value = value[:max_len] + "…"
    return escape(value)


# ---------------------------------------------------------------------------
# Pipeline entry
# ---------------------------------------------------------------------------


def banner(backend: str, model: str, tools: list[str]) -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]Asset Agent[/bold cyan]\n"
            "[dim]Plan, checkpoint, reload, resume[/dim]\n\n"
            f"[dim]Backend :[/dim] [white]{backend}[/white]\n"
            f"[dim]Model   :[/dim] [white]{model}[/white]\n"
            f"[dim]Tools   :[/dim] [white]{', '.join(tools)}[/white]",
            border_style="cyan",
            padding=(1, 4),
        )
    )


def prompt_received(prompt: str) -> None:
    console.print()
    console.print(Rule("[cyan]NEW REQUEST[/cyan]", style="cyan"))
    console.print(
        Panel(
            f"[white]{escape(prompt)}[/white]",
            title=_label("USER PROMPT", "cyan"),
            border_style="cyan",
            padding=(0, 2),
        )
    )


def calling_model(backend: str, chained: bool = False) -> None:
    purpose = "documentation plan" if chained else "plan"
    console.print()
    console.print(
        _label("ENGINE", "cyan"), f"[cyan] → Requesting {purpose} from {backend}…[/cyan]"
    )


# ---------------------------------------------------------------------------
# Plan display
# ---------------------------------------------------------------------------


def plan_parsed(plan: Plan, phases: list[Phase]) -> None:
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="cyan",
        show_header=True,
        header_style="bold cyan",
        padding=(0, 1),
    )
    table.add_column("#", justify="center", width=4)
    table.add_column("Tool", style="bold white", width=18)
    table.add_column("Phase", width=11)
    table.add_column("Args", style="dim white", width=32)
    table.add_column("Description", style="white")

    for index, (step, phase) in enumerate(zip(plan.steps, phases), start=1):
        table.add_row(
            str(index),
            escape(step.tool),
            "pre-reload" if phase is Phase.PRE_RESET else "post-reload",
            _mono(json.dumps(step.arguments), 30),
            escape(step.description),
        )

    console.print(
        Panel(
            table,
            title=_label("ENGINE: PLAN PARSED", "cyan"),
            subtitle=f"[dim]{len(plan.steps)} step(s)[/dim]",
            border_style="cyan",
            padding=(0, 1),
        )
    )


def empty_plan() -> None:
    console.print()
    console.print(_label("ENGINE", "cyan"), "[cyan] The plan has no steps. Nothing to execute.[/cyan]")


# ---------------------------------------------------------------------------
# Checkpoint / reload
# ---------------------------------------------------------------------------


def checkpoint_saved(path: str, pending: int) -> None:
    console.print(
        f"  [yellow]↳ Checkpoint written[/yellow] [dim]{path}[/dim] "
        f"[dim yellow]({pending} post-reload step(s) pending)[/dim yellow]"
    )


def checkpoint_cleared(path: str) -> None:
    console.print(f"  [yellow]↳ No reload triggered; checkpoint cleared[/yellow] [dim]{path}[/dim]")


def checkpoint_resumed(path: str, plan: Plan) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold yellow]Pending plan found and consumed.[/bold yellow]\n"
            f"[white]{escape(plan.original_request or '')}[/white]\n"
            f"[dim]{path} · {len(plan.steps)} step(s) in plan[/dim]",
            title=_label("CHECKPOINT: RESUMING", "yellow"),
            border_style="yellow",
            padding=(0, 2),
        )
    )


def reload_pending(remaining: int) -> None:
    console.print()
    console.print(
        Panel(
            "[bold yellow]Scripts were written; the host will reload.[/bold yellow]\n"
            f"[white]{remaining} step(s) will run automatically on the next start.[/white]",
            title=_label("WAITING FOR RELOAD", "yellow"),
            border_style="yellow",
            padding=(0, 2),
        )
    )


def persistence_failed(message: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold red]{escape(message)}[/bold red]\n"
            "[white]The plan cannot survive a host reload. Execution halted.[/white]",
            title=_label("CHECKPOINT FAILURE ✗", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )


# ---------------------------------------------------------------------------
# Execution loop
# ---------------------------------------------------------------------------


def phase_start(label: str, total: int) -> None:
    console.print()
    console.print(Rule(f"[cyan]{label.upper()}: {total} step(s)[/cyan]", style="cyan"))


def step_start(index: int, total: int, tool: str, description: str) -> None:
    console.print()
    console.print(
        f"[bold cyan]  STEP [{index + 1}/{total}][/bold cyan]  "
        f"[magenta]{escape(tool)}[/magenta]  [white]{escape(description)}[/white]"
    )


def step_result(result: StepResult) -> None:
    if result.ok:
        console.print(f"  [bold green]✓[/bold green] [white]{_mono(result.detail, 140)}[/white]")
    else:
        console.print(f"  [bold red]✗[/bold red] [red]{_mono(result.detail, 200)}[/red]")


def chain_start(files: list[str]) -> None:
    console.print()
    console.print(Rule("[cyan]DOCUMENTATION SYNC[/cyan]", style="cyan"))
    console.print(f"[cyan]  Documenting {len(files)} new script(s): {escape(', '.join(files))}[/cyan]")


def execution_summary(results: list[StepResult]) -> None:
    if not results:
        return
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="dim",
        show_header=True,
        header_style="bold dim",
        padding=(0, 1),
    )
    table.add_column("#", justify="center", width=4)
    table.add_column("Tool", width=18)
    table.add_column("Result", justify="center", width=8)
    table.add_column("Detail", style="dim white")

    for index, result in enumerate(results, start=1):
        mark = "[bold green]✓[/bold green]" if result.ok else "[bold red]✗[/bold red]"
        table.add_row(str(index), escape(result.step.tool), mark, _mono(result.detail, 60))

    console.print(
        Panel(table, title="[dim]EXECUTION SUMMARY[/dim]", border_style="dim", padding=(0, 1))
    )


# ---------------------------------------------------------------------------
# Errors and final result
# ---------------------------------------------------------------------------


def backend_failed(message: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold red]{escape(message)}[/bold red]",
            title=_label("BACKEND ERROR ✗", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )


def parse_failed(message: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold red]{escape(message)}[/bold red]\n"
            "[dim]The model's answer did not contain a usable plan.[/dim]",
            title=_label("PLAN PARSE ERROR ✗", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )


def transaction_saved(path: str) -> None:
    console.print(f"[dim]  Transaction log: {path}[/dim]")


def log_failed(path: str, message: str) -> None:
    console.print(
        f"[bold yellow]  Transaction log not written[/bold yellow] [dim]{escape(path)}: "
        f"{escape(message)}[/dim]"
    )


def final_result(result: str, failed: bool = False) -> None:
    color = "red" if failed else "green"
    console.print()
    console.print(
        Panel(
            f"[white]{escape(result)}[/white]",
            title=_label("FAILED" if failed else "RESULT", color),
            border_style=color,
            padding=(1, 2),
        )
    )
    console.print()
