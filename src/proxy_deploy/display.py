# display.py
# All terminal output for the proxy deployment orchestrator.
#
# This module owns presentation entirely. orchestrator.py never formats
# strings — it calls named functions here. Swap this file to change the UI.
#
# Colour language:
#   cyan    — planning / routing events
#   yellow  — chain calls in flight, resumed state
#   green   — confirmed deployments
#   red     — failures and halts (stderr)

import json
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from proxy_deploy.models import DeployedModule, DeploymentPlan, ModuleSpec

console = Console()
err_console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


def _describe_slots(spec: ModuleSpec) -> str:
    parts = []
    for slot in spec.init_args:
        if slot.kind == "address":
            parts.append(f"@{slot.module}")
        elif slot.kind == "timestamp":
            offset = " + ".join(f"{d.value:g} {d.unit.value}" for d in slot.offset)
            parts.append(f"now + {offset}" if offset else "now")
        else:
            parts.append(json.dumps(slot.value, default=str))
    return ", ".join(parts)


# ---------------------------------------------------------------------------
# Run entry
# ---------------------------------------------------------------------------


def banner(account: str, client_label: str) -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]Upgradeable Proxy Deployment[/bold cyan]\n\n"
            f"[dim]Deploying with account :[/dim] [white]{escape(account)}[/white]\n"
            f"[dim]Chain client           :[/dim] [white]{escape(client_label)}[/white]",
            border_style="cyan",
            padding=(1, 4),
        )
    )


def plan_resolved(plan: DeploymentPlan) -> None:
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="cyan",
        show_header=True,
        header_style="bold cyan",
        padding=(0, 1),
    )
    table.add_column("#", justify="center", width=4)
    table.add_column("Module", style="bold white")
    table.add_column("Factory", style="white")
    table.add_column("Depends on", style="dim white")
    table.add_column("Initializer args", style="dim white")

    for index, spec in enumerate(plan.modules, start=1):
        table.add_row(
            str(index),
            escape(spec.name),
            escape(spec.factory_ref),
            escape(", ".join(sorted(spec.dependencies)) or "—"),
            escape(_mono(_describe_slots(spec), 60)),
        )

    subtitle = ""
    if plan.external:
        subtitle = f"[dim]Known addresses: {escape(', '.join(sorted(plan.external)))}[/dim]"

    console.print(
        Panel(
            table,
            title=_label("PLAN RESOLVED", "cyan"),
            subtitle=subtitle,
            border_style="cyan",
            padding=(0, 1),
        )
    )


# ---------------------------------------------------------------------------
# Execution loop
# ---------------------------------------------------------------------------


def execution_start(total: int) -> None:
    console.print()
    console.print(Rule(f"[cyan]EXECUTING — {total} module(s)[/cyan]", style="cyan"))


def module_resumed(name: str, address: str) -> None:
    console.print(f"  [yellow]↺ {escape(name)}[/yellow] [dim]known at {escape(address)}, not redeployed[/dim]")


def module_start(index: int, total: int, spec: ModuleSpec) -> None:
    console.print()
    console.print(
        f"[bold cyan]  MODULE [{index}/{total}][/bold cyan]  [white]{escape(spec.name)}[/white]"
        f"  [dim]{spec.proxy_kind} proxy, {escape(spec.initializer)}()[/dim]"
    )


def clock_read(now: int) -> None:
    console.print(f"  [yellow]↳ Chain time[/yellow] [dim yellow]{now}[/dim yellow]")


def module_creating(init_args: list[Any]) -> None:
    console.print(
        f"  [yellow]↳ Creating proxy[/yellow]  [dim]{escape(_mono(json.dumps(init_args, default=str), 140))}[/dim]"
    )


def module_deployed(name: str, address: str) -> None:
    console.print(f"  [bold green]✓[/bold green] {escape(name)} deployed to: [green]{escape(address)}[/green]")


# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------


def execution_summary(deployed: list[DeployedModule]) -> None:
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="dim",
        show_header=True,
        header_style="bold dim",
        padding=(0, 1),
    )
    table.add_column("Module", width=20)
    table.add_column("Address", style="green")
    table.add_column("Tx", style="dim white")

    for record in deployed:
        tx = record.receipt.transaction_hash if record.receipt else None
        table.add_row(escape(record.name), escape(record.address), escape(_mono(tx or "—", 20)))

    console.print(
        Panel(
            table,
            title="[dim]DEPLOYMENT SUMMARY[/dim]",
            border_style="dim",
            padding=(0, 1),
        )
    )


def resume_state_written(path: str) -> None:
    err_console.print(f"[yellow]Resume state written to[/yellow] [white]{escape(path)}[/white]")


def halt(reason: str) -> None:
    err_console.print()
    err_console.print(
        Panel(
            f"[bold white]{escape(reason)}[/bold white]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    err_console.print()


def deployment_failed(name: str, position: int, total: int, cause: Exception,
                      deployed: list[DeployedModule]) -> None:
    lines = [
        f"[bold red]Creating {escape(name)} failed at module {position}/{total}.[/bold red]",
        f"[white]{escape(str(cause))}[/white]",
        "",
        "[dim]Nothing was retried or rolled back. Already on chain:[/dim]",
    ]
    lines += [f"  [white]{escape(m.name)}[/white] [dim]→[/dim] {escape(m.address)}" for m in deployed] or ["  [dim]none[/dim]"]
    err_console.print()
    err_console.print(
        Panel(
            "\n".join(lines),
            title=_label("DEPLOYMENT FAILED ✗", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
