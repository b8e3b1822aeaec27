# tracesdk/cli/main.py
"""
CLI for inspecting, exporting and verifying traces.
"""

import asyncio
import json
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from tracesdk.chain.link import TraceLink, from_object
from tracesdk.core.errors import TraceSdkError
from tracesdk.core.types import PaginationInfo, TracesState
from tracesdk.sdk import Sdk
from tracesdk.settings import SdkOptions
from tracesdk.verify.verifier import ChainVerifier

T = TypeVar("T")

app = typer.Typer(
    name="tracesdk",
    help="Inspect, export and verify signed traces",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

STAGES = ("incoming", "outgoing", "backlog")


class _State:
    workflow_id: Optional[str] = None
    endpoints: Optional[str] = None
    group_label: Optional[str] = None


state = _State()


def make_sdk(options: SdkOptions) -> Sdk:
    return Sdk(options)


def get_options() -> SdkOptions:
    """Resolve SDK options in this order:
    1. --workflow / --endpoints / --group flags
    2. TRACESDK_* environment variables
    3. Defaults (release endpoints, no group label)
    """
    try:
        return SdkOptions.from_env(
            workflow_id=state.workflow_id,
            endpoints=state.endpoints,
            group_label=state.group_label,
        )
    except (TraceSdkError, ValueError) as e:
        console.print(f"[red]Invalid configuration: {e}[/]")
        console.print("[yellow]Set TRACESDK_WORKFLOW_ID and TRACESDK_PRIVATE_KEY (or TRACESDK_EMAIL / TRACESDK_PASSWORD).[/]")
        raise typer.Exit(1)


def run_with_sdk(fn: Callable[[Sdk], Awaitable[T]]) -> T:
    async def runner() -> T:
        async with make_sdk(get_options()) as sdk:
            return await fn(sdk)

    try:
        return asyncio.run(runner())
    except TraceSdkError as e:
        console.print(f"[red]{type(e).__name__}: {e}[/]")
        raise typer.Exit(1)


def _traces_table(title: str, result: TracesState) -> Table:
    table = Table(title=f"{title} ({result.total_count})")
    table.add_column("Trace ID")
    table.add_column("State")
    table.add_column("Updated")
    table.add_column("Group")
    table.add_column("Tags")
    for t in result.traces:
        table.add_row(
            t.trace_id,
            t.head_link.process_state,
            t.updated_at.isoformat() if t.updated_at else "—",
            t.updated_by_group or "—",
            ", ".join(t.tags),
        )
    return table


def read_jsonl(path: Path) -> List[TraceLink]:
    links = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            if line.strip():
                links.append(from_object(json.loads(line)))
    return links


@app.callback()
def main(
    workflow: Optional[str] = typer.Option(
        None, "--workflow", "-w", help="Workflow id (overrides TRACESDK_WORKFLOW_ID)"
    ),
    endpoints: Optional[str] = typer.Option(
        None, "--endpoints", help="release, staging or a JSON object (overrides TRACESDK_ENDPOINTS)"
    ),
    group: Optional[str] = typer.Option(
        None, "--group", "-g", help="Group label to act as (overrides TRACESDK_GROUP_LABEL)"
    ),
):
    """Inspect traces of a workflow."""
    state.workflow_id = workflow
    state.endpoints = endpoints
    state.group_label = group


@app.command("state")
def trace_state(trace_id: str = typer.Argument(..., help="Trace ID to display")):
    """Show the current state of a trace."""
    result = run_with_sdk(lambda sdk: sdk.get_trace_state(trace_id))
    head = result.head_link

    console.print(f"[bold cyan]Trace {result.trace_id}[/]")
    console.print(f"  State:      {head.process_state}")
    console.print(f"  Head:       #{head.priority:g} {head.action}")
    console.print(f"  Updated at: {result.updated_at.isoformat() if result.updated_at else '—'}")
    console.print(f"  Updated by: {result.updated_by or '—'} (group {result.updated_by_group or '—'})")
    if result.tags:
        console.print(f"  Tags:       {', '.join(result.tags)}")
    console.print_json(data=result.data)


@app.command()
def links(
    trace_id: str = typer.Argument(..., help="Trace ID"),
    first: Optional[int] = typer.Option(None, "--first", help="Number of links from the start"),
    after: Optional[str] = typer.Option(None, "--after", help="Cursor to start after"),
    last: Optional[int] = typer.Option(None, "--last", help="Number of links from the end"),
    before: Optional[str] = typer.Option(None, "--before", help="Cursor to end before"),
):
    """List the links of a trace."""
    try:
        page = PaginationInfo(first=first, after=after, last=last, before=before).validate()
    except ValueError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(1)

    details = run_with_sdk(lambda sdk: sdk.get_trace_details(trace_id, page))
    if not details.links:
        console.print(f"[yellow]No links found for trace '{trace_id}'[/]")
        return

    for link in details.links:
        created_at = link.created_at()
        console.print(
            f"[bold cyan]{link.priority:4g} | {created_at.isoformat() if created_at else '—'} "
            f"| {link.process_state:8} | {link.action}[/]"
        )
        console.print(f"  by {link.created_by() or '—'} (group {link.group() or '—'})  hash {link.hash()}")
        console.print("  " + "─" * 90)
    if details.info.has_next:
        console.print(f"[yellow]More links after cursor {details.info.end_cursor}[/]")


@app.command()
def stage(
    name: str = typer.Argument(..., help="incoming, outgoing or backlog"),
    first: Optional[int] = typer.Option(None, "--first", help="Number of traces to show"),
):
    """List the traces waiting in one of my group's stages."""
    name = name.lower()
    if name not in STAGES:
        console.print(f"[red]Unknown stage '{name}', expected one of: {', '.join(STAGES)}[/]")
        raise typer.Exit(1)

    page = PaginationInfo(first=first)

    async def fetch(sdk: Sdk) -> TracesState:
        return await getattr(sdk, f"get_{name}_traces")(page)

    result = run_with_sdk(fetch)
    if not result.traces:
        console.print(f"[yellow]No {name} traces.[/]")
        return
    console.print(_traces_table(f"{name.capitalize()} traces", result))


@app.command()
def export(
    trace_id: str = typer.Argument(..., help="Trace ID to export"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file (default: <trace_id>.jsonl)"),
):
    """Export a trace as JSONL (one signed link per line, root first)."""

    async def fetch_all(sdk: Sdk) -> List[TraceLink]:
        all_links: List[TraceLink] = []
        cursor = None
        while True:
            details = await sdk.get_trace_details(trace_id, PaginationInfo(first=100, after=cursor))
            all_links.extend(details.links)
            if not details.info.has_next:
                return all_links
            cursor = details.info.end_cursor

    chain = run_with_sdk(fetch_all)
    if not chain:
        console.print(f"[yellow]No links found for trace '{trace_id}'[/]")
        raise typer.Exit(0)

    out_path = output or Path(f"{trace_id}.jsonl")
    with open(out_path, "w", encoding="utf-8") as f:
        for link in sorted(chain, key=lambda l: l.priority):
            json.dump(link.to_object(), f, separators=(",", ":"))
            f.write("\n")

    console.print(f"[green]Exported {len(chain)} links to {out_path}[/]")
    console.print("Format: JSONL, one signed link per line")


@app.command()
def verify(
    path: Path = typer.Argument(..., help="JSONL export to verify"),
    trusted_keys: Optional[Path] = typer.Option(
        None, "--trusted-keys", help="JSON file mapping account id to PEM public key"
    ),
):
    """Verify an exported trace offline (hash chain + signatures)."""
    if not path.exists():
        console.print(f"[red]File not found: {path}[/]")
        raise typer.Exit(1)

    try:
        chain = read_jsonl(path)
    except (ValueError, KeyError) as e:
        console.print(f"[red]Failed to read {path}: {e}[/]")
        raise typer.Exit(1)

    keys = {}
    if trusted_keys:
        keys = json.loads(trusted_keys.read_text(encoding="utf-8"))
    else:
        console.print("[yellow]No trusted keys given, signatures are checked against their embedded keys.[/]")

    result = ChainVerifier(trusted_keys=keys).verify(chain)

    if result.is_valid:
        console.print(f"[green]✓ {path.name} is valid[/]")
        console.print(f"  {result.message} ({len(chain)} links)")
    else:
        console.print(f"[red]✗ Verification failed for {path.name}[/]")
        for failure in result.failures:
            console.print(f"  • [{failure.index}] {failure.category}: {failure.message}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
