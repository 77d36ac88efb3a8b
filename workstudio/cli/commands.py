"""CLI commands for workstudio."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console

from workstudio import __logo__, __version__

app = typer.Typer(
    name="workstudio",
    help=f"{__logo__} workstudio - Agent-assisted workspace editing",
    no_args_is_help=True,
)
console = Console()

_EXIT_WORDS = {"/exit", "/quit", "exit", "quit"}


def version_callback(value: bool) -> None:
    if value:
        console.print(f"{__logo__} workstudio v{__version__}")
        raise typer.Exit()


def configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logs."),
) -> None:
    """workstudio entrypoint."""
    del version
    configure_logging(verbose)


@app.command()
def chat(
    path: Path = typer.Argument(None, help="Project folder (defaults to the last workspace)."),
    model: str = typer.Option("", "--model", "-m", help="Model id override."),
    watch: bool = typer.Option(True, "--watch/--no-watch", help="Watch the folder for changes."),
) -> None:
    """Chat with the agent about a project folder."""
    from workstudio.config.loader import load_config

    config = load_config()
    try:
        asyncio.run(_chat_session(config, path, model or None, watch))
    except KeyboardInterrupt:
        console.print("\nGoodbye!")


async def _chat_session(config: "Config", path: Path | None, model: str | None, watch: bool) -> None:
    from workstudio.agent.controller import ChatController
    from workstudio.agent.loop import AgentOrchestrator
    from workstudio.errors import WorkstudioError
    from workstudio.events import EVENT_SYSTEM, EVENT_TOOL_STATUS
    from workstudio.providers.markers import strip_markers
    from workstudio.providers.registry import create_provider

    workspace = _build_workspace(config, watch=watch)
    try:
        root = await _open_workspace(workspace, path)
    except WorkstudioError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    if root is None:
        console.print("[red]No folder given and no previous workspace to restore.[/red]")
        raise typer.Exit(1)

    try:
        provider = create_provider(config)
    except WorkstudioError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    orchestrator = AgentOrchestrator(
        provider,
        max_tool_rounds=config.agent.max_tool_rounds,
        max_tokens=config.provider.max_tokens,
        max_read_bytes=config.workspace.max_read_bytes,
    )
    controller = ChatController(orchestrator, workspace, history_limit=config.agent.history_limit)
    controller.hub.subscribe(EVENT_TOOL_STATUS, _print_tool_status)
    controller.hub.subscribe(EVENT_SYSTEM, _print_system)

    console.print(f"{__logo__} Workspace: [cyan]{root}[/cyan]")
    console.print("Type [cyan]/tree[/cyan], [cyan]/new[/cyan] or [cyan]/exit[/cyan].\n")

    try:
        while True:
            text = (await asyncio.to_thread(console.input, "[bold green]You:[/bold green] ")).strip()
            if not text:
                continue
            if text.lower() in _EXIT_WORDS:
                break
            if text == "/tree":
                console.print(workspace.tree.render(), markup=False, highlight=False)
                continue
            if text == "/new":
                controller.sessions.create()
                console.print("[dim]Started a new chat.[/dim]")
                continue

            known = {entry.id for entry in controller.ledger.all()}
            with console.status("[dim]Thinking...[/dim]"):
                result = await controller.send(text, model=model)
            if not result.is_error:
                console.print()
                console.print(strip_markers(result.text), markup=False, highlight=False)
                console.print()

            for entry in controller.ledger.pending():
                if entry.id in known:
                    continue
                await _review_edit(controller, entry)
    finally:
        workspace.close()
        console.print("Goodbye!")


async def _review_edit(controller: "ChatController", entry: "PendingEdit") -> None:
    from workstudio.agent.ledger import STATUS_APPLIED

    lines = entry.proposed_content.count("\n") + 1
    console.print(
        f"[yellow]Proposed {entry.kind}[/yellow] for [cyan]{entry.relative_path}[/cyan] "
        f"({len(entry.base_content)} -> {len(entry.proposed_content)} chars, {lines} lines)"
    )
    accept = await asyncio.to_thread(typer.confirm, "Accept this edit?", default=False)
    if not accept:
        controller.reject(entry.id)
        console.print("[dim]Rejected.[/dim]")
        return
    resolved = await controller.accept(entry.id)
    if resolved is not None and resolved.status == STATUS_APPLIED:
        console.print(f"[green]OK[/green] Applied to {entry.relative_path}")


def _print_tool_status(event: "UIToolStatus") -> None:
    from workstudio.providers.markers import STATUS_ERROR, STATUS_RUNNING

    status = event.status
    if status.status == STATUS_RUNNING:
        return
    colour = "red" if status.status == STATUS_ERROR else "green"
    label = f" {status.path}" if status.path else ""
    console.print(f"  [{colour}]{status.tool_name}[/{colour}]{label}: [dim]{status.summary}[/dim]")


def _print_system(event: "UISystemMessage") -> None:
    style = "red" if event.is_error else "dim"
    console.print(f"[{style}]{event.text}[/{style}]")


@app.command()
def tree(
    path: Path = typer.Argument(None, help="Project folder (defaults to the last workspace)."),
    depth: int = typer.Option(1, "--depth", "-d", help="How many folder levels to expand."),
) -> None:
    """Print the workspace tree."""
    from workstudio.config.loader import load_config
    from workstudio.errors import WorkstudioError

    config = load_config()

    async def render() -> str | None:
        workspace = _build_workspace(config, watch=False)
        try:
            root = await _open_workspace(workspace, path)
            if root is None:
                return None
            await _expand_to_depth(workspace.tree, depth)
            return workspace.tree.render()
        finally:
            workspace.close()

    try:
        text = asyncio.run(render())
    except WorkstudioError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    if text is None:
        console.print("[red]No folder given and no previous workspace to restore.[/red]")
        raise typer.Exit(1)
    console.print(text, markup=False, highlight=False)


@app.command()
def status() -> None:
    """Show workstudio configuration and last workspace."""
    from workstudio.config.loader import get_config_path, load_config
    from workstudio.workspace.state_store import load_workspace_state

    config_path = get_config_path()
    config = load_config()
    state = load_workspace_state(config.state_file)

    console.print(f"{__logo__} workstudio Status\n")
    console.print(f"Config: {config_path} {'[green]OK[/green]' if config_path.exists() else '[red]NO[/red]'}")
    console.print(f"Provider: [cyan]{config.provider.kind}[/cyan] model [cyan]{config.provider.model}[/cyan]")
    if config.provider.kind == "openai":
        console.print(f"Endpoint: [cyan]{config.provider.base_url}{config.provider.endpoint}[/cyan]")
    has_key = bool(config.resolve_api_key())
    console.print(f"API key: {'[green]set[/green]' if has_key else '[red]missing[/red]'}")
    console.print(f"Tool rounds: {config.agent.max_tool_rounds}, history: {config.agent.history_limit} turns")
    if state is None:
        console.print("Last workspace: [dim]none[/dim]")
    else:
        exists = Path(state.root).is_dir()
        console.print(f"Last workspace: {state.root} {'[green]OK[/green]' if exists else '[red]NO[/red]'}")


def _build_workspace(config: "Config", watch: bool) -> "WorkspaceSession":
    from workstudio.workspace.session import WorkspaceSession

    return WorkspaceSession(
        state_path=config.state_file,
        debounce_s=config.workspace.debounce_s,
        max_read_bytes=config.workspace.max_read_bytes,
        show_hidden=config.workspace.show_hidden,
        watch=watch,
    )


async def _open_workspace(workspace: "WorkspaceSession", path: Path | None) -> "ProjectRoot | None":
    if path is not None:
        return await workspace.open(path)
    return await workspace.restore()


async def _expand_to_depth(store: "TreeStore", depth: int) -> None:
    level = [node for node in store.nodes if node.is_folder]
    for _ in range(max(depth - 1, 0)):
        following = []
        for node in level:
            await store.expand(node.path)
            following.extend(child for child in node.children or [] if child.is_folder)
        level = following


if __name__ == "__main__":
    app()
