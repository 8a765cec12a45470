import asyncio

import click
from rich.console import Console
from rich.markup import escape
from rich.prompt import Prompt

from crank.config import Config, get_config
from crank.logging import UVICORN_LOG_CONFIG

console = Console()

_DECISION_KEYS = {
    "y": "allow_once",
    "p": "allow_pattern",
    "a": "allow_tool",
    "n": "deny",
}


@click.group(invoke_without_command=True)
@click.pass_context
def main(ctx):
    """crank - agentic task runner"""
    try:
        ctx.ensure_object(dict)
        ctx.obj["config"] = get_config()
    except ValueError as e:
        # Only fail if we're running a command that needs config
        ctx.obj["config_error"] = str(e)

    if ctx.invoked_subcommand is None:
        console.print("[bold]crank[/bold] - agentic task runner\n")
        console.print("Run [cyan]crank serve[/cyan] to start the server.")
        console.print("\nUse [cyan]crank --help[/cyan] for all commands.")


@main.command()
@click.pass_context
def status(ctx):
    """Show the effective configuration."""
    if "config_error" in ctx.obj:
        console.print(f"[red]Error:[/red] {escape(ctx.obj['config_error'])}")
        console.print()
        console.print("[bold]Environment variables:[/bold]")
        console.print("  ANTHROPIC_API_KEY, OPENAI_API_KEY - LLM provider keys")
        console.print("  CRANK_CHAT_MODEL, CRANK_WORKING_DIR, CRANK_MAX_ITERATIONS - overrides")
        raise SystemExit(1)

    config = ctx.obj["config"]

    def key_status(key: str | None) -> str:
        return "[green]set[/green]" if key else "[red]missing[/red]"

    console.print("[bold]crank status[/bold]")
    console.print()
    console.print(f"Data dir: [cyan]{config.data_dir}[/cyan]")
    console.print(f"Working dir: [cyan]{config.working_dir}[/cyan]")
    console.print(f"Chat model: {config.chat_model}")
    console.print(f"Naming model: {config.naming_model or '[dim]disabled[/dim]'}")
    console.print(f"Max iterations: {config.max_iterations or 'unbounded'}")
    console.print(f"Anthropic key: {key_status(config.anthropic_api_key)}")
    console.print(f"OpenAI key: {key_status(config.openai_api_key)}")


@main.command()
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8000, help="Port to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
@click.pass_context
def serve(ctx, host: str, port: int, reload: bool):
    """Start the crank API server."""
    if "config_error" in ctx.obj:
        console.print(f"[red]Error:[/red] {escape(ctx.obj['config_error'])}")
        raise SystemExit(1)

    import uvicorn

    console.print(f"[bold]crank server[/bold] starting on http://{host}:{port}")
    console.print("[dim]Press Ctrl+C to stop[/dim]")
    console.print()

    uvicorn.run(
        "crank.server.app:app",
        host=host,
        port=port,
        reload=reload,
        log_config=UVICORN_LOG_CONFIG,
    )


@main.command()
@click.option("-p", "--prompt", required=True, help="The prompt to execute")
@click.option("--session", "session_id", default=None, help="Session id to run the turn in")
@click.pass_context
def run(ctx, prompt: str, session_id: str | None):
    """Run one turn in-process, asking for tool approvals on the console."""
    if "config_error" in ctx.obj:
        console.print(f"[red]Error:[/red] {escape(ctx.obj['config_error'])}")
        raise SystemExit(1)

    asyncio.run(_run_once(ctx.obj["config"], prompt, session_id))


async def _ask_approval(runtime, request: dict) -> None:
    from crank.approval.models import ApprovalResponse
    from crank.approval.patterns import describe_input

    console.print()
    style = "bold red" if request["is_dangerous"] else "bold yellow"
    console.print(f"[{style}]Approval needed:[/{style}] {escape(request['summary'])}")
    console.print(f"[dim]{escape(describe_input(request['tool_name'], request['tool_input']))}[/dim]")
    suggested = request.get("suggested_pattern")
    choice = await asyncio.to_thread(
        Prompt.ask,
        "Allow? [y]es once / [p]attern / [a]lways this tool / [n]o",
        choices=list(_DECISION_KEYS),
        default="n",
    )

    pattern = None
    if choice == "p":
        pattern = await asyncio.to_thread(Prompt.ask, "Pattern", default=suggested or "*")

    runtime.gate.handle_response(
        ApprovalResponse(request_id=request["request_id"], decision=_DECISION_KEYS[choice], pattern=pattern)
    )


async def _run_once(config: Config, prompt: str, session_id: str | None):
    from uuid import uuid4

    from crank.events.sse import (
        ApprovalRequiredEvent,
        CheckpointUpdatedEvent,
        ContextUpdateEvent,
        SSEEvent,
        SubtaskCompleteEvent,
        SubtaskStartEvent,
        TextEvent,
        ToolCallEvent,
        ToolResultEvent,
    )
    from crank.logging import configure_logging
    from crank.server.runtime import Runtime

    configure_logging("WARNING")
    runtime = Runtime(config)
    session_id = session_id or str(uuid4())

    async def emit(event: SSEEvent) -> None:
        indent = ""
        if isinstance(event, ToolCallEvent | ToolResultEvent):
            indent = "  " * (event.depth + 1)
        match event:
            case TextEvent(content=content):
                console.print(content, end="", markup=False, highlight=False)
            case ToolCallEvent(name=name, args=args):
                console.print(f"\n{indent}[cyan]→ {name}[/cyan] [dim]{escape(str(args))}[/dim]", highlight=False)
            case ToolResultEvent(name=name, is_error=True, result=result):
                console.print(f"{indent}[red]✗ {name}:[/red] {escape(result[:200])}", highlight=False)
            case ToolResultEvent(name=name, duration_ms=ms):
                console.print(f"{indent}[green]✓ {name}[/green] [dim]{ms}ms[/dim]")
            case SubtaskStartEvent(prompt=sub_prompt):
                console.print(f"\n[magenta]subtask:[/magenta] {escape(sub_prompt[:80])}", highlight=False)
            case SubtaskCompleteEvent(success=ok, summary=summary):
                label = "[magenta]subtask done[/magenta]" if ok else "[red]subtask failed[/red]"
                console.print(f"{label} {escape(summary[:80])}", highlight=False)
            case ContextUpdateEvent(percentage=pct, warning=True):
                console.print(f"[yellow]context at {pct}%[/yellow]")
            case CheckpointUpdatedEvent(name=name):
                console.print(f"[dim]checkpoint: {escape(name)}[/dim]")
            case ApprovalRequiredEvent(request=request):
                await _ask_approval(runtime, request)

    try:
        console.print(f"[dim]Running: {prompt}[/dim]\n")
        result = await runtime.orchestrator.process_message(session_id, prompt, runtime.turn_config(emit))
        await runtime.channel.drain(timeout=config.naming_grace_seconds)
        console.print()
        console.print(
            f"[dim]session {session_id} · checkpoint {result.checkpoint_id} · {result.iterations} iterations[/dim]"
        )
        if result.stopped_at_limit:
            console.print("[yellow]Stopped at the iteration limit[/yellow]")
    finally:
        await runtime.close()


if __name__ == "__main__":
    main()
