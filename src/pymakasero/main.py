from __future__ import annotations

from pathlib import Path
import json
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.align import Align

from .app_context import AppContext
from .engine import EngineState, TurnOutcome
from .errors import AgentError, PersistenceError
from .session.models import FunctionCall, FunctionResponse, Session, Text
from .session.store import SessionStore
from .tools.builtin_tools.terminal_tools import ASK_QUESTION
from .util.cancel import CancelToken
from .util.log import setup_logging


app = typer.Typer(add_completion=False, help="pymakasero: task-running agent with tool-server support.")
console = Console()


def _store(sessions_dir: Path | None) -> SessionStore:
    return SessionStore(directory=sessions_dir) if sessions_dir else SessionStore.default()


def _build_context(
    session: str | None,
    model: str | None,
    config: Path | None,
    backend_config: Path | None,
    sessions_dir: Path | None,
) -> AppContext:
    try:
        return AppContext.from_env(
            cwd=Path.cwd(),
            session_id=session,
            model=model,
            config_path=config,
            backend_config_path=backend_config,
            sessions_dir=sessions_dir,
        )
    except (AgentError, ValueError, FileNotFoundError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)


def _banner(ctx: AppContext) -> None:
    table = Table.grid(padding=(0, 2))
    table.add_row("📁 [bold green]cwd[/bold green]", f"[bright_cyan]{ctx.cwd}[/bright_cyan]")
    table.add_row("🆔 [bold green]session[/bold green]", f"[bright_cyan]{ctx.session.id}[/bright_cyan]")
    table.add_row("🧠 [bold green]model[/bold green]", f"[bright_cyan]{ctx.backend.model}[/bright_cyan]")
    table.add_row("🔌 [bold green]tool servers[/bold green]", f"[bright_cyan]{', '.join(ctx.manager.server_names()) or '(none)'}[/bright_cyan]")
    table.add_row("🧰 [bold green]functions[/bold green]", f"[bright_cyan]{len(ctx.engine.available_functions())}[/bright_cyan]")
    config_files = ", ".join(str(p) for p in ctx.config.loaded_from) or "(none)"
    table.add_row("⚙️ [bold green]config[/bold green]", f"[bright_cyan]{config_files}[/bright_cyan]")
    console.print(Align.center(Panel(table, title="[bold magenta]pymakasero[/bold magenta]", border_style="bright_blue")))


def _show_outcome(outcome: TurnOutcome) -> None:
    call = outcome.terminal_call
    if call is None:
        if outcome.text:
            console.print("\n[bold]Assistant:[/bold]\n")
            console.print(outcome.text)
        return
    output = str((outcome.terminal_result or {}).get("output", ""))
    if call.name == ASK_QUESTION:
        console.print(Panel(output, title="🤖 Question", border_style="yellow"))
    else:
        console.print(Panel(output, title="🤖 Task completed!", border_style="green"))


def _process(ctx: AppContext, prompt: str, timeout: float | None) -> bool:
    try:
        outcome = ctx.engine.process_message(prompt, CancelToken.with_timeout(timeout))
    except AgentError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        console.print(f"Session ID: {ctx.session.id}")
        return False
    if outcome.state is EngineState.COMPLETED:
        _show_outcome(outcome)
    console.print(f"Session ID: {ctx.session.id}")
    return True


@app.command()
def run(
    prompt: str = typer.Argument(None, help="Task for the agent."),
    prompt_file: Path = typer.Option(None, "--prompt-file", "-f", help="Read the task from a file."),
    session: str = typer.Option(None, "--session", "-s", help="Session id to continue (default creates new)."),
    model: str = typer.Option(None, "--model", help="Model name (default: gemini-2.0-flash-lite)."),
    config: Path = typer.Option(None, "--config", help="App config JSON (tool servers, system prompt)."),
    backend_config: Path = typer.Option(None, "--backend-config", help="Backend YAML config (default: ./pymakasero.yaml)."),
    sessions_dir: Path = typer.Option(None, "--sessions-dir", help="Directory for session files."),
    timeout: float = typer.Option(None, "--timeout", help="Give up after this many seconds."),
    debug: bool = typer.Option(False, "--debug", help="Verbose logging."),
):
    """Run one task to completion."""
    setup_logging(debug)
    if prompt_file is not None:
        prompt = prompt_file.read_text(encoding="utf-8")
    if not prompt or not prompt.strip():
        console.print("[bold red]Error:[/bold red] a prompt or --prompt-file is required")
        raise typer.Exit(code=1)

    ctx = _build_context(session, model, config, backend_config, sessions_dir)
    try:
        _banner(ctx)
        ok = _process(ctx, prompt, timeout)
    finally:
        ctx.close()
    if not ok:
        raise typer.Exit(code=1)


@app.command()
def repl(
    session: str = typer.Option(None, "--session", "-s", help="Session id to continue (default creates new)."),
    model: str = typer.Option(None, "--model", help="Model name (default: gemini-2.0-flash-lite)."),
    config: Path = typer.Option(None, "--config", help="App config JSON (tool servers, system prompt)."),
    backend_config: Path = typer.Option(None, "--backend-config", help="Backend YAML config (default: ./pymakasero.yaml)."),
    sessions_dir: Path = typer.Option(None, "--sessions-dir", help="Directory for session files."),
    debug: bool = typer.Option(False, "--debug", help="Verbose logging."),
):
    """Interactive loop; a fatal error ends it."""
    setup_logging(debug)
    ctx = _build_context(session, model, config, backend_config, sessions_dir)
    ok = True
    try:
        _banner(ctx)
        while True:
            try:
                user = typer.prompt("You")
            except (EOFError, KeyboardInterrupt, typer.Abort):
                break
            if user.strip().lower() in {"exit", "quit"}:
                break
            if not user.strip():
                continue
            if not _process(ctx, user, None):
                ok = False
                break
            console.print()
    finally:
        ctx.close()
    if not ok:
        raise typer.Exit(code=1)


@app.command()
def sessions(
    sessions_dir: Path = typer.Option(None, "--sessions-dir", help="Directory for session files."),
):
    """List stored sessions."""
    setup_logging(False)
    items = _store(sessions_dir).list()
    if not items:
        console.print("No sessions.")
        raise typer.Exit(code=0)
    table = Table("Session ID", "Created", "Messages", "First prompt")
    for s in items:
        prompt = s.first_user_prompt() or ""
        if len(prompt) > 100:
            prompt = prompt[:97] + "..."
        table.add_row(s.id, f"{s.created_at:%Y-%m-%d %H:%M}", str(len(s.history)), prompt)
    console.print(table)


def _render_history(s: Session) -> None:
    console.print(f"[bold]Session ID:[/bold] {s.id}")
    console.print(f"[bold]Created:[/bold] {s.created_at.isoformat(timespec='seconds')}")
    console.print(f"[bold]Updated:[/bold] {s.updated_at.isoformat(timespec='seconds')}")
    console.print(f"[bold]Messages:[/bold] {len(s.history)}\n")
    for i, content in enumerate(s.history, start=1):
        lines = []
        for part in content.parts:
            if isinstance(part, Text):
                lines.append(part.text)
            elif isinstance(part, FunctionCall):
                lines.append(f"function call: {part.name}\nargs: {json.dumps(part.args, ensure_ascii=False)}")
            elif isinstance(part, FunctionResponse):
                lines.append(f"function response: {part.name}\nresult: {json.dumps(part.response, ensure_ascii=False)}")
        console.print(
            Panel(
                "\n".join(lines),
                title=f"--- message {i} ({content.role}) ---",
                border_style="cyan" if content.role == "user" else "magenta",
            )
        )


@app.command()
def show(
    session_id: str = typer.Argument(..., help="Session id."),
    sessions_dir: Path = typer.Option(None, "--sessions-dir", help="Directory for session files."),
):
    """Print a session's full history."""
    setup_logging(False)
    try:
        s = _store(sessions_dir).load(session_id)
    except PersistenceError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)
    _render_history(s)


@app.command()
def tools(
    config: Path = typer.Option(None, "--config", help="App config JSON (tool servers, system prompt)."),
    backend_config: Path = typer.Option(None, "--backend-config", help="Backend YAML config (default: ./pymakasero.yaml)."),
    debug: bool = typer.Option(False, "--debug", help="Verbose logging."),
):
    """List every function the model can call."""
    setup_logging(debug)
    ctx = _build_context(None, None, config, backend_config, None)
    try:
        names = ctx.engine.available_functions()
        console.print(f"Declared tools: {len(names)}")
        for decl in ctx.engine.declarations():
            console.print(f"- [bold]{decl.name}[/bold] {decl.description}")
    finally:
        ctx.close()
if __name__ == "__main__":
    app()
