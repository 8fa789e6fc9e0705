from __future__ import annotations

import asyncio
import json
import sys
from typing import AsyncIterator, Callable, Optional

import typer

from pebblecode.config.settings import get_settings
from pebblecode.core.logger import enable_console
from pebblecode.runtime.client import BridgeClient
from pebblecode.services.address import resolve_bridge_url
from pebblecode.services.schemas import ConnectionState, PromptData, StatusSnapshot
from pebblecode.state import projector
from pebblecode.state.notices import NoticeTracker


cli = typer.Typer(name="pebblecode", help="PebbleCode bridge companion client")
config_cli = typer.Typer(help="Configuration")

cli.add_typer(config_cli, name="config")

HELP_TEXT = (
    "commands: list | join NAME | create | leave | key N | pick N | say TEXT | "
    "pause | resume | accept | host NAME | state | quit"
)


class ConsoleHost:
    """Text front-end: renders store changes and maps input lines to commands."""

    def __init__(self, client: BridgeClient, echo: Callable[[str], None] = typer.echo) -> None:
        self.client = client
        self.echo = echo
        self.notices = NoticeTracker()
        self._unsubscribers: list[Callable[[], None]] = []

    def attach(self) -> None:
        store = self.client.store
        self._unsubscribers = [
            store.connection.subscribe(self._on_connection),
            store.sessions.subscribe(self._on_sessions),
            store.active_session.subscribe(self._on_active_session),
            store.status.subscribe(self._on_status),
            store.prompt.subscribe(self._on_prompt),
        ]

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def handle(self, line: str) -> bool:
        """Run one input line; returns False when the user asked to quit."""
        verb, _, arg = line.strip().partition(" ")
        arg = arg.strip()
        commands = self.client.commands
        if not verb:
            return True
        if verb in ("quit", "exit"):
            return False
        if verb == "list":
            commands.request_list()
        elif verb == "join" and arg:
            commands.join_session(arg)
        elif verb == "create":
            commands.create_session()
        elif verb == "leave":
            commands.leave_session()
        elif verb == "key" and arg.isdigit():
            commands.send_key(int(arg))
        elif verb == "pick" and arg.isdigit():
            commands.send_key(projector.key_for_option(self.client.store.current.prompt, int(arg) - 1))
        elif verb == "say" and arg:
            commands.send_dictation(arg)
        elif verb == "pause":
            commands.pause()
        elif verb == "resume":
            commands.resume()
        elif verb == "accept":
            commands.accept()
        elif verb == "host" and arg:
            self.client.update_host(arg)
        elif verb == "state":
            self._print_state()
        else:
            self.echo(HELP_TEXT)
        return True

    # ------------------------------------------------------------------ #
    # Renderers
    # ------------------------------------------------------------------ #
    def _on_connection(self, state: ConnectionState) -> None:
        suffix = f" ({self.client.transport.url})" if state is ConnectionState.CONNECTING else ""
        self.echo(f"[bridge] {state.value}{suffix}")

    def _on_sessions(self, sessions: tuple[str, ...]) -> None:
        if sessions:
            self.echo("[menu] " + ", ".join(sessions))

    def _on_active_session(self, name: str) -> None:
        self.notices.reset()
        self.echo(f"[session] {name}" if name else "[session] none")

    def _on_status(self, status: StatusSnapshot) -> None:
        if not self.client.store.current.active_session:
            return
        line = projector.command_line(status)
        self.echo(f"[{projector.activity(status).value}] {projector.pill_text(status)}" + (f" {line}" if line else ""))
        if status.is_question:
            self.echo(f"? {status.question_text}")
            for index, option in enumerate(status.question_options, start=1):
                self.echo(f"  {index}. {option}")
        for notice in self.notices.observe(status):
            self.echo(f"! {notice.title}: {notice.text}")

    def _on_prompt(self, prompt: Optional[PromptData]) -> None:
        if projector.has_actionable_prompt(prompt):
            self.echo(f"[prompt] {projector.prompt_text(prompt)}")

    def _print_state(self) -> None:
        state = self.client.store.current
        self.echo(
            json.dumps(
                {
                    "connection": state.connection.value,
                    "host": self.client.transport.host,
                    "screen": projector.screen(state).value,
                    "active_session": state.active_session,
                    "status": state.status.status,
                    "summary": state.status.summary,
                    "history": len(state.history),
                    "bridge_turns": len(projector.history_turns(state.bridge_history)),
                },
                ensure_ascii=False,
            )
        )


async def _stdin_lines() -> AsyncIterator[str]:
    loop = asyncio.get_running_loop()
    while True:
        line = await loop.run_in_executor(None, sys.stdin.readline)
        if not line:
            return
        yield line


async def run_console(host: Optional[str], lines: Optional[AsyncIterator[str]] = None) -> None:
    """Run a console host on the current loop until ``quit`` or end of input."""
    client = BridgeClient(host=host, loop=asyncio.get_running_loop())
    console = ConsoleHost(client)
    console.attach()
    client.start()
    try:
        async for line in (lines if lines is not None else _stdin_lines()):
            if not console.handle(line):
                break
    finally:
        console.detach()
        await client.aclose()


@cli.command()
def run(
    host: Optional[str] = typer.Option(None, "--host", help="Bridge host (IP, short name or tailnet name)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Mirror logs to stderr"),
) -> None:
    """Connect to the bridge and drive it from the terminal."""
    if verbose:
        enable_console()
    typer.echo(HELP_TEXT)
    asyncio.run(run_console(host))


@cli.command()
def resolve(host: Optional[str] = typer.Argument(None, help="Host to resolve (default: configured host)")) -> None:
    """Print the WebSocket URL used for a bridge host."""
    settings = get_settings()
    target = host or settings.bridge_host
    typer.echo(resolve_bridge_url(target, port=settings.bridge_port, tailnet_suffix=settings.tailnet_suffix))


@config_cli.command("print")
def config_print() -> None:
    typer.echo(json.dumps(get_settings().model_dump(), ensure_ascii=False, default=str))


if __name__ == "__main__":
    cli()
