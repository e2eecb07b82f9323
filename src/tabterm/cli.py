"""CLI entry point for tabterm."""

from __future__ import annotations

import logging
import os
import shutil
import signal
import sys
import termios
import threading
import tty

import typer
from rich.console import Console
from rich.markup import escape
from rich.tree import Tree

from tabterm.config import TabtermConfig
from tabterm.diagnostics import append_lifecycle_log, install_crash_hook
from tabterm.fs.tree import FileTreeNode, list_file_tree
from tabterm.pty.errors import PTYError
from tabterm.pty.manager import PTYManager
from tabterm.session.wire import EventType, Wire

app = typer.Typer(
    name="tabterm",
    help="Interactive shells on pseudo-terminals.",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _forward_stdin(manager: PTYManager, session_id: str) -> None:
    """Copy local keystrokes into the session until stdin or the session ends."""
    while True:
        try:
            data = os.read(sys.stdin.fileno(), 1024)
        except OSError:
            return
        if not data:
            return
        try:
            manager.write(session_id, data)
        except PTYError as e:
            logger.debug("Stopped forwarding input to %s: %s", session_id, e)
            return


def _sync_size(manager: PTYManager, session_id: str) -> None:
    size = shutil.get_terminal_size()
    try:
        manager.resize(session_id, size.lines, size.columns)
    except PTYError as e:
        logger.debug("Resize of %s failed: %s", session_id, e)


@app.command()
def shell(
    session_id: str = typer.Option("main", "--id", help="Session id."),
    shell_path: str | None = typer.Option(
        None, "--shell", "-s", help="Shell to run (default: $SHELL)."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Attach this terminal to a shell running on a fresh PTY."""
    setup_logging(verbose)
    config = TabtermConfig.load(config_file)
    if shell_path:
        config.pty.shell = shell_path

    install_crash_hook(config.diagnostics.crash_log)
    append_lifecycle_log("shell started", config.diagnostics.lifecycle_log)

    if not sys.stdin.isatty():
        typer.echo("Error: stdin is not a terminal", err=True)
        raise typer.Exit(1)

    size = shutil.get_terminal_size()
    config.pty.rows, config.pty.cols = size.lines, size.columns

    wire = Wire()
    events = wire.subscribe()
    manager = PTYManager(config.pty)

    try:
        manager.spawn(session_id, wire)
    except PTYError as e:
        typer.echo(f"Error: {e}", err=True)
        append_lifecycle_log(f"spawn failed: {e}", config.diagnostics.lifecycle_log)
        raise typer.Exit(1)

    stdin_fd = sys.stdin.fileno()
    saved_attrs = termios.tcgetattr(stdin_fd)
    previous_winch = signal.signal(
        signal.SIGWINCH, lambda signum, frame: _sync_size(manager, session_id)
    )
    tty.setraw(stdin_fd)

    threading.Thread(
        target=_forward_stdin,
        args=(manager, session_id),
        name="stdin-forwarder",
        daemon=True,
    ).start()

    out = sys.stdout
    try:
        while True:
            event = events.get()
            if event is None:
                break
            if event.data.get("session_id") != session_id:
                continue
            if event.type == EventType.PTY_OUTPUT:
                out.write(event.data["text"])
                out.flush()
            elif event.type == EventType.PTY_EXIT:
                break
    finally:
        termios.tcsetattr(stdin_fd, termios.TCSADRAIN, saved_attrs)
        signal.signal(signal.SIGWINCH, previous_winch)
        manager.cleanup()
        wire.close()
        append_lifecycle_log("shell exited", config.diagnostics.lifecycle_log)


def _add_children(branch: Tree, node: FileTreeNode) -> None:
    for child in node.children or []:
        if child.is_dir:
            sub = branch.add(f"[bold blue]{escape(child.name)}/[/]")
            _add_children(sub, child)
        else:
            branch.add(escape(child.name))


@app.command()
def tree(
    path: str | None = typer.Argument(None, help="Root directory (default: $HOME)."),
    depth: int = typer.Option(3, "--depth", "-d", help="Max depth (1-6)."),
    hidden: bool = typer.Option(False, "--hidden", "-a", help="Include dotfiles."),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead."),
) -> None:
    """List a directory tree, directories first."""
    try:
        response = list_file_tree(path, depth, hidden)
    except OSError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if as_json:
        typer.echo(response.model_dump_json(by_alias=True, indent=2))
        return

    root = response.root
    view = Tree(f"[bold blue]{escape(root.path)}[/]")
    _add_children(view, root)
    Console().print(view)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
