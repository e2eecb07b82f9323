"""Shell resolution — which interactive shell to run and with what environment."""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field

DEFAULT_SHELL = "/bin/zsh"
WINDOWS_SHELL = "powershell.exe"
LOGIN_ARGS = ("-l",)

TERM = "xterm-256color"
LOCALE = "en_US.UTF-8"
PASSTHROUGH_VARS = ("HOME", "PATH", "USER")


@dataclass(frozen=True)
class ShellCommand:
    """A resolved shell invocation."""

    program: str
    args: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict)
    cwd: str | None = None

    @property
    def argv(self) -> list[str]:
        return [self.program, *self.args]


def _is_windows(platform: str | None) -> bool:
    return (platform or sys.platform).startswith("win")


def resolve_shell(
    override: str | None = None,
    env: Mapping[str, str] | None = None,
    platform: str | None = None,
) -> tuple[str, tuple[str, ...]]:
    """Pick the shell program and its arguments.

    On POSIX hosts the shell is ``override``, then ``$SHELL``, then
    ``/bin/zsh``; it is started as a login shell so profile-configured
    PATH is picked up. Windows always gets PowerShell with no arguments.
    """
    if _is_windows(platform):
        return WINDOWS_SHELL, ()

    env = os.environ if env is None else env
    program = override or env.get("SHELL") or DEFAULT_SHELL
    return program, LOGIN_ARGS


def build_environment(parent_env: Mapping[str, str] | None = None) -> dict[str, str]:
    """Environment for the child shell.

    Inherits ``parent_env`` and forces the terminal type, a UTF-8 locale,
    and disables macOS zsh session restore (it makes the shell exit early).
    """
    parent_env = os.environ if parent_env is None else parent_env
    env = dict(parent_env)
    env["TERM"] = TERM
    env["SHELL_SESSIONS_DISABLE"] = "1"
    env["LANG"] = LOCALE
    env["LC_ALL"] = LOCALE
    for name in PASSTHROUGH_VARS:
        value = parent_env.get(name)
        if value:
            env[name] = value
        else:
            env.pop(name, None)
    return env


def working_directory(parent_env: Mapping[str, str] | None = None) -> str | None:
    """HOME if it is set, else ``None`` (inherit the caller's cwd)."""
    parent_env = os.environ if parent_env is None else parent_env
    return parent_env.get("HOME") or None


def build_shell_command(
    override: str | None = None,
    args: list[str] | None = None,
    parent_env: Mapping[str, str] | None = None,
    platform: str | None = None,
) -> ShellCommand:
    """Resolve program, args, environment and cwd in one go.

    Explicit ``args`` replace the default login flag.
    """
    parent_env = os.environ if parent_env is None else parent_env
    program, default_args = resolve_shell(override, parent_env, platform)
    return ShellCommand(
        program=program,
        args=tuple(args) if args is not None else default_args,
        env=build_environment(parent_env),
        cwd=working_directory(parent_env),
    )
