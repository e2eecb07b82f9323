"""Configuration — Pydantic models for tabterm settings."""

from __future__ import annotations

import json
import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class PTYConfig(BaseModel):
    """PTY session configuration.

    ``shell`` overrides ``$SHELL``; when both are unset the platform
    default is used (see ``tabterm.pty.shell``).
    """

    shell: str | None = Field(default=None, description="Shell program override")
    shell_args: list[str] | None = Field(
        default=None,
        description="Arguments for the shell. Defaults to the login flag on POSIX.",
    )
    rows: int = Field(default=24, ge=1, le=65535)
    cols: int = Field(default=80, ge=1, le=65535)
    read_chunk_size: int = Field(default=4096, ge=1)
    lock_timeout: float = Field(
        default=5.0, gt=0, description="Seconds to wait for the registry lock"
    )
    kill_grace_seconds: float = Field(
        default=2.0,
        ge=0,
        description="How long kill waits after SIGHUP before sending SIGKILL",
    )
    prune_exited: bool = Field(
        default=True,
        description="Drop sessions from the registry once their output ends",
    )


class DiagnosticsConfig(BaseModel):
    """Crash and lifecycle log locations."""

    lifecycle_log: str = Field(default="/tmp/tabbed-terminal-lifecycle.log")
    crash_log: str = Field(default="/tmp/tabbed-terminal-panic.log")


class TabtermConfig(BaseModel):
    """Top-level tabterm configuration."""

    pty: PTYConfig = Field(default_factory=PTYConfig)
    diagnostics: DiagnosticsConfig = Field(default_factory=DiagnosticsConfig)

    @classmethod
    def load(cls, config_path: str | None = None) -> TabtermConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            TABTERM_SHELL          - Shell program to spawn
            TABTERM_ROWS           - Initial terminal rows
            TABTERM_COLS           - Initial terminal columns
            TABTERM_LIFECYCLE_LOG  - Lifecycle log path
            TABTERM_CRASH_LOG      - Crash log path
        """
        # Load .env file if present.
        load_dotenv(override=True)

        config_data: dict[str, Any] = {}

        # Try loading from file
        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        # Override with env vars
        pty_data = config_data.get("pty", {})

        env_shell = os.environ.get("TABTERM_SHELL")
        if env_shell:
            pty_data["shell"] = env_shell

        env_rows = os.environ.get("TABTERM_ROWS")
        if env_rows:
            pty_data["rows"] = int(env_rows)

        env_cols = os.environ.get("TABTERM_COLS")
        if env_cols:
            pty_data["cols"] = int(env_cols)

        if pty_data:
            config_data["pty"] = pty_data

        diagnostics = config_data.get("diagnostics", {})

        env_lifecycle_log = os.environ.get("TABTERM_LIFECYCLE_LOG")
        if env_lifecycle_log:
            diagnostics["lifecycle_log"] = env_lifecycle_log

        env_crash_log = os.environ.get("TABTERM_CRASH_LOG")
        if env_crash_log:
            diagnostics["crash_log"] = env_crash_log

        if diagnostics:
            config_data["diagnostics"] = diagnostics

        return cls.model_validate(config_data)
