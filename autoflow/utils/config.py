"""Configuration utilities for loading environment variables."""

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv


def load_env(env_file: Optional[str] = None) -> None:
    """Load environment variables from .env file.

    It will search for .env in the current directory and parent directories
    if no path is specified.

    Args:
        env_file: Optional path to .env file.

    Example:
        >>> from autoflow.utils.config import load_env
        >>> load_env()  # Loads from .env
        >>> settings = Settings.from_env()
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()


def get_config(key: str, default: Optional[str] = None) -> Optional[str]:
    """Get configuration value from environment.

    Args:
        key: Configuration key
        default: Default value if not found

    Returns:
        Configuration value or default
    """
    return os.getenv(key, default)


def _get_float(key: str, default: float) -> float:
    value = get_config(key)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{key} must be a number, got: {value!r}")


def _get_int(key: str, default: int) -> int:
    value = get_config(key)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got: {value!r}")


def _default_browser_commands() -> Dict[str, str]:
    return {
        "navigate": "browser-nav.js",
        "screenshot": "browser-screenshot.js",
        "eval": "browser-eval.js",
        "click": "browser-pick.js",
        "wait": "browser-wait.js",
    }


@dataclass
class Settings:
    """Runtime settings for the engine, executors and event bus.

    Every field can be overridden with an ``AUTOFLOW_*`` environment variable
    (see ``from_env``).

    Attributes:
        base_url: Base URL of the orchestration HTTP API (spawn endpoint)
        projects_root: Directory holding one checkout per project
        llm_command: LLM CLI executable
        llm_timeout: Fixed timeout for LLM calls, seconds
        task_command: Task-creation CLI executable
        message_command: Messaging CLI executable
        message_sender: Sender name used for outgoing messages
        shell: Shell used by run-command nodes
        command_timeout: Default run-command timeout, seconds
        cli_timeout: Timeout for the task/messaging/browser CLIs, seconds
        browser_commands: Browser sub-action to executable
        screenshot_dir: Where browser screenshots are written
        event_buffer_size: Capacity of the event ring buffer
        event_cooldown_seconds: Minimum time between event dispatches per workflow
        cron_poll_interval: Seconds between cron scheduler ticks
        database_path: SQLite file for SQLiteStore
    """

    base_url: str = "http://127.0.0.1:3333"
    projects_root: Path = field(default_factory=lambda: Path.home() / "code")
    llm_command: str = "claude"
    llm_timeout: float = 120.0
    task_command: str = "jt"
    message_command: str = "am-send"
    message_sender: str = "workflow"
    shell: str = "bash"
    command_timeout: float = 60.0
    cli_timeout: float = 30.0
    browser_commands: Dict[str, str] = field(default_factory=_default_browser_commands)
    screenshot_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))
    event_buffer_size: int = 200
    event_cooldown_seconds: float = 10.0
    cron_poll_interval: float = 30.0
    database_path: str = "autoflow.db"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the environment, falling back to defaults."""
        defaults = cls()
        return cls(
            base_url=get_config("AUTOFLOW_BASE_URL", defaults.base_url),
            projects_root=Path(
                get_config("AUTOFLOW_PROJECTS_ROOT", str(defaults.projects_root))
            ).expanduser(),
            llm_command=get_config("AUTOFLOW_LLM_COMMAND", defaults.llm_command),
            llm_timeout=_get_float("AUTOFLOW_LLM_TIMEOUT", defaults.llm_timeout),
            task_command=get_config("AUTOFLOW_TASK_COMMAND", defaults.task_command),
            message_command=get_config("AUTOFLOW_MESSAGE_COMMAND", defaults.message_command),
            message_sender=get_config("AUTOFLOW_MESSAGE_SENDER", defaults.message_sender),
            shell=get_config("AUTOFLOW_SHELL", defaults.shell),
            command_timeout=_get_float("AUTOFLOW_COMMAND_TIMEOUT", defaults.command_timeout),
            cli_timeout=_get_float("AUTOFLOW_CLI_TIMEOUT", defaults.cli_timeout),
            screenshot_dir=Path(
                get_config("AUTOFLOW_SCREENSHOT_DIR", str(defaults.screenshot_dir))
            ),
            event_buffer_size=_get_int("AUTOFLOW_EVENT_BUFFER_SIZE", defaults.event_buffer_size),
            event_cooldown_seconds=_get_float(
                "AUTOFLOW_EVENT_COOLDOWN", defaults.event_cooldown_seconds
            ),
            cron_poll_interval=_get_float(
                "AUTOFLOW_CRON_POLL_INTERVAL", defaults.cron_poll_interval
            ),
            database_path=get_config("AUTOFLOW_DATABASE_PATH", defaults.database_path),
        )

    def project_dir(self, project: Optional[str]) -> Optional[Path]:
        """Directory of a named project, or None when no project is given."""
        if not project:
            return None
        return self.projects_root / project
