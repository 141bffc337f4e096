"""
Utility helpers for filesystem paths and interactive CLI prompts.

Centralizes logic for resolving project-relative paths so the CLI and
its log files agree on where things live.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parent


def prompt_user_choice(
    message: str,
    options: Dict[str, str],
    default: str,
    *,
    input_func: Optional[Callable[[str], str]] = None
) -> str:
    """
    Display an interactive prompt and return the selected option key.

    Args:
        message: Prompt message shown to the user.
        options: Mapping of option keys to human-readable descriptions.
        default: Option key to return when no interactive input is available.
        input_func: Optional callable to replace `input` (useful for testing).

    Returns:
        Selected option key from the provided mapping.
    """
    if not options:
        raise ValueError("prompt_user_choice requires at least one option.")

    if default not in options:
        raise ValueError(f"Default option '{default}' not present in options: {list(options)}")

    if input_func is None:
        if not sys.stdin or not sys.stdin.isatty():
            logger.debug("Non-interactive environment detected; using default option '%s'.", default)
            return default
        input_func = input  # type: ignore[assignment]

    prompt_suffix = " / ".join(f"{key}={desc}" for key, desc in options.items())
    while True:
        user_input = input_func(f"{message} ({prompt_suffix}) [{default}]: ").strip().lower()
        if not user_input:
            return default
        if user_input in options:
            return user_input
        logger.warning("Invalid choice '%s'. Valid options: %s", user_input, list(options))


def confirm(message: str, *, input_func: Optional[Callable[[str], str]] = None) -> bool:
    """Yes/no prompt that answers "no" when stdin is not interactive."""
    return prompt_user_choice(message, {"y": "yes", "n": "no"}, "n", input_func=input_func) == "y"


def get_project_root() -> Path:
    """Return the repository root directory."""
    return _PROJECT_ROOT


def _coerce_path(path_value: str | Path) -> Path:
    """Convert a string/Path into an absolute project-root based Path."""
    path = Path(path_value)
    if path.is_absolute():
        return path
    return get_project_root() / path


def resolve_log_path(log_path: str | Path) -> Path:
    """
    Convert a log file path to an absolute path under the project root when needed.

    Args:
        log_path: Configured log file path (relative or absolute).

    Returns:
        Absolute Path for logging output.
    """
    resolved = _coerce_path(log_path)
    if resolved.parent != resolved:
        resolved.parent.mkdir(parents=True, exist_ok=True)
    return resolved
