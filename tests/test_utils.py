"""
Tests for utility helpers used for path resolution and interactive prompts.
"""

from pathlib import Path

import pytest

from utils import confirm, get_project_root, prompt_user_choice, resolve_log_path


def answers(*values):
    """Build an input function returning the given answers in order."""
    iterator = iter(values)
    return lambda prompt: next(iterator)


def test_prompt_returns_valid_choice():
    """prompt_user_choice should return the typed option key."""
    choice = prompt_user_choice("Method?", {"a": "avalanche", "s": "snowball"}, "a", input_func=answers("S"))
    assert choice == "s"


def test_prompt_reprompts_on_invalid_choice(caplog):
    """Invalid input should be logged and asked again."""
    choice = prompt_user_choice("Method?", {"a": "avalanche", "s": "snowball"}, "a", input_func=answers("x", "a"))
    assert choice == "a"
    assert "Invalid choice" in caplog.text


def test_prompt_blank_uses_default():
    """An empty answer should select the default."""
    assert prompt_user_choice("Method?", {"a": "avalanche", "s": "snowball"}, "s", input_func=answers("")) == "s"


def test_prompt_rejects_bad_options():
    """Empty options or an unknown default are programming errors."""
    with pytest.raises(ValueError):
        prompt_user_choice("Pick", {}, "a")
    with pytest.raises(ValueError):
        prompt_user_choice("Pick", {"a": "apple"}, "b")


def test_prompt_non_interactive_uses_default(monkeypatch):
    """Without a TTY the default is returned without prompting."""
    monkeypatch.setattr("sys.stdin", None)
    assert prompt_user_choice("Pick", {"a": "apple", "b": "banana"}, "b") == "b"


def test_confirm():
    """confirm should only accept an explicit yes."""
    assert confirm("Apply?", input_func=answers("y"))
    assert not confirm("Apply?", input_func=answers(""))


def test_confirm_non_interactive_is_no(monkeypatch):
    """Destructive prompts default to no when nobody can answer."""
    monkeypatch.setattr("sys.stdin", None)
    assert not confirm("Apply?")


def test_resolve_log_path_relative(monkeypatch, tmp_path):
    """Relative log paths should resolve under the project root."""
    monkeypatch.setattr("utils._PROJECT_ROOT", tmp_path)
    resolved = resolve_log_path(Path("logs") / "budget.log")
    assert resolved == get_project_root() / "logs" / "budget.log"
    assert resolved == tmp_path / "logs" / "budget.log"
    assert resolved.parent.exists()


def test_resolve_log_path_absolute_creates_parent(tmp_path):
    """Absolute log paths are kept and their directory created."""
    target = tmp_path / "nested" / "app.log"
    assert resolve_log_path(target) == target
    assert target.parent.is_dir()
