from __future__ import annotations

from pathlib import Path

import pytest

from reel_engine.browser.strategies import DEFAULT_STRATEGIES, aspect_ratio_strategies, resolve_strategies
from reel_engine.config_loader import load_settings, section


def test_default_settings_load() -> None:
    settings = load_settings()

    assert section(settings, "pipeline")["retry_limit"] == 3
    assert section(settings, "download")["max_retries"] == 3
    assert section(section(settings, "generation"), "video")["min_wait_seconds"] == 15


def test_missing_and_invalid_files(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_settings(tmp_path / "nope.yaml")
    bad = tmp_path / "bad.yaml"
    bad.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_settings(bad)


def test_section_tolerates_missing_blocks() -> None:
    assert section(None, "service") == {}
    assert section({"service": None}, "service") == {}


def test_configured_strategies_come_first_without_dropping_defaults() -> None:
    resolved = resolve_strategies("generate_button", {"generate_button": ["#go", 'button[type="submit"]']})

    assert resolved[0] == "#go"
    assert resolved.count('button[type="submit"]') == 1
    assert len(resolved) == len(DEFAULT_STRATEGIES["generate_button"]) + 1


def test_unknown_strategy_role() -> None:
    with pytest.raises(KeyError):
        resolve_strategies("no_such_role")


def test_aspect_ratio_strategies_expand_ratio() -> None:
    assert aspect_ratio_strategies("16:9")[0] == 'button[aria-label="16:9"]'
