# pylint: disable=missing-module-docstring,missing-function-docstring

from __future__ import annotations

import json
from typing import Any

import pytest

from observability import logger


@pytest.fixture
def logs(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    """Capture every log event as a decoded dict."""
    captured: list[dict[str, Any]] = []

    def fake_print(line: str) -> None:
        captured.append(json.loads(line))

    monkeypatch.setattr(logger, "_print", fake_print)
    return captured


@pytest.fixture(autouse=True)
def _quiet_logger(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep test output clean; tests that inspect logs use `logs`."""
    monkeypatch.setattr(logger, "_print", lambda line: None)
    monkeypatch.setattr(logger, "_threshold", 10)
    monkeypatch.setattr(logger, "_json_lines", True)
