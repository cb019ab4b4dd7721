"""Shared pytest fixtures for Buildplan tests."""

from __future__ import annotations

from datetime import date

import pytest

# Saturday; the first business day after it is Monday 2025-02-03
PHASE_START = date(2025, 2, 1)


@pytest.fixture
def phase_start() -> date:
    return PHASE_START
