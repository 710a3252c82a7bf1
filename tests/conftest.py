"""Shared pytest fixtures."""

from __future__ import annotations

import pytest


@pytest.fixture()
def sleeps() -> list[float]:
    """Delays requested through :func:`fake_sleep`, in call order."""
    return []


@pytest.fixture()
def fake_sleep(sleeps: list[float]):
    """Drop-in for ``asyncio.sleep`` that records the delay and returns at once."""

    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    return _sleep
