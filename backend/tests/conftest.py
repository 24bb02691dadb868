"""Shared test fixtures."""

from __future__ import annotations

import pytest

from haut_stub import FakeHaut


@pytest.fixture
def fake_haut() -> FakeHaut:
    return FakeHaut()
