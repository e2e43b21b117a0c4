"""
Shared fixtures.
"""

from typing import List

import pytest

from edge_engine.analytics.klines import KlineBar
from edge_engine.core.exceptions import ReviewUnavailable

from tests.support import (
    FailingOracle,
    FakeClock,
    FakeExchange,
    StubOracle,
    build_ladder_history,
)


@pytest.fixture
def ladder_history() -> List[KlineBar]:
    return build_ladder_history()


@pytest.fixture
def approving_oracle() -> StubOracle:
    return StubOracle()


@pytest.fixture
def unavailable_oracle() -> FailingOracle:
    return FailingOracle(ReviewUnavailable("upstream 503"))


@pytest.fixture
def fake_exchange() -> FakeExchange:
    return FakeExchange()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
