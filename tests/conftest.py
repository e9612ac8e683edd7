"""Test fixtures and configuration for storyctx tests.

Test Structure:
    tests/
    ├── conftest.py          # Shared fixtures
    ├── fakes.py             # Clock, generation and sink doubles
    ├── unit/                # Unit tests (no external deps, use mocks)
    └── integration/         # Engine end-to-end tests (in process)

Running tests:
    pytest tests/unit -v                        # Unit tests only
    pytest tests/integration -v -m integration  # Integration tests
"""

import pytest
from fakes import FakeClock, FakeGenerator

from storyctx.complexity import TaskComplexityClassifier
from storyctx.context import LayerStore, SelectionCriteria


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def classifier() -> TaskComplexityClassifier:
    return TaskComplexityClassifier()


@pytest.fixture
def store(clock: FakeClock) -> LayerStore:
    """Layer store with a high compaction threshold and a fake clock."""
    return LayerStore(compression_threshold=20000, clock=clock)


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator(content="short")


@pytest.fixture
def criteria() -> SelectionCriteria:
    return SelectionCriteria(task_type="npc_dialogue", max_tokens=100, character_ids=("mira",))
