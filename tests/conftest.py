"""
Shared pytest fixtures for stepline tests.

- Settings cache cleanup for test isolation
- Queue factory bound to explicit settings
- Error recorder usable as an ``on_error`` handler
"""

from pathlib import Path

import pytest

from stepline.core.settings import QueueSettings, get_settings
from stepline.execution import SerialQueue


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)
        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Each test sees settings freshly read from its environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> QueueSettings:
    return QueueSettings(deferral="soon", log_steps=True)


@pytest.fixture
def make_queue(settings):
    """Factory for queues using the test settings."""

    def _make(initial=None, **kwargs) -> SerialQueue:
        kwargs.setdefault("settings", settings)
        return SerialQueue(initial, **kwargs)

    return _make


class ErrorRecorder:
    """Collects every error handed to it."""

    def __init__(self) -> None:
        self.errors: list[BaseException] = []

    def __call__(self, error: BaseException) -> None:
        self.errors.append(error)


@pytest.fixture
def errors() -> ErrorRecorder:
    return ErrorRecorder()
