"""
Pytest configuration and fixtures for order-archiver tests

This module provides shared fixtures for unit, integration, and E2E tests.
"""
import json
import logging
from pathlib import Path
from typing import Any, Sequence

import pytest

from order_archiver.core.filesystem import LocalFileSystem
from order_archiver.core.lock import LockGuard
from order_archiver.core.models import StoreDocument
from order_archiver.observability.logger import APP_LOGGER_NAME
from order_archiver.observability.metrics import REGISTRY
from order_archiver.transfer.coordinator import TransferCoordinator
from order_archiver.transfer.readers import InMemoryOrderStore


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't touch more than one component"
    )
    config.addinivalue_line(
        "markers", "integration: Tests that drive the coordinator against real files"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests through the command-line interface"
    )


# =======================
# TEST DOUBLES
# =======================

class SimulatedCrash(BaseException):
    """Stands in for the process dying mid-operation."""


class RecordingStore(InMemoryOrderStore):
    """
    In-memory store that records every call and can be told to fail.

    Attributes:
        fetch_calls: Number of fetch_all calls
        delete_calls: Reference lists passed to each delete_batch call
        fetch_error: Raised by fetch_all when set
        delete_error: Raised by delete_batch when set
    """

    def __init__(self, documents=(), **kwargs):
        super().__init__(documents, **kwargs)
        self.fetch_calls = 0
        self.delete_calls: list[list[Any]] = []
        self.fetched: list[StoreDocument] = []
        self.fetch_error: BaseException | None = None
        self.delete_error: BaseException | None = None

    def fetch_all(self) -> list[StoreDocument]:
        self.fetch_calls += 1
        if self.fetch_error is not None:
            raise self.fetch_error
        self.fetched = super().fetch_all()
        return self.fetched

    def delete_batch(self, documents: Sequence[StoreDocument]) -> None:
        self.delete_calls.append([document.reference for document in documents])
        if self.delete_error is not None:
            raise self.delete_error
        super().delete_batch(documents)


class FaultyFileSystem(LocalFileSystem):
    """
    Local filesystem that raises a configured exception for one operation.

    Usage:
        fs = FaultyFileSystem(replace=OSError(28, "No space left on device"))
    """

    def __init__(self, **failures: BaseException):
        self.failures = failures
        self.calls: list[tuple[str, Path]] = []

    def _maybe_fail(self, operation: str, path: Path) -> None:
        self.calls.append((operation, Path(path)))
        if operation in self.failures:
            raise self.failures[operation]

    def create_exclusive(self, path: Path, data: bytes) -> None:
        self._maybe_fail("create_exclusive", path)
        super().create_exclusive(path, data)

    def replace(self, source: Path, target: Path) -> None:
        self._maybe_fail("replace", target)
        super().replace(source, target)

    def remove(self, path: Path) -> None:
        self._maybe_fail("remove", path)
        super().remove(path)


# =======================
# DATA FIXTURES
# =======================

@pytest.fixture
def order_documents() -> list[dict[str, Any]]:
    """Two orders as stored remotely: one with a product, one without."""
    return [
        {
            "uid": "u1",
            "date": "2024-01-01T00:00:00Z",
            "products": [json.dumps({"id": "p1", "amount": 3})],
        },
        {
            "uid": "u2",
            "date": "2024-01-02T00:00:00Z",
            "products": [],
        },
    ]


@pytest.fixture
def recording_store(order_documents) -> RecordingStore:
    return RecordingStore(order_documents)


# =======================
# FILE FIXTURES
# =======================

@pytest.fixture
def archive_path(tmp_path) -> Path:
    """Target archive inside a scratch directory (not created)."""
    archive_dir = tmp_path / "archive"
    archive_dir.mkdir()
    return archive_dir / "orders.xml"


@pytest.fixture
def lock_path(tmp_path) -> Path:
    """Lock marker location standing in for the program directory."""
    program_dir = tmp_path / "bin"
    program_dir.mkdir()
    return program_dir / ".pid"


@pytest.fixture
def make_coordinator(archive_path, lock_path):
    """Factory for coordinators wired to the scratch archive and lock paths."""

    def _make(store, fs=None, **kwargs) -> TransferCoordinator:
        fs = fs or LocalFileSystem()
        return TransferCoordinator(
            store=store,
            archive_path=kwargs.pop("archive_path", archive_path),
            lock_guard=LockGuard(lock_path, fs=fs),
            fs=fs,
            **kwargs,
        )

    return _make


# =======================
# METRICS FIXTURES
# =======================

@pytest.fixture
def metric_value():
    """Read a sample from the application registry (0.0 when never set)."""

    def _value(name: str, **labels) -> float:
        return REGISTRY.get_sample_value(name, labels) or 0.0

    return _value


# =======================
# LOGGING FIXTURES
# =======================

@pytest.fixture(autouse=True)
def restore_app_logger():
    """Undo handler and level changes made by setup_logger during a test."""
    logger = logging.getLogger(APP_LOGGER_NAME)
    handlers, level = list(logger.handlers), logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
