"""Shared test fixtures.

Provides:
- ``set_test_config``: autouse fixture that pins settings for tests
- ``store`` / ``service``: in-memory job store and the service over it
- ``client``: TestClient against an app wired to the in-memory store
- ``todo_files`` / ``make_request``: canonical inputs
"""

from itertools import count

import pytest
from fastapi.testclient import TestClient

from buildpipe.core.config import settings
from buildpipe.domain.job_service import JobService
from buildpipe.domain.job_store import InMemoryJobStore
from buildpipe.domain.models import BuildRequest, SourceFile
from buildpipe.main import create_app

PROJECT_ID = "proj-todo"

APP_SWIFT = """import SwiftUI

@main
struct TodoApp: App {
    var body: some Scene {
        WindowGroup { Text("Todo") }
    }
}
"""

MISSING_TYPE_ERROR = "Foo.swift:12:5: error: cannot find type 'Bar' in scope"


# ---------------------------------------------------------------------------
# Environment patching
# ---------------------------------------------------------------------------

_SETTINGS_PATCHES: dict = {
    "auto_fix_webhook_url": "",
    "auto_fix_max_attempts": 5,
    "max_log_lines": 1500,
    "default_project_name": "BuildpipeApp",
    "default_bundle_id": "com.buildpipe.app",
    "runner_id": "runner-test",
    "xcodebuild_path": "",
    "build_timeout_seconds": 1800,
}


@pytest.fixture(autouse=True)
def set_test_config(monkeypatch):
    """Every test gets the same non-production configuration."""
    for name, value in _SETTINGS_PATCHES.items():
        monkeypatch.setattr(settings, name, value)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def sequential_ids():
    """Deterministic 24-hex-digit object ids for descriptor tests."""
    counter = count(1)
    return lambda: f"{next(counter):024X}"


def make_request(**overrides) -> BuildRequest:
    data = {
        "project_id": PROJECT_ID,
        "files": [SourceFile(path="App.swift", content=APP_SWIFT)],
        "project_name": "Todo",
        "bundle_id": "com.example.todo",
    }
    data.update(overrides)
    return BuildRequest(**data)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def todo_files():
    return [SourceFile(path="App.swift", content=APP_SWIFT)]


@pytest.fixture
def store():
    return InMemoryJobStore()


@pytest.fixture
def service(store):
    return JobService(store)


@pytest.fixture
def client(store):
    return TestClient(create_app(store))
