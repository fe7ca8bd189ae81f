"""
Pytest configuration and shared fixtures for SAM evidence tests.

Test Categories:
- unit: Fast tests with no external dependencies (< 100ms each)
- integration: Tests that exercise the SQLite store end to end

Run categories:
- pytest -m unit              # Fast unit tests only
- pytest -m "not integration" # Skip store-backed tests
- pytest                      # All tests
"""
import json
from datetime import datetime, timezone

import pytest

from tests.reset_singletons import reset_all_singletons


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: Tests backed by a real SQLite store")


@pytest.fixture(autouse=True)
def reset_singletons_after_test():
    """Keep module-level singletons from leaking between tests."""
    yield
    reset_all_singletons()


@pytest.fixture(scope="function")
def mock_settings(tmp_path, monkeypatch):
    """
    Mock settings for testing.

    Uses temporary paths to avoid affecting real data.
    """
    from config.settings import Settings

    mock = Settings(
        SAM_DATA_PATH=tmp_path / "data",
        SAM_IDENTITY_DIRECTORY=tmp_path / "identities.json",
        SAM_MY_IDENTITY_ID="",
    )

    # Patch every module that imported the global settings
    monkeypatch.setattr("config.settings.settings", mock)
    monkeypatch.setattr("sam.utils.db_paths.settings", mock)
    monkeypatch.setattr("sam.services.identity_directory.settings", mock)
    monkeypatch.setattr("sam.services.evidence_repository.settings", mock)
    return mock


@pytest.fixture
def identities():
    """A small directory: me, Alice (email + phone) and Bob (two emails)."""
    return {
        "me": "me-1",
        "identities": [
            {
                "id": "me-1",
                "display_name": "Sam Owner",
                "primary_email": "me@example.com",
                "email_aliases": ["owner@work.example"],
                "phone_aliases": [],
            },
            {
                "id": "alice-1",
                "display_name": "Alice Smith",
                "primary_email": "alice@example.com",
                "email_aliases": [],
                "phone_aliases": ["+1 (415) 555-0100"],
            },
            {
                "id": "bob-1",
                "display_name": "Bob Jones",
                "primary_email": "bob@example.com",
                "email_aliases": ["Bob.Jones@Work.example"],
                "phone_aliases": [],
            },
        ],
    }


@pytest.fixture
def write_directory(tmp_path):
    """Write a directory JSON export and return its path."""
    path = tmp_path / "identities.json"

    def _write(data) -> str:
        path.write_text(json.dumps(data))
        return str(path)

    return _write


@pytest.fixture
def directory(write_directory, identities):
    from sam.services.identity_directory import IdentityDirectory
    return IdentityDirectory(write_directory(identities))


@pytest.fixture
def temp_store(tmp_path):
    """Create a temporary store for testing."""
    from sam.services.evidence_store import EvidenceStore
    return EvidenceStore(str(tmp_path / "evidence.db"))


@pytest.fixture
def repository(temp_store, directory):
    """A repository configured with a temp store and the sample directory."""
    from sam.services.evidence_repository import EvidenceRepository

    repo = EvidenceRepository()
    repo.configure(temp_store, directory)
    return repo


@pytest.fixture
def base_time():
    return datetime(2024, 6, 15, 10, 0, tzinfo=timezone.utc)
