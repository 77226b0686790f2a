"""
Pytest configuration and fixtures for Bump Bot tests.
"""

from unittest.mock import AsyncMock

import pytest

from bump_bot.config import Settings
from bump_bot.github_client import GitHubClient
from bump_bot.models import DependencyRecord, PullRequestRef, RepositoryBinding
from bump_bot.orchestrator import BumpPrOrchestrator
from bump_bot.store import InMemoryBumpStore

PACKAGE_JSON = '{\n  "name": "app",\n  "dependencies": {\n    "lodash": "^4.17.21"\n  }\n}\n'


@pytest.fixture
def mock_settings() -> Settings:
    """Settings for testing."""
    return Settings(
        github_app_id=123456,
        github_app_private_key_path="test-key.pem",
        npm_registry_url="https://registry.example.test/",
        store_backend="memory",
        log_level="DEBUG",
        debug=True,
    )


@pytest.fixture
def store() -> InMemoryBumpStore:
    """In-memory store with one tracked dependency and a connected repository."""
    store = InMemoryBumpStore()
    store.add_dependency(DependencyRecord(id="dep-1", project_id="proj-1", name="lodash"))
    store.add_repository_binding(
        RepositoryBinding(
            project_id="proj-1",
            repo_full_name="org/repo",
            default_branch="main",
            installation_id="123",
        )
    )
    store.add_installation("org-1", "123")
    return store


@pytest.fixture
def mock_github_client() -> AsyncMock:
    """Mock GitHub client that lets every call succeed."""
    client = AsyncMock(spec=GitHubClient)
    client.create_installation_token.return_value = "ghs_token"
    client.get_branch_sha.return_value = "abc123"
    client.create_branch.return_value = None
    client.list_pull_requests_by_head.return_value = []
    client.get_repository_file_with_sha.return_value = (PACKAGE_JSON, "f1")
    client.create_or_update_file_on_branch.return_value = None
    client.create_pull_request.return_value = PullRequestRef(
        pr_url="https://github.com/org/repo/pull/1", pr_number=1
    )
    client.get_pull_request_state.return_value = "open"
    client.close_pull_request.return_value = None
    return client


@pytest.fixture
def orchestrator(
    mock_settings: Settings, mock_github_client: AsyncMock, store: InMemoryBumpStore
) -> BumpPrOrchestrator:
    """Orchestrator with a fixed retry suffix."""
    return BumpPrOrchestrator(
        mock_settings, mock_github_client, store, suffix_factory=lambda: "k1x2"
    )
