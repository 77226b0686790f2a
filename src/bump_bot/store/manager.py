"""
Store abstraction for Bump Bot.

One method per query shape the orchestrator needs. Bump PR rows are unique on
(project_id, dependency_id, type, target_version) and are always written with
an upsert on that key.
"""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from ..exceptions import ConfigurationError
from ..models import BUMP_PR_TYPE, BumpPullRequest, DependencyRecord, RepositoryBinding

if TYPE_CHECKING:
    from ..config import DatabaseConfig

logger = logging.getLogger(__name__)


class BumpStore(ABC):
    """Abstract base class for bump PR persistence."""

    @abstractmethod
    async def find_dependency(
        self, project_id: str, name: str
    ) -> DependencyRecord | None:
        """
        Find a tracked dependency by project and package name.

        Args:
            project_id: Project ID
            name: Package name

        Returns:
            Dependency record or None if not tracked
        """
        pass

    @abstractmethod
    async def find_bump_pr(
        self, project_id: str, dependency_id: str, target_version: str
    ) -> BumpPullRequest | None:
        """
        Find the bump PR recorded for a target version.

        Args:
            project_id: Project ID
            dependency_id: Dependency ID
            target_version: Version the PR bumps to

        Returns:
            Bump PR row or None
        """
        pass

    @abstractmethod
    async def list_superseded_bump_prs(
        self, project_id: str, dependency_id: str, target_version: str
    ) -> list[BumpPullRequest]:
        """List bump PRs for the dependency that target any *other* version."""
        pass

    @abstractmethod
    async def upsert_bump_pr(self, record: BumpPullRequest) -> BumpPullRequest:
        """
        Insert or replace a bump PR row keyed on its uniqueness key.

        Args:
            record: Row to write

        Returns:
            The stored row
        """
        pass

    @abstractmethod
    async def find_repository_binding(
        self, project_id: str
    ) -> RepositoryBinding | None:
        """
        Find the repository a project is connected to.

        Args:
            project_id: Project ID

        Returns:
            Repository binding or None
        """
        pass

    @abstractmethod
    async def find_installation_id(self, organization_id: str) -> str | None:
        """Find the GitHub App installation of an organization."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the store backend is healthy.

        Returns:
            True if healthy, False otherwise
        """
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None


class InMemoryBumpStore(BumpStore):
    """In-memory store for local runs and tests."""

    def __init__(self) -> None:
        """Initialize in-memory store."""
        self.dependencies: dict[tuple[str, str], DependencyRecord] = {}
        self.bump_prs: dict[tuple[str, str, str, str], BumpPullRequest] = {}
        self.repository_bindings: dict[str, RepositoryBinding] = {}
        self.installations: dict[str, str] = {}

    def add_dependency(self, record: DependencyRecord) -> None:
        self.dependencies[(record.project_id, record.name)] = record

    def add_repository_binding(self, binding: RepositoryBinding) -> None:
        self.repository_bindings[binding.project_id] = binding

    def add_installation(self, organization_id: str, installation_id: str) -> None:
        self.installations[organization_id] = installation_id

    async def find_dependency(
        self, project_id: str, name: str
    ) -> DependencyRecord | None:
        return self.dependencies.get((project_id, name))

    async def find_bump_pr(
        self, project_id: str, dependency_id: str, target_version: str
    ) -> BumpPullRequest | None:
        return self.bump_prs.get(
            (project_id, dependency_id, BUMP_PR_TYPE, target_version)
        )

    async def list_superseded_bump_prs(
        self, project_id: str, dependency_id: str, target_version: str
    ) -> list[BumpPullRequest]:
        return [
            record
            for (proj, dep, pr_type, version), record in self.bump_prs.items()
            if proj == project_id
            and dep == dependency_id
            and pr_type == BUMP_PR_TYPE
            and version != target_version
        ]

    async def upsert_bump_pr(self, record: BumpPullRequest) -> BumpPullRequest:
        stored = record.model_copy()
        self.bump_prs[stored.key] = stored
        logger.debug(f"Upserted bump PR {stored.pr_url} for key {stored.key}")
        return stored

    async def find_repository_binding(
        self, project_id: str
    ) -> RepositoryBinding | None:
        return self.repository_bindings.get(project_id)

    async def find_installation_id(self, organization_id: str) -> str | None:
        return self.installations.get(organization_id)

    async def health_check(self) -> bool:
        """In-memory store is always healthy."""
        return True


class BumpStoreFactory:
    """Factory for creating the configured store backend."""

    @staticmethod
    def create_store(config: "DatabaseConfig") -> BumpStore:
        """
        Create store instance based on the configured backend.

        Args:
            config: Database configuration

        Returns:
            BumpStore instance

        Raises:
            ConfigurationError: If the backend is not supported
        """
        backend = config.backend.lower()

        if backend == "memory":
            logger.info("Creating in-memory bump store")
            return InMemoryBumpStore()
        elif backend == "postgrest":
            from .postgrest import PostgrestBumpStore

            logger.info(f"Creating PostgREST bump store for {config.url}")
            return PostgrestBumpStore(
                url=config.url,
                service_key=config.service_key,
                timeout=config.timeout,
            )
        else:
            raise ConfigurationError(
                f"Unknown store backend: {backend}. "
                f"Supported backends: {', '.join(BumpStoreFactory.get_supported_backends())}"
            )

    @staticmethod
    def get_supported_backends() -> list[str]:
        """Get list of supported store backends."""
        return ["memory", "postgrest"]
