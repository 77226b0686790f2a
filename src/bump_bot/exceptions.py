"""
Custom exceptions for Bump Bot.

This module defines the exception hierarchy used by the version resolver,
the GitHub client, the persistence layer and the bump PR orchestrator.
"""

from typing import Any


class BumpBotError(Exception):
    """Base exception for Bump Bot errors."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code or "BUMP_BOT_ERROR"
        self.context = context or {}


class GitHubAPIError(BumpBotError):
    """Exception for GitHub API related errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "GITHUB_API_ERROR", context)
        self.status_code = status_code


class BranchAlreadyExistsError(GitHubAPIError):
    """Raised when GitHub rejects a branch ref because it already exists (422)."""

    def __init__(
        self,
        message: str,
        branch_name: str,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, 422, context)
        self.code = "BRANCH_ALREADY_EXISTS"
        self.branch_name = branch_name


class AuthenticationError(BumpBotError):
    """Exception for authentication related errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, "AUTHENTICATION_ERROR", context)


class RegistryError(BumpBotError):
    """Exception for transport-level failures talking to the package registry."""

    def __init__(
        self,
        message: str,
        package_name: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "REGISTRY_ERROR", context)
        self.package_name = package_name


class DependencyNotTrackedError(BumpBotError):
    """Raised when a project has no tracked dependency with the requested name."""

    def __init__(
        self,
        message: str,
        project_id: str | None = None,
        dependency_name: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "DEPENDENCY_NOT_TRACKED", context)
        self.project_id = project_id
        self.dependency_name = dependency_name


class RepositoryNotConnectedError(BumpBotError):
    """Raised when a project has no repository binding or GitHub App installation."""

    def __init__(
        self,
        message: str,
        project_id: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "REPOSITORY_NOT_CONNECTED", context)
        self.project_id = project_id


class ManifestError(BumpBotError):
    """Exception for manifest files that cannot be patched."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "MANIFEST_ERROR", context)
        self.path = path


class ConfigurationError(BumpBotError):
    """Exception for configuration related errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, "CONFIGURATION_ERROR", context)


class DatabaseError(BumpBotError):
    """Exception for database related errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, "DATABASE_ERROR", context)
