"""
Configuration management for Bump Bot.

This module handles environment variables, settings validation, and configuration
management using Pydantic Settings for type safety and validation. A single
``Settings`` instance is built at process start and handed to every component.
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GitHubAppConfig(BaseModel):
    """GitHub App configuration settings."""

    app_id: int = Field(..., description="GitHub App ID")
    private_key_path: str = Field(..., description="Path to GitHub App private key")
    api_url: str = Field(
        default="https://api.github.com", description="GitHub API URL"
    )
    timeout: float = Field(default=30.0, description="Per-request timeout in seconds")


class DatabaseConfig(BaseModel):
    """Persistence backend configuration settings."""

    backend: str = Field(default="memory", description="Store backend")
    url: str = Field(default="", description="Database (PostgREST) URL")
    service_key: str = Field(default="", description="Database service credential")
    timeout: float = Field(default=30.0, description="Per-request timeout in seconds")


class ServerConfig(BaseModel):
    """Web server configuration settings."""

    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # GitHub configuration
    github_app_id: int = Field(default=0, description="GitHub App ID")
    github_app_private_key_path: str = Field(
        default="", description="GitHub App private key path"
    )
    github_api_url: str = Field(
        default="https://api.github.com", description="GitHub API URL"
    )

    # Registry configuration
    npm_registry_url: str = Field(
        default="https://registry.npmjs.org", description="npm registry base URL"
    )

    # Persistence configuration
    store_backend: str = Field(
        default="memory", description="Store backend: memory or postgrest"
    )
    database_url: str = Field(default="", description="Database (PostgREST) URL")
    database_service_key: str = Field(
        default="", description="Database service role credential"
    )

    # Network behaviour
    request_timeout_seconds: float = Field(
        default=30.0, description="Timeout applied to every network call"
    )

    # Bump behaviour
    branch_prefix: str = Field(
        default="bump-bot/", description="Prefix for bump branch names"
    )
    manifest_file: str = Field(
        default="package.json", description="Manifest file name to patch"
    )
    close_superseded_prs: bool = Field(
        default=False,
        description="Close open bump PRs that target another version once a new one is opened",
    )

    # Server configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Logging configuration
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Log format")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        if v not in {"json", "console"}:
            raise ValueError(f"Invalid log format: {v}")
        return v

    @field_validator("store_backend")
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        """Validate store backend."""
        backend = v.lower()
        if backend not in {"memory", "postgrest"}:
            raise ValueError(f"Unsupported store backend: {v}")
        return backend

    @field_validator("npm_registry_url", "github_api_url", "database_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalise base URLs so paths can be appended."""
        return v.rstrip("/")

    @field_validator("request_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Timeouts must be positive."""
        if v <= 0:
            raise ValueError("request_timeout_seconds must be positive")
        return v

    @model_validator(mode="after")
    def validate_database_credentials(self) -> "Settings":
        """The PostgREST backend needs both a URL and a credential."""
        if self.store_backend == "postgrest" and not (
            self.database_url and self.database_service_key
        ):
            raise ValueError(
                "DATABASE_URL and DATABASE_SERVICE_KEY are required "
                "when STORE_BACKEND=postgrest"
            )
        return self

    @property
    def github_app_config(self) -> GitHubAppConfig:
        """Get GitHub App configuration."""
        return GitHubAppConfig(
            app_id=self.github_app_id,
            private_key_path=self.github_app_private_key_path,
            api_url=self.github_api_url,
            timeout=self.request_timeout_seconds,
        )

    @property
    def database_config(self) -> DatabaseConfig:
        """Get database configuration."""
        return DatabaseConfig(
            backend=self.store_backend,
            url=self.database_url,
            service_key=self.database_service_key,
            timeout=self.request_timeout_seconds,
        )

    @property
    def server_config(self) -> ServerConfig:
        """Get server configuration."""
        return ServerConfig(host=self.host, port=self.port, debug=self.debug)

    def manifest_path(self, directory: str | None = None) -> str:
        """
        Build the repository path of the manifest file.

        Args:
            directory: Optional directory inside the repository

        Returns:
            Path such as ``package.json`` or ``packages/web/package.json``
        """
        directory = (directory or "").strip("/")
        if not directory:
            return self.manifest_file
        return f"{directory}/{self.manifest_file}"


def load_settings(**overrides: Any) -> Settings:
    """Build settings from the environment, applying explicit overrides."""
    return Settings(**overrides)
