"""
Bump Bot

Resolves the latest stable npm version of a package and opens idempotent
dependency bump pull requests against GitHub repositories.
"""

__version__ = "0.1.0"

from .config import Settings
from .exceptions import BumpBotError
from .github_client import GitHubClient
from .orchestrator import BumpPrOrchestrator
from .store import BumpStore
from .version_resolver import NpmVersionResolver

__all__ = [
    "Settings",
    "GitHubClient",
    "BumpPrOrchestrator",
    "BumpStore",
    "BumpBotError",
    "NpmVersionResolver",
]
