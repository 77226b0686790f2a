"""
Bump pull request orchestration for Bump Bot.

This module opens a pull request raising one dependency of a project to a
target version, exactly once per (project, dependency, target version). Many
scheduler runs may race on the same bump; two external uniqueness guarantees
keep the outcome single:

- the store's unique key on (project_id, dependency_id, type, target_version),
  always written through an upsert;
- GitHub's uniqueness of branch refs, whose 422 response signals that another
  run already claimed the deterministic branch name.

A branch conflict is resolved by adopting the open PR for that branch or, when
none exists, by one retry with a suffixed branch name.
"""

import time
from collections.abc import Callable
from enum import Enum
from typing import Optional, Union

import structlog

from .config import Settings
from .exceptions import (
    BranchAlreadyExistsError,
    DatabaseError,
    DependencyNotTrackedError,
    GitHubAPIError,
    ManifestError,
    RepositoryNotConnectedError,
)
from .github_client import GitHubClient
from .manifest import update_package_json_dependency
from .models import (
    BumpPrFailure,
    BumpPullRequest,
    DependencyRecord,
    PullRequestRef,
    RepositoryBinding,
)
from .store import BumpStore

logger = structlog.get_logger(__name__)

MAX_BRANCH_ATTEMPTS = 2

BRANCH_EXISTS_MESSAGE = (
    "A branch for this bump already exists on GitHub but no open PR was found. "
    "Delete the branch on GitHub and try again."
)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


class BranchAttempt(Enum):
    """Where the branch creation step stands."""

    INITIAL = "initial"
    RETRYING_SUFFIXED = "retrying_suffixed"
    EXHAUSTED = "exhausted"


def _to_base36(value: int) -> str:
    digits = []
    while True:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
        if value == 0:
            return "".join(reversed(digits))


def timestamp_suffix() -> str:
    """Short token derived from the current time in milliseconds."""
    return _to_base36(int(time.time() * 1000))


def slugify_package_name(package_name: str) -> str:
    """Make a package name safe for a branch name (``@scope/pkg`` -> ``-scope-pkg``)."""
    return package_name.replace("@", "-").replace("/", "-")


class BumpPrOrchestrator:
    """
    Creates bump pull requests.

    Each call is one sequential chain of network calls. The store and the
    GitHub client are injected so the orchestrator holds no state of its own.
    """

    def __init__(
        self,
        settings: Settings,
        github_client: GitHubClient,
        store: BumpStore,
        suffix_factory: Callable[[], str] = timestamp_suffix,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            settings: Application settings
            github_client: GitHub App client
            store: Persistence backend
            suffix_factory: Produces the token appended on the retry branch
        """
        self.settings = settings
        self.github_client = github_client
        self.store = store
        self.suffix_factory = suffix_factory

    def branch_name(self, dependency_name: str, target_version: str) -> str:
        """Deterministic branch name for a bump."""
        return (
            f"{self.settings.branch_prefix}bump-"
            f"{slugify_package_name(dependency_name)}-{target_version}"
        )

    async def create_bump_pr(
        self,
        organization_id: str,
        project_id: str,
        dependency_name: str,
        target_version: str,
        current_version: Optional[str] = None,
    ) -> Union[PullRequestRef, BumpPrFailure]:
        """
        Open (or find) the bump PR for a dependency.

        Args:
            organization_id: Organization owning the project
            project_id: Project ID
            dependency_name: npm package to bump
            target_version: Version to bump to
            current_version: Version currently in use, for the PR description

        Returns:
            The open pull request, or a failure the caller may skip

        Raises:
            DependencyNotTrackedError: If the dependency is not tracked
            RepositoryNotConnectedError: If the project has no repository or
                GitHub App installation
            GitHubAPIError: For unexpected GitHub failures
            DatabaseError: For store failures
        """
        log = logger.bind(
            project_id=project_id,
            dependency=dependency_name,
            target_version=target_version,
        )

        dependency = await self.store.find_dependency(project_id, dependency_name)
        if dependency is None:
            raise DependencyNotTrackedError(
                "Package not found in dependencies.",
                project_id=project_id,
                dependency_name=dependency_name,
            )

        existing = await self.store.find_bump_pr(
            project_id, dependency.id, target_version
        )
        if existing is not None:
            log.info("Bump PR already recorded", pr_number=existing.pr_number)
            return PullRequestRef(pr_url=existing.pr_url, pr_number=existing.pr_number)

        binding = await self._resolve_binding(organization_id, project_id)
        token = await self.github_client.create_installation_token(
            binding.installation_id
        )
        repo = binding.repo_full_name

        base_sha = await self.github_client.get_branch_sha(
            token, repo, binding.default_branch
        )

        branch_name = self.branch_name(dependency_name, target_version)
        state = BranchAttempt.INITIAL

        for _ in range(MAX_BRANCH_ATTEMPTS):
            try:
                await self.github_client.create_branch(
                    token, repo, branch_name, base_sha
                )
                break
            except BranchAlreadyExistsError:
                log.info("Bump branch already exists", branch=branch_name)

            adopted = await self._adopt_open_pr(
                token, repo, dependency, target_version, branch_name
            )
            if adopted is not None:
                return adopted

            if state is BranchAttempt.INITIAL:
                state = BranchAttempt.RETRYING_SUFFIXED
                branch_name = f"{branch_name}-{self.suffix_factory()}"
                log.info("Retrying with suffixed branch", branch=branch_name)
            else:
                state = BranchAttempt.EXHAUSTED

        if state is BranchAttempt.EXHAUSTED:
            log.warning("Bump branch conflict exhausted", branch=branch_name)
            return BumpPrFailure(error=BRANCH_EXISTS_MESSAGE)

        manifest_path = self.settings.manifest_path(binding.package_json_path)
        content, file_sha = await self.github_client.get_repository_file_with_sha(
            token, repo, manifest_path, branch_name
        )

        try:
            patched = update_package_json_dependency(
                content, dependency_name, target_version, path=manifest_path
            )
        except ManifestError as e:
            log.warning("Manifest cannot be bumped", path=manifest_path, error=str(e))
            return BumpPrFailure(error=str(e))

        await self.github_client.create_or_update_file_on_branch(
            token,
            repo,
            manifest_path,
            patched,
            f"chore(deps): bump {dependency_name} to {target_version}",
            file_sha,
            branch_name,
        )

        pr = await self.github_client.create_pull_request(
            token,
            repo,
            head=branch_name,
            base=binding.default_branch,
            title=f"Bump {dependency_name} to {target_version}",
            body=self._pr_body(dependency_name, target_version, current_version),
        )

        await self.store.upsert_bump_pr(
            BumpPullRequest(
                project_id=project_id,
                dependency_id=dependency.id,
                target_version=target_version,
                pr_url=pr.pr_url,
                pr_number=pr.pr_number,
                branch_name=branch_name,
            )
        )
        log.info("Bump PR opened", pr_number=pr.pr_number, branch=branch_name)

        if self.settings.close_superseded_prs:
            await self._close_superseded_prs(token, repo, dependency, target_version)

        return pr

    async def _resolve_binding(
        self, organization_id: str, project_id: str
    ) -> RepositoryBinding:
        """Load the repository binding with its installation resolved."""
        binding = await self.store.find_repository_binding(project_id)
        if binding is None:
            raise RepositoryNotConnectedError(
                "Project has no GitHub repository connected.", project_id=project_id
            )

        if binding.installation_id:
            return binding

        installation_id = await self.store.find_installation_id(organization_id)
        if not installation_id:
            raise RepositoryNotConnectedError(
                "Organization has no GitHub App connected.",
                project_id=project_id,
                context={"organization_id": organization_id},
            )
        return binding.model_copy(update={"installation_id": installation_id})

    async def _adopt_open_pr(
        self,
        token: str,
        repo: str,
        dependency: DependencyRecord,
        target_version: str,
        branch_name: str,
    ) -> Optional[PullRequestRef]:
        """Record and return the open PR already using this branch, if any."""
        open_prs = await self.github_client.list_pull_requests_by_head(
            token, repo, branch_name
        )
        if not open_prs:
            return None

        pr = open_prs[0]
        await self.store.upsert_bump_pr(
            BumpPullRequest(
                project_id=dependency.project_id,
                dependency_id=dependency.id,
                target_version=target_version,
                pr_url=pr.pr_url,
                pr_number=pr.pr_number,
                branch_name=branch_name,
            )
        )
        logger.info(
            "Adopted existing bump PR",
            repo=repo,
            branch=branch_name,
            pr_number=pr.pr_number,
        )
        return pr

    async def _close_superseded_prs(
        self,
        token: str,
        repo: str,
        dependency: DependencyRecord,
        target_version: str,
    ) -> None:
        """Close still-open bump PRs of this dependency that target another version."""
        try:
            superseded = await self.store.list_superseded_bump_prs(
                dependency.project_id, dependency.id, target_version
            )
        except DatabaseError as e:
            logger.warning("Could not list superseded bump PRs", repo=repo, error=str(e))
            return

        for record in superseded:
            try:
                state = await self.github_client.get_pull_request_state(
                    token, repo, record.pr_number
                )
                if state != "open":
                    continue
                await self.github_client.close_pull_request(
                    token, repo, record.pr_number
                )
                logger.info(
                    "Closed superseded bump PR",
                    repo=repo,
                    pr_number=record.pr_number,
                    old_target_version=record.target_version,
                )
            except GitHubAPIError as e:
                logger.warning(
                    "Could not close superseded bump PR",
                    repo=repo,
                    pr_number=record.pr_number,
                    error=str(e),
                )

    @staticmethod
    def _pr_body(
        dependency_name: str, target_version: str, current_version: Optional[str]
    ) -> str:
        if current_version:
            summary = (
                f"Updates `{dependency_name}` from `{current_version}` "
                f"to `{target_version}`."
            )
        else:
            summary = f"Updates `{dependency_name}` to `{target_version}`."
        return (
            f"{summary}\n\n"
            "Run `npm install` (or your package manager) to update the lockfile."
        )
