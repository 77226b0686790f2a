"""
GitHub API client for Bump Bot.

This module provides the GitHub App integration used to open bump pull
requests: installation token issuance, branch refs, file contents and pull
request operations against a customer repository.
"""

import time
from pathlib import Path
from typing import List, Optional, Tuple, Union, cast

import httpx
import jwt
import structlog
from github import Auth, Github, GithubException
from github.Repository import Repository

from .config import GitHubAppConfig
from .exceptions import AuthenticationError, BranchAlreadyExistsError, GitHubAPIError
from .models import PullRequestRef

logger = structlog.get_logger(__name__)


def _is_reference_exists(error: GithubException) -> bool:
    """Check whether a GitHub error is the 422 raised for an existing ref."""
    if error.status != 422:
        return False
    data = error.data if isinstance(error.data, dict) else {}
    message = str(data.get("message", "")) or str(error)
    return "already exists" in message.lower()


class GitHubClient:
    """
    GitHub App client.

    Every repository operation takes an installation token obtained from
    ``create_installation_token`` so one client can serve many organizations.
    """

    def __init__(self, config: GitHubAppConfig) -> None:
        """
        Initialize the GitHub client.

        Args:
            config: GitHub App configuration
        """
        self.config = config
        self._github: Optional[Github] = None
        self._github_token: Optional[str] = None

    def _read_private_key(self) -> str:
        private_key_path = Path(self.config.private_key_path)
        if not private_key_path.exists():
            raise AuthenticationError(f"Private key not found: {private_key_path}")
        with open(private_key_path) as f:
            return f.read()

    def _create_jwt_token(self, private_key: str) -> str:
        """Create JWT token for GitHub App authentication."""
        now = int(time.time())
        payload = {
            "iat": now - 60,
            "exp": now + 540,  # GitHub caps app JWTs at 10 minutes
            "iss": str(self.config.app_id),
        }

        token = cast(
            Union[str, bytes], jwt.encode(payload, private_key, algorithm="RS256")
        )
        if isinstance(token, bytes):
            return token.decode("utf-8")
        return token

    async def create_installation_token(self, installation_id: Union[str, int]) -> str:
        """
        Create an installation access token.

        Args:
            installation_id: GitHub App installation ID

        Returns:
            Short-lived installation token
        """
        jwt_token = self._create_jwt_token(self._read_private_key())

        try:
            async with httpx.AsyncClient(timeout=self.config.timeout) as client:
                response = await client.post(
                    f"{self.config.api_url}/app/installations/"
                    f"{installation_id}/access_tokens",
                    headers={
                        "Authorization": f"Bearer {jwt_token}",
                        "Accept": "application/vnd.github+json",
                        "User-Agent": "bump-bot",
                    },
                )
        except httpx.HTTPError as e:
            logger.error(
                "Failed to reach GitHub for installation token",
                installation_id=installation_id,
                error=str(e),
            )
            raise GitHubAPIError(f"Failed to create installation token: {e}") from e

        if response.status_code != 201:
            raise AuthenticationError(
                f"Failed to create installation token: "
                f"{response.status_code} {response.text}",
                context={"installation_id": str(installation_id)},
            )

        token = response.json().get("token")
        if isinstance(token, str):
            logger.info("Installation token created", installation_id=installation_id)
            return token
        raise AuthenticationError(f"Invalid token type: {type(token)}")

    def _get_github_instance(self, token: str) -> Github:
        """Get a GitHub instance authenticated with an installation token."""
        if self._github is None or self._github_token != token:
            self._github = Github(
                auth=Auth.Token(token),
                base_url=self.config.api_url,
                timeout=self.config.timeout,
            )
            self._github_token = token
        return self._github

    async def get_repo(self, token: str, full_name: str) -> Repository:
        """
        Get repository by full name.

        Args:
            token: Installation token
            full_name: Repository full name (owner/repo)

        Returns:
            Repository object
        """
        try:
            return self._get_github_instance(token).get_repo(full_name)
        except GithubException as e:
            logger.error("Failed to get repository", repo=full_name, error=str(e))
            raise GitHubAPIError(
                f"Failed to get repository {full_name}: {e}", status_code=e.status
            ) from e

    async def get_branch_sha(self, token: str, repo_full_name: str, branch: str) -> str:
        """Return the commit SHA a branch points at."""
        repo = await self.get_repo(token, repo_full_name)
        branch = branch.removeprefix("refs/heads/")

        try:
            return repo.get_git_ref(f"heads/{branch}").object.sha
        except GithubException as e:
            logger.error(
                "Failed to get branch ref",
                repo=repo_full_name,
                branch=branch,
                error=str(e),
            )
            raise GitHubAPIError(
                f"Failed to get branch ref {branch}: {e}", status_code=e.status
            ) from e

    async def create_branch(
        self, token: str, repo_full_name: str, branch_name: str, from_sha: str
    ) -> None:
        """
        Create a new branch from a commit SHA.

        Raises:
            BranchAlreadyExistsError: If a ref with this name already exists
            GitHubAPIError: For any other failure
        """
        repo = await self.get_repo(token, repo_full_name)

        try:
            repo.create_git_ref(ref=f"refs/heads/{branch_name}", sha=from_sha)
        except GithubException as e:
            if _is_reference_exists(e):
                logger.info(
                    "Branch ref already exists",
                    repo=repo_full_name,
                    branch=branch_name,
                )
                raise BranchAlreadyExistsError(
                    f"Failed to create branch {branch_name}: 422 Reference already exists",
                    branch_name=branch_name,
                ) from e
            logger.error(
                "Failed to create branch",
                repo=repo_full_name,
                branch=branch_name,
                error=str(e),
            )
            raise GitHubAPIError(
                f"Failed to create branch {branch_name}: {e}", status_code=e.status
            ) from e

        logger.info("Branch created", repo=repo_full_name, branch=branch_name)

    async def list_pull_requests_by_head(
        self, token: str, repo_full_name: str, branch_name: str
    ) -> List[PullRequestRef]:
        """
        List open pull requests whose head is the given branch.

        Args:
            token: Installation token
            repo_full_name: Repository full name (owner/repo)
            branch_name: Head branch, optionally already prefixed with ``owner:``

        Returns:
            Open pull requests for that head
        """
        repo = await self.get_repo(token, repo_full_name)
        owner = repo_full_name.split("/")[0]
        head = branch_name if ":" in branch_name else f"{owner}:{branch_name}"

        try:
            return [
                PullRequestRef(pr_url=pr.html_url, pr_number=pr.number)
                for pr in repo.get_pulls(state="open", head=head)
            ]
        except GithubException as e:
            logger.error(
                "Failed to list pull requests", repo=repo_full_name, head=head, error=str(e)
            )
            raise GitHubAPIError(
                f"Failed to list pull requests: {e}", status_code=e.status
            ) from e

    async def get_repository_file_with_sha(
        self, token: str, repo_full_name: str, path: str, branch: str
    ) -> Tuple[str, str]:
        """
        Read a file and its blob SHA from a branch.

        Returns:
            Tuple of (decoded content, blob sha)
        """
        repo = await self.get_repo(token, repo_full_name)

        try:
            file_info = repo.get_contents(path, ref=branch)
        except GithubException as e:
            logger.error(
                "Failed to fetch file",
                repo=repo_full_name,
                path=path,
                branch=branch,
                error=str(e),
            )
            raise GitHubAPIError(
                f"Failed to fetch {path}: {e}", status_code=e.status
            ) from e

        if isinstance(file_info, list):
            raise GitHubAPIError(f"Expected a file at {path}, found a directory")

        return file_info.decoded_content.decode("utf-8"), file_info.sha

    async def create_or_update_file_on_branch(
        self,
        token: str,
        repo_full_name: str,
        path: str,
        content: str,
        message: str,
        sha: Optional[str],
        branch: str,
    ) -> None:
        """
        Write a file on a branch.

        When ``sha`` is given the write is an update guarded by that blob SHA;
        GitHub rejects it if the file changed since it was read.
        """
        repo = await self.get_repo(token, repo_full_name)

        try:
            if sha:
                repo.update_file(
                    path=path, message=message, content=content, sha=sha, branch=branch
                )
            else:
                repo.create_file(
                    path=path, message=message, content=content, branch=branch
                )
        except GithubException as e:
            logger.error(
                "Failed to commit file",
                repo=repo_full_name,
                path=path,
                branch=branch,
                error=str(e),
            )
            raise GitHubAPIError(
                f"Failed to commit file {path}: {e}", status_code=e.status
            ) from e

        logger.info(
            "File committed successfully", repo=repo_full_name, path=path, branch=branch
        )

    async def create_pull_request(
        self,
        token: str,
        repo_full_name: str,
        head: str,
        base: str,
        title: str,
        body: str,
    ) -> PullRequestRef:
        """Open a pull request from ``head`` into ``base``."""
        repo = await self.get_repo(token, repo_full_name)

        try:
            pr = repo.create_pull(title=title, body=body, base=base, head=head)
        except GithubException as e:
            logger.error(
                "Failed to create pull request",
                repo=repo_full_name,
                head=head,
                base=base,
                error=str(e),
            )
            raise GitHubAPIError(
                f"Failed to create pull request: {e}", status_code=e.status
            ) from e

        logger.info(
            "Pull request created",
            repo=repo_full_name,
            pr_number=pr.number,
            head=head,
        )
        return PullRequestRef(pr_url=pr.html_url, pr_number=pr.number)

    async def get_pull_request_state(
        self, token: str, repo_full_name: str, pr_number: int
    ) -> str:
        """Return ``open`` or ``closed`` for a pull request."""
        repo = await self.get_repo(token, repo_full_name)

        try:
            return repo.get_pull(pr_number).state
        except GithubException as e:
            raise GitHubAPIError(
                f"Failed to get PR {pr_number}: {e}", status_code=e.status
            ) from e

    async def close_pull_request(
        self, token: str, repo_full_name: str, pr_number: int
    ) -> None:
        """Close a pull request without merging it."""
        repo = await self.get_repo(token, repo_full_name)

        try:
            repo.get_pull(pr_number).edit(state="closed")
        except GithubException as e:
            logger.error(
                "Failed to close pull request",
                repo=repo_full_name,
                pr_number=pr_number,
                error=str(e),
            )
            raise GitHubAPIError(
                f"Failed to close PR {pr_number}: {e}", status_code=e.status
            ) from e

        logger.info("Pull request closed", repo=repo_full_name, pr_number=pr_number)

