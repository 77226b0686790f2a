"""
Tests for the GitHub App client.

PyGithub repository objects are replaced with mocks; the installation token
exchange is served through httpx.MockTransport.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from github import GithubException

from bump_bot.config import GitHubAppConfig
from bump_bot.exceptions import (
    AuthenticationError,
    BranchAlreadyExistsError,
    GitHubAPIError,
)
from bump_bot.github_client import GitHubClient
from bump_bot.models import PullRequestRef


@pytest.fixture
def private_key_pem() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture
def app_config(tmp_path, private_key_pem) -> GitHubAppConfig:
    key_path = tmp_path / "app.pem"
    key_path.write_text(private_key_pem)
    return GitHubAppConfig(app_id=4242, private_key_path=str(key_path))


@pytest.fixture
def repo() -> MagicMock:
    return MagicMock()


@pytest.fixture
def client(app_config, repo) -> GitHubClient:
    github_client = GitHubClient(app_config)
    github_client.get_repo = AsyncMock(return_value=repo)
    return github_client


def test_jwt_token_is_signed_for_app(app_config, private_key_pem):
    client = GitHubClient(app_config)

    token = client._create_jwt_token(private_key_pem)

    public_key = serialization.load_pem_private_key(
        private_key_pem.encode("utf-8"), password=None
    ).public_key()
    claims = jwt.decode(token, public_key, algorithms=["RS256"])
    assert claims["iss"] == "4242"
    assert claims["exp"] - claims["iat"] <= 600


@pytest.mark.asyncio
async def test_missing_private_key(tmp_path):
    client = GitHubClient(
        GitHubAppConfig(app_id=1, private_key_path=str(tmp_path / "missing.pem"))
    )

    with pytest.raises(AuthenticationError, match="Private key not found"):
        await client.create_installation_token("123")


class TestInstallationToken:
    """Installation token exchange."""

    def patch_transport(self, handler):
        real_client = httpx.AsyncClient
        return patch(
            "bump_bot.github_client.httpx.AsyncClient",
            side_effect=lambda **kwargs: real_client(
                transport=httpx.MockTransport(handler), **kwargs
            ),
        )

    @pytest.mark.asyncio
    async def test_token_created(self, app_config):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"token": "ghs_abc"})

        with self.patch_transport(handler):
            token = await GitHubClient(app_config).create_installation_token("123")

        assert token == "ghs_abc"
        assert seen[0].method == "POST"
        assert seen[0].url.path == "/app/installations/123/access_tokens"
        assert seen[0].headers["authorization"].startswith("Bearer ")

    @pytest.mark.asyncio
    async def test_rejected_exchange(self, app_config):
        with self.patch_transport(lambda request: httpx.Response(404, text="Not Found")):
            with pytest.raises(AuthenticationError, match="404"):
                await GitHubClient(app_config).create_installation_token("123")

    @pytest.mark.asyncio
    async def test_transport_failure(self, app_config):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        with self.patch_transport(handler):
            with pytest.raises(GitHubAPIError):
                await GitHubClient(app_config).create_installation_token("123")


class TestBranches:
    """Branch ref operations."""

    @pytest.mark.asyncio
    async def test_get_branch_sha(self, client, repo):
        repo.get_git_ref.return_value.object.sha = "abc123"

        sha = await client.get_branch_sha("token", "org/repo", "refs/heads/main")

        assert sha == "abc123"
        repo.get_git_ref.assert_called_once_with("heads/main")

    @pytest.mark.asyncio
    async def test_create_branch(self, client, repo):
        await client.create_branch("token", "org/repo", "bump-bot/bump-lodash-4.18.0", "abc123")

        repo.create_git_ref.assert_called_once_with(
            ref="refs/heads/bump-bot/bump-lodash-4.18.0", sha="abc123"
        )

    @pytest.mark.asyncio
    async def test_existing_ref_is_classified(self, client, repo):
        repo.create_git_ref.side_effect = GithubException(
            422, {"message": "Reference already exists"}, None
        )

        with pytest.raises(BranchAlreadyExistsError) as exc_info:
            await client.create_branch("token", "org/repo", "bump-bot/bump-x-1.0.0", "abc123")

        assert exc_info.value.status_code == 422
        assert exc_info.value.branch_name == "bump-bot/bump-x-1.0.0"
        assert "Reference already exists" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_other_422_is_not_a_conflict(self, client, repo):
        repo.create_git_ref.side_effect = GithubException(
            422, {"message": "Object does not exist"}, None
        )

        with pytest.raises(GitHubAPIError) as exc_info:
            await client.create_branch("token", "org/repo", "b", "deadbeef")

        assert not isinstance(exc_info.value, BranchAlreadyExistsError)

    @pytest.mark.asyncio
    async def test_forbidden_is_not_a_conflict(self, client, repo):
        repo.create_git_ref.side_effect = GithubException(403, {"message": "Forbidden"}, None)

        with pytest.raises(GitHubAPIError) as exc_info:
            await client.create_branch("token", "org/repo", "b", "abc123")

        assert exc_info.value.status_code == 403
        assert not isinstance(exc_info.value, BranchAlreadyExistsError)


class TestPullRequests:
    """Pull request operations."""

    @pytest.mark.asyncio
    async def test_list_by_head_qualifies_owner(self, client, repo):
        repo.get_pulls.return_value = [
            MagicMock(html_url="https://github.com/org/repo/pull/42", number=42)
        ]

        prs = await client.list_pull_requests_by_head("token", "org/repo", "bump-bot/bump-lodash-4.18.0")

        assert prs == [PullRequestRef(pr_url="https://github.com/org/repo/pull/42", pr_number=42)]
        repo.get_pulls.assert_called_once_with(state="open", head="org:bump-bot/bump-lodash-4.18.0")

    @pytest.mark.asyncio
    async def test_list_by_head_keeps_qualified_head(self, client, repo):
        repo.get_pulls.return_value = []

        assert await client.list_pull_requests_by_head("token", "org/repo", "fork:branch") == []
        repo.get_pulls.assert_called_once_with(state="open", head="fork:branch")

    @pytest.mark.asyncio
    async def test_create_pull_request(self, client, repo):
        repo.create_pull.return_value = MagicMock(
            html_url="https://github.com/org/repo/pull/3", number=3
        )

        pr = await client.create_pull_request(
            "token", "org/repo", head="feature", base="main", title="T", body="B"
        )

        assert pr == PullRequestRef(pr_url="https://github.com/org/repo/pull/3", pr_number=3)
        repo.create_pull.assert_called_once_with(title="T", body="B", base="main", head="feature")

    @pytest.mark.asyncio
    async def test_close_pull_request(self, client, repo):
        await client.close_pull_request("token", "org/repo", 7)

        repo.get_pull.assert_called_once_with(7)
        repo.get_pull.return_value.edit.assert_called_once_with(state="closed")

    @pytest.mark.asyncio
    async def test_pull_request_state(self, client, repo):
        repo.get_pull.return_value.state = "closed"

        assert await client.get_pull_request_state("token", "org/repo", 7) == "closed"


class TestFiles:
    """File content operations."""

    @pytest.mark.asyncio
    async def test_read_file_with_sha(self, client, repo):
        document = {"dependencies": {"lodash": "^4.17.21"}}
        repo.get_contents.return_value = MagicMock(
            decoded_content=json.dumps(document).encode("utf-8"), sha="f1"
        )

        content, sha = await client.get_repository_file_with_sha(
            "token", "org/repo", "package.json", "bump-branch"
        )

        assert json.loads(content) == document
        assert sha == "f1"
        repo.get_contents.assert_called_once_with("package.json", ref="bump-branch")

    @pytest.mark.asyncio
    async def test_directory_is_rejected(self, client, repo):
        repo.get_contents.return_value = [MagicMock(), MagicMock()]

        with pytest.raises(GitHubAPIError, match="directory"):
            await client.get_repository_file_with_sha("token", "org/repo", "src", "main")

    @pytest.mark.asyncio
    async def test_update_is_guarded_by_sha(self, client, repo):
        await client.create_or_update_file_on_branch(
            "token", "org/repo", "package.json", "{}", "msg", "f1", "bump-branch"
        )

        repo.update_file.assert_called_once_with(
            path="package.json", message="msg", content="{}", sha="f1", branch="bump-branch"
        )
        repo.create_file.assert_not_called()

    @pytest.mark.asyncio
    async def test_create_without_sha(self, client, repo):
        await client.create_or_update_file_on_branch(
            "token", "org/repo", "package.json", "{}", "msg", None, "bump-branch"
        )

        repo.create_file.assert_called_once_with(
            path="package.json", message="msg", content="{}", branch="bump-branch"
        )

    @pytest.mark.asyncio
    async def test_stale_sha_raises(self, client, repo):
        repo.update_file.side_effect = GithubException(
            409, {"message": "package.json does not match f1"}, None
        )

        with pytest.raises(GitHubAPIError) as exc_info:
            await client.create_or_update_file_on_branch(
                "token", "org/repo", "package.json", "{}", "msg", "f1", "bump-branch"
            )

        assert exc_info.value.status_code == 409


def test_fractional_timeout_reaches_pygithub(app_config):
    config = app_config.model_copy(update={"timeout": 0.5})

    with patch("bump_bot.github_client.Github") as github_cls:
        GitHubClient(config)._get_github_instance("ghs_token")

    assert github_cls.call_args.kwargs["timeout"] == 0.5
