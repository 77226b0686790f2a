"""
Data models shared by the resolver, the store and the orchestrator.
"""

from pydantic import BaseModel, Field

BUMP_PR_TYPE = "bump"


class PackageVersionInfo(BaseModel):
    """A single published version of a package, derived from registry metadata."""

    version: str
    published_at: str | None = None
    is_prerelease: bool = False


class LatestStableVersion(BaseModel):
    """Result of resolving the latest installable version of a package."""

    latest_version: str | None = None
    published_at: str | None = None


class DependencyRecord(BaseModel):
    """A dependency tracked for a project."""

    id: str
    project_id: str
    name: str


class RepositoryBinding(BaseModel):
    """The GitHub repository a project is connected to."""

    project_id: str
    repo_full_name: str
    default_branch: str
    installation_id: str | None = None
    package_json_path: str | None = Field(
        default=None, description="Directory holding the manifest, relative to root"
    )


class BumpPullRequest(BaseModel):
    """A bump PR recorded for (project, dependency, type, target version)."""

    project_id: str
    dependency_id: str
    type: str = BUMP_PR_TYPE
    target_version: str
    pr_url: str
    pr_number: int
    branch_name: str

    @property
    def key(self) -> tuple[str, str, str, str]:
        """Uniqueness key of the row."""
        return (self.project_id, self.dependency_id, self.type, self.target_version)


class PullRequestRef(BaseModel):
    """Reference to an open pull request returned to callers."""

    pr_url: str
    pr_number: int


class BumpPrFailure(BaseModel):
    """Expected, business-level failure; safe for the caller to skip this cycle."""

    error: str


class BumpRequest(BaseModel):
    """Request body for the bump endpoint."""

    organization_id: str
    project_id: str
    dependency_name: str
    target_version: str
    current_version: str | None = None
