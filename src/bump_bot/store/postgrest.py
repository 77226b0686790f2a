"""
PostgREST-backed store.

Talks to a PostgREST endpoint (e.g. Supabase's ``/rest/v1``) with a service
credential. Bump PR writes use ``on_conflict`` with merge-duplicates so the
database's unique constraint decides between insert and update.
"""

import logging
from typing import Any

import httpx

from ..exceptions import DatabaseError
from ..models import BUMP_PR_TYPE, BumpPullRequest, DependencyRecord, RepositoryBinding
from .manager import BumpStore

logger = logging.getLogger(__name__)

BUMP_PR_CONFLICT_KEY = "project_id,dependency_id,type,target_version"


class PostgrestBumpStore(BumpStore):
    """Store backed by PostgREST tables."""

    dependencies_table = "dependencies"
    bump_prs_table = "dependency_prs"
    repositories_table = "project_repositories"
    organizations_table = "organizations"

    def __init__(
        self,
        url: str,
        service_key: str,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the PostgREST store.

        Args:
            url: Database base URL (``/rest/v1`` is appended)
            service_key: Service role credential
            timeout: Per-request timeout in seconds
            http_client: Optional HTTP client (mainly for tests)
        """
        self.base_url = f"{url.rstrip('/')}/rest/v1"
        self.headers = {
            "apikey": service_key,
            "Authorization": f"Bearer {service_key}",
            "Accept": "application/json",
        }
        self.timeout = timeout
        self._client = http_client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def _request(
        self,
        method: str,
        table: str,
        params: dict[str, str],
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        try:
            response = await self._get_client().request(
                method,
                f"{self.base_url}/{table}",
                params=params,
                json=json,
                headers={**self.headers, **(headers or {})},
            )
        except httpx.HTTPError as e:
            logger.error(f"Database request to {table} failed: {e}")
            raise DatabaseError(
                f"Database request to {table} failed: {e}",
                context={"table": table, "method": method},
            ) from e

        if not response.is_success:
            raise DatabaseError(
                f"Database {method} {table} returned {response.status_code}: "
                f"{response.text}",
                context={"table": table, "status_code": response.status_code},
            )

        if not response.content:
            return None
        return response.json()

    async def _select_one(self, table: str, params: dict[str, str]) -> dict[str, Any] | None:
        rows = await self._request("GET", table, {**params, "limit": "1"})
        return rows[0] if rows else None

    async def find_dependency(
        self, project_id: str, name: str
    ) -> DependencyRecord | None:
        # dependencies is a global catalogue keyed on the package name.
        row = await self._select_one(
            self.dependencies_table,
            {"select": "id,name", "name": f"eq.{name}"},
        )
        if not row:
            return None
        return DependencyRecord(id=str(row["id"]), project_id=project_id, name=row["name"])

    async def find_bump_pr(
        self, project_id: str, dependency_id: str, target_version: str
    ) -> BumpPullRequest | None:
        row = await self._select_one(
            self.bump_prs_table,
            {
                "select": "*",
                "project_id": f"eq.{project_id}",
                "dependency_id": f"eq.{dependency_id}",
                "type": f"eq.{BUMP_PR_TYPE}",
                "target_version": f"eq.{target_version}",
            },
        )
        return BumpPullRequest.model_validate(row) if row else None

    async def list_superseded_bump_prs(
        self, project_id: str, dependency_id: str, target_version: str
    ) -> list[BumpPullRequest]:
        rows = await self._request(
            "GET",
            self.bump_prs_table,
            {
                "select": "*",
                "project_id": f"eq.{project_id}",
                "dependency_id": f"eq.{dependency_id}",
                "type": f"eq.{BUMP_PR_TYPE}",
                "target_version": f"neq.{target_version}",
            },
        )
        return [BumpPullRequest.model_validate(row) for row in rows or []]

    async def upsert_bump_pr(self, record: BumpPullRequest) -> BumpPullRequest:
        rows = await self._request(
            "POST",
            self.bump_prs_table,
            {"on_conflict": BUMP_PR_CONFLICT_KEY},
            json=record.model_dump(),
            headers={"Prefer": "resolution=merge-duplicates,return=representation"},
        )
        logger.info(
            f"Upserted bump PR #{record.pr_number} for dependency "
            f"{record.dependency_id} -> {record.target_version}"
        )
        if rows:
            return BumpPullRequest.model_validate(rows[0])
        return record

    async def find_repository_binding(
        self, project_id: str
    ) -> RepositoryBinding | None:
        row = await self._select_one(
            self.repositories_table,
            {
                "select": (
                    "project_id,repo_full_name,default_branch,"
                    "installation_id,package_json_path"
                ),
                "project_id": f"eq.{project_id}",
            },
        )
        if not row or not row.get("repo_full_name") or not row.get("default_branch"):
            return None
        if row.get("installation_id") is not None:
            row["installation_id"] = str(row["installation_id"])
        return RepositoryBinding.model_validate(row)

    async def find_installation_id(self, organization_id: str) -> str | None:
        row = await self._select_one(
            self.organizations_table,
            {"select": "github_installation_id", "id": f"eq.{organization_id}"},
        )
        if not row or not row.get("github_installation_id"):
            return None
        return str(row["github_installation_id"])

    async def health_check(self) -> bool:
        try:
            await self._request(
                "GET", self.organizations_table, {"select": "id", "limit": "1"}
            )
        except DatabaseError as e:
            logger.warning(f"Database health check failed: {e}")
            return False
        return True

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
