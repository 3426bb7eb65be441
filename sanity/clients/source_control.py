"""Source-control REST client (GitHub API v3).

Covers what flow reconciliation needs: the recursive tree (memoized in
:class:`~sanity.cache.tree_cache.RemoteTreeCache`), file contents, file
writes, branch refs, pull requests and the repository write-access check.
"""

from __future__ import annotations

import base64
from typing import Any

import httpx

from sanity.cache.tree_cache import RemoteTreeCache
from sanity.clients.http import DEFAULT_TIMEOUT, raise_for_upstream, send
from sanity.config.resolver import ConfigResolver, SourceControlConfig
from sanity.errors import AuthorizationError, NotFoundError

GITHUB_API_BASE = "https://api.github.com"
USER_AGENT = "connector-sanity-check"


class SourceControlClient:
    def __init__(
        self,
        resolver: ConfigResolver,
        tree_cache: RemoteTreeCache,
        transport: httpx.AsyncBaseTransport | None = None,
        api_base: str = GITHUB_API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.resolver = resolver
        self.tree_cache = tree_cache
        self.api_base = api_base
        self._transport = transport
        self._timeout = timeout

    def config(self, user: str | None) -> SourceControlConfig:
        return self.resolver.source_control(user)

    @staticmethod
    def _headers(config: SourceControlConfig) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": USER_AGENT,
        }
        if config.token:
            headers["Authorization"] = f"Bearer {config.token}"
        return headers

    async def _request(
        self,
        config: SourceControlConfig,
        method: str,
        path: str,
        action: str,
        not_found: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self.api_base,
            transport=self._transport,
            timeout=self._timeout,
        ) as client:
            response = await send(
                client, method, path, action, headers=self._headers(config), **kwargs
            )
        raise_for_upstream(response, action, not_found=not_found)
        return response

    def _repo_path(self, config: SourceControlConfig) -> str:
        return f"/repos/{config.owner}/{config.repo}"

    def file_url(self, config: SourceControlConfig, path: str, ref: str | None = None) -> str:
        return f"https://github.com/{config.full_name}/blob/{ref or config.branch}/{path}"

    # -- reads -------------------------------------------------------------

    async def get_tree(self, user: str | None) -> list[dict[str, Any]]:
        """Recursive listing of the configured branch, memoized per partition."""
        config = self.config(user)

        async def load() -> list[dict[str, Any]]:
            response = await self._request(
                config,
                "GET",
                f"{self._repo_path(config)}/git/trees/{config.branch}",
                "Fetch repository tree",
                params={"recursive": "1"},
            )
            return response.json().get("tree", [])

        return await self.tree_cache.get_tree(
            user or "", config.owner, config.repo, config.branch, load
        )

    async def get_file(self, user: str | None, path: str, ref: str | None = None) -> dict:
        """Return ``{"sha", "content"}`` with the content decoded to text."""
        config = self.config(user)
        response = await self._request(
            config,
            "GET",
            f"{self._repo_path(config)}/contents/{path}",
            f"Fetch file {path}",
            not_found=True,
            params={"ref": ref or config.branch},
        )
        data = response.json()
        content = base64.b64decode(data.get("content", "")).decode("utf-8")
        return {"sha": data.get("sha", ""), "content": content}

    async def get_file_sha(self, user: str | None, path: str, ref: str) -> str | None:
        try:
            return (await self.get_file(user, path, ref))["sha"]
        except NotFoundError:
            return None

    async def get_branch_sha(self, user: str | None, branch: str) -> str:
        config = self.config(user)
        response = await self._request(
            config,
            "GET",
            f"{self._repo_path(config)}/git/ref/heads/{branch}",
            f"Fetch branch {branch}",
            not_found=True,
        )
        return response.json()["object"]["sha"]

    async def get_repo(self, user: str | None) -> dict:
        config = self.config(user)
        response = await self._request(
            config, "GET", self._repo_path(config), "Fetch repository", not_found=True
        )
        return response.json()

    async def verify_write_access(self, user: str | None) -> None:
        """Write-access check; raises :class:`AuthorizationError` without push rights."""
        config = self.config(user)
        if not config.token:
            raise AuthorizationError("A source-control token is required to write")
        repo = await self.get_repo(user)
        permissions = repo.get("permissions") or {}
        if not (permissions.get("push") or permissions.get("admin")):
            raise AuthorizationError(f"No write access to {config.full_name}")

    # -- writes ------------------------------------------------------------

    async def create_branch(self, user: str | None, name: str, from_branch: str) -> str:
        """Create ``name`` pointing at the head of ``from_branch``; returns the sha."""
        sha = await self.get_branch_sha(user, from_branch)
        config = self.config(user)
        await self._request(
            config,
            "POST",
            f"{self._repo_path(config)}/git/refs",
            f"Create branch {name}",
            json={"ref": f"refs/heads/{name}", "sha": sha},
        )
        return sha

    async def put_file(
        self,
        user: str | None,
        path: str,
        content: str,
        message: str,
        branch: str,
        sha: str | None = None,
    ) -> dict:
        config = self.config(user)
        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        if sha:
            body["sha"] = sha
        response = await self._request(
            config,
            "PUT",
            f"{self._repo_path(config)}/contents/{path}",
            f"Write file {path}",
            json=body,
        )
        return response.json()

    async def create_or_update_file(
        self, user: str | None, path: str, content: str, message: str, branch: str
    ) -> dict:
        sha = await self.get_file_sha(user, path, branch)
        return await self.put_file(user, path, content, message, branch, sha=sha)

    async def create_pull_request(
        self, user: str | None, title: str, body: str, head: str, base: str
    ) -> dict:
        config = self.config(user)
        response = await self._request(
            config,
            "POST",
            f"{self._repo_path(config)}/pulls",
            "Create pull request",
            json={"title": title, "body": body, "head": head, "base": base},
        )
        return response.json()
