# style_guard/scm.py
import logging
from enum import Enum
from urllib.parse import quote

import httpx

from .config import Settings
from .diff_parser import DiffConvention
from .errors import ConfigurationError, UnknownScmProviderError
from .models import PullRequestRef

logger = logging.getLogger(__name__)

USER_AGENT = "PR-Style-Guard"
HTTP_TIMEOUT = 20


class ScmProvider(str, Enum):
    GITHUB = "github"
    GITLAB = "gitlab"
    BITBUCKET_SERVER = "bitbucket_server"

    @property
    def convention(self) -> DiffConvention:
        # GitLab merge request diffs carry no "diff --git" lines
        if self is ScmProvider.GITLAB:
            return DiffConvention.DASH_STYLE
        return DiffConvention.GIT_STYLE

    @classmethod
    def resolve(cls, value) -> "ScmProvider":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnknownScmProviderError(value) from None


async def fetch_github_pr_diff(diff_url: str, token: str | None) -> str:
    """
    Fetch PR diff text.
    """
    headers = {
        "Accept": "application/vnd.github.v3.diff",
        "User-Agent": USER_AGENT,
    }
    if token:
        headers["Authorization"] = f"token {token}"

    logger.info(f"Fetching diff from: {diff_url}")

    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
        resp = await client.get(diff_url, headers=headers)
        logger.info(f"First diff fetch status: {resp.status_code}")

        if resp.status_code in (301, 302, 303, 307, 308):
            redirect_url = resp.headers.get("Location")
            logger.info(f"Redirecting to: {redirect_url}")
            if not redirect_url:
                resp.raise_for_status()

            resp = await client.get(redirect_url, headers=headers)
            logger.info(f"Second diff fetch status: {resp.status_code}")

        resp.raise_for_status()
        return resp.text


def build_gitlab_diff(changes: list[dict]) -> str:
    """
    Join merge request changes into a single dash-separated diff.

    Newer GitLab versions return each change's diff starting at the first
    hunk, so the file headers are added back when they are missing.
    """
    patches = []
    for change in changes:
        diff = change.get("diff", "")
        if not diff.startswith("--- "):
            old_path = "/dev/null" if change.get("new_file") else f"a/{change.get('old_path')}"
            new_path = "/dev/null" if change.get("deleted_file") else f"b/{change.get('new_path')}"
            diff = f"--- {old_path}\n+++ {new_path}\n{diff}"
        patches.append(diff)
    return "\n".join(patches)


async def fetch_gitlab_mr_diff(base_url: str, token: str, project: str, mr_iid: int) -> str:
    url = (
        f"{base_url.rstrip('/')}/api/v4/projects/{quote(str(project), safe='')}"
        f"/merge_requests/{mr_iid}/changes"
    )
    headers = {"PRIVATE-TOKEN": token, "User-Agent": USER_AGENT}

    logger.info(f"Fetching merge request changes from: {url}")

    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
        resp = await client.get(url, headers=headers)
        logger.info(f"Merge request changes status: {resp.status_code}")
        resp.raise_for_status()
        data = resp.json()

    return build_gitlab_diff(data.get("changes", []))


async def fetch_bitbucket_server_pr_diff(
    base_url: str,
    token: str,
    project_key: str,
    repo_slug: str,
    pr_id: int,
) -> str:
    url = (
        f"{base_url.rstrip('/')}/rest/api/1.0/projects/{project_key}"
        f"/repos/{repo_slug}/pull-requests/{pr_id}.diff"
    )
    headers = {
        "Authorization": f"Bearer {token}",
        "Accept": "text/plain",
        "User-Agent": USER_AGENT,
    }

    logger.info(f"Fetching diff from: {url}")

    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
        resp = await client.get(url, headers=headers)
        logger.info(f"Bitbucket diff fetch status: {resp.status_code}")
        resp.raise_for_status()
        return resp.text


async def fetch_diff(
    provider: ScmProvider,
    pull_request: PullRequestRef,
    settings: Settings,
    token: str | None = None,
) -> str:
    """Fetch the raw diff of a pull/merge request from its hosting platform."""
    if provider is ScmProvider.GITHUB:
        if not pull_request.repo:
            raise ConfigurationError("GitHub pull requests need both owner and repo")
        url = (
            f"{settings.github_api_url.rstrip('/')}/repos/{pull_request.project}"
            f"/{pull_request.repo}/pulls/{pull_request.number}"
        )
        return await fetch_github_pr_diff(url, token or settings.github_token)

    if provider is ScmProvider.GITLAB:
        return await fetch_gitlab_mr_diff(
            settings.gitlab_base_url,
            token or settings.gitlab_token,
            pull_request.project,
            pull_request.number,
        )

    if not settings.bitbucket_server_url:
        raise ConfigurationError("BITBUCKET_SERVER_URL is not configured")
    if not pull_request.repo:
        raise ConfigurationError("Bitbucket Server pull requests need both project key and repo slug")
    return await fetch_bitbucket_server_pr_diff(
        settings.bitbucket_server_url,
        token or settings.bitbucket_server_token,
        pull_request.project,
        pull_request.repo,
        pull_request.number,
    )
