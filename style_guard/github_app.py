import hashlib
import hmac
import logging
import time
from urllib.parse import quote

import httpx
import jwt
from fastapi import HTTPException

from .scm import HTTP_TIMEOUT, USER_AGENT

logger = logging.getLogger(__name__)


def verify_github_signature(
    body: bytes,
    signature_header: str | None,
    secret: str,
) -> None:
    """
    Verify X-Hub-Signature-256 from GitHub webhook.

    """
    if not signature_header:
        logger.warning("Missing X-Hub-Signature-256 header - skipping verification in DEV mode")
        return

    try:
        sha_name, signature = signature_header.split("=")
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid signature format")

    if sha_name != "sha256":
        raise HTTPException(status_code=400, detail="Unsupported hash algorithm")

    mac = hmac.new(secret.encode("utf-8"), msg=body, digestmod=hashlib.sha256)
    expected = mac.hexdigest()

    if not hmac.compare_digest(expected, signature):
        logger.warning("Invalid webhook signature")
        raise HTTPException(status_code=401, detail="Invalid signature")


def generate_app_jwt(app_id: str, private_key_path: str) -> str:
    """
    Generate JWT for GitHub App using RS256.
    """
    with open(private_key_path, "r", encoding="utf-8") as f:
        private_key = f.read()

    now = int(time.time())
    payload = {
        "iat": now - 60,
        "exp": now + 9 * 60,
        "iss": app_id,
    }

    return jwt.encode(payload, private_key, algorithm="RS256")


def _headers(token: str, scheme: str = "token", accept: str = "application/vnd.github+json") -> dict:
    return {
        "Authorization": f"{scheme} {token}",
        "Accept": accept,
        "User-Agent": USER_AGENT,
    }


async def create_installation_token(api_url: str, installation_id: int, app_jwt: str) -> str:
    """
    Create an installation access token for a given installation_id.
    """
    url = f"{api_url.rstrip('/')}/app/installations/{installation_id}/access_tokens"

    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
        resp = await client.post(url, headers=_headers(app_jwt, scheme="Bearer"))
        logger.info(f"Installation token status: {resp.status_code}")
        resp.raise_for_status()
        data = resp.json()
        return data["token"]


async def fetch_file_content(
    api_url: str,
    owner: str,
    repo: str,
    path: str,
    ref: str,
    token: str,
) -> str | None:
    """
    Raw content of a file at the given commit, None when it does not exist there.
    """
    url = f"{api_url.rstrip('/')}/repos/{owner}/{repo}/contents/{quote(path)}"
    headers = _headers(token, accept="application/vnd.github.raw")

    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
        resp = await client.get(url, headers=headers, params={"ref": ref})
        if resp.status_code == 404:
            logger.warning(f"{path} not found at {ref}")
            return None
        resp.raise_for_status()
        return resp.text


async def post_pr_comment(comments_url: str, token: str, body: str) -> None:
    """
    Post a comment on the PR using the issue comments URL.
    """
    payload = {"body": body}

    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
        resp = await client.post(comments_url, headers=_headers(token), json=payload)
        logger.info(f"Post comment status: {resp.status_code}")
        resp.raise_for_status()
