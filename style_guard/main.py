import json
import logging
from typing import Any, Dict

import httpx
from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .errors import ConfigurationError, FormatterError
from .formatter import ClangFormatter
from .github_app import (
    create_installation_token,
    fetch_file_content,
    generate_app_jwt,
    post_pr_comment,
    verify_github_signature,
)
from .models import CheckRequest, CheckResponse, StyleCheckConfig
from .routes.installations import load_style_check_config, router as installations_router
from .scm import ScmProvider, fetch_diff, fetch_github_pr_diff
from .style_check import VIOLATION_ERROR_MESSAGE, check_pull_request, run_check, workspace_reader

# ==========================
# Settings & Logging
# ==========================

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger("style-guard")

# FastAPI app
app = FastAPI(title="PR Style Guard")

# CORS CONFIGURATION
origins = [
    *settings.cors_origins,
    "http://localhost:8080",
    "http://127.0.0.1:8080",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(installations_router)

PR_ACTIONS = {"opened", "synchronize", "reopened"}

# ==========================
# Helpers
# ==========================


def default_style_check() -> StyleCheckConfig:
    return StyleCheckConfig(
        extensions=settings.style_extensions,
        ignore_file_patterns=settings.style_ignore_patterns,
        formatter_style=settings.formatter_style,
    )


def build_formatter(config: StyleCheckConfig) -> ClangFormatter:
    return ClangFormatter(binary=settings.formatter_binary, style=config.formatter_style)


# ==========================
# Routes
# ==========================

@app.get("/")
async def root():
    return {"status": "ok", "app": "PR Style Guard"}


@app.post("/webhook")
async def webhook(
    request: Request,
    x_github_event: str = Header(None, alias="X-GitHub-Event"),
    x_hub_signature_256: str = Header(None, alias="X-Hub-Signature-256"),
):
    raw_body = await request.body()

    verify_github_signature(raw_body, x_hub_signature_256, settings.github_webhook_secret)

    try:
        payload: Dict[str, Any] = json.loads(raw_body.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.exception("Invalid JSON payload")
        raise HTTPException(status_code=400, detail="Invalid JSON")

    logger.info(f">>> Webhook received, event: {x_github_event}")

    # 1) Ping
    if x_github_event == "ping":
        return JSONResponse({"msg": "pong"})

    # 2) Installation
    if x_github_event == "installation":
        logger.info(f"Installation payload: {payload.get('action')}")
        return JSONResponse({"msg": "installation event ok"})

    if x_github_event != "pull_request":
        logger.info(f"Unhandled event: {x_github_event}")
        return JSONResponse({"msg": f"unhandled event {x_github_event}"})

    # 3) Pull Request
    action = payload.get("action")
    logger.info(f">>> Action: {action}")

    if action not in PR_ACTIONS:
        logger.info("Ignoring PR action: %s", action)
        return JSONResponse({"msg": f"ignored action {action}"})

    pr = payload.get("pull_request", {})
    comments_url = pr.get("comments_url")
    diff_url = pr.get("diff_url")

    installation = payload.get("installation") or {}
    installation_id = installation.get("id")
    if not installation_id:
        logger.error("No installation id in payload")
        raise HTTPException(status_code=400, detail="Missing installation id")

    logger.info(f">>> Installation ID: {installation_id}, diff_url: {diff_url}")

    try:
        app_jwt = generate_app_jwt(settings.github_app_id, settings.github_private_key_path)
        gh_token = await create_installation_token(settings.github_api_url, installation_id, app_jwt)
        logger.info(">>> Installation token created.")
    except Exception as e:
        logger.exception("Failed to create installation token")
        raise HTTPException(status_code=500, detail="Failed to create installation token") from e

    try:
        repo_info = payload["repository"]
        owner = repo_info["owner"]["login"]
        repo = repo_info["name"]
        head_sha = pr["head"]["sha"]
    except KeyError as e:
        logger.error(f"Malformed pull_request payload, missing {e}")
        raise HTTPException(status_code=400, detail="Malformed pull_request payload") from e

    config = load_style_check_config(installation_id, default_style_check())

    async def read_source(path: str):
        return await fetch_file_content(settings.github_api_url, owner, repo, path, head_sha, gh_token)

    async def fetch_pr_diff(provider: ScmProvider) -> str:
        return await fetch_github_pr_diff(diff_url, gh_token)

    try:
        result = await check_pull_request(
            ScmProvider.GITHUB,
            fetch_pr_diff,
            config,
            read_source,
            build_formatter(config),
        )
    except FormatterError as e:
        logger.exception("Formatter failed")
        raise HTTPException(status_code=500, detail="Formatter failed") from e
    except httpx.HTTPError as e:
        logger.exception("Failed to fetch PR content")
        raise HTTPException(status_code=500, detail="Failed to fetch PR content") from e

    if result.passed:
        logger.info(">>> No style violations on added lines")
        return JSONResponse({"msg": "no style violations", "files": len(result.changes)})

    try:
        await post_pr_comment(comments_url, gh_token, f"❌ **{VIOLATION_ERROR_MESSAGE}**\n\n{result.markdown}")
    except Exception as e:
        logger.exception("Failed to post PR comment")
        raise HTTPException(status_code=500, detail="Failed to post PR comment") from e

    return JSONResponse({"msg": "style report posted", "violations": len(result.violations)})


@app.post("/api/check", response_model=CheckResponse)
async def check(body: CheckRequest):
    try:
        provider = ScmProvider.resolve(body.provider or settings.scm_provider)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    if body.diff is None and body.pull_request is None:
        raise HTTPException(status_code=400, detail="Either diff or pullRequest is required")

    config = body.style_check or default_style_check()
    read_source = workspace_reader(settings.workspace_root) if settings.workspace_root else None
    formatter = build_formatter(config)

    try:
        if body.diff is not None:
            result = await run_check(provider, body.diff, config, read_source, formatter)
        else:
            result = await check_pull_request(
                provider,
                lambda p: fetch_diff(p, body.pull_request, settings),
                config,
                read_source,
                formatter,
            )
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except FormatterError as e:
        logger.exception("Formatter failed")
        raise HTTPException(status_code=500, detail=str(e)) from e
    except httpx.HTTPError as e:
        logger.exception("Failed to fetch diff")
        raise HTTPException(status_code=502, detail="Failed to fetch diff") from e

    return CheckResponse(
        provider=provider.value,
        passed=result.passed,
        changes=result.changes,
        violations=result.violations,
        markdown=result.markdown,
    )
