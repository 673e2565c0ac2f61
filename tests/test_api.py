import hashlib
import hmac
import json
import subprocess
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from style_guard import main
from style_guard.main import app
from style_guard.models import StyleCheckConfig

client = TestClient(app)

CLEAN_DIFF = "\n".join([
    "--- a/Classes/Feed.m",
    "+++ b/Classes/Feed.m",
    "@@ -1 +1,2 @@",
    " @implementation Feed",
    "+- (void)reload {}",
])


@pytest.fixture(autouse=True)
def app_settings(settings):
    with patch.object(main, "settings", settings):
        yield settings


def sign(body: bytes, secret: str = "mock_secret") -> str:
    return "sha256=" + hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def pr_payload(action="opened"):
    return {
        "action": action,
        "installation": {"id": 42},
        "repository": {"name": "app", "owner": {"login": "octo"}},
        "pull_request": {
            "number": 7,
            "comments_url": "https://api.github.example.com/repos/octo/app/issues/7/comments",
            "diff_url": "https://github.example.com/octo/app/pull/7.diff",
            "head": {"sha": "abc123"},
        },
    }


def post_webhook(event: str, payload: dict):
    body = json.dumps(payload).encode("utf-8")
    return client.post(
        "/webhook",
        content=body,
        headers={"X-GitHub-Event": event, "X-Hub-Signature-256": sign(body)},
    )


# ==========================
# /api/check
# ==========================

def test_root():
    assert client.get("/").json() == {"status": "ok", "app": "PR Style Guard"}


def test_check_locates_added_lines(read_fixture, app_settings):
    app_settings.workspace_root = None

    response = client.post(
        "/api/check",
        json={"provider": "gitlab", "diff": read_fixture("violated_diff.diff")},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["provider"] == "gitlab"
    assert data["passed"] is True
    assert data["changes"] == {
        "spec/fixtures/BadViewController.m": [3, 4, 6],
        "spec/fixtures/BadViewController.h": [4],
    }


def test_check_uses_configured_provider_and_style(read_fixture, app_settings):
    app_settings.workspace_root = None

    response = client.post(
        "/api/check",
        json={
            "diff": read_fixture("github_pr.diff"),
            "styleCheck": {"extensions": [".m"], "ignoreFilePatterns": "^Pods/"},
        },
    )

    assert response.json()["changes"] == {"Classes/Feed.m": [7, 42, 43]}


def test_check_reports_violations_from_workspace(app_settings, tmp_path):
    (tmp_path / "Classes").mkdir()
    (tmp_path / "Classes" / "Feed.m").write_text("@implementation Feed\n- (void)reload {}\n", encoding="utf-8")
    formatted = "@implementation Feed\n- (void)reload {\n}\n"
    done = subprocess.CompletedProcess(args=[], returncode=0, stdout=formatted, stderr="")

    with patch("style_guard.formatter.subprocess.run", return_value=done) as run:
        response = client.post("/api/check", json={"provider": "github", "diff": CLEAN_DIFF})

    data = response.json()
    assert data["passed"] is False
    assert data["violations"][0]["path"] == "Classes/Feed.m"
    assert data["markdown"].startswith("### Code Style Check (`.h`, `.m` and `.mm`)")
    assert "-lines=2:2" in run.call_args[0][0]


def test_check_unknown_provider_is_rejected():
    with patch.object(main, "fetch_diff", new=AsyncMock()) as fetch:
        response = client.post(
            "/api/check",
            json={"provider": "sourceforge", "pullRequest": {"project": "o", "repo": "r", "number": 1}},
        )

    assert response.status_code == 400
    assert "Unknown SCM Provider" in response.json()["detail"]
    fetch.assert_not_awaited()


def test_check_requires_diff_or_pull_request():
    response = client.post("/api/check", json={"provider": "github"})

    assert response.status_code == 400


def test_check_fetches_pull_request_diff(read_fixture, app_settings):
    app_settings.workspace_root = None

    with patch.object(main, "fetch_diff", new=AsyncMock(return_value=read_fixture("github_pr.diff"))) as fetch:
        response = client.post(
            "/api/check",
            json={"provider": "bitbucket_server", "pullRequest": {"project": "PROJ", "repo": "app", "number": 3}},
        )

    assert response.status_code == 200
    assert "Classes/Feed.m" in response.json()["changes"]
    provider, pull_request, _ = fetch.call_args[0]
    assert provider.value == "bitbucket_server"
    assert pull_request.number == 3


def test_check_formatter_failure_is_server_error(app_settings, tmp_path):
    (tmp_path / "Classes").mkdir()
    (tmp_path / "Classes" / "Feed.m").write_text("x\n", encoding="utf-8")

    with patch("style_guard.formatter.subprocess.run", side_effect=FileNotFoundError()):
        response = client.post("/api/check", json={"provider": "github", "diff": CLEAN_DIFF})

    assert response.status_code == 500


# ==========================
# /webhook
# ==========================

def test_webhook_ping():
    response = post_webhook("ping", {"zen": "Keep it logically awesome."})

    assert response.json() == {"msg": "pong"}


def test_webhook_rejects_bad_signature():
    body = json.dumps({"zen": "x"}).encode("utf-8")

    response = client.post(
        "/webhook",
        content=body,
        headers={"X-GitHub-Event": "ping", "X-Hub-Signature-256": sign(body, "wrong")},
    )

    assert response.status_code == 401


def test_webhook_rejects_unsupported_algorithm():
    response = client.post(
        "/webhook",
        content=b"{}",
        headers={"X-GitHub-Event": "ping", "X-Hub-Signature-256": "sha1=abc"},
    )

    assert response.status_code == 400


def test_webhook_ignores_closed_pull_requests():
    response = post_webhook("pull_request", pr_payload(action="closed"))

    assert response.json() == {"msg": "ignored action closed"}


def test_webhook_requires_installation():
    payload = pr_payload()
    payload["installation"] = {}

    response = post_webhook("pull_request", payload)

    assert response.status_code == 400


@pytest.fixture
def github_calls():
    with patch.object(main, "generate_app_jwt", return_value="app-jwt"), \
            patch.object(main, "create_installation_token", new=AsyncMock(return_value="inst-token")), \
            patch.object(main, "load_style_check_config", side_effect=lambda installation_id, default: default), \
            patch.object(main, "fetch_github_pr_diff", new=AsyncMock(return_value=CLEAN_DIFF)) as fetch_diff, \
            patch.object(main, "fetch_file_content", new=AsyncMock(return_value="@implementation Feed\n- (void)reload {}\n")) as fetch_file, \
            patch.object(main, "post_pr_comment", new=AsyncMock()) as post_comment:
        yield MagicMock(fetch_diff=fetch_diff, fetch_file=fetch_file, post_comment=post_comment)


def test_webhook_posts_style_report(github_calls):
    formatted = "@implementation Feed\n- (void)reload {\n}\n"
    done = subprocess.CompletedProcess(args=[], returncode=0, stdout=formatted, stderr="")

    with patch("style_guard.formatter.subprocess.run", return_value=done):
        response = post_webhook("pull_request", pr_payload())

    assert response.status_code == 200
    assert response.json() == {"msg": "style report posted", "violations": 1}
    github_calls.fetch_diff.assert_awaited_once_with("https://github.example.com/octo/app/pull/7.diff", "inst-token")
    github_calls.fetch_file.assert_awaited_once_with(
        "https://api.github.example.com", "octo", "app", "Classes/Feed.m", "abc123", "inst-token"
    )
    comments_url, token, body = github_calls.post_comment.call_args[0]
    assert comments_url.endswith("/issues/7/comments")
    assert "Code style violations detected." in body
    assert "#### Classes/Feed.m" in body


def test_webhook_clean_pull_request_posts_nothing(github_calls):
    source = "@implementation Feed\n- (void)reload {}\n"
    done = subprocess.CompletedProcess(args=[], returncode=0, stdout=source, stderr="")

    with patch("style_guard.formatter.subprocess.run", return_value=done):
        response = post_webhook("pull_request", pr_payload(action="synchronize"))

    assert response.json() == {"msg": "no style violations", "files": 1}
    github_calls.post_comment.assert_not_awaited()


def test_webhook_token_failure(github_calls):
    with patch.object(main, "create_installation_token", new=AsyncMock(side_effect=RuntimeError("boom"))):
        response = post_webhook("pull_request", pr_payload())

    assert response.status_code == 500


# ==========================
# installations
# ==========================

def test_save_installation_settings():
    users, installations = MagicMock(), MagicMock()

    with patch("style_guard.routes.installations.get_users_collection", return_value=users), \
            patch("style_guard.routes.installations.get_installations_collection", return_value=installations):
        response = client.post(
            "/api/installations/42/settings",
            json={
                "userId": "u1",
                "selectedRepos": [{"full_name": "octo/app"}],
                "styleCheck": {"extensions": [".py"], "ignoreFilePatterns": ["^migrations/"]},
            },
        )

    assert response.json() == {"success": True, "installationId": 42}
    doc = installations.update_one.call_args[0][1]["$set"]
    assert doc["styleCheck"] == {
        "extensions": [".py"],
        "ignoreFilePatterns": ["^migrations/"],
        "formatterStyle": "file",
    }


def test_save_installation_settings_rejects_invalid_pattern():
    response = client.post(
        "/api/installations/42/settings",
        json={"userId": "u1", "selectedRepos": [], "styleCheck": {"ignoreFilePatterns": ["("]}},
    )

    assert response.status_code == 422


def test_get_installation():
    now = datetime.now(timezone.utc)
    installations = MagicMock()
    installations.find_one.return_value = {
        "installationId": 42,
        "userId": "u1",
        "selectedRepos": [],
        "styleCheck": {"extensions": [".m"]},
        "createdAt": now,
        "updatedAt": now,
    }

    with patch("style_guard.routes.installations.get_installations_collection", return_value=installations):
        response = client.get("/api/installations/42")

    assert response.json()["styleCheck"]["extensions"] == [".m"]


def test_load_style_check_config_falls_back_to_default():
    from style_guard.routes.installations import load_style_check_config

    installations = MagicMock()
    installations.find_one.return_value = None
    default = StyleCheckConfig(extensions=[".cpp"])

    with patch("style_guard.routes.installations.get_installations_collection", return_value=installations):
        assert load_style_check_config(42, default) is default

        installations.find_one.return_value = {"styleCheck": {"extensions": [".h"]}}
        assert load_style_check_config(42, default).extensions == [".h"]
