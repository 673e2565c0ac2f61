from pathlib import Path

import pytest

from style_guard.config import Settings

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def read_fixture():
    def _read(name: str) -> str:
        return (FIXTURES_DIR / name).read_text(encoding="utf-8")
    return _read


@pytest.fixture
def settings(tmp_path):
    return Settings(
        scm_provider="github",
        github_api_url="https://api.github.example.com",
        github_token="mock_gh_token",
        github_webhook_secret="mock_secret",
        gitlab_base_url="https://gitlab.example.com",
        gitlab_token="mock_gl_token",
        bitbucket_server_url="https://bitbucket.example.com",
        bitbucket_server_token="mock_bb_token",
        workspace_root=str(tmp_path),
    )
