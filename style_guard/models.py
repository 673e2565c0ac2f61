import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .config import DEFAULT_EXTENSIONS


class RepoSelection(BaseModel):
    repo_id: Optional[int] = Field(None, alias="repoId")
    full_name: str = Field(..., alias="full_name")

    model_config = {"populate_by_name": True}


class StyleCheckConfig(BaseModel):
    extensions: list[str] = Field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    ignore_file_patterns: list[str] = Field(default_factory=list, alias="ignoreFilePatterns")
    formatter_style: str = Field("file", alias="formatterStyle")

    model_config = {"populate_by_name": True}

    @field_validator("extensions", "ignore_file_patterns", mode="before")
    @classmethod
    def wrap_single_value(cls, value):
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("ignore_file_patterns")
    @classmethod
    def check_patterns_compile(cls, patterns: list[str]) -> list[str]:
        for pattern in patterns:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid ignore pattern {pattern!r}: {e}") from e
        return patterns


class InstallationSettingsRequest(BaseModel):
    user_id: str = Field(..., alias="userId")
    selected_repos: list[RepoSelection] = Field(..., alias="selectedRepos")
    style_check: StyleCheckConfig = Field(default_factory=StyleCheckConfig, alias="styleCheck")

    model_config = {"populate_by_name": True}


class InstallationUpdateRequest(BaseModel):
    selected_repos: Optional[list[RepoSelection]] = Field(None, alias="selectedRepos")
    style_check: Optional[StyleCheckConfig] = Field(None, alias="styleCheck")

    model_config = {"populate_by_name": True}


class InstallationResponse(BaseModel):
    installation_id: int = Field(..., alias="installationId")
    user_id: str = Field(..., alias="userId")
    selected_repos: list[RepoSelection] = Field(..., alias="selectedRepos")
    style_check: StyleCheckConfig = Field(default_factory=StyleCheckConfig, alias="styleCheck")
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")

    model_config = {"populate_by_name": True, "by_alias": True}


class FileViolation(BaseModel):
    path: str
    patch: str


class CheckResult(BaseModel):
    changes: dict[str, list[int]]
    violations: list[FileViolation] = Field(default_factory=list)
    markdown: str = ""

    @property
    def passed(self) -> bool:
        return not self.violations


class PullRequestRef(BaseModel):
    # GitHub: owner/repo, GitLab: project id or path, Bitbucket Server: project key/repo slug
    project: str
    repo: Optional[str] = None
    number: int


class CheckRequest(BaseModel):
    provider: Optional[str] = None
    diff: Optional[str] = None
    pull_request: Optional[PullRequestRef] = Field(None, alias="pullRequest")
    style_check: Optional[StyleCheckConfig] = Field(None, alias="styleCheck")

    model_config = {"populate_by_name": True}


class CheckResponse(BaseModel):
    provider: str
    passed: bool
    changes: dict[str, list[int]]
    violations: list[FileViolation]
    markdown: str
