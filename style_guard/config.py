from functools import lru_cache
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_EXTENSIONS = [".h", ".m", ".mm"]


class Settings(BaseSettings):
    scm_provider: str = Field("github", alias="SCM_PROVIDER")

    github_app_id: str = Field("", alias="GITHUB_APP_ID")
    github_private_key_path: str = Field("", alias="GITHUB_PRIVATE_KEY_PATH")
    github_webhook_secret: str = Field("", alias="GITHUB_WEBHOOK_SECRET")
    github_api_url: str = Field("https://api.github.com", alias="GITHUB_API_URL")
    github_token: str = Field("", alias="GITHUB_TOKEN")

    gitlab_base_url: str = Field("https://gitlab.com", alias="GITLAB_BASE_URL")
    gitlab_token: str = Field("", alias="GITLAB_TOKEN")

    bitbucket_server_url: str = Field("", alias="BITBUCKET_SERVER_URL")
    bitbucket_server_token: str = Field("", alias="BITBUCKET_SERVER_TOKEN")

    style_extensions: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_EXTENSIONS), alias="STYLE_EXTENSIONS"
    )
    style_ignore_patterns: Annotated[list[str], NoDecode] = Field(
        default_factory=list, alias="STYLE_IGNORE_PATTERNS"
    )
    formatter_binary: str = Field("clang-format", alias="FORMATTER_BINARY")
    formatter_style: str = Field("file", alias="FORMATTER_STYLE")
    workspace_root: str | None = Field(None, alias="WORKSPACE_ROOT")

    log_level: str = Field("info", alias="LOG_LEVEL")
    cors_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=list, alias="CORS_ORIGINS"
    )
    mongodb_uri: str = Field("mongodb://localhost:27017", alias="MONGODB_URI")
    mongodb_db: str = Field("style_guard", alias="MONGODB_DB")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("style_extensions", "style_ignore_patterns", "cors_origins", mode="before")
    @classmethod
    def split_comma_list(cls, value):
        # env vars hold comma separated lists: STYLE_EXTENSIONS=.h,.m,.mm
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()
