"""HTTP server configuration with environment variable support."""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerConfig(BaseSettings):
    """Server configuration loaded from LESSONFORGE_SERVER_* variables.

    Example:
        ```bash
        export LESSONFORGE_SERVER_PORT=8080
        export LESSONFORGE_SERVER_SIGNING_KEY=change-me
        ```
    """

    host: str = Field(default="127.0.0.1", description="Server bind address")
    port: int = Field(default=8000, description="Server port")
    reload: bool = Field(default=False, description="Auto-reload on code changes")
    log_level: Literal["debug", "info", "warning", "error", "critical"] = Field(
        default="info", description="Logging level"
    )
    access_log: bool = Field(default=True, description="Enable uvicorn access logging")

    title: str = Field(default="LessonForge API", description="API title shown in docs")
    version: str = Field(default="0.1.0", description="API version")

    signing_key: str | None = Field(
        default=None, description="Shared secret required by /internal endpoints"
    )
    data_dir: Path = Field(
        default=Path(".lessonforge") / "lessons", description="Filesystem repository root"
    )
    project_root: Path = Field(
        default=Path("."), description="Directory holding .lessonforge/config.yaml"
    )
    cors_origins: list[str] = Field(
        default_factory=list, description="Origins allowed to call the API from a browser"
    )

    model_config = SettingsConfigDict(
        env_prefix="LESSONFORGE_SERVER_",
        case_sensitive=False,
    )
