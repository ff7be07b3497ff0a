"""Pipeline configuration schema and loading."""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from lessonforge.errors import ConfigurationError

CONFIG_DIR = ".lessonforge"
CONFIG_FILE = "config.yaml"


class BudgetConfig(BaseModel):
    """Attempt and time budgets for one lesson."""

    max_attempts: int = Field(default=3, ge=1, description="Hard cap on generation attempts")
    max_minutes: float = Field(
        default=10, gt=0, description="Wall-clock ceiling for the whole attempt loop"
    )
    attempt_timeout_seconds: float = Field(
        default=120,
        gt=0,
        description="Timeout for one generation call, bounded by the remaining ceiling",
    )
    backoff_base_seconds: float = Field(
        default=2.0, ge=0, description="Delay after the first failed attempt"
    )
    backoff_max_seconds: float = Field(default=10.0, ge=0, description="Upper bound on the delay")


class ModelConfig(BaseModel):
    """Generation capability settings."""

    model: str = Field(default="claude-sonnet-4-5", description="Model identifier")
    max_tokens: int = Field(default=8192, description="Maximum tokens per response")
    temperature: float = Field(default=0.4, ge=0, le=1)
    max_retries: int = Field(
        default=3, ge=1, description="Retries for rate limits and transient API errors"
    )


class SandboxConfig(BaseModel):
    """Sandbox executor settings."""

    isolation: Literal["frame", "shadow"] = Field(
        default="frame", description="frame = separate browsing context, shadow = DOM boundary"
    )
    runtime_script_url: str = Field(
        default="/vendor/react.production.min.js", description="UI library served to the frame"
    )
    dom_script_url: str = Field(
        default="/vendor/react-dom.production.min.js",
        description="DOM renderer served to the frame",
    )
    frame_height_px: int = Field(default=600, ge=100)
    resource_base: str = Field(
        default="blob:lessonforge", description="Prefix for ephemeral resource handles"
    )


class ForgeConfig(BaseModel):
    """Complete pipeline configuration.

    Loaded from .lessonforge/config.yaml. CLI flags override config values
    with precedence:
    1. CLI flags (highest)
    2. .lessonforge/config.yaml
    3. Defaults (lowest)
    """

    budgets: BudgetConfig = Field(default_factory=BudgetConfig)
    model: ModelConfig = Field(default_factory=ModelConfig)
    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)


def load_config(project_root: Path | None = None) -> ForgeConfig:
    """Load configuration from .lessonforge/config.yaml.

    Args:
        project_root: Directory containing .lessonforge/. Defaults to cwd.

    Returns:
        ForgeConfig with values from file or defaults

    Raises:
        ConfigurationError: If the file is not valid YAML or fails validation
    """
    if project_root is None:
        project_root = Path.cwd()

    config_path = project_root / CONFIG_DIR / CONFIG_FILE
    if not config_path.exists():
        return ForgeConfig()

    try:
        with open(config_path) as f:
            raw_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}", cause=e) from e

    if not isinstance(raw_config, dict):
        raise ConfigurationError(f"Expected a mapping in {config_path}")

    try:
        return ForgeConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid config in {config_path}: {e}", cause=e) from e


def merge_cli_overrides(
    config: ForgeConfig,
    max_attempts: int | None = None,
    max_minutes: float | None = None,
    model: str | None = None,
) -> ForgeConfig:
    """Merge CLI flag overrides into config.

    Args:
        config: Base configuration from file
        max_attempts: CLI override for the attempt cap
        max_minutes: CLI override for the wall-clock ceiling
        model: CLI override for the model identifier

    Returns:
        New ForgeConfig with overrides applied
    """
    updated = config.model_copy(deep=True)

    if max_attempts is not None:
        updated.budgets.max_attempts = max_attempts
    if max_minutes is not None:
        updated.budgets.max_minutes = max_minutes
    if model is not None:
        updated.model.model = model

    return updated


def save_example_config(output_path: Path) -> None:
    """Write an example config.yaml with every section filled in.

    Args:
        output_path: Path to write example config.yaml
    """
    example = ForgeConfig().model_dump(mode="json")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        yaml.dump(example, f, default_flow_style=False, sort_keys=False)
