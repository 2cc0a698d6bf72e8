"""
Loader configuration.

Precedence (highest first): explicit overrides, YAML config file,
environment variables, defaults.

Environment:
    NREQUIRE_PATH       Colon-separated module search paths
    NREQUIRE_LOG_LEVEL  Logging level name (DEBUG, INFO, ...)

YAML (``nrequire.yaml``):
    search_paths: [modules, vendor/modules]
    extensions: [.py]
    max_workers: 4
    restrict_builtins: false
"""

import logging
import os
from pathlib import Path
from typing import Any
from typing import Literal

import yaml
from pydantic import BaseModel
from pydantic import Field
from pydantic import ValidationError
from pydantic import field_validator

from .compiler import CompileUnitBuilder
from .instantiate import ModuleInstantiator
from .registry import ModuleRegistry
from .sources import FileSourceResolver

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "nrequire.yaml"
ENV_PATH = "NREQUIRE_PATH"
ENV_LOG_LEVEL = "NREQUIRE_LOG_LEVEL"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class ConfigError(Exception):
    """Configuration file is unreadable or invalid."""

    pass


class LoaderConfig(BaseModel):
    """Settings for building a module registry."""

    search_paths: list[Path] = Field(default_factory=list, description="Bare-name lookup directories")
    base_dir: Path | None = Field(default=None, description="Anchor for top-level relative ids")
    extensions: list[str] = Field(default_factory=lambda: [".py"], description="Module file suffixes")
    max_workers: int = Field(default=4, ge=1, description="Worker pool size")
    log_level: LogLevel = "WARNING"
    natives: bool = Field(default=True, description="Register console/global native modules")
    restrict_builtins: bool = Field(default=False, description="Hide open/exec/eval/... from modules")

    @field_validator("extensions")
    @classmethod
    def _dotted(cls, value: list[str]) -> list[str]:
        return [ext if ext.startswith(".") else f".{ext}" for ext in value]

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "LoaderConfig":
        """Build config from environment variables only."""
        return cls(**_env_settings(os.environ if environ is None else environ))


def _env_settings(environ) -> dict[str, Any]:
    settings: dict[str, Any] = {}
    if paths := environ.get(ENV_PATH):
        settings["search_paths"] = [p for p in paths.split(os.pathsep) if p]
    if level := environ.get(ENV_LOG_LEVEL):
        settings["log_level"] = level
    return settings


def read_config_file(path: Path) -> dict[str, Any]:
    """Read a YAML config file.

    Relative search paths are anchored at the config file's directory.

    Raises:
        ConfigError: File can't be read or isn't a YAML mapping
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping, got {type(data).__name__}")

    anchor = path.parent
    if "search_paths" in data:
        data["search_paths"] = [str(anchor / p) for p in data["search_paths"] or []]
    if data.get("base_dir"):
        data["base_dir"] = str(anchor / data["base_dir"])
    return data


def load_config(
    path: Path | None = None,
    environ: dict[str, str] | None = None,
    **overrides: Any,
) -> LoaderConfig:
    """
    Load configuration from environment, optional YAML file, and overrides.

    Args:
        path: Config file; defaults to ./nrequire.yaml when it exists
        environ: Environment mapping (defaults to os.environ)
        **overrides: Explicit values; None means "not given"

    Raises:
        ConfigError: Invalid file or values
    """
    settings = _env_settings(os.environ if environ is None else environ)

    if path is None and Path(DEFAULT_CONFIG_FILE).is_file():
        path = Path(DEFAULT_CONFIG_FILE)
    if path is not None:
        settings.update(read_config_file(Path(path)))
        logger.debug(f"Loaded config from {path}")

    settings.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return LoaderConfig(**settings)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def build_registry(config: LoaderConfig | None = None) -> ModuleRegistry:
    """Wire resolver, builder and instantiator into a registry."""
    config = config or LoaderConfig()
    resolver = FileSourceResolver(
        search_paths=config.search_paths,
        base_dir=config.base_dir,
        extensions=tuple(config.extensions),
    )
    return ModuleRegistry(
        resolver=resolver,
        builder=CompileUnitBuilder(),
        instantiator=ModuleInstantiator(restrict_builtins=config.restrict_builtins),
        natives=config.natives,
    )
