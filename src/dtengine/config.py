"""Loading of the `dtengine.yaml` configuration file."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

import click
import dacite
import yaml

from .cache import DEFAULT_RETRY_DELAYS, data_dir_or_default
from .query import EndpointConfig
from .report import DEFAULT_INLINE_THRESHOLD
from .worker import DEFAULT_FANOUT_WORKERS, DEFAULT_MAX_DEPTH

CONFIG_FILENAME: Final[str] = "dtengine.yaml"

SUPPORTED_VERSION: Final[int] = 0


@dataclass(frozen=True, kw_only=True)
class WorkerConfig:
    fanout_workers: int = DEFAULT_FANOUT_WORKERS
    max_depth: int = DEFAULT_MAX_DEPTH
    retry_delays: list[float] = field(default_factory=lambda: list(DEFAULT_RETRY_DELAYS))
    timeout: float = 60.0


@dataclass(frozen=True, kw_only=True)
class ReportConfig:
    inline_threshold: int = DEFAULT_INLINE_THRESHOLD


@dataclass(frozen=True, kw_only=True)
class EngineConfig:
    """
    Contents of `<data_dir>/dtengine.yaml`.

    Attributes:
        version: format version, must be 0
        default_endpoint: name of the endpoint used when a query has no url_key
        endpoints: name -> endpoint
        worker: execution settings
        report: report computation settings
    """

    version: int = SUPPORTED_VERSION
    default_endpoint: str | None = None
    endpoints: dict[str, EndpointConfig] = field(default_factory=dict)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    report: ReportConfig = field(default_factory=ReportConfig)


def config_path_for_data_dir(data_dir: str | Path | None) -> Path:
    """Return the path of the configuration file inside the data directory."""
    return data_dir_or_default(data_dir) / CONFIG_FILENAME


def load_config(config_path: Path, *, missing_ok: bool = False) -> EngineConfig:
    """
    Load the engine configuration from a YAML file.

    With `missing_ok`, a missing file yields the default configuration.

    Raises:
        click.ClickException: when the file is missing, malformed or invalid.
    """
    try:
        content = config_path.read_text()
    except FileNotFoundError as exc:
        if missing_ok:
            return EngineConfig()
        raise click.ClickException(f"Engine config not found: {config_path}") from exc

    try:
        data = yaml.safe_load(content) or {}
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Invalid YAML in {config_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise click.ClickException("Engine config must be a mapping.")

    try:
        config = dacite.from_dict(
            EngineConfig,
            data,
            config=dacite.Config(type_hooks={float: float}, strict=True),
        )
    except (dacite.DaciteError, TypeError, ValueError) as exc:
        raise click.ClickException(f"Invalid engine config: {exc}") from exc

    if config.version != SUPPORTED_VERSION:
        raise click.ClickException(f"Unsupported engine config version: {config.version}")

    if config.default_endpoint and config.default_endpoint.lower() not in {
        name.lower() for name in config.endpoints
    }:
        raise click.ClickException(f"Unknown default endpoint: {config.default_endpoint}")

    if config.worker.fanout_workers < 1:
        raise click.ClickException("Engine config worker.fanout_workers must be positive.")

    return config
