"""Configuration loading from CLI args, env vars, and optional YAML file.

Precedence, lowest first: dataclass defaults, YAML file, KUBETAIL_* env vars,
command-line arguments.
"""

import logging
import os
from dataclasses import dataclass, field

import yaml

from kubetail.errors import ConfigError
from kubetail.filters import build_rules, split_patterns
from kubetail.models import FilterKind, FilterRule
from kubetail.reader import DEFAULT_CHUNK_SIZE

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
ENV_PREFIX = "KUBETAIL_"


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes")


def _to_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return _parse_bool(str(value))


@dataclass(frozen=True)
class Config:
    names: list[str] = field(default_factory=list)
    in_cluster: bool = False
    kubeconfig: str | None = None
    namespace: str | None = None
    container: str | None = None
    show_headers: bool = False
    color: bool = True
    tail_lines: int = 10
    chunk_size: int = DEFAULT_CHUNK_SIZE
    poll_interval: float = 0.5
    fail_fast: bool = False
    log_level: str = "INFO"
    filter_rules: list[FilterRule] = field(default_factory=list)


def load_yaml_config(path: str | None) -> dict:
    """Load settings from a YAML file. Returns empty dict if no path."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at top level")
    logger.debug("Loaded YAML config from %s", path)
    return data


def _yaml_filter_specs(entries) -> list[tuple[FilterKind, list[str]]]:
    """Read the ordered `filters:` list, e.g. [{vgrep: [POST]}, {grep: foo}]."""
    if entries is None:
        return []
    if not isinstance(entries, list):
        raise ConfigError("'filters' must be a list of {grep: ...} or {vgrep: ...} entries")
    specs = []
    for entry in entries:
        if not isinstance(entry, dict) or len(entry) != 1:
            raise ConfigError(f"invalid filter entry: {entry!r}")
        key, value = next(iter(entry.items()))
        try:
            kind = FilterKind(key)
        except ValueError:
            raise ConfigError(f"unknown filter kind {key!r}, expected 'grep' or 'vgrep'") from None
        if isinstance(value, str):
            patterns = split_patterns(value)
        else:
            patterns = [str(p) for p in value or []]
        specs.append((kind, patterns))
    return specs


def _setting(cli_value, name: str, yaml_data: dict, default, convert):
    """Resolve one setting: CLI, then env var, then YAML, then default."""
    if cli_value is not None:
        return cli_value
    raw = os.environ.get(ENV_PREFIX + name.upper())
    try:
        if raw:
            return convert(raw)
        if yaml_data.get(name) is not None:
            return convert(yaml_data[name])
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid value for {name}: {e}") from e
    return default


def _flag(cli_value: bool) -> bool | None:
    """store_true flags only override lower layers when actually given."""
    return True if cli_value else None


def load_config(cli_args, yaml_data: dict) -> Config:
    """Build Config from CLI args, env vars, and parsed YAML data."""
    filter_specs = _yaml_filter_specs(yaml_data.get("filters"))
    filter_specs.extend(getattr(cli_args, "filters", None) or [])

    color = _setting(False if getattr(cli_args, "no_color", False) else None,
                     "color", yaml_data, Config.color, _to_bool)

    config = Config(
        names=list(cli_args.names),
        in_cluster=_setting(_flag(cli_args.in_cluster), "in_cluster", yaml_data,
                            Config.in_cluster, _to_bool),
        kubeconfig=_setting(cli_args.kubeconfig, "kubeconfig", yaml_data, None, str),
        namespace=_setting(cli_args.namespace, "namespace", yaml_data, None, str),
        container=_setting(cli_args.container, "container", yaml_data, None, str),
        show_headers=_setting(_flag(cli_args.show_headers), "show_headers", yaml_data,
                              Config.show_headers, _to_bool),
        color=color,
        tail_lines=_setting(cli_args.tail_lines, "tail_lines", yaml_data, Config.tail_lines, int),
        chunk_size=_setting(None, "chunk_size", yaml_data, Config.chunk_size, int),
        poll_interval=_setting(None, "poll_interval", yaml_data, Config.poll_interval, float),
        fail_fast=_setting(_flag(cli_args.fail_fast), "fail_fast", yaml_data,
                           Config.fail_fast, _to_bool),
        log_level=_setting(cli_args.log_level, "log_level", yaml_data, Config.log_level,
                           str).upper(),
        filter_rules=build_rules(filter_specs),
    )
    validate_config(config)
    return config


def validate_config(config: Config):
    if config.tail_lines < 0:
        raise ConfigError(f"tail_lines must be >= 0, got {config.tail_lines}")
    if config.chunk_size <= 0:
        raise ConfigError(f"chunk_size must be > 0, got {config.chunk_size}")
    if config.poll_interval <= 0:
        raise ConfigError(f"poll_interval must be > 0, got {config.poll_interval}")
    if config.log_level not in LOG_LEVELS:
        raise ConfigError(f"unknown log level {config.log_level!r}, expected one of {', '.join(LOG_LEVELS)}")
