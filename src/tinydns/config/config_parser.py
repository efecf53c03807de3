"""Configuration parsing and normalization helpers for tinydns.

Brief:
  This module contains the configuration-parsing utilities used by the CLI
  entrypoint. It centralizes:
    - reading YAML config files
    - JSON Schema validation
    - Go-style duration parsing for the upstream timeout
    - overlaying the ``upstream``/``listen``/``cache`` sections onto Options
    - building the validated rule list and the static record store

Inputs:
  - YAML config dicts and paths

Outputs:
  - LoadedConfig bundles ready for the resolution pipeline
"""

from __future__ import annotations

import dataclasses
import logging
import re
from typing import Any, Dict, List, NamedTuple, Optional

import yaml

from ..options import DEFAULT_OPTIONS, Options
from ..public_servers import get_public_dns_servers
from ..records import RecordStore
from ..rules import ConfigRule, load_rules
from .config_schema import ConfigError, validate_config

logger = logging.getLogger(__name__)

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


class LoadedConfig(NamedTuple):
    """Everything the server needs from a config file.

    Inputs:
      - None (constructed by load_config).
    Outputs:
      - options: Options with file overrides applied.
      - rules: Ordered, validated ConfigRule list.
      - records: Static RecordStore.
      - logging: Raw ``logging`` section for init_logging().
      - querylog: Raw ``querylog`` section.
    """

    options: Options
    rules: List[ConfigRule]
    records: RecordStore
    logging: Dict[str, Any]
    querylog: Dict[str, Any]


def parse_duration(text: str) -> float:
    """Brief: Parse a Go-style duration string into seconds.

    Inputs:
      - text: Duration such as ``500ms``, ``2s`` or ``1m30s``. A bare number is
        taken as seconds.

    Outputs:
      - float: Duration in seconds.

    Raises:
      - ConfigError when the string is empty or malformed.

    Example:
      >>> parse_duration("1m30s")
      90.0
      >>> parse_duration("500ms")
      0.5
    """

    raw = str(text).strip()
    if not raw:
        raise ConfigError("empty duration")
    try:
        return float(raw)
    except ValueError:
        pass

    pos = 0
    total = 0.0
    for m in _DURATION_PART.finditer(raw):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _DURATION_UNITS[m.group(2)]
        pos = m.end()
    if pos != len(raw):
        raise ConfigError(f"invalid duration {text!r}")
    return total


def read_config_file(config_path: str) -> Dict[str, Any]:
    """Brief: Read and schema-validate a YAML config file.

    Inputs:
      - config_path: Path to the YAML configuration file.

    Outputs:
      - dict: Parsed configuration mapping (empty files yield {}).

    Raises:
      - ConfigError: unreadable file, invalid YAML, or schema violations.
    """

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
    except OSError as exc:
        raise ConfigError(f"failed to read config file: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to parse YAML config: {exc}") from exc

    if not isinstance(cfg, dict):
        raise ConfigError("Configuration root must be a mapping")

    validate_config(cfg, config_path=config_path)
    return cfg


def apply_config_overrides(options: Options, cfg: Dict[str, Any]) -> Options:
    """Brief: Overlay config file sections onto an Options snapshot.

    Inputs:
      - options: Base Options (typically DEFAULT_OPTIONS).
      - cfg: Validated configuration mapping.

    Outputs:
      - Options: New snapshot; only keys present and set in the file override
        the base values. Retries of 0 and an unset fallback flag leave the
        base untouched.

    Raises:
      - ConfigError for an invalid timeout or unknown provider.
    """

    changes: Dict[str, Any] = {}

    listen = cfg.get("listen") or {}
    if listen.get("address"):
        changes["listen_address"] = str(listen["address"])
    if listen.get("net"):
        changes["net"] = str(listen["net"]).lower()

    upstream = cfg.get("upstream") or {}
    if upstream.get("timeout"):
        changes["upstream_timeout"] = parse_duration(upstream["timeout"])
    if int(upstream.get("retries") or 0) > 0:
        changes["upstream_retries"] = int(upstream["retries"])
    if upstream.get("fallback_response"):
        changes["fallback_response"] = True
    if upstream.get("default_a"):
        changes["default_a"] = str(upstream["default_a"])
    if upstream.get("default_aaaa"):
        changes["default_aaaa"] = str(upstream["default_aaaa"])

    servers = list(upstream.get("servers") or [])
    provider = upstream.get("provider")
    if not servers and provider:
        provided = get_public_dns_servers(provider)
        if provided is None:
            raise ConfigError(f"unknown upstream provider {provider!r}")
        servers = provided
    if servers:
        changes["upstream_servers"] = tuple(str(s) for s in servers)

    cache = cfg.get("cache") or {}
    if "enabled" in cache:
        changes["disk_cache"] = bool(cache["enabled"])
    if cache.get("path"):
        changes["cache_path"] = str(cache["path"])
    if cache.get("memory_size"):
        changes["cache_memory_size"] = int(cache["memory_size"])

    return dataclasses.replace(options, **changes)


def build_loaded_config(
    cfg: Dict[str, Any],
    *,
    base: Options = DEFAULT_OPTIONS,
    config_path: Optional[str] = None,
) -> LoadedConfig:
    """Brief: Turn a validated mapping into a LoadedConfig.

    Inputs:
      - cfg: Mapping accepted by validate_config().
      - base: Options the file overlays.
      - config_path: Optional path recorded on Options.config_file.

    Outputs:
      - LoadedConfig.

    Raises:
      - ConfigError for malformed rules or static records.
    """

    options = apply_config_overrides(base, cfg)
    if config_path is not None:
        options = dataclasses.replace(options, config_file=config_path)

    rules = load_rules(cfg.get("records") or [])
    try:
        records = RecordStore.from_config(cfg.get("static_records") or {})
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigError(f"invalid static_records: {exc}") from exc

    return LoadedConfig(
        options=options,
        rules=rules,
        records=records,
        logging=dict(cfg.get("logging") or {}),
        querylog=dict(cfg.get("querylog") or {}),
    )


def load_config(config_path: str, *, base: Options = DEFAULT_OPTIONS) -> LoadedConfig:
    """Brief: Read, validate and normalize a YAML config file.

    Inputs:
      - config_path: Path to the YAML configuration file.
      - base: Options the file overlays.

    Outputs:
      - LoadedConfig.

    Raises:
      - ConfigError on any configuration problem.
    """

    cfg = read_config_file(config_path)
    loaded = build_loaded_config(cfg, base=base, config_path=config_path)
    logger.info(
        "Loaded %d DNS records from config file: %s", len(loaded.rules), config_path
    )
    return loaded
