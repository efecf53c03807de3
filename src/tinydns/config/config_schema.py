"""JSON Schema-based validation for tinydns YAML configuration.

This module centralizes the structural validation of the main ``config.yaml``.
Per-rule semantic checks (required fields per record type) live in
``tinydns.rules`` and run after the schema has accepted the document.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from jsonschema import Draft202012Validator

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when the configuration file is malformed or incomplete."""


_STRING_LIST = {"type": "array", "items": {"type": "string"}}

_ANSWER_SET_SCHEMA: Dict[str, Any] = {
    "type": ["object", "null"],
    "additionalProperties": False,
    "properties": {
        "a": {"type": ["array", "string"], "items": {"type": "string"}},
        "aaaa": {"type": ["array", "string"], "items": {"type": "string"}},
        "mx": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["target"],
                "properties": {
                    "priority": {"type": "integer", "minimum": 0, "maximum": 65535},
                    "target": {"type": "string"},
                },
            },
        },
        "txt": {"type": ["array", "string"], "items": {"type": "string"}},
        "cname": {"type": "string"},
        "ns": {"type": ["array", "string"], "items": {"type": "string"}},
        "ptr": {"type": ["array", "string"], "items": {"type": "string"}},
        "srv": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["port", "target"],
                "properties": {
                    "priority": {"type": "integer", "minimum": 0, "maximum": 65535},
                    "weight": {"type": "integer", "minimum": 0, "maximum": 65535},
                    "port": {"type": "integer", "minimum": 1, "maximum": 65535},
                    "target": {"type": "string"},
                },
            },
        },
    },
}

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "tinydns configuration",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "listen": {
            "type": ["object", "null"],
            "additionalProperties": False,
            "properties": {
                "address": {"type": "string"},
                "net": {"enum": ["udp", "tcp"]},
            },
        },
        "records": {
            "type": ["array", "null"],
            "items": {
                "type": "object",
                "required": ["domain", "type"],
                "properties": {
                    "domain": {"type": "string", "minLength": 1},
                    "type": {"type": "string", "minLength": 1},
                    "action": {"type": "string"},
                    "value": {"type": ["string", "number"]},
                    "values": _STRING_LIST,
                    "ttl": {"type": "integer", "minimum": 0},
                    "priority": {"type": "integer", "minimum": 0},
                    "weight": {"type": "integer", "minimum": 0},
                    "port": {"type": "integer", "minimum": 0},
                    "target": {"type": "string"},
                },
            },
        },
        "static_records": {
            "type": ["object", "null"],
            "additionalProperties": _ANSWER_SET_SCHEMA,
        },
        "upstream": {
            "type": ["object", "null"],
            "additionalProperties": False,
            "properties": {
                "timeout": {"type": ["string", "null"]},
                "retries": {"type": "integer", "minimum": 0},
                "fallback_response": {"type": "boolean"},
                "default_a": {"type": "string"},
                "default_aaaa": {"type": "string"},
                "servers": _STRING_LIST,
                "provider": {"type": "string"},
            },
        },
        "cache": {
            "type": ["object", "null"],
            "additionalProperties": False,
            "properties": {
                "enabled": {"type": "boolean"},
                "path": {"type": ["string", "null"]},
                "memory_size": {"type": "integer", "minimum": 1},
            },
        },
        "logging": {
            "type": ["object", "null"],
            "properties": {
                "level": {"type": "string"},
                "stderr": {"type": "boolean"},
                "file": {"type": ["string", "null"]},
                "log_dir": {"type": ["string", "null"]},
                "syslog": {"type": ["boolean", "object"]},
            },
        },
        "querylog": {
            "type": ["object", "null"],
            "additionalProperties": False,
            "properties": {
                "json_file": {"type": ["string", "null"]},
            },
        },
    },
}


def _format_path(path) -> str:
    """Render a jsonschema error path like ``records[2].ttl``."""

    out = "config"
    for part in path:
        if isinstance(part, int):
            out += f"[{part}]"
        else:
            out += f".{part}"
    return out


def validate_config(cfg: Dict[str, Any], *, config_path: Optional[str] = None) -> None:
    """Brief: Validate a parsed configuration mapping against CONFIG_SCHEMA.

    Inputs:
      - cfg: Parsed YAML mapping.
      - config_path: Optional source path used in error messages.

    Outputs:
      - None.

    Raises:
      - ConfigError listing every schema violation, sorted by location.
    """

    validator = Draft202012Validator(CONFIG_SCHEMA)
    errors = sorted(validator.iter_errors(cfg), key=lambda e: [str(p) for p in e.absolute_path])
    if not errors:
        return

    source = config_path or "<config>"
    lines = [f"Invalid configuration in {source}:"]
    for err in errors:
        lines.append(f"  - {_format_path(err.absolute_path)}: {err.message}")
    logger.debug("Config validation failed with %d error(s)", len(errors))
    raise ConfigError("\n".join(lines))
