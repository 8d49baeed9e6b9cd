"""JSON Schema-based validation for dohgate YAML configuration.

The schema lives in this module as ``CONFIG_SCHEMA``; ``validate_config``
expands variables first and then validates the result with jsonschema.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from typing import Any, Dict, List, Optional

from jsonschema import Draft202012Validator, ValidationError

logger = logging.getLogger(__name__)

_LISTENER_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "enabled": {"type": "boolean"},
        "host": {"type": "string"},
        "port": {"type": "integer", "minimum": 0, "maximum": 65535},
    },
    "additionalProperties": False,
}

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "dohgate configuration",
    "type": "object",
    "properties": {
        "listen": {
            "type": "object",
            "properties": {
                "host": {"type": "string"},
                "port": {"type": "integer", "minimum": 0, "maximum": 65535},
                "udp": _LISTENER_SCHEMA,
                "tcp": _LISTENER_SCHEMA,
            },
            "additionalProperties": False,
        },
        "upstream": {
            "type": "object",
            "properties": {
                "url": {"type": "string", "pattern": "^https?://"},
                "headers": {
                    "type": "object",
                    "additionalProperties": {"type": "string"},
                },
                "timeout_ms": {"type": ["integer", "null"], "minimum": 1},
                "tls": {
                    "type": "object",
                    "properties": {
                        "verify": {"type": "boolean"},
                        "ca_file": {"type": ["string", "null"]},
                    },
                    "additionalProperties": False,
                },
            },
            "additionalProperties": False,
        },
        "zone": {
            "type": "object",
            "properties": {
                "file_paths": {"type": "array", "items": {"type": "string"}},
                "records": {"type": "array", "items": {"type": "string"}},
            },
            "additionalProperties": False,
        },
        "logging": {
            "type": "object",
            "properties": {
                "level": {
                    "type": "string",
                    "enum": [
                        "debug",
                        "info",
                        "warn",
                        "warning",
                        "error",
                        "crit",
                        "critical",
                    ],
                },
                "stderr": {"type": "boolean"},
                "file": {"type": ["string", "null"]},
                "syslog": {"type": ["boolean", "object"]},
            },
            "additionalProperties": False,
        },
    },
    "additionalProperties": False,
}

_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)\}")


def _normalize_variables_for_validation(cfg: Dict[str, Any]) -> None:
    """Brief: Expand top-level ``vars`` into the config and remove the group.

    Inputs:
      - cfg: Parsed YAML configuration mapping (mutated in-place).

    Outputs:
      - None.

    Behavior:
      - Replaces ``${KEY}`` occurrences inside strings.
      - A string that is exactly ``${KEY}`` is replaced with the variable's
        YAML value (list/dict/int/etc.).
      - Cycles between variables raise ValueError.
    """

    variables = cfg.get("vars")
    if variables is None and "variables" in cfg:
        variables = cfg.pop("variables")
    if variables is None:
        return
    if not isinstance(variables, dict):
        raise ValueError("config.vars must be a mapping when present")

    for k in variables.keys():
        if not isinstance(k, str) or not re.fullmatch(r"[A-Z_][A-Z0-9_]*", k):
            raise ValueError(f"config.vars key {k!r} must match [A-Z_][A-Z0-9_]*")

    resolved: Dict[str, Any] = {}

    def _resolve_var(key: str, stack: List[str]) -> Any:
        if key in resolved:
            return resolved[key]
        if key in stack:
            cycle = " -> ".join(stack + [key])
            raise ValueError(f"config.vars contains a cycle: {cycle}")
        if key not in variables:
            raise KeyError(key)
        resolved[key] = _expand_obj(variables[key], stack + [key])
        return resolved[key]

    def _expand_string(text: str, stack: List[str]) -> Any:
        whole = _VAR_PATTERN.fullmatch(text)
        if whole and whole.group(1) in variables:
            return copy.deepcopy(_resolve_var(whole.group(1), stack))

        def _repl(match: re.Match) -> str:
            try:
                v = _resolve_var(match.group(1), stack)
            except KeyError:
                return match.group(0)
            if isinstance(v, bool):
                return "true" if v else "false"
            if v is None:
                return "null"
            if isinstance(v, (int, float, str)):
                return str(v)
            return json.dumps(v)

        return _VAR_PATTERN.sub(_repl, text)

    def _expand_obj(obj: Any, stack: List[str]) -> Any:
        if isinstance(obj, str):
            return _expand_string(obj, stack)
        if isinstance(obj, list):
            return [_expand_obj(item, stack) for item in obj]
        if isinstance(obj, dict):
            return {k: _expand_obj(v, stack) for k, v in obj.items()}
        return obj

    for k in list(variables.keys()):
        _resolve_var(k, [])

    for top_key in list(cfg.keys()):
        if top_key == "vars":
            continue
        cfg[top_key] = _expand_obj(cfg[top_key], [])

    cfg.pop("vars", None)


def _format_errors(errors: List[ValidationError], *, config_path: Optional[str]) -> str:
    """Brief: Format jsonschema validation errors into a human-readable string."""

    lines: List[str] = [f"Invalid configuration in {config_path or '<config dict>'}:"]
    for err in errors:
        instance_path = "/".join(str(p) for p in err.path) or "<root>"
        schema_path = "/".join(str(p) for p in err.schema_path)
        lines.append(f"- {instance_path}: {err.message} (schema: {schema_path})")
    return "\n".join(lines)


def validate_config(
    cfg: Dict[str, Any],
    *,
    config_path: Optional[str] = "./config.yaml",
    unknown_keys: str = "warn",
) -> None:
    """Brief: Validate a parsed YAML configuration mapping against CONFIG_SCHEMA.

    Inputs:
      - cfg: Dict loaded from YAML (mutated: variables are expanded).
      - config_path: Optional path used only in error messages.
      - unknown_keys: "ignore", "warn" (default) or "error" for keys the
        schema does not describe.

    Outputs:
      - None on success.

    Raises:
      - ValueError: when validation fails, or when ``unknown_keys`` is "error"
        and unknown keys are present.

    Example:
      >>> validate_config({"upstream": {"url": "https://dns.google.com/resolve"}})
    """
    if unknown_keys not in {"ignore", "warn", "error"}:
        raise ValueError(
            f"unknown_keys policy must be 'ignore', 'warn', or 'error', got {unknown_keys!r}"
        )

    _normalize_variables_for_validation(cfg)

    validator = Draft202012Validator(CONFIG_SCHEMA)
    all_errors = sorted(validator.iter_errors(cfg), key=lambda e: list(e.path))
    if not all_errors:
        return None

    extra_errors = [e for e in all_errors if e.validator == "additionalProperties"]
    other_errors = [e for e in all_errors if e.validator != "additionalProperties"]

    if other_errors:
        raise ValueError(
            _format_errors(other_errors + extra_errors, config_path=config_path)
        )

    message = _format_errors(extra_errors, config_path=config_path)
    if unknown_keys == "warn":
        logger.warning(message)
    elif unknown_keys == "error":
        raise ValueError(message)
    return None
