"""Configuration parsing and normalization helpers for dohgate.

Brief:
  This module contains the configuration-parsing utilities used by the CLI
  entrypoint. It centralizes:
    - reading YAML config files
    - merging variables from config/env/CLI
    - JSON Schema validation (including variable expansion performed by
      validate_config)
    - building the zone store and upstream client from config sections

Inputs:
  - YAML config dicts and paths

Outputs:
  - Normalized config dicts and constructed runtime objects
"""

from __future__ import annotations

import os
import re
from typing import Any, Dict, List, Optional

import yaml

from ..servers.transports.doh_json import DEFAULT_DOH_URL, DoHJsonClient
from ..zone_store import ZoneStore
from .config_schema import validate_config

_VAR_KEY = re.compile(r"[A-Z_][A-Z0-9_]*")


def _is_var_key(key: str) -> bool:
    """Brief: True when key is ALL_UPPERCASE and matches [A-Z_][A-Z0-9_]*."""

    return bool(key) and bool(_VAR_KEY.fullmatch(key))


def _parse_yaml_value(text: str) -> Any:
    """Brief: Parse a CLI/environment variable value as YAML.

    Inputs:
      - text: String containing YAML scalar/list/dict.

    Outputs:
      - Any: Parsed value (falls back to original string on parse errors).
    """

    try:
        return yaml.safe_load(text)
    except yaml.YAMLError:
        return text


def parse_config_variables(
    cfg: Dict[str, Any],
    *,
    cli_vars: Optional[List[str]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Brief: Merge config/environment/CLI variables into cfg['vars'].

    Inputs:
      - cfg: Parsed YAML configuration mapping (mutated in-place).
      - cli_vars: Optional list of CLI `KEY=YAML` assignments.
      - environ: Optional environment mapping (defaults to os.environ).

    Outputs:
      - dict: The merged variables mapping stored back onto cfg['vars'].

    Precedence:
      - CLI (-v/--var) overrides environment overrides config-file variables.
      - Environment entries only override variables the config file declares,
        so unrelated process environment does not leak into the config.

    Example:
      >>> cfg = {'vars': {'TTL': 100}}
      >>> parse_config_variables(cfg, cli_vars=['TTL=300'], environ={})['TTL']
      300
    """

    base = cfg.pop("vars", None)
    if base is None:
        base = cfg.pop("variables", None)
    if base is None:
        merged: Dict[str, Any] = {}
    elif isinstance(base, dict):
        merged = dict(base)
    else:
        raise ValueError("config.vars must be a mapping when present")

    env = os.environ if environ is None else environ
    for k in list(merged.keys()):
        if isinstance(k, str) and _is_var_key(k) and k in env:
            merged[k] = _parse_yaml_value(str(env[k]))

    for assignment in cli_vars or []:
        if "=" not in assignment:
            raise ValueError(
                "Invalid -v/--var value (expected KEY=YAML), got: %r" % assignment
            )
        k, raw = assignment.split("=", 1)
        k = k.strip()
        if not _is_var_key(k):
            raise ValueError(
                "Invalid variable name %r (must be ALL_UPPERCASE and match [A-Z_][A-Z0-9_]*)"
                % k
            )
        merged[k] = _parse_yaml_value(raw)

    cfg["vars"] = merged
    return merged


def parse_config_file(
    config_path: str,
    *,
    cli_vars: Optional[List[str]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Brief: Read, variable-merge, and schema-validate a YAML config file.

    Inputs:
      - config_path: Path to the YAML configuration file.
      - cli_vars: Optional list of CLI `KEY=YAML` assignments (from -v/--var).
      - environ: Optional environment mapping (defaults to os.environ).

    Outputs:
      - dict: Parsed configuration mapping with variables expanded.

    Raises:
      - ValueError: When schema validation fails or variables are invalid.
      - OSError: When the file cannot be read.
    """

    with open(config_path, "r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}

    if not isinstance(cfg, dict):
        raise ValueError("Configuration root must be a mapping")

    parse_config_variables(cfg, cli_vars=list(cli_vars or []), environ=environ)
    validate_config(cfg, config_path=config_path)
    return cfg


def normalize_listen_config(cfg: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Brief: Resolve per-transport listener settings with shared defaults.

    Inputs:
      - cfg: Validated configuration mapping.

    Outputs:
      - dict: {'udp': {...}, 'tcp': {...}} each with enabled/host/port.

    Example:
      >>> normalize_listen_config({'listen': {'port': 5353}})['udp']
      {'enabled': True, 'host': '127.0.0.1', 'port': 5353}
    """

    listen_cfg = cfg.get("listen") or {}
    default_host = str(listen_cfg.get("host", "127.0.0.1"))
    default_port = int(listen_cfg.get("port", 5353))

    def _sub(key: str, defaults: Dict[str, Any]) -> Dict[str, Any]:
        d = listen_cfg.get(key) or {}
        return {**defaults, **d}

    return {
        "udp": _sub("udp", {"enabled": True, "host": default_host, "port": default_port}),
        "tcp": _sub(
            "tcp", {"enabled": False, "host": default_host, "port": default_port}
        ),
    }


def build_upstream_client(cfg: Dict[str, Any]) -> DoHJsonClient:
    """Brief: Construct the JSON DoH client from cfg['upstream'].

    Inputs:
      - cfg: Validated configuration mapping.

    Outputs:
      - DoHJsonClient configured with url, headers, timeout and TLS options.
    """

    up = cfg.get("upstream") or {}
    tls = up.get("tls") or {}
    return DoHJsonClient(
        str(up.get("url", DEFAULT_DOH_URL)),
        headers=dict(up.get("headers") or {}),
        timeout_ms=up.get("timeout_ms"),
        verify=bool(tls.get("verify", True)),
        ca_file=tls.get("ca_file"),
    )


def build_zone_store(cfg: Dict[str, Any]) -> ZoneStore:
    """Brief: Construct the local zone store from cfg['zone'].

    Inputs:
      - cfg: Validated configuration mapping.

    Outputs:
      - ZoneStore; empty when no zone section is configured.

    Raises:
      - ValueError on malformed records.
    """

    zone = cfg.get("zone") or {}
    return ZoneStore(
        file_paths=zone.get("file_paths") or [],
        records=zone.get("records") or [],
    )
