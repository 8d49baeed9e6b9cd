"""
Brief: Tests for JSON Schema-based configuration validation.

Inputs:
  - None

Outputs:
  - None; assertions ensure valid configs pass and invalid configs fail.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
import yaml

from dohgate.config.config_schema import (
    CONFIG_SCHEMA,
    _normalize_variables_for_validation,
    validate_config,
)

EXAMPLE_CONFIG = Path(__file__).resolve().parents[2] / "config.yaml"


def _full_config() -> dict:
    return {
        "listen": {
            "host": "0.0.0.0",
            "port": 53,
            "udp": {"enabled": True},
            "tcp": {"enabled": True, "port": 5353},
        },
        "upstream": {
            "url": "https://dns.google.com/resolve",
            "headers": {"X-Client": "lab"},
            "timeout_ms": 2000,
            "tls": {"verify": True, "ca_file": None},
        },
        "zone": {
            "file_paths": ["./records.txt"],
            "records": ["gateway.lan|A|300|192.168.1.1"],
        },
        "logging": {"level": "debug", "stderr": True, "file": None, "syslog": False},
    }


def test_schema_is_draft_2020_12() -> None:
    assert CONFIG_SCHEMA["$schema"].endswith("2020-12/schema")


def test_full_config_is_valid() -> None:
    validate_config(_full_config())


def test_empty_config_is_valid() -> None:
    validate_config({})


def test_example_config_file_is_valid() -> None:
    if not EXAMPLE_CONFIG.exists():
        pytest.skip("example config.yaml not present")
    cfg = yaml.safe_load(EXAMPLE_CONFIG.read_text(encoding="utf-8"))
    validate_config(cfg, config_path=str(EXAMPLE_CONFIG))


@pytest.mark.parametrize(
    "patch",
    [
        {"upstream": {"url": "ftp://example/resolve"}},
        {"upstream": {"timeout_ms": 0}},
        {"upstream": {"headers": {"X-Num": 5}}},
        {"listen": {"port": 70000}},
        {"listen": {"udp": {"enabled": "yes"}}},
        {"zone": {"records": "a|A|1|1.1.1.1"}},
        {"logging": {"level": "loud"}},
    ],
)
def test_invalid_values_raise(patch) -> None:
    with pytest.raises(ValueError, match="Invalid configuration"):
        validate_config(patch, config_path="cfg.yaml")


def test_error_message_names_path_and_source() -> None:
    with pytest.raises(ValueError) as excinfo:
        validate_config({"listen": {"port": "x"}}, config_path="my.yaml")
    msg = str(excinfo.value)
    assert "my.yaml" in msg
    assert "listen/port" in msg


def test_unknown_keys_policy(caplog) -> None:
    cfg = {"upstream": {"url": "https://dns.google.com/resolve"}, "cache": {}}

    with caplog.at_level(logging.WARNING, logger="dohgate.config.config_schema"):
        validate_config(dict(cfg))
    assert "cache" in caplog.text

    validate_config(dict(cfg), unknown_keys="ignore")

    with pytest.raises(ValueError):
        validate_config(dict(cfg), unknown_keys="error")

    with pytest.raises(ValueError, match="unknown_keys policy"):
        validate_config(dict(cfg), unknown_keys="maybe")


def test_variables_expand_inline_and_whole_value() -> None:
    cfg = {
        "vars": {
            "HOST": "doh.example",
            "URL": "https://${HOST}/resolve",
            "RECORDS": ["a.lan|A|60|10.0.0.1"],
        },
        "upstream": {"url": "${URL}"},
        "zone": {"records": "${RECORDS}"},
    }
    _normalize_variables_for_validation(cfg)
    assert "vars" not in cfg
    assert cfg["upstream"]["url"] == "https://doh.example/resolve"
    assert cfg["zone"]["records"] == ["a.lan|A|60|10.0.0.1"]


def test_unknown_variable_reference_is_left_alone() -> None:
    cfg = {"vars": {}, "upstream": {"url": "https://${MISSING}/x"}}
    _normalize_variables_for_validation(cfg)
    assert cfg["upstream"]["url"] == "https://${MISSING}/x"


def test_variable_cycle_raises() -> None:
    cfg = {"vars": {"A": "${B}", "B": "${A}"}}
    with pytest.raises(ValueError, match="cycle"):
        _normalize_variables_for_validation(cfg)


def test_variable_bad_key_raises() -> None:
    with pytest.raises(ValueError):
        _normalize_variables_for_validation({"vars": {"lower": 1}})
