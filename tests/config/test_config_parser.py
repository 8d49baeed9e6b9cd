"""Brief: Unit tests for dohgate.config.config_parser helpers.

Inputs:
  - None

Outputs:
  - None
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import pytest

from dohgate.config import config_parser as cp
from dohgate.zone_store import ZoneStore


def test_is_var_key_empty_and_uppercase() -> None:
    """Brief: _is_var_key rejects empty and accepts ALL_UPPERCASE names.

    Inputs:
      - None.

    Outputs:
      - None; asserts behaviour for empty and valid keys.
    """

    assert cp._is_var_key("") is False
    assert cp._is_var_key("TTL") is True
    assert cp._is_var_key("ttl") is False
    assert cp._is_var_key("1TTL") is False


def test_parse_yaml_value_scalars_and_fallback() -> None:
    assert cp._parse_yaml_value("300") == 300
    assert cp._parse_yaml_value("[a, b]") == ["a", "b"]
    assert cp._parse_yaml_value("true") is True
    # Unbalanced flow sequence is not valid YAML; the raw text is kept.
    assert cp._parse_yaml_value("[oops") == "[oops"


def test_parse_config_variables_non_mapping_raises() -> None:
    cfg: Dict[str, Any] = {"vars": [1, 2, 3]}
    with pytest.raises(ValueError, match="config.vars must be a mapping"):
        cp.parse_config_variables(cfg, environ={})


def test_parse_config_variables_precedence() -> None:
    """Brief: CLI overrides environment, which overrides config-file values.

    Inputs:
      - None.

    Outputs:
      - None; asserts merged values and that undeclared env keys are ignored.
    """

    cfg: Dict[str, Any] = {"vars": {"TTL": 100, "URL": "https://a/resolve", "KEEP": 1}}
    merged = cp.parse_config_variables(
        cfg,
        cli_vars=["TTL=300", "NEW=[1, 2]"],
        environ={"TTL": "200", "URL": "https://b/resolve", "UNRELATED": "x"},
    )
    assert merged == {
        "TTL": 300,
        "URL": "https://b/resolve",
        "KEEP": 1,
        "NEW": [1, 2],
    }
    assert cfg["vars"] is merged


def test_parse_config_variables_accepts_legacy_key() -> None:
    cfg: Dict[str, Any] = {"variables": {"A": 1}}
    assert cp.parse_config_variables(cfg, environ={}) == {"A": 1}
    assert "variables" not in cfg


@pytest.mark.parametrize("assignment", ["NOEQUALS", "lower=1", "=1"])
def test_parse_config_variables_bad_cli_raises(assignment: str) -> None:
    with pytest.raises(ValueError):
        cp.parse_config_variables({}, cli_vars=[assignment], environ={})


def _write(tmp_path: Path, text: str) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_parse_config_file_expands_variables(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        """
vars:
  DOH: https://cloudflare-dns.com/dns-query
  PORT: 5300
upstream:
  url: ${DOH}
  timeout_ms: 1500
listen:
  port: ${PORT}
""",
    )
    cfg = cp.parse_config_file(path, environ={})
    assert cfg["upstream"]["url"] == "https://cloudflare-dns.com/dns-query"
    assert cfg["listen"]["port"] == 5300
    assert "vars" not in cfg


def test_parse_config_file_cli_var_overrides(tmp_path: Path) -> None:
    path = _write(tmp_path, "vars:\n  PORT: 5300\nlisten:\n  port: ${PORT}\n")
    cfg = cp.parse_config_file(path, cli_vars=["PORT=6000"], environ={})
    assert cfg["listen"]["port"] == 6000


def test_parse_config_file_empty_is_valid(tmp_path: Path) -> None:
    assert cp.parse_config_file(_write(tmp_path, ""), environ={}) == {}


def test_parse_config_file_non_mapping_root_raises(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="mapping"):
        cp.parse_config_file(_write(tmp_path, "- a\n- b\n"), environ={})


def test_parse_config_file_schema_error_raises(tmp_path: Path) -> None:
    path = _write(tmp_path, "upstream:\n  url: ftp://nope\n")
    with pytest.raises(ValueError, match="Invalid configuration"):
        cp.parse_config_file(path, environ={})


def test_parse_config_file_missing_raises(tmp_path: Path) -> None:
    with pytest.raises(OSError):
        cp.parse_config_file(str(tmp_path / "absent.yaml"), environ={})


def test_normalize_listen_config_defaults() -> None:
    listen = cp.normalize_listen_config({})
    assert listen["udp"] == {"enabled": True, "host": "127.0.0.1", "port": 5353}
    assert listen["tcp"] == {"enabled": False, "host": "127.0.0.1", "port": 5353}


def test_normalize_listen_config_per_transport_overrides() -> None:
    listen = cp.normalize_listen_config(
        {
            "listen": {
                "host": "0.0.0.0",
                "port": 53,
                "tcp": {"enabled": True, "port": 5354},
                "udp": {"host": "::1"},
            }
        }
    )
    assert listen["udp"] == {"enabled": True, "host": "::1", "port": 53}
    assert listen["tcp"] == {"enabled": True, "host": "0.0.0.0", "port": 5354}


def test_build_upstream_client_defaults() -> None:
    client = cp.build_upstream_client({})
    assert client.url == "https://dns.google.com/resolve"
    assert client.timeout is None
    assert client.verify is True


def test_build_upstream_client_options() -> None:
    client = cp.build_upstream_client(
        {
            "upstream": {
                "url": "https://doh.example/resolve",
                "headers": {"X-Api-Key": "k"},
                "timeout_ms": 2500,
                "tls": {"verify": False},
            }
        }
    )
    assert client.url == "https://doh.example/resolve"
    assert client.headers["X-Api-Key"] == "k"
    assert client.timeout == 2.5
    assert client.verify is False


def test_build_zone_store(tmp_path: Path) -> None:
    records = tmp_path / "records.txt"
    records.write_text("a.lan|A|60|10.0.0.1\n", encoding="utf-8")
    store = cp.build_zone_store(
        {"zone": {"file_paths": [str(records)], "records": ["b.lan|A|60|10.0.0.2"]}}
    )
    assert isinstance(store, ZoneStore)
    assert ("a.lan", 1) in store.records
    assert ("b.lan", 1) in store.records

    assert cp.build_zone_store({}).records == {}


def test_build_zone_store_malformed_raises() -> None:
    with pytest.raises(ValueError):
        cp.build_zone_store({"zone": {"records": ["bad line"]}})
