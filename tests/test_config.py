"""Tests for holewatch.config."""

from __future__ import annotations

import json
import tomllib
from pathlib import Path

import pytest

from holewatch.config import (
    DEFAULT_CONFIG,
    _merge,
    build_targets,
    dump_default_config,
    load_config,
    refresh_interval,
)
from holewatch.models import Target

SERVERS_TOML = """
update_delay = 2000

[[servers]]
name = "Kitchen"
host = "http://10.0.0.2"
api_key = "abc"

[[servers]]
name = "Garage"
host = "http://10.0.0.3"
"""


def _write(tmp_path: Path, text: str, name: str = "holewatch.toml") -> Path:
    path = tmp_path / name
    path.write_text(text)
    return path


class TestLoadConfig:
    def test_servers_and_overrides(self, tmp_path: Path) -> None:
        cfg = load_config(_write(tmp_path, SERVERS_TOML))
        assert cfg["update_delay"] == 2000
        assert [s["name"] for s in cfg["servers"]] == ["Kitchen", "Garage"]

    def test_defaults_filled_in(self, tmp_path: Path) -> None:
        cfg = load_config(_write(tmp_path, SERVERS_TOML))
        assert cfg["top_limit"] == DEFAULT_CONFIG["top_limit"]
        assert cfg["request_timeout"] == DEFAULT_CONFIG["request_timeout"]
        assert cfg["refresh_all"] is False
        assert set(cfg.keys()) == set(DEFAULT_CONFIG.keys())

    def test_json_config(self, tmp_path: Path) -> None:
        payload = {
            "update_delay": 1000,
            "servers": [{"name": "pi", "host": "http://pi.hole", "api_key": None}],
        }
        cfg = load_config(_write(tmp_path, json.dumps(payload), "pimon.json"))
        assert cfg["update_delay"] == 1000
        assert cfg["servers"][0]["name"] == "pi"


class TestFatalErrors:
    def test_missing_file(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc:
            load_config(tmp_path / "nonexistent.toml")
        assert exc.value.code == 1
        assert "config file not found" in capsys.readouterr().err

    def test_invalid_toml(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit):
            load_config(_write(tmp_path, "this is [not valid toml\n"))

    def test_invalid_json(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit):
            load_config(_write(tmp_path, "{servers: ", "bad.json"))

    def test_zero_servers(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc:
            load_config(_write(tmp_path, "update_delay = 1000\n"))
        assert exc.value.code == 1
        assert "no servers" in capsys.readouterr().err

    def test_empty_server_list(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit):
            load_config(_write(tmp_path, json.dumps({"servers": []}), "c.json"))

    def test_server_without_host(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit):
            load_config(_write(tmp_path, '[[servers]]\nname = "pi"\n'))

    def test_non_integer_delay(self, tmp_path: Path) -> None:
        text = 'update_delay = "soon"\n[[servers]]\nname = "pi"\nhost = "http://pi"\n'
        with pytest.raises(SystemExit):
            load_config(_write(tmp_path, text))

    @pytest.mark.parametrize(
        ("setting", "message"),
        [
            ('request_timeout = "soon"', "request_timeout"),
            ("request_timeout = 0", "request_timeout"),
            ("request_timeout = true", "request_timeout"),
            ("top_limit = 0", "top_limit"),
            ("top_limit = 2.5", "top_limit"),
            ('top_limit = "10"', "top_limit"),
            ('refresh_all = "false"', "refresh_all"),
            ("refresh_all = 1", "refresh_all"),
        ],
    )
    def test_bad_scalar_setting(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str], setting: str, message: str
    ) -> None:
        text = f'{setting}\n[[servers]]\nname = "pi"\nhost = "http://pi"\n'
        with pytest.raises(SystemExit) as exc:
            load_config(_write(tmp_path, text))
        assert exc.value.code == 1
        assert message in capsys.readouterr().err

    def test_integer_timeout_accepted(self, tmp_path: Path) -> None:
        text = 'request_timeout = 3\n[[servers]]\nname = "pi"\nhost = "http://pi"\n'
        assert load_config(_write(tmp_path, text))["request_timeout"] == 3


class TestBuildTargets:
    def test_targets_in_config_order(self, tmp_path: Path) -> None:
        targets = build_targets(load_config(_write(tmp_path, SERVERS_TOML)))
        assert targets == [
            Target(id=0, display_name="Kitchen", endpoint="http://10.0.0.2", credential="abc"),
            Target(id=1, display_name="Garage", endpoint="http://10.0.0.3", credential=None),
        ]
        assert targets[0].can_mutate
        assert not targets[1].can_mutate

    def test_empty_api_key_is_read_only(self) -> None:
        cfg = {"servers": [{"name": "pi", "host": "http://pi", "api_key": ""}]}
        assert build_targets(cfg)[0].credential is None

    def test_refresh_interval_in_seconds(self) -> None:
        assert refresh_interval({"update_delay": 2500}) == 2.5


class TestDumpDefaultConfig:
    def test_is_valid_toml(self) -> None:
        parsed = tomllib.loads(dump_default_config())
        assert parsed["update_delay"] == DEFAULT_CONFIG["update_delay"]
        assert parsed["servers"][0]["host"] == "http://pi.hole"
        assert "api_key" not in parsed["servers"][0]

    def test_loads_back(self, tmp_path: Path) -> None:
        cfg = load_config(_write(tmp_path, dump_default_config()))
        assert len(build_targets(cfg)) == 1


class TestMerge:
    def test_scalar_overwrite(self) -> None:
        assert _merge({"a": 1, "b": 2}, {"a": 10}) == {"a": 10, "b": 2}

    def test_nested_dict_merge(self) -> None:
        result = _merge({"x": {"a": 1, "b": 2}}, {"x": {"b": 3, "c": 4}})
        assert result["x"] == {"a": 1, "b": 3, "c": 4}

    def test_lists_replaced(self) -> None:
        assert _merge({"servers": []}, {"servers": [1]}) == {"servers": [1]}
