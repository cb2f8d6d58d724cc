from __future__ import annotations

from conftest import SAMPLE
from map_syncer import cli
from map_syncer.config import Settings
from map_syncer.vpk import read_package


def _settings(monkeypatch):
    monkeypatch.setattr(cli, "load_settings", lambda: Settings())


def test_usage_without_arguments(capsys):
    assert cli.main(["map-syncer"]) == 1
    assert "Usage:" in capsys.readouterr().err


def test_unknown_command(monkeypatch, capsys):
    _settings(monkeypatch)

    assert cli.main(["map-syncer", "explode"]) == 1
    assert "Invalid command" in capsys.readouterr().err


def test_list_prints_member_names(monkeypatch, capsys):
    _settings(monkeypatch)
    monkeypatch.setattr(cli, "list_members", lambda url, timeout: ["a.vpk", "b.vpk"])

    assert cli.main(["map-syncer", "list", "https://example.com/m.zip"]) == 0
    assert capsys.readouterr().out.splitlines() == ["a.vpk", "b.vpk"]


def test_repack_uses_configured_exclusions(monkeypatch, write_vpk, tmp_path):
    _settings(monkeypatch)
    source = write_vpk(SAMPLE)
    output = tmp_path / "out.vpk"

    assert cli.main(["map-syncer", "repack", str(source), str(output)]) == 0
    _, entries = read_package(output)
    assert all(e.extension != "wav" for e in entries)


def test_errors_exit_non_zero(monkeypatch, tmp_path):
    _settings(monkeypatch)

    assert cli.main(["map-syncer", "repack", str(tmp_path / "missing.vpk"), str(tmp_path / "o.vpk")]) == 1
