import json

from click.testing import CliRunner

from cli.main import cli


def test_status_creates_and_shows_config(tmp_path):
    path = tmp_path / "config.json"
    result = CliRunner().invoke(cli, ["status", "--config", str(path)])

    assert result.exit_code == 0, result.output
    assert "ws://localhost:8080" in result.output
    assert json.loads(path.read_text())["server_ip"] == "ws://localhost:8080"


def test_status_rejects_broken_config(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{broken")
    result = CliRunner().invoke(cli, ["status", "--config", str(path)])
    assert result.exit_code == 1


def test_connect_exits_nonzero_when_rendezvous_unreachable(tmp_path):
    path = tmp_path / "config.json"
    result = CliRunner().invoke(cli, ["connect", "--config", str(path), "--server", "ws://127.0.0.1:1"])
    assert result.exit_code == 1
