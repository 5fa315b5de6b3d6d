import gzip
from unittest.mock import MagicMock

from click.testing import CliRunner

from dfbuild.CLI import main as cli_main
from dfbuild.CLI.main import cli
from dfbuild.exceptions import DaemonConnectionError
from dfbuild.MODELS.build import AuxInfo


def write_dockerfile(content="FROM alpine\nEXPOSE 8080\n"):
    with open("Dockerfile", "w") as f:
        f.write(content)


def test_cli_help():
    runner = CliRunner()
    result = runner.invoke(cli, ['--help'])
    assert result.exit_code == 0
    assert 'BuildKit' in result.output


def test_cli_port():
    runner = CliRunner()
    with runner.isolated_filesystem():
        write_dockerfile()
        result = runner.invoke(cli, ['port', 'Dockerfile'])
    assert result.exit_code == 0
    assert result.output.strip() == "8080"


def test_cli_port_none():
    runner = CliRunner()
    with runner.isolated_filesystem():
        write_dockerfile("FROM alpine\nEXPOSE 0\n")
        result = runner.invoke(cli, ['port', 'Dockerfile'])
    assert result.exit_code == 0
    assert result.output == ""


def test_cli_port_parse_error():
    runner = CliRunner()
    with runner.isolated_filesystem():
        write_dockerfile("EXPOSE 80\n")
        result = runner.invoke(cli, ['port', 'Dockerfile'])
    assert result.exit_code == 1
    assert 'parse error' in result.output


def test_cli_context():
    runner = CliRunner()
    with runner.isolated_filesystem():
        write_dockerfile()
        result = runner.invoke(cli, ['context', 'Dockerfile', '-o', 'context.tar.gz'])
        with open('context.tar.gz', 'rb') as f:
            data = f.read()
    assert result.exit_code == 0
    assert gzip.decompress(data)[:10] == b"Dockerfile"


def test_cli_build(monkeypatch):
    orchestrator = MagicMock()
    orchestrator.connect.return_value.__enter__.return_value = "handle"
    orchestrator.build.return_value = iter([AuxInfo(id="moby.image.id", payload={"ID": "sha256:abc"})])
    monkeypatch.setattr(cli_main, "BuildOrchestrator", lambda: orchestrator)

    runner = CliRunner()
    with runner.isolated_filesystem():
        write_dockerfile()
        result = runner.invoke(cli, ['build', 'Dockerfile', '--tag', 'myimage'])

    assert result.exit_code == 0
    assert "sha256:abc" in result.output
    assert "Built myimage." in result.output
    orchestrator.build.assert_called_once_with("handle", "myimage", "FROM alpine\nEXPOSE 8080\n", region=None)


def test_cli_build_without_daemon(monkeypatch):
    orchestrator = MagicMock()
    orchestrator.connect.side_effect = DaemonConnectionError("Cannot connect to the Docker daemon")
    monkeypatch.setattr(cli_main, "BuildOrchestrator", lambda: orchestrator)

    runner = CliRunner()
    with runner.isolated_filesystem():
        write_dockerfile()
        result = runner.invoke(cli, ['build', 'Dockerfile', '-t', 'myimage'])

    assert result.exit_code == 1
    assert 'connection error: Cannot connect' in result.output
