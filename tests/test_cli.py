import base64

import pytest
from click.testing import CliRunner
from pykeepass import create_database

from keybridge.cli.main import cli

PASSWORD = "correct horse"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("KEYBRIDGE_MATCH_URL_SCHEME", "KEYBRIDGE_BEST_MATCH_ONLY", "KEYBRIDGE_TRUSTED_CLIENTS"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config(tmp_path):
    return str(tmp_path / "browser.json")


@pytest.fixture
def kdbx(tmp_path):
    path = tmp_path / "store.kdbx"
    kp = create_database(str(path), password=PASSWORD)
    kp.add_entry(kp.root_group, "GitHub", "octocat", "hunter2", url="https://github.com/login")
    kp.add_entry(kp.root_group, "Gitlab", "tanuki", "pw", url="https://gitlab.com")
    kp.save()
    return str(path)


def test_check_url(runner, config):
    result = runner.invoke(cli, ["--config", config, "check-url", "github.com/login", "http:/x"])

    assert result.exit_code == 0
    assert "github.com" in result.output
    assert "yes" in result.output
    assert "no" in result.output


def test_keygen(runner, config):
    result = runner.invoke(cli, ["--config", config, "keygen"])

    assert result.exit_code == 0
    lines = [line for line in result.output.splitlines() if line.strip()]
    public = lines[0].split(":", 1)[1].strip()
    assert lines[0].startswith("Public key:")
    assert len(base64.b64decode(public)) == 32


def test_match(runner, config, kdbx):
    """Ranked matches are printed with their score."""
    result = runner.invoke(cli, [
        "--config", config, "match", "https://github.com",
        "--submit-url", "https://github.com/login", "-d", kdbx, "-p", PASSWORD,
    ])

    assert result.exit_code == 0
    assert "GitHub" in result.output
    assert "octocat" in result.output
    assert "100" in result.output
    assert "Gitlab" not in result.output


def test_match_without_results(runner, config, kdbx):
    result = runner.invoke(cli, ["--config", config, "match", "https://example.org", "-d", kdbx, "-p", PASSWORD])

    assert result.exit_code == 0
    assert "No matching entries" in result.output


def test_match_prompts_for_password(runner, config, kdbx):
    """Password is prompted for when -p is omitted."""
    result = runner.invoke(cli, ["--config", config, "match", "https://github.com", "-d", kdbx],
                           input=PASSWORD + "\n")

    assert result.exit_code == 0
    assert "octocat" in result.output


def test_match_wrong_password(runner, config, kdbx):
    result = runner.invoke(cli, ["--config", config, "match", "https://github.com", "-d", kdbx, "-p", "nope"])

    assert result.exit_code == 1
    assert "Failed to open database" in result.output


def test_match_invalid_url(runner, config, kdbx):
    result = runner.invoke(cli, ["--config", config, "match", "http:/example.com", "-d", kdbx, "-p", PASSWORD])

    assert result.exit_code == 2
    assert "Not a valid URL" in result.output
