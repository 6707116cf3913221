"""Tests for the ``signer`` and ``source`` command groups."""

import pytest
import yaml
from typer.testing import CliRunner

import hanko.update
from conftest import ED25519_A, github_keys, respond
from hanko.cli import app

runner = CliRunner()


@pytest.fixture
def paths(tmp_path, key_server, monkeypatch):
    monkeypatch.delenv("HANKO_CONFIG", raising=False)
    monkeypatch.delenv("HANKO_ALLOWED_SIGNERS", raising=False)
    monkeypatch.setattr(hanko.update, "create_client", lambda *args, **kwargs: key_server.client())
    return tmp_path / "hanko" / "config.yaml", tmp_path / "allowed_signers"


def _invoke(config_path, target, *args):
    return runner.invoke(app, ["--config", str(config_path), "--file", str(target), *args])


def test_signer_add_creates_config_and_updates(paths, key_server):
    config_path, target = paths
    key_server.add("/users/octocat/ssh_signing_keys", respond(json=github_keys(ED25519_A)))

    result = _invoke(config_path, target, "signer", "add", "octocat", "octocat@github.com")

    assert result.exit_code == 0, f"Output: {result.output}"
    assert "Added signer octocat" in result.output
    data = yaml.safe_load(config_path.read_text())
    assert data == {"signers": [{"name": "octocat", "principals": ["octocat@github.com"]}]}
    assert target.read_text() == f"octocat@github.com ssh-ed25519 {ED25519_A}\n"


def test_signer_add_no_update_makes_no_requests(paths, key_server):
    config_path, target = paths

    result = _invoke(
        config_path,
        target,
        "signer",
        "add",
        "tanuki",
        "tanuki@example.com",
        "tanuki@example.org",
        "--source",
        "gitlab",
        "--no-update",
    )

    assert result.exit_code == 0, f"Output: {result.output}"
    assert key_server.requests == []
    assert not target.exists()
    data = yaml.safe_load(config_path.read_text())
    assert data["signers"] == [
        {
            "name": "tanuki",
            "principals": ["tanuki@example.com", "tanuki@example.org"],
            "sources": ["gitlab"],
        }
    ]


def test_adding_identical_signer_leaves_config_alone(paths):
    config_path, target = paths
    args = ("signer", "add", "octocat", "octocat@github.com", "--no-update")
    assert _invoke(config_path, target, *args).exit_code == 0
    mtime = config_path.stat().st_mtime_ns

    result = _invoke(config_path, target, *args)

    assert result.exit_code == 0, f"Output: {result.output}"
    assert "already configured" in result.output
    assert config_path.stat().st_mtime_ns == mtime


def test_adding_conflicting_signer_fails(paths):
    config_path, target = paths
    first = ("signer", "add", "octocat", "a@example.com", "--no-update")
    assert _invoke(config_path, target, *first).exit_code == 0

    second = ("signer", "add", "octocat", "b@example.com", "--no-update")
    result = _invoke(config_path, target, *second)

    assert result.exit_code == 1
    assert "different signer named octocat" in result.output


def test_adding_signer_with_unknown_source_fails(paths):
    config_path, target = paths

    args = ("signer", "add", "bob", "bob@example.com", "-s", "codeberg", "--no-update")
    result = _invoke(config_path, target, *args)

    assert result.exit_code == 1
    assert "Missing sources: codeberg" in result.output
    assert not config_path.exists()


def test_signer_list(paths):
    config_path, target = paths
    empty = _invoke(config_path, target, "signer", "list")
    assert empty.exit_code == 1
    assert "does not exist" in empty.output

    _invoke(config_path, target, "signer", "add", "octocat", "octocat@github.com", "--no-update")
    result = _invoke(config_path, target, "signer", "list")

    assert result.exit_code == 0, f"Output: {result.output}"
    assert result.output.strip() == "octocat\toctocat@github.com\tgithub"


def test_source_list_shows_builtins_and_custom(paths):
    config_path, target = paths
    config_path.parent.mkdir(parents=True)
    config_path.write_text(
        "sources:\n"
        "  - name: work\n"
        "    provider: gitlab\n"
        "    url: https://gitlab.example.com\n"
    )

    result = _invoke(config_path, target, "source", "list")

    assert result.exit_code == 0, f"Output: {result.output}"
    lines = result.output.strip().splitlines()
    assert lines[0].startswith("github\tgithub\t")
    assert lines[0].endswith("(built-in)")
    assert lines[1].startswith("gitlab\tgitlab\t")
    assert lines[2] == "work\tgitlab\thttps://gitlab.example.com"
