"""Tests for the resourcefs CLI commands."""

import json

import pytest

from resourcefs.cli import add_env, cat, log, ls, mv, put, rm, tree
from resourcefs.config import ResourceFSConfig
from resourcefs.filesystem import ResourceFileSystem
from resourcefs.oplog import OperationLog

from fake_store import API_URL, FakeResourceStore


@pytest.fixture
def cli_store(monkeypatch, tmp_path):
    """Route CLI filesystems to a fake store via RESOURCEFS_API_URL."""
    store = FakeResourceStore()
    monkeypatch.delenv("RESOURCEFS_CONFIG", raising=False)
    monkeypatch.setenv("RESOURCEFS_API_URL", API_URL)
    monkeypatch.setenv("RESOURCEFS_TOKEN", "cli-token")

    original = ResourceFileSystem.from_config
    monkeypatch.setattr(
        ResourceFileSystem,
        "from_config",
        lambda config, **kwargs: original(
            config, transport=store.transport(), publish_on_save=False, **kwargs
        ),
    )
    return store


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / "config.json"


def test_ls_lists_directory(cli_store, config_path, capsys):
    cli_store.add("new_/a.js")
    cli_store.add("b.js")

    assert ls("/", config=config_path) == 0

    out = capsys.readouterr().out
    assert "new_/" in out
    assert "b.js" in out
    assert cli_store.requests[0].headers["Authorization"] == "Bearer cli-token"


def test_tree_shows_hierarchy(cli_store, config_path, capsys):
    cli_store.add("new_/scripts/form.js")
    cli_store.add("new_/index.html", resource_type=1)

    assert tree(config=config_path) == 0

    out = capsys.readouterr().out
    assert "form.js" in out
    assert "index.html" in out
    assert "2 web resources" in out


def test_cat_prints_content(cli_store, config_path, capsys):
    cli_store.add("a.js", b"alert('hi')")

    assert cat("/a.js", config=config_path) == 0

    assert "alert('hi')" in capsys.readouterr().out


def test_put_uploads_file(cli_store, config_path, tmp_path, capsys):
    source = tmp_path / "form.js"
    source.write_bytes(b"console.log(1)")

    assert put(source, "/new_/form.js", config=config_path) == 0

    identifier = cli_store.id_for("new_/form.js")
    assert cli_store.content_of(identifier) == b"console.log(1)"
    assert "Saved /new_/form.js" in capsys.readouterr().out


def test_put_no_overwrite(cli_store, config_path, tmp_path, capsys):
    cli_store.add("a.js", b"old")
    source = tmp_path / "a.js"
    source.write_bytes(b"new")

    assert put(source, "/a.js", no_overwrite=True, config=config_path) == 1

    assert "File exists" in capsys.readouterr().out


def test_rm_missing_reports_error(cli_store, config_path, capsys):
    assert rm("/missing.js", config=config_path) == 1

    assert "Error" in capsys.readouterr().out


def test_mv_directory_with_yes(cli_store, config_path, capsys):
    cli_store.add("lib/a.js", b"a")

    assert mv("/lib", "/src", yes=True, config=config_path) == 0

    assert cli_store.names() == {"src/a.js"}
    assert "Renamed /lib to /src" in capsys.readouterr().out


@pytest.mark.parametrize("answer", [True, False])
def test_mv_directory_asks(cli_store, config_path, monkeypatch, capsys, answer):
    cli_store.add("lib/a.js", b"a")
    cli_store.add("lib/b.js", b"b")
    prompts = []

    def fake_ask(prompt, **kwargs):
        prompts.append(prompt)
        return answer

    monkeypatch.setattr("resourcefs.cli.Confirm.ask", fake_ask)

    assert mv("/lib", "/src", config=config_path) == 0

    assert prompts == ["Rename /lib to /src? This recreates 2 web resources"]
    out = capsys.readouterr().out
    if answer:
        assert cli_store.names() == {"src/a.js", "src/b.js"}
        assert "Renamed /lib to /src" in out
    else:
        assert cli_store.names() == {"lib/a.js", "lib/b.js"}
        assert "Rename cancelled" in out


def test_missing_host(monkeypatch, config_path, capsys):
    monkeypatch.delenv("RESOURCEFS_CONFIG", raising=False)
    monkeypatch.delenv("RESOURCEFS_API_URL", raising=False)

    assert ls("/", config=config_path) == 1

    assert "No host given" in capsys.readouterr().out


def test_log_shows_operations(tmp_path, config_path, capsys):
    log_file = tmp_path / "operations.jsonl"
    OperationLog(log_file).log_operation("delete", "/a.js", "failed", error="boom")
    config_path.write_text(json.dumps({"operation_log": str(log_file)}))

    assert log(failed=True, config=config_path) == 0

    out = capsys.readouterr().out
    assert "/a.js" in out
    assert "boom" in out


def test_log_not_configured(config_path, capsys):
    assert log(config=config_path) == 1

    assert "No operation_log configured" in capsys.readouterr().out


@pytest.fixture
def logged_config(tmp_path, config_path):
    """A config whose operation log already holds a few records."""
    log_file = tmp_path / "operations.jsonl"
    operation_log = OperationLog(log_file)
    operation_log.log_operation("create", "/lib/a.js", "success")
    operation_log.log_operation("delete", "/other.js", "failed", error="503")
    operation_log.log_operation("update", "/lib/a.js", "success")
    config_path.write_text(json.dumps({"operation_log": str(log_file)}))
    return config_path


def test_log_filters_by_path(logged_config, capsys):
    assert log("/lib", config=logged_config) == 0

    out = capsys.readouterr().out
    assert "/lib/a.js" in out
    assert "/other.js" not in out


def test_log_stats(logged_config, capsys):
    assert log(stats=True, config=logged_config) == 0

    out = capsys.readouterr().out
    assert "Total operations: 3" in out
    assert "create: 1" in out
    assert "failed: 1" in out
    assert "Unresolved failures" in out
    assert "/other.js" in out


def test_log_prune(logged_config, capsys):
    assert log(prune=7, config=logged_config) == 0

    # Everything is recent, so nothing is dropped
    assert "Removed 0 records" in capsys.readouterr().out


def test_add_env_writes_config(monkeypatch, config_path, capsys):
    monkeypatch.setenv("RESOURCEFS_TOKEN", "from-env")

    assert add_env(API_URL, token="${MY_TOKEN}", config=config_path) == 0
    assert "Saved contoso.crm.dynamics.com" in capsys.readouterr().out

    saved = json.loads(config_path.read_text())
    assert saved["default_host"] == "contoso.crm.dynamics.com"
    assert saved["environments"]["contoso.crm.dynamics.com"]["token"] == "${MY_TOKEN}"


def test_add_env_keeps_existing_default(config_path):
    add_env(API_URL, config=config_path)
    add_env("https://fabrikam.crm.dynamics.com", config=config_path)
    add_env("https://other.crm.dynamics.com", default=False, config=config_path)

    config = ResourceFSConfig.from_file(config_path)
    assert config.default_host == "contoso.crm.dynamics.com"
    assert set(config.environments) == {
        "contoso.crm.dynamics.com",
        "fabrikam.crm.dynamics.com",
        "other.crm.dynamics.com",
    }

    add_env("https://other.crm.dynamics.com", default=True, config=config_path)
    assert ResourceFSConfig.from_file(config_path).default_host == "other.crm.dynamics.com"


def test_add_env_invalid_config(config_path, capsys):
    config_path.write_text("not json")

    assert add_env(API_URL, config=config_path) == 1
    assert "Error" in capsys.readouterr().out
