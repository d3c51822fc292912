from __future__ import annotations

import json
from pathlib import Path

import pytest
import structlog
import yaml
from typer.testing import CliRunner

from tweet_harvester.app import app


@pytest.fixture
def runner(harvester_home: Path, monkeypatch: pytest.MonkeyPatch) -> CliRunner:
    monkeypatch.setattr(
        "tweet_harvester.app.configure_logging",
        lambda verbose=False: structlog.get_logger("tweet_harvester.test"),
    )
    return CliRunner()


def test_extract_prints_wire_records_as_json(runner: CliRunner, tmp_path: Path, make_article) -> None:
    page = tmp_path / "timeline.html"
    page.write_text(
        "<html><body>" + make_article("11") + make_article("12", handle="bob") + "</body></html>",
        encoding="utf-8",
    )

    result = runner.invoke(app, ["extract", str(page), "--json"])

    assert result.exit_code == 0, result.stdout
    records = json.loads(result.stdout)
    assert [record["tweetId"] for record in records] == ["11", "12"]
    assert records[1]["username"] == "@bob"


def test_extract_renders_table(runner: CliRunner, tmp_path: Path, make_article) -> None:
    page = tmp_path / "timeline.html"
    page.write_text(make_article("11"), encoding="utf-8")

    result = runner.invoke(app, ["extract", str(page)])

    assert result.exit_code == 0, result.stdout
    assert "timeline.html" in result.stdout
    assert "@alice" in result.stdout


def test_extract_missing_file(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(app, ["extract", str(tmp_path / "absent.html")])
    assert result.exit_code == 1
    assert "File not found" in result.stdout


def test_tweets_lists_stored_records(runner: CliRunner, tmp_path: Path, make_wire_record) -> None:
    data_dir = tmp_path / "store"
    data_dir.mkdir()
    (data_dir / "tweets_1.json").write_text(
        json.dumps([make_wire_record("5", text="stored hello")]),
        encoding="utf-8",
    )

    result = runner.invoke(app, ["tweets", "--data-dir", str(data_dir), "--limit", "5"])

    assert result.exit_code == 0, result.stdout
    assert "stored hello" in result.stdout
    assert "page 1" in result.stdout


def test_tweets_on_empty_store(runner: CliRunner, tmp_path: Path) -> None:
    result = runner.invoke(app, ["tweets", "--data-dir", str(tmp_path / "nothing")])
    assert result.exit_code == 0, result.stdout
    assert "No stored tweets" in result.stdout


def test_config_init_then_show(runner: CliRunner, harvester_home: Path) -> None:
    init = runner.invoke(app, ["config", "init"])
    assert init.exit_code == 0, init.stdout
    config_path = harvester_home.resolve() / "data" / "global_config.yaml"
    assert config_path.exists()

    again = runner.invoke(app, ["config", "init"])
    assert again.exit_code == 1

    show = runner.invoke(app, ["config", "show"])
    assert show.exit_code == 0, show.stdout
    body = "\n".join(line for line in show.stdout.splitlines() if not line.startswith("#"))
    assert yaml.safe_load(body)["server"]["port"] == 3000


def test_log_show_tails_harvester_log(runner: CliRunner, harvester_home: Path) -> None:
    log_dir = harvester_home / "logs"
    log_dir.mkdir(exist_ok=True)
    (log_dir / "harvester.log").write_text(
        "".join(f'{{"event": "line-{n}"}}\n' for n in range(5)),
        encoding="utf-8",
    )

    result = runner.invoke(app, ["log", "show", "--tail", "2"])

    assert result.exit_code == 0, result.stdout
    assert "line-4" in result.stdout
    assert "line-3" in result.stdout
    assert "line-2" not in result.stdout
