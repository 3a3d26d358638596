"""
Tests for the command-line interface.
"""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from feedrank import cli
from feedrank.config import Config
from feedrank.models.entities import FreshnessEntry
from feedrank.storage.freshness import FreshnessStore

from conftest import make_response, make_rss, make_session, write_feeds_yaml

FEED_URL = "https://blog.example.com/rss"


def _run(monkeypatch, config, session, *argv):
    monkeypatch.setattr("sys.argv", ["feedrank", *argv])
    with patch("feedrank.cli.get_config", return_value=config), \
            patch("feedrank.pipeline.orchestrator.requests.Session", return_value=session):
        cli.main()


@pytest.fixture
def configured(tmp_path):
    config = Config(data_dir=tmp_path)
    config.ensure_directories()
    write_feeds_yaml(config.feeds_path, {"default": [FEED_URL]})
    return config


def _recent_feed() -> bytes:
    published = datetime.now(timezone.utc) - timedelta(hours=1)
    return make_rss("Example Blog", [
        ("Async Rust", published.strftime("%a, %d %b %Y %H:%M:%S +0000"), []),
        ("Cooking", published.strftime("%a, %d %b %Y %H:%M:%S +0000"), []),
    ])


class TestCli:

    def test_feed_prints_items_and_summary(self, monkeypatch, capsys, configured):
        session = make_session({FEED_URL: make_response(200, _recent_feed())})

        _run(monkeypatch, configured, session, "feed", "--summary")

        out = capsys.readouterr().out
        assert "Example Blog  * Async Rust" in out
        assert "Displayed 2 items from 1 feed (0 cached, 1 fetched) with 2 items in" in out

    def test_search_json_output(self, monkeypatch, capsys, configured):
        session = make_session({FEED_URL: make_response(200, _recent_feed())})

        _run(monkeypatch, configured, session, "search", "rust", "--output-json")

        data = json.loads(capsys.readouterr().out)
        assert [item["title"] for item in data["items"]] == ["Async Rust"]
        assert data["items"][0]["score"] == 1000

    def test_no_items(self, monkeypatch, capsys, configured):
        session = make_session({FEED_URL: make_response(200, _recent_feed())})

        _run(monkeypatch, configured, session, "search", "haskell")

        assert "no items to display" in capsys.readouterr().err

    def test_usage_error_exits_non_zero(self, monkeypatch, capsys, configured):
        session = make_session({})

        with pytest.raises(SystemExit) as excinfo:
            _run(monkeypatch, configured, session, "feed", "--list", "missing")

        assert excinfo.value.code == 1
        assert "ERROR: list 'missing' does not exist" in capsys.readouterr().err
        session.get.assert_not_called()

    def test_invalid_since(self, monkeypatch, capsys, configured):
        with pytest.raises(SystemExit):
            _run(monkeypatch, configured, make_session({}), "feed", "--since", "not a date")

        assert "invalid --since value" in capsys.readouterr().err

    def test_cache_info(self, monkeypatch, capsys, configured):
        FreshnessStore(configured.freshness_path).save({
            FEED_URL: FreshnessEntry(
                url=FEED_URL,
                last_fetch=datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc),
                fetch_after=datetime(2024, 6, 1, 13, 0, tzinfo=timezone.utc),
            )
        })

        _run(monkeypatch, configured, make_session({}), "cache-info")

        lines = capsys.readouterr().out.splitlines()
        assert lines[0].startswith("URL")
        assert lines[1] == f"{FEED_URL}  2024-06-01 12:00:00  2024-06-01 13:00:00"

    def test_malformed_subscriptions_exit_non_zero(self, monkeypatch, capsys, configured):
        configured.feeds_path.write_text("lists: [unclosed\n", encoding="utf-8")
        session = make_session({})

        with pytest.raises(SystemExit) as excinfo:
            _run(monkeypatch, configured, session, "feed")

        assert excinfo.value.code == 1
        assert "ERROR: invalid subscription file" in capsys.readouterr().err
        session.get.assert_not_called()

    def test_invalid_configuration_exits_non_zero(self, monkeypatch, capsys, tmp_path):
        monkeypatch.setenv("FEEDRANK_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("FEEDRANK_COLOR_MAP", '{"0": 300}')
        monkeypatch.setattr("sys.argv", ["feedrank", "cache-info"])

        with pytest.raises(SystemExit) as excinfo:
            cli.main()

        assert excinfo.value.code == 1
        assert "ERROR: invalid configuration" in capsys.readouterr().err
