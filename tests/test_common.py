"""Tests for shared helpers: cache, HTTP client, logging utilities and events."""

import logging
from unittest.mock import MagicMock, patch

import requests

from constants import Constants
from common.cache import TTLCache
from common.events import INSTALL_STARTED, Event, ListEventSink, LoggingEventSink
from common.http_client import download_file, get_json, robust_get
from common.logging_utils import Timer, configure_logging, extra_context, safe_url


class TestTTLCache:
    def test_set_get_and_expiry(self):
        cache = TTLCache(default_ttl=60)
        cache.set("a", 1)
        cache.set("b", 2, ttl=-1)
        assert cache.get("a") == 1
        assert cache.get("b") is None
        assert cache.get("missing") is None

    def test_eviction(self):
        cache = TTLCache(max_entries=10)
        for i in range(11):
            cache.set(str(i), i)
        assert len(cache) == 10
        assert cache.get("0") is None

    def test_invalidate_and_clear(self):
        cache = TTLCache()
        cache.set("a", 1)
        cache.set("b", 2)
        cache.invalidate("a")
        assert cache.get("a") is None
        cache.clear()
        assert len(cache) == 0


def _response(status=200, text="", headers=None):
    response = MagicMock()
    response.status_code = status
    response.text = text
    response.headers = headers or {}
    return response


class TestHttpClient:
    @patch("common.http_client.requests.get")
    def test_get_json(self, mock_get):
        mock_get.return_value = _response(text='{"versions": {}}')
        status, _, data = get_json("https://r.example/demo")
        assert status == 200
        assert data == {"versions": {}}

    @patch("common.http_client.requests.get")
    def test_invalid_json(self, mock_get):
        mock_get.return_value = _response(text="<html>")
        assert get_json("https://r.example/demo")[2] is None

    @patch("common.http_client.requests.get")
    def test_retries_then_gives_up(self, mock_get):
        mock_get.side_effect = requests.Timeout()
        status, _, body = robust_get("https://r.example/demo")
        assert status == 0
        assert "timeout" in body
        assert mock_get.call_count == Constants.HTTP_RETRY_MAX

    @patch("common.http_client.requests.get")
    def test_cache_hit(self, mock_get):
        mock_get.return_value = _response(text="ok")
        cache = TTLCache()
        robust_get("https://r.example/demo", cache=cache)
        robust_get("https://r.example/demo", cache=cache)
        assert mock_get.call_count == 1

    @patch("common.http_client.requests.get")
    def test_server_errors_not_cached(self, mock_get):
        mock_get.return_value = _response(status=503)
        cache = TTLCache()
        robust_get("https://r.example/demo", cache=cache)
        robust_get("https://r.example/demo", cache=cache)
        assert mock_get.call_count == 2

    @patch("common.http_client.requests.get")
    def test_download(self, mock_get, tmp_path):
        response = _response()
        response.iter_content.return_value = [b"abc", b"", b"def"]
        mock_get.return_value.__enter__.return_value = response
        dest = tmp_path / "file.tgz"
        assert download_file("https://r.example/file.tgz", str(dest))
        assert dest.read_bytes() == b"abcdef"

    @patch("common.http_client.requests.get")
    def test_download_failure_leaves_nothing(self, mock_get, tmp_path):
        mock_get.return_value.__enter__.return_value = _response(status=404)
        dest = tmp_path / "file.tgz"
        assert not download_file("https://r.example/file.tgz", str(dest))
        assert list(tmp_path.iterdir()) == []


class TestLoggingUtils:
    def test_safe_url_strips_secrets(self):
        assert safe_url("https://user:pw@r.example:8443/p?token=x#frag") == "https://r.example:8443/p"

    def test_extra_context_drops_none(self):
        assert extra_context(event="x", outcome=None) == {"event": "x"}

    def test_timer(self):
        with Timer() as t:
            pass
        assert t.duration_ms() >= 0

    def test_configure_logging_level(self, tmp_path):
        logfile = tmp_path / "out.log"
        configure_logging("DEBUG", str(logfile))
        try:
            assert logging.getLogger().level == logging.DEBUG
            logging.getLogger("packweave.test").debug("hello")
            for handler in logging.getLogger().handlers:
                handler.flush()
            assert "hello" in logfile.read_text()
        finally:
            configure_logging("WARNING", quiet=True)


class TestEvents:
    def test_list_sink_records_in_order(self):
        sink = ListEventSink()
        sink.emit(Event(INSTALL_STARTED, {"a": 1}))
        sink.emit(Event("other"))
        assert sink.names() == [INSTALL_STARTED, "other"]
        assert sink.events[0].data == {"a": 1}

    def test_logging_sink_debug(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="common.events"):
            LoggingEventSink().emit(Event(INSTALL_STARTED, {"a": 1}))
        assert any(r.message == f"Event {INSTALL_STARTED}" for r in caplog.records)
