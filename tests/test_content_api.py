"""Tests for the parse/generate service client."""

from __future__ import annotations

import json
from unittest.mock import patch

import httpx
import pytest
from tenacity import wait_none

from vecna.errors import ContentServiceError
from vecna.models.schemas import GenerateRequest
from vecna.services.content_api import GENERATE_PATH, PARSE_PATH, ContentServiceClient


def _client(handler) -> ContentServiceClient:
    client = ContentServiceClient(base_url="http://content.test", api_key="secret")
    client.client = httpx.Client(
        base_url="http://content.test",
        headers=client.client.headers,
        transport=httpx.MockTransport(handler),
    )
    return client


class TestParse:
    def test_sends_wire_body_and_key(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["key"] = request.headers.get("X-API-Key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True})

        response = _client(handler).parse(7, "https://rules.pdf")

        assert response.success
        assert seen == {
            "path": PARSE_PATH,
            "key": "secret",
            "body": {"gameId": 7, "url": "https://rules.pdf"},
        }

    def test_error_status_forces_failure(self):
        handler = lambda request: httpx.Response(500, json={"success": True, "error": "Extractor crashed"})

        response = _client(handler).parse(7, "https://rules.pdf")

        assert not response.success
        assert response.error == "HTTP 500: Extractor crashed"

    def test_error_status_without_body(self):
        handler = lambda request: httpx.Response(502, text="Bad gateway")

        response = _client(handler).parse(7, "https://rules.pdf")

        assert not response.success
        assert response.error == "HTTP 502"

    def test_timeout_raises_service_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(ContentServiceError, match="timed out"):
            _client(handler).parse(7, "https://rules.pdf")

    def test_connect_errors_are_retried(self):
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            raise httpx.ConnectError("refused", request=request)

        with patch.object(ContentServiceClient._post.retry, "wait", wait_none()):
            with pytest.raises(ContentServiceError, match="failed"):
                _client(handler).parse(7, "https://rules.pdf")
        assert calls["n"] == 3

    def test_connect_error_then_success(self):
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if calls["n"] == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={"success": True})

        with patch.object(ContentServiceClient._post.retry, "wait", wait_none()):
            assert _client(handler).parse(7, "https://rules.pdf").success

    def test_malformed_response(self):
        handler = lambda request: httpx.Response(200, json={"success": "perhaps"})

        with pytest.raises(ContentServiceError, match="Malformed") as excinfo:
            _client(handler).parse(7, "https://rules.pdf")
        assert excinfo.value.status_code == 200
        assert "perhaps" in excinfo.value.body

    def test_malformed_body_is_truncated(self):
        handler = lambda request: httpx.Response(200, json={"success": "x" * 2000})

        with pytest.raises(ContentServiceError) as excinfo:
            _client(handler).parse(7, "https://rules.pdf")
        assert len(excinfo.value.body) == 503
        assert excinfo.value.body.endswith("...")

    def test_transport_error_has_no_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(ContentServiceError) as excinfo:
            _client(handler).parse(7, "https://rules.pdf")
        assert excinfo.value.status_code is None


class TestGenerate:
    def test_request_body(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True})

        _client(handler).generate(GenerateRequest(game_id=3, quality_tier="opus"))

        assert seen["path"] == GENERATE_PATH
        assert seen["body"] == {
            "gameId": 3,
            "contentTypes": ["rules", "setup", "reference"],
            "model": "opus",
        }

    def test_partial_failure_message(self):
        handler = lambda request: httpx.Response(
            200, json={"success": False, "errors": {"rules": "timeout", "setup": "timeout"}}
        )

        response = _client(handler).generate(GenerateRequest(game_id=3))

        assert not response.success
        assert response.failure_message() == "Generation failed for rules, setup: timeout"

    def test_failure_message_with_top_level_error(self):
        handler = lambda request: httpx.Response(
            500, json={"error": "Partial failure", "errors": {"reference": "invalid JSON"}}
        )

        response = _client(handler).generate(GenerateRequest(game_id=3))

        assert response.failure_message() == (
            "HTTP 500: Partial failure: Generation failed for reference: invalid JSON"
        )
