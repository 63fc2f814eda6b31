"""Tests for the httpx adapters, driven by `httpx.MockTransport`."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from htb_cli.adapters.http_client import HTBTransport
from htb_cli.adapters.update_check import RELEASES_URL, check_for_update
from htb_cli.adapters.webhooks import format_notification, send_to_discord
from htb_cli.core.errors import ShapeError, TransportError


def _call(settings, handler, method, path, **kwargs):
    async def scenario():
        async with HTBTransport.from_settings(settings, transport=httpx.MockTransport(handler)) as transport:
            return await getattr(transport, method)(path, **kwargs)

    return asyncio.run(scenario())


class TestHTBTransport:
    def test_get_sends_bearer_token_under_base_path(self, settings):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["agent"] = request.headers.get("User-Agent")
            return httpx.Response(200, json={"info": {"id": 1, "isVip": True}})

        info = _call(settings, handler, "get", "/user/info", envelope="info")

        assert info == {"id": 1, "isVip": True}
        assert seen["url"] == "https://api.test/api/v4/user/info"
        assert seen["auth"] == "Bearer test-token"
        assert seen["agent"].startswith("htb-cli/")

    def test_get_passes_query_params(self, settings):
        seen = {}

        def handler(request):
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"machines": []})

        _call(settings, handler, "get", "/search/fetch", params={"query": "Lame", "tags": '["machines"]'})

        assert seen["params"] == {"query": "Lame", "tags": '["machines"]'}

    def test_post_sends_json_payload(self, settings):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"message": "Playing machine Lame"})

        message = _call(settings, handler, "post", "/machine/play/1", payload={}, envelope="message")

        assert message == "Playing machine Lame"
        assert seen == {"method": "POST", "body": {}}

    def test_nested_envelope(self, settings):
        def handler(request):
            return httpx.Response(200, json={"data": {"labs": [{"id": 1, "name": "Dante"}]}})

        labs = _call(settings, handler, "get", "/prolabs", envelope="data.labs")

        assert labs == [{"id": 1, "name": "Dante"}]

    def test_http_error_status_is_a_transport_error(self, settings):
        def handler(request):
            return httpx.Response(404, json={"message": "Machine not found"})

        with pytest.raises(TransportError) as excinfo:
            _call(settings, handler, "get", "/machine/profile/99", envelope="info")

        assert excinfo.value.status_code == 404
        assert excinfo.value.url == "/machine/profile/99"
        assert "Machine not found" in str(excinfo.value)

    def test_unauthorized_mentions_the_token_variable(self, settings):
        def handler(request):
            return httpx.Response(401, json={"message": "Unauthenticated."})

        with pytest.raises(TransportError) as excinfo:
            _call(settings, handler, "get", "/user/info")

        assert "HTB_CLI_API_TOKEN" in str(excinfo.value)

    def test_network_failure_is_a_transport_error(self, settings):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransportError) as excinfo:
            _call(settings, handler, "get", "/user/info")

        assert excinfo.value.status_code is None

    def test_invalid_json_is_a_shape_error(self, settings):
        def handler(request):
            return httpx.Response(200, text="<html>maintenance</html>")

        with pytest.raises(ShapeError):
            _call(settings, handler, "get", "/user/info", envelope="info")

    def test_missing_envelope_is_a_shape_error(self, settings):
        def handler(request):
            return httpx.Response(200, json={"unexpected": True})

        with pytest.raises(ShapeError):
            _call(settings, handler, "get", "/user/info", envelope="info")


class TestDiscordWebhook:
    def test_disabled_without_url(self, settings):
        sent = asyncio.run(send_to_discord(settings=settings, command="start", message="ok"))

        assert sent is False

    def test_posts_content_without_api_token(self, settings):
        settings = settings.model_copy(update={"discord_webhook_url": "https://discord.test/hook"})
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(204)

        sent = asyncio.run(
            send_to_discord(
                settings=settings,
                command="submit",
                message="Congratulations",
                transport=httpx.MockTransport(handler),
            )
        )

        assert sent is True
        assert seen["url"] == "https://discord.test/hook"
        assert seen["auth"] is None
        assert seen["body"] == {"content": "**htb-cli submit**\nCongratulations"}

    def test_failure_is_reported_not_raised(self, settings):
        settings = settings.model_copy(update={"discord_webhook_url": "https://discord.test/hook"})

        def handler(request):
            return httpx.Response(500)

        sent = asyncio.run(
            send_to_discord(
                settings=settings,
                command="start",
                message="ok",
                transport=httpx.MockTransport(handler),
            )
        )

        assert sent is False

    def test_long_messages_are_truncated(self):
        assert len(format_notification("start", "x" * 5000)) == 2000


class TestUpdateCheck:
    def test_reports_latest_tag(self, settings):
        def handler(request):
            assert str(request.url) == RELEASES_URL
            return httpx.Response(200, json={"tag_name": "v1.7.0"})

        status = asyncio.run(
            check_for_update(settings=settings, current_version="1.6.0", transport=httpx.MockTransport(handler))
        )

        assert status.latest == "v1.7.0"
        assert not status.up_to_date

    def test_same_version_is_up_to_date(self, settings):
        def handler(request):
            return httpx.Response(200, json={"tag_name": "v1.6.0"})

        status = asyncio.run(
            check_for_update(settings=settings, current_version="1.6.0", transport=httpx.MockTransport(handler))
        )

        assert status.up_to_date

    def test_missing_tag_is_a_shape_error(self, settings):
        def handler(request):
            return httpx.Response(200, json={"message": "Not Found"})

        with pytest.raises(ShapeError):
            asyncio.run(
                check_for_update(settings=settings, current_version="1.6.0", transport=httpx.MockTransport(handler))
            )

    def test_http_failure_is_a_transport_error(self, settings):
        def handler(request):
            return httpx.Response(403)

        with pytest.raises(TransportError):
            asyncio.run(
                check_for_update(settings=settings, current_version="1.6.0", transport=httpx.MockTransport(handler))
            )
