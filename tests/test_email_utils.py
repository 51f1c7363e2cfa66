"""
Tests for verification email rendering and the Resend provider.
"""

import json

import httpx
import pytest

from utils.email_utils import (
    ResendEmailProvider,
    SmtpEmailProvider,
    render_verification_email,
    send_verification_email,
)


def resend_transport(status_code, body, seen):
    def handler(request):
        seen.append(request)
        return httpx.Response(status_code, json=body)
    return httpx.MockTransport(handler)


class TestRender:

    def test_code_and_expiry_in_both_parts(self):
        subject, html, text = render_verification_email("482913", 10)

        assert subject == "Your GunEvent Verification Code"
        assert "482913" in html
        assert "10 minutes" in html
        assert "482913" in text
        assert "{{" not in html


class TestResendProvider:

    @pytest.mark.asyncio
    async def test_sends_payload(self):
        seen = []
        provider = ResendEmailProvider(
            api_key="re_test",
            from_email="GunEvent <no-reply@gunevent.app>",
            transport=resend_transport(200, {"id": "email_123"}, seen),
        )

        result = await send_verification_email(provider, "a@x.com", "482913", 10)

        assert result.success is True
        assert result.message_id == "email_123"
        request = seen[0]
        assert request.headers["Authorization"] == "Bearer re_test"
        payload = json.loads(request.content)
        assert payload["to"] == ["a@x.com"]
        assert payload["from"] == "GunEvent <no-reply@gunevent.app>"
        assert "482913" in payload["text"]

    @pytest.mark.asyncio
    async def test_provider_error_message_is_kept(self):
        provider = ResendEmailProvider(
            api_key="re_test",
            transport=resend_transport(422, {"message": "Invalid `to` field"}, []),
        )

        result = await provider.send_email("bad", "s", "<p>h</p>")

        assert result.success is False
        assert result.error == "Invalid `to` field"

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        provider = ResendEmailProvider(api_key="re_test", transport=httpx.MockTransport(handler))

        result = await provider.send_email("a@x.com", "s", "<p>h</p>")

        assert result.success is False
        assert "timed out" in result.error

    @pytest.mark.asyncio
    async def test_not_configured(self):
        result = await ResendEmailProvider(api_key=None).send_email("a@x.com", "s", "<p>h</p>")

        assert result.success is False
        assert result.error == "Email service not configured"


class TestSmtpProvider:

    @pytest.mark.asyncio
    async def test_not_configured(self):
        result = await SmtpEmailProvider(server=None, user=None).send_email("a@x.com", "s", "<p>h</p>")

        assert result.success is False
        assert result.error == "Email service not configured"
