from dataclasses import replace

import httpx
import pytest

from services.notification_service.email_client import BrevoEmailClient


@pytest.fixture
def make_client(settings, brevo):
    def _make(**overrides):
        client = BrevoEmailClient(
            replace(settings, **overrides),
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(brevo.handler)),
        )
        return client

    return _make


async def test_send_email_posts_brevo_payload(make_client, brevo, settings):
    client = make_client()

    result = await client.send_email(
        to=[{"email": "ana@example.com", "name": "Ana"}],
        subject="Order confirmation - ORD-1",
        html_content="<p>hi</p>",
    )

    assert result.success is True
    assert result.data == {"messageId": "<msg-1@brevo>"}
    assert result.error is None

    sent = brevo.sent[0]
    assert sent["url"] == "https://brevo.test/v3/smtp/email"
    assert sent["headers"]["api-key"] == "test-brevo-key"
    assert sent["headers"]["accept"] == "application/json"
    assert sent["sender"] == {"email": settings.brevo_sender_email, "name": settings.brevo_sender_name}
    assert sent["to"] == [{"email": "ana@example.com", "name": "Ana"}]
    assert sent["htmlContent"] == "<p>hi</p>"
    await client.aclose()


async def test_custom_sender(make_client, brevo):
    client = make_client()

    await client.send_email(
        to=[{"email": "a@example.com"}], subject="s", html_content="b",
        sender={"email": "shop@example.com", "name": "Shop"},
    )

    assert brevo.sent[0]["sender"] == {"email": "shop@example.com", "name": "Shop"}
    await client.aclose()


async def test_missing_api_key_fails_without_calling_api(make_client, brevo):
    client = make_client(brevo_api_key="")

    result = await client.send_email(to=[{"email": "a@example.com"}], subject="s", html_content="b")

    assert result.success is False
    assert "BREVO_API_KEY" in result.error
    assert brevo.sent == []
    await client.aclose()


async def test_error_status_is_reported(make_client, brevo):
    brevo.status_code = 400
    client = make_client()

    result = await client.send_email(to=[{"email": "a@example.com"}], subject="s", html_content="b")

    assert result.success is False
    assert result.error == "API Error: Sender not valid (400)"
    await client.aclose()


async def test_network_error_is_reported(make_client, brevo):
    brevo.error = httpx.ConnectError("connection refused")
    client = make_client()

    result = await client.send_email(to=[{"email": "a@example.com"}], subject="s", html_content="b")

    assert result.success is False
    assert "unavailable" in result.error
    await client.aclose()


async def test_timeout_is_reported(make_client, brevo):
    brevo.error = httpx.ReadTimeout("too slow")
    client = make_client()

    result = await client.send_email(to=[{"email": "a@example.com"}], subject="s", html_content="b")

    assert result.success is False
    assert "timeout" in result.error
    await client.aclose()
