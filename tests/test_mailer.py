import asyncio
from urllib.parse import parse_qs

import httpx
import pytest

from kkmk_reminders.config import Config, MailConfig
from kkmk_reminders.errors import ConfigurationError, SendError
from kkmk_reminders.models import EmailMessage
from kkmk_reminders.services.mailer import (
    MailgunTransport,
    get_transporter,
    reset_transporter,
    verify_mail_service_configured,
)

MAIL = MailConfig(api_key="key-123", domain="mg.example.org", timeout=2.0)
MESSAGE = EmailMessage(
    to="a@x.com",
    subject="Reminder",
    html="<p>hi</p>",
    sender_name="KKMK Events",
    tags=("event-reminder", "week"),
)


def _transport(handler, config=MAIL):
    client = httpx.AsyncClient(
        base_url="https://api.mailgun.test",
        auth=("api", config.api_key),
        transport=httpx.MockTransport(handler),
    )
    return MailgunTransport(config, client=client)


def _send(transport, message=MESSAGE):
    async def scenario():
        try:
            return await transport.send(message)
        finally:
            await transport._client.aclose()

    return asyncio.run(scenario())


def test_verify_raises_naming_missing_variables():
    with pytest.raises(ConfigurationError) as excinfo:
        verify_mail_service_configured(MailConfig())

    assert "MAILGUN_API_KEY" in str(excinfo.value)
    assert "MAILGUN_DOMAIN" in str(excinfo.value)


def test_verify_accepts_full_config():
    verify_mail_service_configured(Config(mail=MAIL))


def test_verify_reports_single_missing_variable():
    with pytest.raises(ConfigurationError) as excinfo:
        verify_mail_service_configured(MailConfig(api_key="key-123"))

    assert "MAILGUN_DOMAIN" in str(excinfo.value)
    assert "MAILGUN_API_KEY" not in str(excinfo.value)


def test_send_posts_form_to_domain_endpoint():
    captured = {}

    def handler(request):
        captured["path"] = request.url.path
        captured["auth"] = request.headers.get("authorization")
        captured["form"] = parse_qs(request.content.decode())
        return httpx.Response(200, json={"id": "<20240101.1@mg.example.org>", "message": "Queued"})

    message_id = _send(_transport(handler))

    assert message_id == "<20240101.1@mg.example.org>"
    assert captured["path"] == "/v3/mg.example.org/messages"
    assert captured["auth"].startswith("Basic ")
    form = captured["form"]
    assert form["to"] == ["a@x.com"]
    assert form["subject"] == ["Reminder"]
    assert form["from"] == ["KKMK Events <events@mg.example.org>"]
    assert form["o:tag"] == ["event-reminder", "week"]


def test_explicit_sender_overrides_message_name():
    captured = {}
    config = MailConfig(api_key="key-123", domain="mg.example.org", sender="Foundation <hello@kkmk.org>")

    def handler(request):
        captured["form"] = parse_qs(request.content.decode())
        return httpx.Response(200, json={"id": "<1@mg>"})

    _send(_transport(handler, config))

    assert captured["form"]["from"] == ["Foundation <hello@kkmk.org>"]


def test_provider_rejection_raises_send_error():
    def handler(request):
        return httpx.Response(400, text="'to' parameter is not a valid address")

    with pytest.raises(SendError) as excinfo:
        _send(_transport(handler))

    assert excinfo.value.status_code == 400
    assert excinfo.value.recipient == "a@x.com"


def test_timeout_raises_send_error():
    def handler(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    with pytest.raises(SendError) as excinfo:
        _send(_transport(handler))

    assert "timed out" in str(excinfo.value)
    assert excinfo.value.status_code is None


def test_connection_error_raises_send_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(SendError):
        _send(_transport(handler))


def test_missing_id_in_response_returns_empty_string():
    def handler(request):
        return httpx.Response(200, text="OK")

    assert _send(_transport(handler)) == ""


def test_get_transporter_is_shared_until_reset():
    reset_transporter()
    try:
        first = get_transporter(MAIL)
        assert get_transporter(Config(mail=MAIL)) is first
        reset_transporter()
        assert get_transporter(MAIL) is not first
    finally:
        reset_transporter()


def test_accepted_response_with_non_object_body_returns_empty_id():
    def handler(request):
        return httpx.Response(200, json=["queued"])

    assert _send(_transport(handler)) == ""
