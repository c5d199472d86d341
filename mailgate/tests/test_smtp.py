"""
Tests for MIME building and SMTP submission (aiosmtplib mocked).
"""

import logging
from unittest.mock import AsyncMock, patch

import aiosmtplib
import pytest

from mailgate.mail.smtp import SmtpSender, build_message, ehlo_domain, recipients_of
from mailgate.shared.config import EmailConfig
from mailgate.shared.errors import MailTransportError
from mailgate.shared.models import OutgoingAttachment, OutgoingEmail

SEND_PATH = "mailgate.mail.smtp.aiosmtplib.send"


@pytest.fixture
def config():
    return EmailConfig(
        host="smtp.biz.com",
        port=587,
        from_addr="coo@biz.com",
        user="coo@biz.com",
        password="pw",
    )


def _email(**overrides):
    fields = dict(to="alice@example.com", subject="Hi", body="Hello Alice")
    fields.update(overrides)
    return OutgoingEmail(**fields)


class TestHelpers:
    def test_ehlo_domain(self):
        assert ehlo_domain("COO <coo@biz.com>") == "biz.com"
        assert ehlo_domain("no-at-sign") is None

    def test_recipients_include_cc_and_bcc(self):
        msg = _email(to="a@x.com, b@x.com", cc="c@x.com", bcc="d@x.com")
        assert recipients_of(msg) == ["a@x.com", "b@x.com", "c@x.com", "d@x.com"]


class TestBuildMessage:
    def test_headers(self, config):
        msg = build_message(config, _email(cc="c@x.com"))
        assert msg["From"] == "coo@biz.com"
        assert msg["To"] == "alice@example.com"
        assert msg["Cc"] == "c@x.com"
        assert msg["Subject"] == "Hi"
        assert msg["Message-ID"].endswith("@biz.com>")
        assert msg["Date"]

    def test_bcc_not_written(self, config):
        msg = build_message(config, _email(bcc="secret@x.com"))
        assert msg["Bcc"] is None
        assert b"secret@x.com" not in msg.as_bytes()

    def test_html_alternative(self, config):
        msg = build_message(config, _email(html="<p>Hello</p>"))
        assert msg.get_content_type() == "multipart/alternative"
        assert msg.get_body(preferencelist=("html",)).get_content().strip() == "<p>Hello</p>"

    def test_attachment(self, config):
        attachment = OutgoingAttachment(filename="note.txt", content="aGVsbG8=")
        msg = build_message(config, _email(attachments=[attachment]))
        parts = list(msg.iter_attachments())
        assert len(parts) == 1
        assert parts[0].get_filename() == "note.txt"
        assert parts[0].get_content_type() == "text/plain"
        assert parts[0].get_payload(decode=True) == b"hello"

    def test_bad_base64(self, config):
        attachment = OutgoingAttachment(filename="x.bin", content="not base64!!")
        with pytest.raises(MailTransportError, match="x.bin"):
            build_message(config, _email(attachments=[attachment]))


@pytest.mark.asyncio
class TestSmtpSender:
    async def test_send(self, config):
        send = AsyncMock(return_value=({}, "250 OK"))
        with patch(SEND_PATH, send):
            result = await SmtpSender().send(config, _email(cc="c@x.com"))

        assert result.accepted == ["alice@example.com", "c@x.com"]
        assert result.rejected == []
        assert result.message_id.endswith("@biz.com>")
        assert b"Subject: Hi" in result.raw_message

        kwargs = send.call_args.kwargs
        assert kwargs["hostname"] == "smtp.biz.com"
        assert kwargs["port"] == 587
        assert kwargs["sender"] == "coo@biz.com"
        assert kwargs["username"] == "coo@biz.com"
        assert "use_tls" not in kwargs

    async def test_implicit_tls_on_465(self, config):
        send = AsyncMock(return_value=({}, "250 OK"))
        tls_config = EmailConfig(host="smtp.biz.com", port=465, from_addr="coo@biz.com")
        with patch(SEND_PATH, send):
            await SmtpSender().send(tls_config, _email())
        kwargs = send.call_args.kwargs
        assert kwargs["use_tls"] is True
        assert "username" not in kwargs

    async def test_partial_rejection(self, config):
        send = AsyncMock(return_value=({"b@x.com": (550, "no such user")}, "250 OK"))
        with patch(SEND_PATH, send):
            result = await SmtpSender().send(config, _email(to="a@x.com, b@x.com"))
        assert result.accepted == ["a@x.com"]
        assert result.rejected == ["b@x.com"]

    async def test_smtp_error(self, config):
        send = AsyncMock(side_effect=aiosmtplib.SMTPException("auth failed"))
        with patch(SEND_PATH, send):
            with pytest.raises(MailTransportError, match="auth failed"):
                await SmtpSender().send(config, _email())

    async def test_connection_error(self, config):
        send = AsyncMock(side_effect=ConnectionRefusedError("refused"))
        with patch(SEND_PATH, send):
            with pytest.raises(MailTransportError, match="connection failed"):
                await SmtpSender().send(config, _email())

    async def test_no_recipients(self, config):
        with patch(SEND_PATH, AsyncMock()) as send:
            with pytest.raises(MailTransportError, match="No valid recipients"):
                await SmtpSender().send(config, _email(to="undisclosed-recipients:;"))
        send.assert_not_called()

    async def test_password_not_logged(self, config, caplog):
        caplog.set_level(logging.INFO)
        with patch(SEND_PATH, AsyncMock(return_value=({}, "250 OK"))):
            await SmtpSender().send(config, _email())
        assert "pw" not in caplog.text.split()
