"""Unit tests for report distribution."""

import json
import smtplib
from datetime import date

import httpx
import pytest
from unittest.mock import AsyncMock, Mock, patch

from sitelog.app.models.client import Client
from sitelog.app.models.report import Report
from sitelog.app.schemas.tenant import TenantSettings
from sitelog.app.services.assets import initialize_brand_assets
from sitelog.app.services.distributor import (
    CLIENT_LOGO_CID,
    PLATFORM_LOGO_CID,
    Distributor,
    EmailSender,
    WebhookSender,
    email_template_values,
)

REPORT_ID = "f00dcafe-1111-4222-8333-444455556666"


@pytest.fixture
def report() -> Report:
    return Report(
        id=REPORT_ID,
        client_id="client-1",
        report_date=date(2024, 3, 15),
        project_name="Bridge Works",
        form_data={"works_performed": "Poured slab", "labour_on_site": "3 workers", "hours_worked": "8"},
        ai_analysis={"workforce": {"total_workers": 3, "man_hours": 24}, "site_conditions": {"weather": "Clear"}},
        status="completed",
        pdf_path=f"pdfs/{REPORT_ID}.pdf",
    )


@pytest.fixture
def client() -> Client:
    return Client(
        id="client-1",
        company_name="Acme Civil",
        contact_email="jo@acme.test",
        notification_emails=["pm@acme.test", "office@acme.test"],
        brand_color="#336699",
        logo_path="storage/logos/acme.jpg",
    )


@pytest.fixture
def smtp_settings(test_settings):
    return test_settings.model_copy(update={"smtp_user": "mailer", "smtp_password": "secret"})


@pytest.fixture
def email_sender() -> Mock:
    sender = Mock(spec=EmailSender)
    sender.build_message.return_value = Mock()
    sender.send = AsyncMock(return_value=True)
    return sender


@pytest.fixture
def webhook_sender() -> Mock:
    sender = Mock(spec=WebhookSender)
    sender.send = AsyncMock(return_value=True)
    return sender


class TestEmailTemplateValues:
    """Test cases for email placeholder values."""

    def test_values(self, report, client):
        """Test date formatting and the short uppercase report id."""
        values = email_template_values(report, client, "SiteLog")

        assert values["report_date"] == "March 15, 2024"
        assert values["report_id"] == "F00DCAFE"
        assert values["company_name"] == "Acme Civil"
        assert values["platform_name"] == "SiteLog"


class TestEmailSender:
    """Test cases for EmailSender."""

    def test_build_message_structure(self, smtp_settings, jpeg_bytes):
        """Test the HTML body, inline logo and PDF attachment."""
        sender = EmailSender(smtp_settings)

        msg = sender.build_message(
            ["pm@acme.test"],
            "Subject",
            "<p>Body</p>",
            b"%PDF",
            "report-f00dcafe.pdf",
            inline_images={CLIENT_LOGO_CID: jpeg_bytes},
        )

        body, attachment = msg.get_payload()
        assert msg.get_content_subtype() == "mixed"
        assert body.get_content_subtype() == "related"
        html_part, logo_part = body.get_payload()
        assert html_part.get_content_type() == "text/html"
        assert logo_part["Content-ID"] == "<client-logo>"
        assert logo_part.get_content_type() == "image/jpeg"
        assert attachment.get_content_type() == "application/pdf"
        assert attachment.get_filename() == "report-f00dcafe.pdf"

    @pytest.mark.asyncio
    async def test_send_skips_without_smtp(self, test_settings):
        """Test no connection is attempted when SMTP is not configured."""
        sender = EmailSender(test_settings)

        with patch("smtplib.SMTP") as mock_smtp:
            assert await sender.send(Mock(), ["pm@acme.test"]) is False
            mock_smtp.assert_not_called()

    @pytest.mark.asyncio
    async def test_send_skips_without_recipients(self, smtp_settings):
        """Test no connection is attempted without recipients."""
        sender = EmailSender(smtp_settings)

        with patch("smtplib.SMTP") as mock_smtp:
            assert await sender.send(Mock(), []) is False
            mock_smtp.assert_not_called()

    @pytest.mark.asyncio
    async def test_send_uses_starttls_and_login(self, smtp_settings):
        """Test the SMTP session issues STARTTLS, logs in and sends."""
        sender = EmailSender(smtp_settings)
        msg = sender.build_message(["pm@acme.test"], "Subject", "<p>Body</p>", b"%PDF", "r.pdf")

        with patch("smtplib.SMTP") as mock_smtp:
            server = mock_smtp.return_value.__enter__.return_value

            assert await sender.send(msg, ["pm@acme.test"]) is True

            server.starttls.assert_called_once()
            server.login.assert_called_once_with("mailer", "secret")
            args = server.sendmail.call_args.args
            assert args[1] == ["pm@acme.test"]


class TestWebhookSender:
    """Test cases for WebhookSender."""

    @pytest.mark.asyncio
    async def test_skips_without_url(self):
        """Test nothing is sent when no URL is configured."""
        with patch("httpx.AsyncClient") as mock_client:
            assert await WebhookSender(None).send({}, b"%PDF", "r.pdf") is False
            mock_client.assert_not_called()

    @pytest.mark.asyncio
    async def test_posts_pdf_and_data_fields(self):
        """Test the multipart body has a pdf file and a data field."""
        mock_response = Mock()
        mock_response.status_code = 200
        mock_response.raise_for_status = Mock()

        with patch("httpx.AsyncClient") as mock_client:
            mock_post = AsyncMock(return_value=mock_response)
            mock_client.return_value.__aenter__.return_value.post = mock_post

            sent = await WebhookSender("https://hooks.example.com/r").send({"reportId": "r1"}, b"%PDF", "report_r1.pdf")

            assert sent is True
            args, kwargs = mock_post.call_args
            assert args[0] == "https://hooks.example.com/r"
            assert kwargs["files"] == {"pdf": ("report_r1.pdf", b"%PDF", "application/pdf")}
            assert json.loads(kwargs["data"]["data"]) == {"reportId": "r1"}

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        """Test a non-2xx response raises."""
        request = httpx.Request("POST", "https://hooks.example.com/r")
        mock_response = Mock()
        mock_response.raise_for_status = Mock(side_effect=httpx.HTTPStatusError(
            "Server Error", request=request, response=httpx.Response(500, request=request)
        ))

        with patch("httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value.post = AsyncMock(return_value=mock_response)

            with pytest.raises(httpx.HTTPStatusError):
                await WebhookSender("https://hooks.example.com/r").send({}, b"%PDF", "r.pdf")


class TestDistributor:
    """Test cases for Distributor.distribute()."""

    @pytest.mark.asyncio
    async def test_sends_both_channels(self, test_settings, blob_store, email_sender, webhook_sender, report, client, jpeg_bytes):
        """Test email and webhook are both sent with the expected content."""
        await blob_store.upload("logos/acme.jpg", jpeg_bytes, "image/jpeg")
        distributor = Distributor(test_settings, blob_store, email_sender, webhook_sender)

        await distributor.distribute(report, client, b"%PDF")

        recipients, subject, html, pdf_bytes = email_sender.build_message.call_args.args
        kwargs = email_sender.build_message.call_args.kwargs
        assert recipients == ["pm@acme.test", "office@acme.test"]
        assert subject == "Daily Site Report - Bridge Works - March 15, 2024"
        assert 'src="cid:client-logo"' in html
        assert kwargs["pdf_filename"] == "report-f00dcafe.pdf"
        assert kwargs["inline_images"] == {CLIENT_LOGO_CID: jpeg_bytes}

        payload, pdf_bytes = webhook_sender.send.call_args.args
        assert webhook_sender.send.call_args.kwargs["pdf_filename"] == f"report_{REPORT_ID}.pdf"
        assert payload["reportId"] == REPORT_ID
        assert payload["clientName"] == "Acme Civil"
        assert payload["reportDate"] == "2024-03-15"
        assert payload["notificationEmails"] == ["pm@acme.test", "office@acme.test"]
        assert payload["aiAnalysis"] == report.ai_analysis
        assert 'src="http://test/storage/logos/acme.jpg"' in payload["emailHtml"]

    @pytest.mark.asyncio
    async def test_tenant_templates_applied(self, test_settings, blob_store, email_sender, webhook_sender, report, client):
        """Test tenant subject, header and footer templates."""
        tenant = TenantSettings(
            email_subject_template="{{company_name}}: {{project_name}} ({{report_id}})",
            email_header_template="Site Diary",
            email_footer_template="Sent by {{platform_name}}",
        )
        distributor = Distributor(test_settings, blob_store, email_sender, webhook_sender)

        await distributor.distribute(report, client, b"%PDF", tenant)

        _, subject, html, _ = email_sender.build_message.call_args.args
        assert subject == "Acme Civil: Bridge Works (F00DCAFE)"
        assert "Site Diary" in html
        assert "Sent by SiteLog" in html

    @pytest.mark.asyncio
    async def test_webhook_failure_does_not_block_email(self, test_settings, blob_store, email_sender, webhook_sender, report, client):
        """Test a webhook 500 leaves the email delivered and does not raise."""
        request = httpx.Request("POST", "https://hooks.example.com/r")
        webhook_sender.send.side_effect = httpx.HTTPStatusError(
            "Server Error", request=request, response=httpx.Response(500, request=request)
        )
        distributor = Distributor(test_settings, blob_store, email_sender, webhook_sender)

        await distributor.distribute(report, client, b"%PDF")

        email_sender.send.assert_awaited_once()
        webhook_sender.send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_email_failure_does_not_block_webhook(self, test_settings, blob_store, email_sender, webhook_sender, report, client):
        """Test an SMTP failure still sends the webhook."""
        email_sender.send.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
        distributor = Distributor(test_settings, blob_store, email_sender, webhook_sender)

        await distributor.distribute(report, client, b"%PDF")

        webhook_sender.send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_logo_omitted(self, test_settings, blob_store, email_sender, webhook_sender, report, client):
        """Test an unreadable logo is left out of the email."""
        distributor = Distributor(test_settings, blob_store, email_sender, webhook_sender)

        await distributor.distribute(report, client, b"%PDF")

        _, _, html, _ = email_sender.build_message.call_args.args
        assert "cid:client-logo" not in html
        assert email_sender.build_message.call_args.kwargs["inline_images"] == {}

    @pytest.mark.asyncio
    async def test_platform_logo_inlined(self, test_settings, blob_store, email_sender, webhook_sender, report, client):
        """Test the provisioned platform logo is attached to the email."""
        await initialize_brand_assets(blob_store, test_settings)
        distributor = Distributor(test_settings, blob_store, email_sender, webhook_sender)

        await distributor.distribute(report, client, b"%PDF")

        _, _, html, _ = email_sender.build_message.call_args.args
        inline_images = email_sender.build_message.call_args.kwargs["inline_images"]
        assert 'src="cid:platform-logo"' in html
        assert inline_images[PLATFORM_LOGO_CID].startswith(b"\x89PNG")

    @pytest.mark.asyncio
    async def test_traversal_logo_reference_not_sent(self, test_settings, blob_store, email_sender, webhook_sender, report, client):
        """Test an unsafe logo reference stops delivery instead of being dropped quietly."""
        client.logo_path = "../../etc/passwd"
        distributor = Distributor(test_settings, blob_store, email_sender, webhook_sender)

        await distributor.distribute(report, client, b"%PDF")

        email_sender.send.assert_not_awaited()
        webhook_sender.send.assert_not_awaited()
