"""
Report distribution: email to the client's notification list and an
outbound automation webhook.

Both channels are best effort. A failure in one never prevents the other
and never changes the report's status.
"""

import asyncio
import json
import logging
import smtplib
from datetime import datetime
from email.mime.application import MIMEApplication
from email.mime.image import MIMEImage
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Any

import httpx

from sitelog.app.core.config import Settings, settings as default_settings
from sitelog.app.core.exceptions import BlobNotFoundError, StorageBackendError
from sitelog.app.models.client import Client
from sitelog.app.models.report import Report
from sitelog.app.schemas.analysis import StructuredAnalysis
from sitelog.app.schemas.tenant import TenantSettings
from sitelog.app.services.blob_store import BlobStore, get_blob_store
from sitelog.app.services.images import sniff_mime
from sitelog.app.services.prompts import render_prompt
from sitelog.app.services.settings_store import first_configured

logger = logging.getLogger(__name__)

DEFAULT_EMAIL_SUBJECT = "Daily Site Report - {{project_name}} - {{report_date}}"
DEFAULT_EMAIL_HEADER = "Daily Site Report"
DEFAULT_EMAIL_FOOTER = "This report was automatically generated and analyzed by {{platform_name}}"

CLIENT_LOGO_CID = "client-logo"
PLATFORM_LOGO_CID = "platform-logo"


def email_template_values(report: Report, client: Client, platform_name: str) -> dict[str, str]:
    return {
        "project_name": report.project_name,
        "report_date": report.report_date.strftime("%B %d, %Y"),
        "company_name": client.company_name,
        "report_id": report.id[:8].upper(),
        "platform_name": platform_name,
    }


def _heading(title: str, brand_color: str) -> str:
    return (
        f'<h3 style="color: #333; margin: 30px 0 15px 0; font-size: 18px; '
        f'border-bottom: 2px solid {brand_color}; padding-bottom: 8px;">{escape(title)}</h3>'
    )


def _line(label: str, value: Any) -> str:
    return (
        f'<p style="margin: 5px 0; color: #555; font-size: 14px;">'
        f'<strong style="color: #333;">{escape(label)}:</strong> {escape(str(value))}</p>'
    )


def build_email_html(
    report: Report,
    client: Client,
    analysis: StructuredAnalysis,
    header: str,
    footer: str,
    values: dict[str, str],
    brand_color: str,
    client_logo_src: str = "",
    platform_logo_src: str = "",
) -> str:
    """
    Report summary HTML shared by the email body and the webhook payload.

    Logo sources are ``cid:`` references for email and public URLs for the
    webhook.
    """
    form = report.form_data or {}
    workforce = analysis.workforce

    platform_logo = ""
    if platform_logo_src:
        platform_logo = (
            f'<img src="{platform_logo_src}" alt="{escape(values["platform_name"])}" '
            f'style="max-width: 200px; height: auto; margin-bottom: 15px;">'
        )
    client_logo = ""
    if client_logo_src:
        client_logo = f"""
          <tr>
            <td style="padding: 20px; text-align: center; background-color: #fafafa; border-bottom: 1px solid #e0e0e0;">
              <img src="{client_logo_src}" alt="{escape(client.company_name)}" style="max-width: 150px; max-height: 80px;">
            </td>
          </tr>"""

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <title>Daily Site Report - {escape(report.project_name)}</title>
</head>
<body style="margin: 0; padding: 0; font-family: Arial, sans-serif; background-color: #f5f5f5;">
  <table width="100%" cellpadding="0" cellspacing="0" style="background-color: #f5f5f5; padding: 20px 0;">
    <tr>
      <td align="center">
        <table width="600" cellpadding="0" cellspacing="0" style="background-color: #ffffff; border-radius: 8px;">
          <tr>
            <td style="background-color: {brand_color}; padding: 30px 20px; text-align: center;">
              {platform_logo}
              <h1 style="color: white; margin: 0; font-size: 28px;">{escape(render_prompt(header, values))}</h1>
            </td>
          </tr>{client_logo}
          <tr>
            <td style="padding: 30px 20px;">
              <h2 style="color: #333; margin: 0 0 20px 0; font-size: 24px;">{escape(report.project_name)}</h2>
              <p style="color: #666; font-size: 16px; line-height: 1.6;">
                A new daily site report has been generated for {escape(values["report_date"])}.
              </p>
              {_line("Company", client.company_name)}
              {_line("Project", report.project_name)}
              {_line("Report Date", values["report_date"])}
              {_line("Report ID", values["report_id"])}
              {_heading("Analysis Highlights", brand_color)}
              {_line("Weather", analysis.site_conditions.weather or "N/A")}
              {_line("Total Workers", workforce.total_workers or "N/A")}
              {_line("Man-Hours", f"{workforce.man_hours:g}" if workforce.man_hours else "N/A")}
              {_heading("Works Performed", brand_color)}
              <p style="color: #555; font-size: 14px; line-height: 1.6; white-space: pre-wrap;">{escape(form.get("works_performed") or "N/A")}</p>
              {_heading("Labour & Hours", brand_color)}
              {_line("Labour on Site", form.get("labour_on_site") or "N/A")}
              {_line("Hours Worked", form.get("hours_worked") or "N/A")}
              {_heading("Materials Used", brand_color)}
              <p style="color: #555; font-size: 14px; line-height: 1.6; white-space: pre-wrap;">{escape(form.get("materials_used") or "N/A")}</p>
              {_heading("Safety Incidents", brand_color)}
              <p style="color: #555; font-size: 14px; line-height: 1.6;">{escape(form.get("safety_incidents") or "None reported")}</p>
              <div style="background-color: #e8f4fd; border-left: 4px solid #2196F3; padding: 15px; margin-top: 30px;">
                <p style="margin: 0; color: #1976D2; font-size: 14px;">
                  <strong>Complete Report:</strong> The attached PDF contains the full report with analysis and site photos.
                </p>
              </div>
            </td>
          </tr>
          <tr>
            <td style="background-color: #f9f9f9; padding: 20px; text-align: center; border-top: 1px solid #e0e0e0;">
              <p style="margin: 0 0 10px 0; color: #999; font-size: 12px;">{escape(render_prompt(footer, values))}</p>
              <p style="margin: 0; color: #999; font-size: 12px;">&copy; {datetime.now().year} {escape(values["platform_name"])}</p>
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>
"""


class EmailSender:
    """SMTP sender for report emails."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or default_settings

    @property
    def configured(self) -> bool:
        return self.settings.smtp_configured

    def build_message(
        self,
        recipients: list[str],
        subject: str,
        html: str,
        pdf_bytes: bytes,
        pdf_filename: str,
        inline_images: dict[str, bytes] | None = None,
    ) -> MIMEMultipart:
        """Mixed message: HTML body with related inline images, plus the PDF attachment."""
        msg = MIMEMultipart("mixed")
        msg["Subject"] = subject
        msg["From"] = self.settings.smtp_from
        msg["To"] = ", ".join(recipients)

        body = MIMEMultipart("related")
        body.attach(MIMEText(html, "html", "utf-8"))
        for cid, data in (inline_images or {}).items():
            image = MIMEImage(data, _subtype=sniff_mime(data).split("/", 1)[1])
            image.add_header("Content-ID", f"<{cid}>")
            image.add_header("Content-Disposition", "inline", filename=f"{cid}.{image.get_content_subtype()}")
            body.attach(image)
        msg.attach(body)

        attachment = MIMEApplication(pdf_bytes, _subtype="pdf")
        attachment.add_header("Content-Disposition", "attachment", filename=pdf_filename)
        msg.attach(attachment)
        return msg

    def _send_sync(self, msg: MIMEMultipart, recipients: list[str]) -> None:
        with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=self.settings.smtp_timeout) as server:
            if self.settings.smtp_use_tls:
                server.starttls()
            server.login(self.settings.smtp_user, self.settings.smtp_password)
            server.sendmail(self.settings.smtp_from, recipients, msg.as_string())

    async def send(self, msg: MIMEMultipart, recipients: list[str]) -> bool:
        """
        Send a message.

        Returns:
            True if sent, False if skipped (SMTP not configured or no recipients)

        Raises:
            smtplib.SMTPException, OSError: If the transport fails
        """
        if not recipients:
            logger.warning("[EMAIL] No notification recipients, skipping email")
            return False
        if not self.configured:
            logger.warning(f"[EMAIL] SMTP not configured, not sending. Would have sent to: {', '.join(recipients)}")
            return False

        await asyncio.to_thread(self._send_sync, msg, recipients)
        logger.info(f"[EMAIL] Email sent to {', '.join(recipients)}")
        return True


class WebhookSender:
    """Multipart POST of the PDF and report JSON to the automation webhook."""

    def __init__(self, url: str | None, timeout: float = 30.0):
        self.url = url
        self.timeout = timeout

    async def send(self, payload: dict[str, Any], pdf_bytes: bytes, pdf_filename: str) -> bool:
        """
        Post the report.

        Returns:
            True if delivered, False if no webhook URL is configured

        Raises:
            httpx.HTTPError: On transport failure or a non-2xx response
        """
        if not self.url:
            logger.info("[WEBHOOK] No webhook URL configured, skipping")
            return False

        data = json.dumps(payload, indent=2)
        logger.info(f"[WEBHOOK] Sending report {payload.get('reportId')} (PDF + {len(data)} bytes of JSON)")

        async with httpx.AsyncClient() as client:
            response = await client.post(
                self.url,
                files={"pdf": (pdf_filename, pdf_bytes, "application/pdf")},
                data={"data": data},
                timeout=self.timeout,
            )
            response.raise_for_status()

        logger.info(f"[WEBHOOK] Delivered report {payload.get('reportId')} (status: {response.status_code})")
        return True


class Distributor:
    """
    Sends a completed report to humans and to automation.

    Examples:
        >>> distributor = Distributor()
        >>> await distributor.distribute(report, client, pdf_bytes, tenant)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        blob_store: BlobStore | None = None,
        email_sender: EmailSender | None = None,
        webhook_sender: WebhookSender | None = None,
    ):
        self.settings = settings or default_settings
        self.blob_store = blob_store or get_blob_store()
        self.email_sender = email_sender or EmailSender(self.settings)
        self.webhook_sender = webhook_sender or WebhookSender(self.settings.webhook_url, self.settings.webhook_timeout)

    async def _load_logo(self, ref: str | None) -> bytes | None:
        """Logo bytes, or None when missing. Traversal references raise."""
        if not ref:
            return None
        try:
            return await self.blob_store.download(ref)
        except (BlobNotFoundError, StorageBackendError) as e:
            logger.warning(f"[EMAIL] Could not load logo {ref}: {e}")
            return None

    async def distribute(
        self,
        report: Report,
        client: Client,
        pdf_bytes: bytes,
        tenant: TenantSettings | None = None,
    ) -> None:
        """Send email and webhook independently. Never raises."""
        tenant = tenant or TenantSettings()
        analysis = StructuredAnalysis.model_validate(report.ai_analysis or {})
        values = email_template_values(report, client, self.settings.platform_name)
        header = first_configured(tenant.email_header_template, default=DEFAULT_EMAIL_HEADER)
        footer = first_configured(tenant.email_footer_template, default=DEFAULT_EMAIL_FOOTER)
        brand_color = client.brand_color or self.settings.default_brand_color

        try:
            await self._send_email(report, client, pdf_bytes, tenant, analysis, values, header, footer, brand_color)
        except Exception as e:
            logger.error(f"[EMAIL] Failed to send report {report.id}: {e}", exc_info=True)

        try:
            await self._send_webhook(report, client, pdf_bytes, analysis, values, header, footer, brand_color)
        except Exception as e:
            logger.error(f"[WEBHOOK] Failed to send report {report.id}: {e}")

    async def _send_email(
        self,
        report: Report,
        client: Client,
        pdf_bytes: bytes,
        tenant: TenantSettings,
        analysis: StructuredAnalysis,
        values: dict[str, str],
        header: str,
        footer: str,
        brand_color: str,
    ) -> None:
        inline_images = {}
        client_logo = await self._load_logo(client.logo_path)
        if client_logo:
            inline_images[CLIENT_LOGO_CID] = client_logo
        platform_logo = await self._load_logo(self.settings.platform_logo_path)
        if platform_logo:
            inline_images[PLATFORM_LOGO_CID] = platform_logo

        html = build_email_html(
            report,
            client,
            analysis,
            header,
            footer,
            values,
            brand_color,
            client_logo_src=f"cid:{CLIENT_LOGO_CID}" if client_logo else "",
            platform_logo_src=f"cid:{PLATFORM_LOGO_CID}" if platform_logo else "",
        )
        subject = render_prompt(first_configured(tenant.email_subject_template, default=DEFAULT_EMAIL_SUBJECT), values)
        recipients = list(client.notification_emails or [])
        msg = self.email_sender.build_message(
            recipients,
            subject,
            html,
            pdf_bytes,
            pdf_filename=f"report-{report.id[:8]}.pdf",
            inline_images=inline_images,
        )
        await self.email_sender.send(msg, recipients)

    async def _send_webhook(
        self,
        report: Report,
        client: Client,
        pdf_bytes: bytes,
        analysis: StructuredAnalysis,
        values: dict[str, str],
        header: str,
        footer: str,
        brand_color: str,
    ) -> None:
        base_url = self.settings.public_base_url
        html = build_email_html(
            report,
            client,
            analysis,
            header,
            footer,
            values,
            brand_color,
            client_logo_src=self.blob_store.public_url(base_url, client.logo_path),
            platform_logo_src=self.blob_store.public_url(base_url, self.settings.platform_logo_path),
        )
        payload = {
            "reportId": report.id,
            "clientId": client.id,
            "clientName": client.company_name,
            "projectName": report.project_name,
            "reportDate": report.report_date.isoformat(),
            "formData": report.form_data,
            "aiAnalysis": report.ai_analysis,
            "notificationEmails": list(client.notification_emails or []),
            "emailHtml": html,
        }
        await self.webhook_sender.send(payload, pdf_bytes, pdf_filename=f"report_{report.id}.pdf")


# Global distributor instance
_distributor: Distributor | None = None


def get_distributor() -> Distributor:
    """Get or create the distributor instance."""
    global _distributor
    if _distributor is None:
        _distributor = Distributor()
    return _distributor
