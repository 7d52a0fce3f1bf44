"""
Report Delivery Pipeline (P4 Implementation).

Renders the scheduled-report email and sends it to each recipient through
an EmailPort. Report documents themselves are produced by the scan
engine; this adapter only builds the notification.

Key behaviors:
- No recipients is a successful no-op
- Any failed recipient fails the delivery (the run is recorded failed)
- Score colour: >= 90 green, >= 70 amber, otherwise red
"""

from __future__ import annotations

import html
import logging
from datetime import datetime
from urllib.parse import urlparse

from assurance.adapters.time_zone import create_time_adapter
from assurance.core.entities import DeliveryFormat, Schedule
from assurance.core.ports.email import EmailMessage, EmailPort
from assurance.core.ports.jobs import DeliveryResult, ScanResult
from assurance.core.ports.time import TimePort

logger = logging.getLogger(__name__)

SCORE_GREEN = "#16a34a"
SCORE_AMBER = "#ca8a04"
SCORE_RED = "#dc2626"

_ATTACHMENT_TEXT = {
    DeliveryFormat.PDF: "The full report is attached as a PDF.",
    DeliveryFormat.PDF_AND_DOCX: "The full report is attached as PDF and Word documents.",
    DeliveryFormat.PDF_AND_HTML: "The full report is attached as PDF and HTML files.",
}


def resource_domain(resource_ref: str) -> str:
    """Host part of a URL resource, or the reference itself."""
    parsed = urlparse(resource_ref if "://" in resource_ref else f"//{resource_ref}")
    return parsed.hostname or resource_ref


def score_color(score: float) -> str:
    if score >= 90:
        return SCORE_GREEN
    if score >= 70:
        return SCORE_AMBER
    return SCORE_RED


def _fmt(value: float) -> str:
    return f"{value:g}"


def _short_date(d: datetime) -> str:
    return f"{d:%b} {d.day}, {d.year}"


def _long_date(d: datetime) -> str:
    return f"{d:%A}, {d:%B} {d.day}, {d.year}"


def _attachment_line(fmt: DeliveryFormat, executive_summary_only: bool) -> str:
    if executive_summary_only:
        return "The executive summary is attached as a PDF."
    return _ATTACHMENT_TEXT[fmt]


def build_report_subject(domain: str, report_date: datetime) -> str:
    """Subject line, e.g. "Accessibility Monitoring Report — example.com — Mar 2, 2026"."""
    return f"Accessibility Monitoring Report — {domain} — {_short_date(report_date)}"


def build_report_html(
    domain: str,
    score: float,
    report_date: datetime,
    manage_url: str,
    previous_score: float | None = None,
    attachment_line: str = _ATTACHMENT_TEXT[DeliveryFormat.PDF],
) -> str:
    safe_domain = html.escape(domain)
    safe_url = html.escape(manage_url, quote=True)

    change_html = ""
    if previous_score is not None:
        diff = score - previous_score
        sign = "+" if diff > 0 else ""
        change_html = (
            '<p style="color:#4B5563;font-size:14px;margin:8px 0;">'
            f"Previous score: <strong>{_fmt(previous_score)}/100</strong> "
            f"({sign}{_fmt(diff)} points)</p>"
        )

    return f"""
    <div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto;padding:20px;">
      <div style="text-align:center;margin-bottom:24px;">
        <h1 style="color:#1F2937;font-size:22px;margin:12px 0 4px;">Accessibility Monitoring Report</h1>
        <p style="color:#6B7280;font-size:14px;margin:0;">{safe_domain} &middot; {_long_date(report_date)}</p>
      </div>
      <div style="background:#F9FAFB;border:1px solid #E5E7EB;border-radius:12px;padding:24px;text-align:center;margin:20px 0;">
        <p style="color:#6B7280;font-size:13px;margin:0 0 8px;text-transform:uppercase;letter-spacing:1px;">Accessibility Score</p>
        <p style="font-size:48px;font-weight:bold;color:{score_color(score)};margin:0;">{_fmt(score)}<span style="font-size:20px;color:#9CA3AF">/100</span></p>
        {change_html}
      </div>
      <p style="color:#4B5563;font-size:14px;line-height:1.6;">
        Your scheduled accessibility scan for <strong>{safe_domain}</strong> has completed.
        {html.escape(attachment_line)}
      </p>
      <hr style="margin:24px 0;border:none;border-top:1px solid #E5E7EB;">
      <p style="color:#9CA3AF;font-size:12px;text-align:center;">
        <a href="{safe_url}" style="color:#0F5C5C;text-decoration:none;">Manage schedule</a> &middot;
        <a href="{safe_url}?unsubscribe=true" style="color:#9CA3AF;text-decoration:none;">Unsubscribe</a>
      </p>
    </div>
    """


def build_report_text(
    domain: str,
    score: float,
    report_date: datetime,
    manage_url: str,
    previous_score: float | None = None,
    attachment_line: str = _ATTACHMENT_TEXT[DeliveryFormat.PDF],
) -> str:
    text = f"Accessibility Monitoring Report\n{domain} — {_long_date(report_date)}\n\n"
    text += f"Score: {_fmt(score)}/100\n"
    if previous_score is not None:
        diff = score - previous_score
        text += f"Previous: {_fmt(previous_score)}/100 ({'+' if diff >= 0 else ''}{_fmt(diff)})\n"
    text += f"\n{attachment_line}\n"
    text += f"\n---\nManage schedule: {manage_url}\n"
    return text


class EmailReportDelivery:
    """DeliveryPipelinePort that emails a report summary to each recipient."""

    def __init__(
        self,
        email: EmailPort,
        manage_url: str,
        sender: str | None = None,
        time_port: TimePort | None = None,
    ) -> None:
        self._email = email
        self._manage_url = manage_url
        self._sender = sender
        self._time = time_port or create_time_adapter()

    def _report_date(self, schedule: Schedule) -> datetime:
        return self._time.to_local(self._time.now_utc(), schedule.timezone)

    def deliver(
        self,
        schedule: Schedule,
        scan: ScanResult,
        previous_score: float | None = None,
    ) -> DeliveryResult:
        recipients = schedule.delivery.recipients
        if not recipients:
            logger.info("Schedule %s has no recipients; nothing to deliver", schedule.id)
            return DeliveryResult(success=True)

        domain = resource_domain(schedule.resource_ref)
        report_date = self._report_date(schedule)
        attachment = _attachment_line(
            schedule.delivery.format, schedule.delivery.executive_summary_only
        )
        subject = build_report_subject(domain, report_date)
        body_html = build_report_html(
            domain, scan.score, report_date, self._manage_url, previous_score, attachment
        )
        body_text = build_report_text(
            domain, scan.score, report_date, self._manage_url, previous_score, attachment
        )

        delivered: list[str] = []
        message_ids: list[str] = []
        failures: list[str] = []
        for recipient in recipients:
            result = self._email.send(
                EmailMessage(
                    recipient=recipient,
                    subject=subject,
                    body_html=body_html,
                    body_text=body_text,
                    sender=self._sender,
                )
            )
            if result.delivered:
                delivered.append(recipient)
                if result.message_id:
                    message_ids.append(result.message_id)
            else:
                failures.append(f"{recipient}: {result.error or 'unknown error'}")

        if failures:
            return DeliveryResult(
                success=False,
                delivered_to=tuple(delivered),
                message_id=message_ids[0] if message_ids else None,
                error="Email failed for " + "; ".join(failures),
            )
        return DeliveryResult(
            success=True,
            delivered_to=tuple(delivered),
            message_id=message_ids[0] if message_ids else None,
        )
