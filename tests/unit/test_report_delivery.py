"""
Tests for the scheduled report email.
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from assurance.adapters.dev_email import DevEmailAdapter
from assurance.adapters.report_delivery import (
    SCORE_AMBER,
    SCORE_GREEN,
    SCORE_RED,
    EmailReportDelivery,
    build_report_html,
    build_report_subject,
    build_report_text,
    resource_domain,
    score_color,
)
from assurance.core.entities import DeliveryConfig, DeliveryFormat, Frequency, Schedule
from assurance.core.ports.jobs import ScanResult

NOW = datetime(2026, 3, 4, 12, 0, tzinfo=UTC)
REPORT_DATE = datetime(2026, 3, 4, 13, 0, tzinfo=UTC)
MANAGE_URL = "https://app.example.com/schedules"


def make_schedule(recipients: tuple[str, ...] = ("owner@example.com",), **delivery) -> Schedule:
    return Schedule(
        owner_ref="owner-1",
        resource_ref="https://www.example.com/shop",
        frequency=Frequency.WEEKLY,
        days_of_week=frozenset({1}),
        time_of_day="09:00",
        timezone="Europe/Amsterdam",
        starts_at=NOW,
        next_run_at=NOW,
        delivery=DeliveryConfig(recipients=recipients, **delivery),
    )


class TestFormatting:
    @pytest.mark.parametrize(
        ("ref", "domain"),
        [
            ("https://www.example.com/shop?x=1", "www.example.com"),
            ("example.org", "example.org"),
            ("http://localhost:8080/", "localhost"),
        ],
    )
    def test_resource_domain(self, ref: str, domain: str) -> None:
        assert resource_domain(ref) == domain

    @pytest.mark.parametrize(
        ("score", "color"),
        [(100, SCORE_GREEN), (90, SCORE_GREEN), (89.9, SCORE_AMBER), (70, SCORE_AMBER), (69, SCORE_RED)],
    )
    def test_score_color(self, score: float, color: str) -> None:
        assert score_color(score) == color

    def test_subject(self) -> None:
        assert (
            build_report_subject("example.com", REPORT_DATE)
            == "Accessibility Monitoring Report — example.com — Mar 4, 2026"
        )

    def test_text_body_with_previous_score(self) -> None:
        text = build_report_text("example.com", 88, REPORT_DATE, MANAGE_URL, previous_score=91)

        assert "example.com — Wednesday, March 4, 2026" in text
        assert "Score: 88/100" in text
        assert "Previous: 91/100 (-3)" in text
        assert f"Manage schedule: {MANAGE_URL}" in text

    def test_text_body_first_report(self) -> None:
        text = build_report_text("example.com", 88, REPORT_DATE, MANAGE_URL)

        assert "Previous" not in text

    def test_html_escapes_domain(self) -> None:
        body = build_report_html("<b>evil</b>", 95, REPORT_DATE, MANAGE_URL)

        assert "<b>evil</b>" not in body
        assert "&lt;b&gt;evil&lt;/b&gt;" in body
        assert SCORE_GREEN in body

    def test_html_improvement(self) -> None:
        body = build_report_html("example.com", 80, REPORT_DATE, MANAGE_URL, previous_score=75.5)

        assert "Previous score: <strong>75.5/100</strong> (+4.5 points)" in body


class TestEmailReportDelivery:
    @pytest.fixture
    def email(self) -> DevEmailAdapter:
        return DevEmailAdapter()

    @pytest.fixture
    def delivery(self, email: DevEmailAdapter, clock) -> EmailReportDelivery:
        return EmailReportDelivery(
            email=email, manage_url=MANAGE_URL, sender="reports@example.com", time_port=clock
        )

    def test_sends_to_each_recipient(
        self, delivery: EmailReportDelivery, email: DevEmailAdapter
    ) -> None:
        schedule = make_schedule(recipients=("a@example.com", "b@example.com"))

        result = delivery.deliver(schedule, ScanResult(success=True, score=93))

        assert result.success
        assert result.delivered_to == ("a@example.com", "b@example.com")
        assert result.message_id is not None
        assert [e.recipient for e in email.sent_emails] == ["a@example.com", "b@example.com"]
        sent = email.get_last_email()
        assert sent is not None
        assert sent.sender == "reports@example.com"
        assert sent.subject == "Accessibility Monitoring Report — www.example.com — Mar 4, 2026"

    def test_report_date_uses_schedule_timezone(
        self, delivery: EmailReportDelivery, email: DevEmailAdapter, clock
    ) -> None:
        clock.set(datetime(2026, 3, 4, 23, 30, tzinfo=UTC))

        delivery.deliver(make_schedule(), ScanResult(success=True, score=93))

        sent = email.get_last_email()
        assert sent is not None
        assert sent.subject.endswith("Mar 5, 2026")

    def test_no_recipients_is_noop_success(
        self, delivery: EmailReportDelivery, email: DevEmailAdapter
    ) -> None:
        result = delivery.deliver(make_schedule(recipients=()), ScanResult(success=True, score=50))

        assert result.success
        assert result.delivered_to == ()
        assert email.email_count == 0

    def test_failed_recipient_fails_delivery(
        self, delivery: EmailReportDelivery, email: DevEmailAdapter
    ) -> None:
        email.failing_recipients.add("b@example.com")
        schedule = make_schedule(recipients=("a@example.com", "b@example.com"))

        result = delivery.deliver(schedule, ScanResult(success=True, score=93))

        assert not result.success
        assert result.delivered_to == ("a@example.com",)
        assert result.error is not None
        assert result.error.startswith("Email failed for b@example.com")

    def test_attachment_line_follows_format(
        self, delivery: EmailReportDelivery, email: DevEmailAdapter
    ) -> None:
        delivery.deliver(
            make_schedule(format=DeliveryFormat.PDF_AND_DOCX),
            ScanResult(success=True, score=93),
        )
        delivery.deliver(
            make_schedule(executive_summary_only=True),
            ScanResult(success=True, score=93),
        )

        first, second = email.sent_emails
        assert "PDF and Word documents" in first.body_text
        assert "executive summary" in second.body_text
