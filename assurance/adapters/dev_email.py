"""
Dev Email Adapter (P7 Implementation).

Logs emails to console instead of sending.
Used for local development and testing.

Production uses a transactional email provider; this provides safe
testing without sending actual report emails.

Key behaviors:
- Logs email details to console
- Returns SKIPPED status (not SENT)
- Stores emails in memory for test assertions
- Can be told to fail for given recipients (failure-path testing)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

from assurance.core.ports.email import (
    EmailMessage,
    EmailResult,
    EmailStatus,
)

logger = logging.getLogger(__name__)


@dataclass
class SentEmail:
    """Record of a logged email for test assertions."""

    id: str
    recipient: str
    subject: str
    body_html: str
    body_text: str
    sender: str | None
    logged_at: datetime


@dataclass
class DevEmailAdapter:
    """
    Dev email adapter that logs instead of sending.

    Implements EmailPort protocol.
    """

    # In-memory storage for test assertions
    sent_emails: list[SentEmail] = field(default_factory=list)

    # Recipients whose sends report FAILED
    failing_recipients: set[str] = field(default_factory=set)

    # Configuration
    log_level: int = logging.INFO
    log_body: bool = False
    body_preview_length: int = 100

    def send(self, message: EmailMessage) -> EmailResult:
        """
        Log a structured email message.

        Returns:
            EmailResult with SKIPPED status, or FAILED for failing_recipients
        """
        if message.recipient in self.failing_recipients:
            logger.warning("EMAIL (dev): simulated failure for %s", message.recipient)
            return EmailResult.failed(message.recipient, "Simulated delivery failure")

        message_id = f"dev-{uuid4().hex[:12]}"

        self.sent_emails.append(
            SentEmail(
                id=message_id,
                recipient=message.recipient,
                subject=message.subject,
                body_html=message.body_html,
                body_text=message.body_text,
                sender=message.sender,
                logged_at=datetime.now(UTC),
            )
        )
        self._log_email(message, message_id)

        return EmailResult(
            status=EmailStatus.SKIPPED,
            message_id=message_id,
            recipient=message.recipient,
            error="Dev mode - email logged, not sent",
        )

    def _log_email(self, message: EmailMessage, message_id: str) -> None:
        parts = [
            f"EMAIL (dev): To={message.recipient}",
            f"Subject={message.subject}",
        ]
        if message.sender:
            parts.append(f"From={message.sender}")
        if self.log_body and message.body_text:
            preview = message.body_text[: self.body_preview_length]
            if len(message.body_text) > self.body_preview_length:
                preview += "..."
            parts.append(f"Body={preview}")
        parts.append(f"MessageID={message_id}")
        logger.log(self.log_level, ", ".join(parts))

    # --- Test Helper Methods ---

    def get_last_email(self) -> SentEmail | None:
        """Get the most recently logged email."""
        return self.sent_emails[-1] if self.sent_emails else None

    def get_emails_to(self, recipient: str) -> list[SentEmail]:
        """Get all emails logged to a specific recipient."""
        return [e for e in self.sent_emails if e.recipient == recipient]

    def clear(self) -> None:
        """Clear all stored emails (for test isolation)."""
        self.sent_emails.clear()

    @property
    def email_count(self) -> int:
        return len(self.sent_emails)


def create_dev_email_adapter(log_level: int = logging.INFO, log_body: bool = False) -> DevEmailAdapter:
    """Create a dev email adapter."""
    return DevEmailAdapter(log_level=log_level, log_body=log_body)
