"""
Email Adapter Interface (P7).

Protocol-based interface for sending report emails.
Used by EmailReportDelivery to transmit scheduled reports.

Key requirements:
- HTML and plain text body
- Stateless send operation
- Adapters return a failed status instead of raising

Implementation strategies:
1. DevEmailAdapter: Logs emails (dev/test)
2. Transactional provider adapter (production)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Protocol


class EmailStatus(Enum):
    """Email send result status."""

    SENT = "sent"
    QUEUED = "queued"  # Async send (not delivered yet)
    FAILED = "failed"
    SKIPPED = "skipped"  # Dev adapter or dry-run


@dataclass(frozen=True)
class EmailMessage:
    """Email message to be sent."""

    recipient: str
    subject: str
    body_html: str
    body_text: str
    sender: str | None = None  # None = use default sender
    headers: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.recipient:
            raise ValueError("Recipient email is required")
        if not self.subject:
            raise ValueError("Subject is required")
        if not self.body_html and not self.body_text:
            raise ValueError("At least one of body_html or body_text is required")


@dataclass
class EmailResult:
    """Result of an email send attempt."""

    status: EmailStatus
    message_id: str | None = None  # Provider's message ID
    error: str | None = None
    sent_at: datetime | None = None
    recipient: str = ""

    @property
    def delivered(self) -> bool:
        """Sent, queued or deliberately skipped (dev)."""
        return self.status != EmailStatus.FAILED

    @classmethod
    def success(cls, recipient: str, message_id: str | None = None) -> EmailResult:
        return cls(
            status=EmailStatus.SENT,
            message_id=message_id,
            recipient=recipient,
            sent_at=datetime.now(UTC),
        )

    @classmethod
    def skipped(cls, recipient: str, reason: str = "Dev mode") -> EmailResult:
        return cls(status=EmailStatus.SKIPPED, recipient=recipient, error=reason)

    @classmethod
    def failed(cls, recipient: str, error: str) -> EmailResult:
        return cls(status=EmailStatus.FAILED, recipient=recipient, error=error)


class EmailPort(Protocol):
    """
    Email sending interface.

    Implementations:
    - DevEmailAdapter: Logs to console (dev/test)
    """

    def send(self, message: EmailMessage) -> EmailResult:
        """
        Send an email message.

        Notes:
            - Must not raise; return a failed status instead
        """
        ...
