from __future__ import annotations

from typing import Optional


class MailboxError(Exception):
    """Base class for failures surfaced by the mailbox engine."""


class TransportError(MailboxError):
    """A Gmail call failed on the wire or returned an error status."""

    def __init__(self, operation: str, message: str, status: Optional[int] = None):
        super().__init__(f"{operation}: {message}")
        self.operation = operation
        self.status = status


class InvalidResponseError(TransportError):
    """Gmail answered with a payload we cannot interpret."""


class SenderNotFoundError(MailboxError):
    def __init__(self, sender: str):
        super().__init__(f"No emails found from {sender}")
        self.sender = sender
