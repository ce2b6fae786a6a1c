"""
core/masking.py -- PII masking for log output.

When LOG_MASK_PII is true (the default), log lines show "ali***@example.com"
instead of the full address. Passwords and tokens are never logged at all.
"""

from __future__ import annotations


def mask_email(email: str | None) -> str:
    """Keep the first three characters of the local part and the full domain.

    >>> mask_email("user@example.com")
    'use***@example.com'
    >>> mask_email(None)
    '[empty]'
    """
    if not email:
        return "[empty]"
    local, sep, domain = email.partition("@")
    if not sep:
        return f"{email[:3]}***"
    return f"{local[:3]}***@{domain}"


class EmailMasker:
    """Callable bound to the LOG_MASK_PII setting. Services hold one of these."""

    def __init__(self, enabled: bool) -> None:
        self.enabled = enabled

    def __call__(self, email: str | None) -> str:
        if self.enabled:
            return mask_email(email)
        return email or "[empty]"
