"""
auth/validation.py -- Input rules for emails and passwords.

Both functions return an error message (str) or None instead of raising, so
callers can turn a rejection straight into Failure(VALIDATION_ERROR).
"""

from __future__ import annotations

import re

from core.config import Settings

EMAIL_MAX_LENGTH = 254

# local@domain.tld with no whitespace and no second "@"; the TLD has no dot.
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@.]+$")
_FORBIDDEN_EMAIL_CHARS = re.compile(r"[<>\"'&]")

# Fragments of user info shorter than this are too common to reject on.
_USER_INFO_MIN_FRAGMENT = 3


def normalize_email(email: str) -> str:
    return email.strip().lower()


def email_error(email: str) -> str | None:
    """Return why email is unacceptable, or None if it is valid.

    Expects the normalized form. Rules: non-empty, at most 254 characters,
    one "@" with a dotted domain, no "..", none of < > " ' &.
    """
    if not email:
        return "Email is required."
    if len(email) > EMAIL_MAX_LENGTH:
        return "Email is too long."
    if not _EMAIL_RE.match(email) or ".." in email:
        return "Email is not a valid address."
    if _FORBIDDEN_EMAIL_CHARS.search(email):
        return "Email contains forbidden characters."
    return None


def password_error(
    password: str,
    settings: Settings,
    email: str | None = None,
    name: str | None = None,
) -> str | None:
    """Return why password violates the policy, or None if it is acceptable.

    Length must fall within PASSWORD_MIN_LENGTH..PASSWORD_MAX_LENGTH. When
    PASSWORD_CHECK_USER_INFO is set, the password may not contain the email
    local part or the display name (case-insensitive).
    """
    if len(password) < settings.password_min_length:
        return f"Password must be at least {settings.password_min_length} characters."
    if len(password) > settings.password_max_length:
        return f"Password must be at most {settings.password_max_length} characters."
    if settings.password_check_user_info:
        lowered = password.lower()
        fragments = []
        if email:
            fragments.append(email.partition("@")[0])
        if name:
            fragments.append(name.strip())
        for fragment in fragments:
            if len(fragment) >= _USER_INFO_MIN_FRAGMENT and fragment.lower() in lowered:
                return "Password must not contain your email or name."
    return None
