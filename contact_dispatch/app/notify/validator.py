"""
validator.py — Contact-form field rules.

Pure function: raw submitted fields in, either a ContactSubmission or
the full list of FieldErrors out. Every rule is checked for every field;
nothing short-circuits, so the caller can report all bad fields at once.

Rules (applied after trimming):

    Field      Required   Min   Max    Extra
    ───────    ────────   ───   ────   ─────────────────────────────
    name       yes        2     100    single line, no control characters
    email      yes        —     254    ^[^\\s@]+@[^\\s@]+\\.[^\\s@]+$
    subject    yes        5     200    single line, no control characters
    message    yes        10    2000

Name and subject end up in mail headers (Subject, auto-reply greeting),
so CR, LF, NUL and the other C0 controls are refused there.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from contact_dispatch.app.notify.models import ContactSubmission, FieldError

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")

NAME_MIN, NAME_MAX = 2, 100
EMAIL_MAX = 254
SUBJECT_MIN, SUBJECT_MAX = 5, 200
MESSAGE_MIN, MESSAGE_MAX = 10, 2000


@dataclass
class ValidationResult:
    submission: Optional[ContactSubmission] = None
    errors: List[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.submission is not None and not self.errors

    @property
    def fields_in_error(self) -> List[str]:
        return [e.field for e in self.errors]


def _text(value: Any) -> str:
    """Only strings count as submitted text; anything else is treated as missing."""
    return value.strip() if isinstance(value, str) else ""


def _check_length(
    errors: List[FieldError],
    field_name: str,
    label: str,
    value: str,
    minimum: int,
    maximum: int,
) -> None:
    if not value:
        errors.append(FieldError(field_name, f"{label} is required"))
    elif len(value) < minimum:
        errors.append(FieldError(field_name, f"{label} must be at least {minimum} characters"))
    elif len(value) > maximum:
        errors.append(FieldError(field_name, f"{label} must be at most {maximum} characters"))


def _check_header_safe(errors: List[FieldError], field_name: str, label: str, value: str) -> None:
    if CONTROL_CHARS.search(value):
        errors.append(FieldError(field_name, f"{label} must be a single line"))


def validate(raw: Mapping[str, Any]) -> ValidationResult:
    """
    Validate raw contact-form fields.

    Parameters
    ----------
    raw : Mapping
        Untrusted request body (already JSON-decoded).

    Returns
    -------
    ValidationResult
        ``submission`` set when every rule passes, otherwise ``errors``
        holds one FieldError per violated rule.
    """
    name = _text(raw.get("name"))
    email = _text(raw.get("email"))
    subject = _text(raw.get("subject"))
    message = _text(raw.get("message"))

    errors: List[FieldError] = []

    _check_length(errors, "name", "Name", name, NAME_MIN, NAME_MAX)
    _check_header_safe(errors, "name", "Name", name)

    if not email:
        errors.append(FieldError("email", "Email is required"))
    elif len(email) > EMAIL_MAX or not EMAIL_PATTERN.match(email):
        errors.append(FieldError("email", "Please enter a valid email"))

    _check_length(errors, "subject", "Subject", subject, SUBJECT_MIN, SUBJECT_MAX)
    _check_header_safe(errors, "subject", "Subject", subject)
    _check_length(errors, "message", "Message", message, MESSAGE_MIN, MESSAGE_MAX)

    if errors:
        return ValidationResult(errors=errors)

    return ValidationResult(
        submission=ContactSubmission(
            name=name, email=email, subject=subject, message=message,
        ),
    )
