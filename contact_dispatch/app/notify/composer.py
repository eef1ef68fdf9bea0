"""
composer.py — Builds Message envelopes from a validated submission.

Two messages exist:
    • owner notification — to the business inbox, reply-to the visitor
    • auto-reply         — to the visitor, from the business sender

Both are sent "from" the provider's configured sender. Providers reject
or spam-flag mail sent from an address they have not verified, so the
visitor's address is never placed in ``from_addr``.
"""

from __future__ import annotations

from contact_dispatch.app.notify.models import ContactSubmission, Message, ProviderConfig


def _plain_body(submission: ContactSubmission) -> str:
    return "\n".join([
        f"Name: {submission.name}",
        f"Email: {submission.email}",
        f"Subject: {submission.subject}",
        "",
        submission.message,
    ])


def compose_notification(
    submission: ContactSubmission,
    provider: ProviderConfig,
    *,
    subject_prefix: str = "New Contact: ",
) -> Message:
    """Owner notification for one provider's sender identity."""
    return Message(
        from_addr=provider.sender,
        from_name=provider.sender_name,
        to=provider.recipient,
        reply_to=submission.email,
        bcc=provider.bcc,
        subject=f"{subject_prefix}{submission.subject}",
        body_text=_plain_body(submission),
    )


def compose_auto_reply(submission: ContactSubmission, provider: ProviderConfig) -> Message:
    """Acknowledgement sent back to the visitor."""
    return Message(
        from_addr=provider.sender,
        from_name=provider.sender_name,
        to=submission.email,
        reply_to=provider.recipient,
        subject=f"Thank you for contacting us, {submission.name}!",
        body_text=(
            f"Hello {submission.name},\n\n"
            "Thank you for your message. We will get back to you soon.\n\n"
            f"Your message:\n{submission.message}\n"
        ),
    )
