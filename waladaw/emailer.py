from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Iterable, Optional, Tuple

from . import config
from .pricing import format_price

logger = logging.getLogger(__name__)

# (filename, content, mime type)
Attachment = Tuple[str, bytes, str]


def send_email(
    *,
    to_email: str,
    subject: str,
    body: str,
    html: Optional[str] = None,
    attachments: Iterable[Attachment] = (),
) -> None:
    msg = EmailMessage()
    msg["From"] = config.SMTP_FROM
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)
    if html:
        msg.add_alternative(html, subtype="html")
    for filename, content, mime_type in attachments:
        maintype, _, subtype = mime_type.partition("/")
        msg.add_attachment(content, maintype=maintype, subtype=subtype, filename=filename)

    with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=10) as server:
        if config.SMTP_USE_TLS:
            server.starttls()
        if config.SMTP_USERNAME and config.SMTP_PASSWORD:
            server.login(config.SMTP_USERNAME, config.SMTP_PASSWORD)
        server.send_message(msg)


def _send_best_effort(**kwargs) -> bool:
    if not config.EMAIL_ENABLED:
        logger.debug("Email disabled, not sending '%s'", kwargs.get("subject"))
        return False
    try:
        send_email(**kwargs)
    except Exception:
        logger.exception("Failed to send '%s' to %s", kwargs.get("subject"), kwargs.get("to_email"))
        return False
    return True


def send_welcome_email(to_email: str, first_name: str) -> bool:
    subject = f"Welcome to {config.APP_NAME}"
    body = (
        f"Hi {first_name},\n\n"
        f"Your {config.APP_NAME} account is ready. You can now list the things you no longer use "
        "and find great second-hand deals.\n"
    )
    html = (
        f"<h2>Welcome to {config.APP_NAME}, {first_name}!</h2>"
        "<p>Your account is ready. Start selling what you no longer use and find great deals.</p>"
    )
    return _send_best_effort(to_email=to_email, subject=subject, body=body, html=html)


def send_purchase_confirmation(purchase, pdf: Optional[bytes] = None) -> bool:
    buyer = purchase.buyer
    lines = [f"- {p.name}: {format_price(p.price)}" for p in purchase.products]
    body = (
        f"Hi {buyer.first_name},\n\n"
        f"Thank you for your purchase #{purchase.id}.\n\n"
        + "\n".join(lines)
        + f"\n\nTotal: {format_price(purchase.total)}\n"
    )
    items_html = "".join(f"<li>{p.name}: {format_price(p.price)}</li>" for p in purchase.products)
    html = (
        f"<h2>Purchase #{purchase.id} confirmed</h2>"
        f"<ul>{items_html}</ul>"
        f"<p><strong>Total: {format_price(purchase.total)}</strong></p>"
    )
    attachments = [(f"factura-{purchase.id}.pdf", pdf, "application/pdf")] if pdf else []
    return _send_best_effort(
        to_email=buyer.email,
        subject=f"{config.APP_NAME}: purchase #{purchase.id} confirmed",
        body=body,
        html=html,
        attachments=attachments,
    )
