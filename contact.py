"""Contact form: validated and forwarded to the shop mailbox."""

import html
import re
from typing import Optional

import structlog
from fastapi import APIRouter, Depends

from config import Settings, get_settings
from database import utcnow
from errors import InternalError, ValidationError
from mailer import EmailSender, EmailSendError, get_mailer
from schemas import CamelModel

logger = structlog.get_logger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

router = APIRouter(prefix="/api/contact", tags=["contact"])


class ContactBody(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None


def send_contact_message(mailer: EmailSender, shop_address: Optional[str], body: ContactBody) -> str:
    if not body.name or not body.email or not body.message:
        raise ValidationError("Name, email, and message are required fields")
    if not EMAIL_RE.match(body.email):
        raise ValidationError("Please provide a valid email address")

    subject = f"Contact Form: {body.subject or 'New Message from ' + body.name}"
    lines = [f"Name: {body.name}", f"Email: {body.email}"]
    if body.phone:
        lines.append(f"Phone: {body.phone}")
    if body.subject:
        lines.append(f"Subject: {body.subject}")
    lines += ["", body.message, "", f"Sent through the contact form on {utcnow().isoformat()}"]

    rows = "".join(f"<p>{html.escape(line)}</p>" for line in lines[:-4])
    message_html = html.escape(body.message).replace("\n", "<br>")
    html_body = f"<h2>New Contact Form Submission</h2>{rows}<hr><p><strong>Message:</strong></p><div>{message_html}</div>"

    try:
        message_id = mailer.send(
            to=shop_address or body.email,
            subject=subject,
            body="\n".join(lines),
            html_body=html_body,
            reply_to=body.email,
        )
    except EmailSendError as exc:
        logger.error("contact_email_failed", error=str(exc))
        raise InternalError("Sorry, there was an error sending your message. Please try again later.")

    logger.info("contact_email_sent", message_id=message_id)
    return message_id


@router.post("")
def submit_contact(
    body: ContactBody,
    mailer: EmailSender = Depends(get_mailer),
    settings: Settings = Depends(get_settings),
):
    message_id = send_contact_message(mailer, settings.email_user, body)
    return {
        "success": True,
        "message": "Thank you for your message! We will get back to you soon.",
        "message_id": message_id,
    }
