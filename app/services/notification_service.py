# app/services/notification_service.py
"""
Fire-and-forget e-mail notifications on workflow transitions.

Mail is not coupled to the business outcome: every failure is logged and swallowed,
and callers only notify after their transaction has committed.
"""
import asyncio
import smtplib
import ssl
from email.message import EmailMessage
from typing import Any, Dict, Optional

from app.core.config import APP_BASE_URL, SMTP_FROM, SMTP_HOST, SMTP_PASSWORD, SMTP_PORT, SMTP_USER
from app.utiles.logger import get_logger

logger = get_logger(__name__)

REQUIREMENT_SUBMITTED = "requirement_submitted"
REQUIREMENT_STATUS = "requirement_status"
SHIPMENT_DISPATCHED = "shipment_dispatched"
SHIPMENT_DELIVERED = "shipment_delivered"
SHIPMENT_RECEIVED = "shipment_received"


def render(template_kind: str, data: Dict[str, Any]):
    """Return (subject, body) for a template kind."""
    name = data.get("recipient_name") or "there"
    if template_kind == REQUIREMENT_SUBMITTED:
        subject = f"New requirement {data['requirement_id']}"
        intro = (f"A new requirement ({data['requirement_id']}) has been submitted by "
                 f"{data.get('institution_name', 'an institution')} and requires your attention.")
        link = f"{APP_BASE_URL}/requirements/{data['requirement_id']}"
    elif template_kind == REQUIREMENT_STATUS:
        status = data["status"]
        subject = f"Requirement {data['requirement_id']} is {status}"
        intro = f"The status of your requirement ({data['requirement_id']}) has been updated to {status}."
        if status == "Rejected":
            intro += " Please contact the warehouse for more details."
        link = f"{APP_BASE_URL}/requirements/{data['requirement_id']}"
    elif template_kind in (SHIPMENT_DISPATCHED, SHIPMENT_DELIVERED, SHIPMENT_RECEIVED):
        verb = {
            SHIPMENT_DISPATCHED: "has been dispatched",
            SHIPMENT_DELIVERED: "has been marked delivered",
            SHIPMENT_RECEIVED: "has been received by the institution",
        }[template_kind]
        subject = f"Shipment {data['shipment_id']} {verb}"
        intro = f"Shipment {data['shipment_id']} for requirement {data['requirement_id']} {verb}."
        link = f"{APP_BASE_URL}/logistics/{data['logistic_id']}"
    else:
        raise ValueError(f"Unknown template kind: {template_kind}")
    return subject, f"Hi {name},\n\n{intro}\n\nView details: {link}\n"


class Notifier:
    def __init__(self, host: str = SMTP_HOST, port: int = SMTP_PORT, user: str = SMTP_USER,
                 password: str = SMTP_PASSWORD, sender: str = SMTP_FROM):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender or user

    def _send(self, to_email: str, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.set_content(body)
        with smtplib.SMTP(self.host, self.port, timeout=10) as server:
            server.starttls(context=ssl.create_default_context())
            if self.user:
                server.login(self.user, self.password)
            server.send_message(msg)

    async def notify(self, recipient_email: Optional[str], template_kind: str, template_data: Dict[str, Any]) -> None:
        if not recipient_email:
            logger.info("Notification %s skipped: recipient has no email", template_kind)
            return
        if not self.host:
            logger.info("Notification %s to %s skipped: SMTP not configured", template_kind, recipient_email)
            return
        try:
            subject, body = render(template_kind, template_data)
            await asyncio.to_thread(self._send, recipient_email, subject, body)
            logger.info("Notification %s sent to %s", template_kind, recipient_email)
        except Exception:
            logger.exception("Email service failed silently for %s (%s)", recipient_email, template_kind)

    def dispatch(self, recipient_email: Optional[str], template_kind: str, template_data: Dict[str, Any]) -> None:
        """Schedule notify() without waiting for it."""
        if not recipient_email or not self.host:
            logger.info("Notification %s not scheduled (recipient=%s, smtp=%s)",
                        template_kind, recipient_email, bool(self.host))
            return
        task = asyncio.get_running_loop().create_task(
            self.notify(recipient_email, template_kind, template_data)
        )
        _pending.add(task)
        task.add_done_callback(_pending.discard)


_pending = set()

notifier = Notifier()


async def notify_party(uow, party: str, party_id: str, template_kind: str, template_data: Dict[str, Any]) -> None:
    """Look up a warehouse or institution in the catalog and notify it. Never raises."""
    try:
        if party == "warehouse":
            doc = await uow.catalog.get_warehouse(party_id)
        else:
            doc = await uow.catalog.get_institution(party_id)
        doc = doc or {}
        notifier.dispatch(doc.get("email"), template_kind, {**template_data, "recipient_name": doc.get("name")})
    except Exception:
        logger.exception("Could not schedule %s notification for %s %s", template_kind, party, party_id)
