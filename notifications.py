"""
Notification sink for FixIt.

Inbox: a Notification row per message (admin broadcast rows carry no
recipient_id).
SMS: Twilio, for new job offers and admin payout alerts.

IMPORTANT: No function in this module should ever raise an exception.
All errors are caught and logged so that a notification failure never
takes down a dispatch, payout or rating flow.
"""

import logging

from flask import current_app

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Twilio SMS
# ---------------------------------------------------------------------------
_twilio_client = None


def _get_twilio():
    """Lazily initialise the Twilio client."""
    global _twilio_client
    sid = current_app.config.get("TWILIO_ACCOUNT_SID")
    token = current_app.config.get("TWILIO_AUTH_TOKEN")
    if _twilio_client is None and sid and token:
        try:
            from twilio.rest import Client
            _twilio_client = Client(sid, token)
        except Exception:
            logger.exception("Failed to initialise Twilio client")
    return _twilio_client


def send_sms(to_number, body):
    """Send an SMS via Twilio. Returns message SID or None.

    Never raises. Logs errors and returns None on failure.
    """
    try:
        client = _get_twilio()
        from_number = current_app.config.get("TWILIO_FROM_NUMBER")
        if not client or not from_number or not to_number:
            logger.info("[DEV] SMS to %s: %s", to_number, body)
            return None

        message = client.messages.create(
            body=body,
            from_=from_number,
            to=to_number,
        )
        logger.info("SMS sent to %s (SID: %s)", to_number, message.sid)
        return message.sid
    except Exception:
        logger.exception("Failed to send SMS to %s", to_number)
        return None


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------
def notify(recipient_type, title, message, refs=None, recipient_id=None, type="general"):
    """Record a notification for a recipient. Fire-and-forget.

    The row is written inside a SAVEPOINT so that a failed insert rolls back
    only itself; the caller's transaction and its pending changes survive.
    Returns the Notification or None. Never raises.
    """
    from fixit import db
    from fixit.models import Notification

    try:
        with db.session.begin_nested():
            notification = Notification(
                recipient_type=recipient_type,
                recipient_id=recipient_id,
                type=type,
                title=title,
                message=message,
                data=refs or {},
            )
            db.session.add(notification)
        return notification
    except Exception:
        logger.exception(
            "Failed to record %s notification %r for %s", recipient_type, title, recipient_id or "all"
        )
        return None


def notify_admins(title, message, refs=None, type="general"):
    """Inbox row for every admin plus an SMS alert when ADMIN_ALERT_PHONE is set."""
    notification = notify("admin", title, message, refs=refs, type=type)
    alert_phone = _config_value("ADMIN_ALERT_PHONE")
    if alert_phone:
        send_sms(alert_phone, "{}: {}".format(title, message))
    return notification


def notify_job_offer(technician, offer):
    """Tell a technician about a new job offer (inbox + SMS). Never raises."""
    try:
        body = "New {} job at {} ({}). Respond before {} UTC.".format(
            offer.service_name or "repair",
            offer.address or "customer address",
            offer.amount,
            offer.expires_at.strftime("%H:%M") if offer.expires_at else "expiry",
        )
        notify(
            "technician",
            "New Job Offer",
            body,
            refs={"offer_id": offer.id, "booking_id": offer.booking_id},
            recipient_id=technician.id,
            type="job_offer",
        )
        if technician.phone:
            send_sms(technician.phone, body)
    except Exception:
        logger.exception("Failed to notify technician %s about offer %s", technician.id, offer.id)


def _config_value(key):
    try:
        return current_app.config.get(key)
    except Exception:
        logger.exception("Could not read %s from app config", key)
        return None
