import logging
from dataclasses import dataclass

from django.conf import settings
from django.core.mail import send_mail
from django.db.models.functions import Now
from django.template.loader import render_to_string
from django.utils.http import urlencode

from .exceptions import DispatchError
from .models import HealthAlert

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlertMessage:
    subject: str
    text: str
    html: str


@dataclass(frozen=True)
class DispatchResult:
    status: str                 # "sent" | "skipped" | "failed"
    cause: str | None = None

    @property
    def sent(self) -> bool:
        return self.status == "sent"


def retest_url(record_id: str) -> str:
    return f"{settings.SITE_BASE_URL}/testUrl?{urlencode({'id': record_id})}"


def format_alert(alert: HealthAlert) -> AlertMessage:
    context = {
        "alert": alert,
        "attempts": len(alert.attempt_log or []),
        "retest_url": retest_url(alert.record_id),
        "site_name": settings.SITE_NAME,
    }
    return AlertMessage(
        subject=f"Record page health alert - {alert.record_id}",
        text=render_to_string("previews/alert_email.txt", context),
        html=render_to_string("previews/alert_email.html", context),
    )


def _email_transport(message: AlertMessage, recipients: list[str]) -> None:
    if not recipients:
        raise DispatchError("no alert recipients configured (ALERT_EMAIL_TO)")
    send_mail(
        message.subject,
        message.text,
        settings.ALERT_EMAIL_FROM,
        recipients,
        html_message=message.html,
        fail_silently=False,
    )


def dispatch(alert: HealthAlert, transport=None, recipients: list[str] | None = None) -> DispatchResult:
    """
    Send one alert notification. Failures are logged and returned, never raised.
    Alerts already stamped as dispatched are skipped, so redelivery does not resend.
    """
    if alert.dispatched_at is not None:
        logger.info("Alert %s already dispatched at %s; skipping", alert.pk, alert.dispatched_at)
        return DispatchResult(status="skipped")

    transport = transport or _email_transport
    recipients = settings.ALERT_EMAIL_TO if recipients is None else recipients
    message = format_alert(alert)
    try:
        transport(message, recipients)
    except Exception as exc:
        logger.exception("Failed to send alert %s for record %s", alert.pk, alert.record_id)
        return DispatchResult(status="failed", cause=str(exc))

    HealthAlert.objects.filter(pk=alert.pk, dispatched_at__isnull=True).update(dispatched_at=Now())
    logger.info("Alert %s for record %s sent to %s", alert.pk, alert.record_id, ", ".join(recipients))
    return DispatchResult(status="sent")
