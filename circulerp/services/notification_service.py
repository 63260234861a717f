"""
Admin change notifications.

Recipient addresses are resolved DURING the request (while the DB session is
open); the email itself is dispatched via BackgroundTasks (fire-and-forget).
"""

from datetime import datetime, timezone
from html import escape
from typing import Optional

from fastapi import BackgroundTasks
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from circulerp.config import settings
from circulerp.models.user import User
from circulerp.services import email_service

logger = structlog.get_logger()

ACTION_COLORS = {
    "created": "#16a34a",
    "updated": "#2563eb",
    "deleted": "#dc2626",
    "status changed": "#d97706",
}

SUBJECT_TEMPLATE = "[CirculERP] {entity} {action}: {label}"

HTML_TEMPLATE = (
    "<div style='font-family:sans-serif;max-width:520px;margin:0 auto;"
    "border:1px solid #e5e7eb;border-radius:12px;overflow:hidden;'>"
    "<div style='background:#4f46e5;padding:16px 24px;color:white;font-weight:700;'>"
    "CirculERP <span style='font-weight:400;color:#c7d2fe;font-size:12px;'>Admin Notification</span></div>"
    "<div style='padding:24px;'>"
    "<p>A <strong style='color:{color};'>{entity}</strong> was "
    "<strong style='color:{color};'>{action}</strong> by <strong>{performed_by}</strong>.</p>"
    "<table style='width:100%;border-collapse:collapse;font-size:14px;'>"
    "<tr><td><strong>Entity</strong></td><td>{entity}</td></tr>"
    "<tr><td><strong>Name / ID</strong></td><td>{label}</td></tr>"
    "<tr><td><strong>Action</strong></td><td style='color:{color};'>{action}{detail}</td></tr>"
    "<tr><td><strong>Performed by</strong></td><td>{performed_by}</td></tr>"
    "<tr><td><strong>Time</strong></td><td>{timestamp}</td></tr>"
    "</table>{link}</div></div>"
)


async def resolve_admin_emails(session: AsyncSession) -> list[str]:
    result = await session.execute(
        select(User.email).where(
            User.role == "admin",
            User.email.is_not(None),
            User.email != "",
            User.notify_on_changes.is_(True),
        )
    )
    return [row[0] for row in result.all()]


def render_admin_notification(
    action: str,
    entity: str,
    label: str,
    performed_by: str,
    detail: Optional[str] = None,
) -> tuple[str, str]:
    subject = SUBJECT_TEMPLATE.format(entity=entity, action=action, label=label)
    html = HTML_TEMPLATE.format(
        color=ACTION_COLORS.get(action, "#6b7280"),
        entity=escape(entity),
        action=escape(action),
        label=escape(label),
        performed_by=escape(performed_by),
        detail=f" &rarr; {escape(detail)}" if detail else "",
        timestamp=datetime.now(timezone.utc).strftime("%b %d, %Y %H:%M UTC"),
        link=(
            f"<p><a href='{escape(settings.APP_URL)}'>Open CirculERP</a></p>"
            if settings.APP_URL
            else ""
        ),
    )
    return subject, html


async def notify_admin(
    session: AsyncSession,
    background_tasks: BackgroundTasks,
    action: str,
    entity: str,
    label: str,
    performed_by: Optional[str],
    detail: Optional[str] = None,
) -> None:
    """Queue an email to every admin with an address. No-op when email is unconfigured."""
    if not email_service.is_configured():
        return

    emails = await resolve_admin_emails(session)
    if not emails:
        logger.debug("notification_no_admin_recipients", entity=entity, action=action)
        return

    subject, html = render_admin_notification(
        action, entity, label, performed_by or "Unknown", detail
    )
    background_tasks.add_task(email_service.send_email, emails, subject, html)
    logger.info("admin_notification_queued", entity=entity, action=action, recipients=len(emails))
