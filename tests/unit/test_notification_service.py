from unittest.mock import AsyncMock, patch

import pytest
from fastapi import BackgroundTasks

from circulerp.services import email_service
from circulerp.services.notification_service import notify_admin, render_admin_notification


def test_subject_and_escaping():
    subject, html = render_admin_notification(
        "status changed", "Invoice", "INV-<1>", "Jane & Co", detail="draft → sent"
    )
    assert subject == "[CirculERP] Invoice status changed: INV-<1>"
    assert "INV-&lt;1&gt;" in html
    assert "Jane &amp; Co" in html
    assert "&rarr; draft → sent" in html


def test_unknown_action_uses_neutral_colour():
    _, html = render_admin_notification("archived", "Order", "SO-1", "admin")
    assert "#6b7280" in html


@pytest.mark.asyncio
async def test_notify_is_noop_without_email_config():
    session = AsyncMock()
    tasks = BackgroundTasks()
    with patch.object(email_service, "is_configured", return_value=False):
        await notify_admin(session, tasks, "created", "Order", "SO-1", "admin")
    session.execute.assert_not_awaited()
    assert tasks.tasks == []


@pytest.mark.asyncio
async def test_notify_queues_one_email_for_all_admins():
    session = AsyncMock()
    session.execute.return_value.all = lambda: [("a@example.com",), ("b@example.com",)]
    tasks = BackgroundTasks()
    with patch.object(email_service, "is_configured", return_value=True):
        await notify_admin(session, tasks, "deleted", "Product", "rPET", None)

    assert len(tasks.tasks) == 1
    task = tasks.tasks[0]
    assert task.func is email_service.send_email
    recipients, subject, html = task.args
    assert recipients == ["a@example.com", "b@example.com"]
    assert subject == "[CirculERP] Product deleted: rPET"
    assert "Unknown" in html


@pytest.mark.asyncio
async def test_notify_skips_when_no_admin_has_an_address():
    session = AsyncMock()
    session.execute.return_value.all = lambda: []
    tasks = BackgroundTasks()
    with patch.object(email_service, "is_configured", return_value=True):
        await notify_admin(session, tasks, "created", "Order", "SO-1", "admin")
    assert tasks.tasks == []
