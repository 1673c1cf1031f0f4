import pytest

from app.core.config import settings
from app.services.email import EmailService
from app.utils.events import EventBus, event_bus


def test_welcome_template_renders_credentials():
    html = EmailService.render_template("welcome.html", {
        "username": "new.buyer",
        "password": "Ab3dEf6hIj9k",
        "email": "new.buyer@example.com",
        "course_title": "Options <Basics>",
        "login_url": "http://localhost:3000/login",
    })
    assert "new.buyer" in html
    assert "Ab3dEf6hIj9k" in html
    assert "Options &lt;Basics&gt;" in html
    assert settings.PROJECT_NAME in html


@pytest.mark.asyncio
async def test_welcome_email_is_delivered_off_the_request_path(monkeypatch):
    delivered = []

    def fake_send(to_email, subject, template_name, template_context):
        delivered.append((to_email, template_name, template_context["username"]))

    monkeypatch.setattr(settings, "EMAILS_ENABLED", True)
    monkeypatch.setattr(EmailService, "_send_email_via_sendgrid", fake_send)

    await EmailService.send_welcome_email(
        to_email="new.buyer@example.com", username="new.buyer", password="pw", course_title="Course"
    )
    await event_bus.drain()

    assert delivered == [("new.buyer@example.com", "welcome.html", "new.buyer")]


@pytest.mark.asyncio
async def test_disabled_emails_are_skipped(monkeypatch):
    delivered = []
    monkeypatch.setattr(settings, "EMAILS_ENABLED", False)
    monkeypatch.setattr(EmailService, "_send_email_via_sendgrid", lambda *args: delivered.append(args))

    await EmailService.send_welcome_email(to_email="x@example.com", username="x", password="pw", course_title="C")
    await event_bus.drain()

    assert delivered == []


@pytest.mark.asyncio
async def test_event_bus_isolates_handler_failures():
    bus = EventBus()
    seen = []

    async def broken(data):
        raise RuntimeError("boom")

    async def working(data):
        seen.append(data["n"])

    def sync_working(data):
        seen.append(data["n"] * 10)

    bus.subscribe("tick", broken)
    bus.subscribe("tick", working)
    bus.subscribe("tick", sync_working)

    await bus.publish("tick", {"n": 1})
    await bus.drain()
    assert sorted(seen) == [1, 10]

    bus.unsubscribe("tick", working)
    bus.unsubscribe("tick", sync_working)
    await bus.publish("tick", {"n": 2})
    await bus.drain()
    assert sorted(seen) == [1, 10]
