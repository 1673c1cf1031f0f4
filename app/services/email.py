import os
import logging
from datetime import datetime
from jinja2 import Environment, FileSystemLoader, select_autoescape
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, To

from app.core.config import settings
from app.utils.events import EventTypes, event_bus

logger = logging.getLogger(__name__)


def handle_email_send_requested(data):
    """Runs on an executor thread; the SendGrid client is blocking."""
    try:
        EmailService._send_email_via_sendgrid(
            data["to_email"],
            data["subject"],
            data["template_name"],
            data["template_context"]
        )
    except Exception as e:
        logger.error(f"Failed to send email to {data['to_email']}: {e}")

event_bus.subscribe(EventTypes.EMAIL_SEND_REQUESTED, handle_email_send_requested)


class EmailService:
    _template_env = None

    @classmethod
    def _get_template_env(cls):
        if cls._template_env is None:
            template_dir = os.path.join(
                os.path.dirname(os.path.abspath(__file__)),
                '..',
                'templates'
            )

            cls._template_env = Environment(
                loader=FileSystemLoader(template_dir),
                autoescape=select_autoescape(['html']),
            )
        return cls._template_env

    @classmethod
    def render_template(cls, template_name: str, context: dict) -> str:
        """
        Render an email template

        :param template_name: Name of the template file
        :param context: Dictionary of template variables
        :return: Rendered HTML template
        """
        default_context = {
            'site_name': settings.PROJECT_NAME,
            'current_year': datetime.now().year,
            **context
        }
        try:
            template = cls._get_template_env().get_template(template_name)
            return template.render(**default_context)
        except Exception as e:
            logger.error(f"Error rendering email template {template_name}: {e}")
            raise

    @classmethod
    async def send_email(
        cls,
        to_email: str,
        subject: str,
        template_name: str,
        template_context: dict,
    ):
        """Queue an email; delivery happens off the request path."""
        if not settings.EMAILS_ENABLED:
            logger.info(f"Emails disabled, skipping '{subject}' to {to_email}")
            return

        await event_bus.publish(EventTypes.EMAIL_SEND_REQUESTED, {
            "to_email": to_email,
            "subject": subject,
            "template_name": template_name,
            "template_context": template_context,
            "timestamp": datetime.utcnow().isoformat()
        })

    @classmethod
    async def send_welcome_email(cls, *, to_email: str, username: str, password: str, course_title: str):
        await cls.send_email(
            to_email=to_email,
            subject=f"Welcome to {settings.PROJECT_NAME} - your account details",
            template_name="welcome.html",
            template_context={
                "username": username,
                "password": password,
                "email": to_email,
                "course_title": course_title,
                "login_url": settings.LOGIN_URL,
            },
        )

    @classmethod
    def _send_email_via_sendgrid(
        cls,
        to_email: str,
        subject: str,
        template_name: str,
        template_context: dict,
    ):
        html_content = cls.render_template(template_name, template_context)

        message = Mail(
            from_email=f"{settings.EMAILS_FROM_NAME} <{settings.EMAILS_FROM_EMAIL}>",
            to_emails=To(to_email),
            subject=subject,
            html_content=html_content
        )

        response = SendGridAPIClient(settings.SENDGRID_API_KEY).send(message)

        if response.status_code not in [200, 201, 202]:
            logger.error(f"SendGrid error: {response.status_code} - {response.body}")
            raise RuntimeError(f"SendGrid API error: {response.status_code}")

        logger.info(f"Email sent successfully to {to_email} via SendGrid")
