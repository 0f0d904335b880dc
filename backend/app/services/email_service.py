"""
Email Service — sends templated transactional email through Brevo.
"""
import logging
from typing import Dict, Any

import requests
from fastapi import Request
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.errors import UpstreamError
from app.services.template_engine import TemplateEngine

logger = logging.getLogger(__name__)


class EmailService:
    """Renders a template and posts it to the Brevo SMTP API."""

    def __init__(self, template_engine: TemplateEngine, settings: Settings):
        self.templates = template_engine
        self.settings = settings

    def send_email(
        self,
        db: Session,
        to_email: str,
        to_name: str,
        template_type: str,
        template_data: Dict[str, Any],
    ) -> bool:
        """Send one email. Returns False when delivery is disabled (no API key).

        Raises:
            NotFoundError: no active template of that type.
            UpstreamError: Brevo rejected the request or was unreachable.
        """
        rendered = self.templates.render(db, template_type, template_data)

        if not self.settings.BREVO_API_KEY:
            logger.warning("BREVO_API_KEY not set, skipping %s email to %s", template_type, to_email)
            return False

        payload = {
            "sender": {
                "name": self.settings.BREVO_SENDER_NAME,
                "email": self.settings.BREVO_SENDER_EMAIL,
            },
            "to": [{"email": to_email, "name": to_name}],
            "subject": rendered["subject"],
            "htmlContent": rendered["html"],
        }

        try:
            response = requests.post(
                self.settings.BREVO_API_URL,
                json=payload,
                headers={
                    "api-key": self.settings.BREVO_API_KEY,
                    "Content-Type": "application/json",
                },
                timeout=self.settings.EMAIL_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error("Error sending %s email to %s: %s", template_type, to_email, e)
            raise UpstreamError("Failed to send email")

        logger.info("Email sent to %s using template %s", to_email, template_type)
        return True


def get_email_service(request: Request) -> EmailService:
    """FastAPI dependency: email service bound to the app's template engine."""
    return EmailService(request.app.state.template_engine, get_settings())
