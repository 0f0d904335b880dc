"""
Template Engine — renders database-stored email templates with Jinja2.

One instance is built at application startup and kept on ``app.state``;
compiled templates are cached per template type until ``clear_cache()``.
"""
import logging
from typing import Dict, Any, Tuple

from jinja2 import Environment, Template, select_autoescape
from sqlalchemy.orm import Session

from app.errors import NotFoundError
from app.models.email_template import EmailTemplate
from app.utils.formatting import format_currency, format_long_date

logger = logging.getLogger(__name__)


class TemplateEngine:
    """Compiles and caches ``EmailTemplate`` rows by type."""

    def __init__(self):
        self.env = Environment(autoescape=select_autoescape(default_for_string=True))
        self.env.filters["format_date"] = format_long_date
        self.env.filters["format_currency"] = format_currency
        self._cache: Dict[str, Tuple[Template, Template]] = {}

    @staticmethod
    def _latest_active(db: Session, template_type: str) -> EmailTemplate:
        template = (
            db.query(EmailTemplate)
            .filter(EmailTemplate.type == template_type, EmailTemplate.is_active.is_(True))
            .order_by(EmailTemplate.version.desc())
            .first()
        )
        if not template:
            raise NotFoundError(f"No active template found for type: {template_type}")
        return template

    def _compiled(self, db: Session, template_type: str) -> Tuple[Template, Template]:
        cached = self._cache.get(template_type)
        if cached:
            return cached

        template = self._latest_active(db, template_type)
        compiled = (
            self.env.from_string(template.subject),
            self.env.from_string(template.html),
        )
        self._cache[template_type] = compiled
        logger.debug("Compiled email template %s v%s", template_type, template.version)
        return compiled

    def render(self, db: Session, template_type: str, data: Dict[str, Any]) -> Dict[str, str]:
        """Render subject and HTML for the newest active template of a type."""
        subject_tpl, html_tpl = self._compiled(db, template_type)
        return {
            "subject": subject_tpl.render(**data).strip(),
            "html": html_tpl.render(**data),
        }

    def clear_cache(self) -> None:
        """Forget compiled templates, e.g. after a template edit or config reload."""
        count = len(self._cache)
        self._cache.clear()
        logger.info("Template cache cleared (%d entries)", count)
