"""
SRI Notifier -- Template Engine

Renders the plain-text greeting and the subject line of the
authorized-invoice notification.

Responsibilities:
  1. Load text templates from sri_notifier/templates/ using Jinja2
  2. Build the variable context from the request (access key, environment)
  3. Build the environment-sensitive subject line
  4. Name the attachments consistently (``{access_key}.xml`` / ``.pdf``)

Usage:
    from sri_notifier.template_engine import TemplateEngine

    engine = TemplateEngine()
    subject = engine.render_subject(Environment.PRODUCTION)
    body = engine.render_body(access_key, Environment.PRODUCTION)
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from jinja2 import Environment as JinjaEnvironment
from jinja2 import FileSystemLoader, StrictUndefined, TemplateNotFound

from .errors import ConfigError
from .models import Environment


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"

BODY_TEMPLATE = "authorized_invoice.txt"

SUBJECT_TEMPLATE = "Invoice authorized — {environment_label}"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def build_subject_line(environment: Environment) -> str:
    """'Invoice authorized -- PRODUCTION' (em dash) or '... TEST'."""
    return SUBJECT_TEMPLATE.format(environment_label=environment.label)


def xml_filename(access_key: str) -> str:
    return f"{access_key}.xml"


def pdf_filename(access_key: str) -> str:
    return f"{access_key}.pdf"


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class TemplateEngine:
    """Jinja2-backed renderer for notification text.

    Args:
        template_dir: Directory holding the text templates.  Defaults to
            the templates bundled with the package.
    """

    def __init__(self, template_dir: Optional[str | Path] = None) -> None:
        self.template_dir = Path(template_dir) if template_dir else _DEFAULT_TEMPLATE_DIR
        self.env = JinjaEnvironment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=False,
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render_subject(self, environment: Environment) -> str:
        return build_subject_line(environment)

    def render_body(
        self,
        access_key: str,
        environment: Environment,
        include_summary: bool = True,
    ) -> str:
        """Render the greeting that accompanies the attachments."""
        context = {
            "access_key": access_key,
            "environment_label": environment.label,
            "xml_filename": xml_filename(access_key),
            "pdf_filename": pdf_filename(access_key) if include_summary else "",
        }
        try:
            template = self.env.get_template(BODY_TEMPLATE)
        except TemplateNotFound as exc:
            raise ConfigError(
                f"Template '{BODY_TEMPLATE}' not found in {self.template_dir}"
            ) from exc
        return template.render(**context)
