import html
import os
from string import Template
from typing import Optional


def _templates_dir() -> str:
    here = os.path.dirname(os.path.abspath(__file__))
    return os.path.normpath(os.path.join(here, '..', 'templates'))


def get_template_text(name: str) -> Optional[str]:
    """Return the raw template text from safety_net/templates/<name>, or None if missing."""
    path = os.path.join(_templates_dir(), name)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return f.read()
    except OSError:
        return None


def render_template(name: str, mapping: dict) -> str:
    """Render an HTML email template with ${VARS}; values are HTML-escaped.

    Raises FileNotFoundError when the template is not packaged.
    """
    raw = get_template_text(name)
    if raw is None:
        raise FileNotFoundError(f"Email template not found: {name}")
    escaped = {k: html.escape(str(v)) for k, v in (mapping or {}).items()}
    return Template(raw).safe_substitute(escaped)
