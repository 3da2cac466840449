"""
TATAME email: templates and Brevo delivery.
"""

from .sender import BrevoProvider, EmailService
from .templates import DEFAULT_TEMPLATES, EmailTemplate, EmailTemplateStore, RenderedEmail, render_template

__all__ = [
    "BrevoProvider",
    "DEFAULT_TEMPLATES",
    "EmailService",
    "EmailTemplate",
    "EmailTemplateStore",
    "RenderedEmail",
    "render_template",
]
