"""
TATAME Email - Templates

Templates use ``{{ name }}`` placeholders in subject, HTML and text. Only
keys present in the render data are substituted; anything else is left in
place so a missing variable is visible in the output.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

import aiosqlite

from tatame.shared.errors import ConflictError, TemplateNotFoundError, ValidationError
from tatame.shared.utils import generate_id, iso_now

logger = logging.getLogger("tatame.email.templates")

TEMPLATE_CATEGORIES = ("transactional", "marketing", "notification")

_UPDATABLE_COLUMNS = frozenset(
    {
        "name",
        "subject",
        "html_content",
        "text_content",
        "variables",
        "category",
        "is_active",
        "description",
        "preview_data",
    }
)


@dataclass
class EmailTemplate:
    name: str
    slug: str
    subject: str
    html_content: str
    text_content: str = ""
    variables: list[str] = field(default_factory=list)
    category: str = "transactional"
    is_active: bool = True
    description: str = ""
    preview_data: dict[str, Any] = field(default_factory=dict)
    id: str = ""
    created_at: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "subject": self.subject,
            "html_content": self.html_content,
            "text_content": self.text_content,
            "variables": list(self.variables),
            "category": self.category,
            "is_active": self.is_active,
            "description": self.description,
            "preview_data": self.preview_data,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> EmailTemplate:
        data = dict(row)
        return cls(
            id=data["id"],
            name=data["name"],
            slug=data["slug"],
            subject=data["subject"],
            html_content=data["html_content"],
            text_content=data["text_content"] or "",
            variables=json.loads(data["variables"] or "[]"),
            category=data["category"],
            is_active=bool(data["is_active"]),
            description=data["description"] or "",
            preview_data=json.loads(data["preview_data"] or "{}"),
            created_at=data["created_at"],
            updated_at=data["updated_at"],
        )


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html_content: str
    text_content: str

    def to_dict(self) -> dict[str, str]:
        return {"subject": self.subject, "html_content": self.html_content, "text_content": self.text_content}


def render_template(template: EmailTemplate, data: dict[str, Any]) -> RenderedEmail:
    """Substitute ``{{ key }}`` for every key in data. Falsy values render empty."""
    subject, html, text = template.subject, template.html_content, template.text_content or ""
    for key, value in data.items():
        pattern = re.compile(r"\{\{\s*" + re.escape(str(key)) + r"\s*\}\}")
        replacement = str(value) if value else ""
        subject = pattern.sub(lambda _m: replacement, subject)
        html = pattern.sub(lambda _m: replacement, html)
        text = pattern.sub(lambda _m: replacement, text)
    return RenderedEmail(subject=subject, html_content=html, text_content=text)


def _layout(title: str, body: str, footer: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        '<div style="background: #E10600; padding: 32px; text-align: center;">'
        f'<h1 style="color: white; margin: 0;">{title}</h1></div>'
        f'<div style="padding: 32px; background: white;">{body}</div>'
        '<div style="background: #f5f5f5; padding: 20px; text-align: center; border-top: 1px solid #ddd;">'
        f'<p style="color: #999; font-size: 13px; margin: 0;">{footer}</p></div>'
        "</div>"
    )


def _button(href: str, label: str) -> str:
    return (
        f'<p style="text-align: center; margin: 30px 0;"><a href="{href}" '
        'style="display: inline-block; background: #E10600; color: white; padding: 14px 30px; '
        f'text-decoration: none; border-radius: 30px; font-weight: bold;">{label}</a></p>'
    )


DEFAULT_TEMPLATES: list[EmailTemplate] = [
    EmailTemplate(
        name="Welcome Email",
        slug="welcome-email",
        subject="Bem-vindo ao {{siteName}}!",
        category="transactional",
        variables=["userName", "siteName", "loginUrl"],
        description="Email enviado quando um novo usuário é criado",
        html_content=_layout(
            "Bem-vindo ao {{siteName}}!",
            "<h2>Olá {{userName}}!</h2>"
            "<p>Sua conta foi criada com sucesso. Cursos, ferramentas e a comunidade já estão esperando por você.</p>"
            + _button("{{loginUrl}}", "Acessar Plataforma"),
            "© {{siteName}}. Todos os direitos reservados.",
        ),
        text_content=(
            "Olá {{userName}}!\n\nSua conta no {{siteName}} foi criada com sucesso.\n"
            "Acesse: {{loginUrl}}\n"
        ),
        preview_data={
            "userName": "João Silva",
            "siteName": "Tatame",
            "loginUrl": "https://tatame.com.br/login",
        },
    ),
    EmailTemplate(
        name="Password Reset",
        slug="password-reset",
        subject="Redefinir Senha - {{siteName}}",
        category="transactional",
        variables=["userName", "siteName", "resetUrl", "expirationTime"],
        description="Email para redefinição de senha",
        html_content=_layout(
            "Redefinir Senha",
            "<h2>Olá {{userName}},</h2>"
            "<p>Recebemos uma solicitação para redefinir a senha da sua conta.</p>"
            + _button("{{resetUrl}}", "Redefinir Senha")
            + "<p>Este link expira em {{expirationTime}} hora(s).</p>"
            "<p>Se o botão não funcionar, copie este link: {{resetUrl}}</p>",
            "Por questões de segurança, nunca compartilhe este link. © {{siteName}}.",
        ),
        text_content=(
            "Olá {{userName}},\n\nPara redefinir sua senha acesse: {{resetUrl}}\n"
            "O link expira em {{expirationTime}} hora(s).\n"
        ),
        preview_data={
            "userName": "João Silva",
            "siteName": "Tatame",
            "resetUrl": "https://tatame.com.br/reset-password?token=abc123",
            "expirationTime": "1",
        },
    ),
    EmailTemplate(
        name="Course Enrollment",
        slug="course-enrollment",
        subject="Você está inscrito em {{courseName}}!",
        category="notification",
        variables=["userName", "courseName", "courseUrl", "instructorName"],
        description="Email enviado quando o usuário se inscreve em um curso",
        html_content=_layout(
            "Inscrição Confirmada!",
            "<h2>Parabéns, {{userName}}!</h2>"
            "<p>Você está inscrito em <strong>{{courseName}}</strong>, com {{instructorName}}.</p>"
            + _button("{{courseUrl}}", "Começar Agora"),
            "Bons estudos!",
        ),
        text_content=(
            "Parabéns, {{userName}}!\n\nVocê está inscrito em {{courseName}} ({{instructorName}}).\n"
            "Comece agora: {{courseUrl}}\n"
        ),
        preview_data={
            "userName": "João Silva",
            "courseName": "SEO Avançado 2024",
            "courseUrl": "https://tatame.com.br/courses/seo-avancado",
            "instructorName": "Prof. Maria Santos",
        },
    ),
    EmailTemplate(
        name="Login Alert",
        slug="login-alert",
        subject="Novo login detectado em sua conta",
        category="notification",
        variables=["userName", "loginTime", "loginLocation", "loginDevice", "ipAddress"],
        description="Alerta de segurança para novos logins",
        html_content=_layout(
            "Novo Login Detectado",
            "<h2>Olá {{userName}},</h2>"
            "<p>Detectamos um novo acesso à sua conta:</p>"
            "<ul><li>Data: {{loginTime}}</li><li>Local: {{loginLocation}}</li>"
            "<li>Dispositivo: {{loginDevice}}</li><li>IP: {{ipAddress}}</li></ul>"
            "<p>Se não foi você, altere sua senha imediatamente.</p>"
            + _button("{{securityUrl}}", "Verificar Configurações de Segurança"),
            "Este é um email automático de segurança. Não responda.",
        ),
        text_content=(
            "Olá {{userName}},\n\nNovo login em {{loginTime}} ({{loginLocation}}, {{loginDevice}}, IP {{ipAddress}}).\n"
            "Se não foi você, altere sua senha.\n"
        ),
        preview_data={
            "userName": "João Silva",
            "loginTime": "09/01/2024 às 14:30",
            "loginLocation": "São Paulo, Brasil",
            "loginDevice": "Chrome no Windows",
            "ipAddress": "192.168.1.1",
            "securityUrl": "https://tatame.com.br/security",
        },
    ),
]


class EmailTemplateStore:
    """Database-backed email templates."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self.db = db

    async def create_template(self, template: EmailTemplate) -> EmailTemplate:
        if template.category not in TEMPLATE_CATEGORIES:
            raise ValidationError(f"Invalid template category: {template.category}")
        if not template.slug or not template.subject or not template.html_content:
            raise ValidationError("Slug, subject and HTML content are required")
        if await self._find(template.slug) is not None:
            raise ConflictError(f"Template slug already exists: {template.slug}")

        now = iso_now()
        template_id = generate_id("tpl")
        await self.db.execute(
            """
            INSERT INTO email_templates (
                id, name, slug, subject, html_content, text_content, variables,
                category, is_active, description, preview_data, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                template_id,
                template.name,
                template.slug,
                template.subject,
                template.html_content,
                template.text_content,
                json.dumps(template.variables),
                template.category,
                int(template.is_active),
                template.description,
                json.dumps(template.preview_data),
                now,
                now,
            ),
        )
        await self.db.commit()
        return await self._find(template.slug)

    async def list_templates(self) -> list[EmailTemplate]:
        async with self.db.execute("SELECT * FROM email_templates ORDER BY category, name") as cur:
            rows = await cur.fetchall()
        return [EmailTemplate.from_row(r) for r in rows]

    async def get_by_slug(self, slug: str) -> EmailTemplate:
        """Active template by slug."""
        template = await self._find(slug)
        if template is None or not template.is_active:
            raise TemplateNotFoundError(slug)
        return template

    async def update_template(self, slug: str, /, **updates: Any) -> EmailTemplate:
        bad = set(updates) - _UPDATABLE_COLUMNS
        if bad:
            raise ValidationError(f"Disallowed column(s): {bad}")
        if "category" in updates and updates["category"] not in TEMPLATE_CATEGORIES:
            raise ValidationError(f"Invalid template category: {updates['category']}")
        for key in ("variables", "preview_data"):
            if key in updates:
                updates[key] = json.dumps(updates[key])
        if "is_active" in updates:
            updates["is_active"] = int(bool(updates["is_active"]))

        if updates:
            updates["updated_at"] = iso_now()
            set_clause = ", ".join(f"{k} = ?" for k in updates)
            cur = await self.db.execute(
                f"UPDATE email_templates SET {set_clause} WHERE slug = ?",
                (*updates.values(), slug),
            )
            await self.db.commit()
            if cur.rowcount == 0:
                raise TemplateNotFoundError(slug)

        template = await self._find(slug)
        if template is None:
            raise TemplateNotFoundError(slug)
        return template

    async def delete_template(self, slug: str) -> bool:
        cur = await self.db.execute("DELETE FROM email_templates WHERE slug = ?", (slug,))
        await self.db.commit()
        return cur.rowcount > 0

    async def initialize_defaults(self) -> list[dict[str, str]]:
        """Create the built-in templates that do not exist yet."""
        results = []
        for template in DEFAULT_TEMPLATES:
            if await self._find(template.slug) is None:
                await self.create_template(template)
                results.append({"name": template.name, "status": "created"})
                logger.info(f"Email template created: {template.slug}")
            else:
                results.append({"name": template.name, "status": "exists"})
        return results

    async def preview(self, slug: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
        """Render with the given data, or the template's own preview data."""
        template = await self.get_by_slug(slug)
        rendered = render_template(template, data or template.preview_data or {})
        return {**rendered.to_dict(), "variables": list(template.variables)}

    async def _find(self, slug: str) -> EmailTemplate | None:
        async with self.db.execute("SELECT * FROM email_templates WHERE slug = ?", (slug,)) as cur:
            row = await cur.fetchone()
        return EmailTemplate.from_row(row) if row else None
