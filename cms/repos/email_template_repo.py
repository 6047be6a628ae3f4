"""Repository for saved email templates. Read-only; templates are authored elsewhere."""

from __future__ import annotations

import asyncpg

from cms.db import tenant_conn
from primitives.catalog.records import EmailTemplate
from primitives.catalog.store import EmailTemplateStore


def _row_to_template(row: asyncpg.Record) -> EmailTemplate:
    return EmailTemplate(
        id=row["id"],
        name=row["name"],
        subject=row["subject"],
        html_content=row["html_content"],
        text_content=row["text_content"],
        is_active=row["is_active"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class EmailTemplateRepo(EmailTemplateStore):
    def __init__(self, tenant_id: str) -> None:
        self.tenant_id = tenant_id

    async def get(self, template_id: str) -> EmailTemplate | None:
        async with tenant_conn(self.tenant_id) as conn:
            row = await conn.fetchrow("SELECT * FROM email_templates WHERE id = $1", template_id)
            return _row_to_template(row) if row else None
