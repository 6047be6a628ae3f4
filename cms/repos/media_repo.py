"""Repository for the media library and its folders."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any

import asyncpg

from cms.db import tenant_conn
from cms.repos.sql import Conditions, escape_like, order_by
from primitives.catalog.records import Media, MediaFolder
from primitives.catalog.store import DOCUMENT_MIME_PREFIXES, MediaStore, Page

# Record fields media.update may change
UPDATABLE = {"name", "alt", "caption", "folder_id"}


def _row_to_media(row: asyncpg.Record) -> Media:
    """Convert a database row to a Media record."""
    return Media(
        id=row["id"],
        name=row["name"],
        url=row["url"],
        thumbnail_url=row["thumbnail_url"],
        mime_type=row["mime_type"],
        size=row["size"],
        width=row["width"],
        height=row["height"],
        alt=row["alt"],
        caption=row["caption"],
        folder_id=row["folder_id"],
        metadata=row["metadata"],
        deleted_at=row["deleted_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_folder(row: asyncpg.Record) -> MediaFolder:
    return MediaFolder(
        id=row["id"],
        name=row["name"],
        path=row["path"],
        parent_id=row["parent_id"],
        created_at=row["created_at"],
    )


def _kind_condition(cond: Conditions, kind: str) -> None:
    """SQL twin of primitives.catalog.store.media_kind."""
    documents = [f"{prefix}%" for prefix in DOCUMENT_MIME_PREFIXES]
    if kind in ("image", "video", "audio"):
        cond.add("mime_type LIKE {}", f"{kind}/%")
    elif kind == "document":
        cond.add("mime_type LIKE ANY({}::text[])", documents)
    else:
        cond.add(
            "NOT (mime_type LIKE ANY({}::text[]))",
            ["image/%", "video/%", "audio/%", *documents],
        )


class MediaRepo(MediaStore):
    def __init__(self, tenant_id: str) -> None:
        self.tenant_id = tenant_id

    async def list(
        self,
        *,
        kind: str | None = None,
        folder_id: str | None = None,
        search: str | None = None,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
        page: Page = Page(),
    ) -> tuple[list[Media], int]:
        cond = Conditions()
        cond.clauses.append("deleted_at IS NULL")
        if kind is not None:
            _kind_condition(cond, kind)
        if folder_id is not None:
            cond.add("folder_id = {}", folder_id)
        if search:
            cond.add("name ILIKE {}", f"%{escape_like(search)}%")
        where = cond.where()

        async with tenant_conn(self.tenant_id) as conn:
            total = await conn.fetchval(f"SELECT count(*) FROM media {where}", *cond.values)  # nosec B608
            rows = await conn.fetch(
                f"SELECT * FROM media {where} {order_by(sort_by, sort_order)} {cond.page(page)}",  # nosec B608
                *cond.values,
            )
            return [_row_to_media(r) for r in rows], total

    async def get(self, media_id: str, *, include_deleted: bool = False) -> Media | None:
        async with tenant_conn(self.tenant_id) as conn:
            row = await conn.fetchrow(
                "SELECT * FROM media WHERE id = $1 AND ($2 OR deleted_at IS NULL)",
                media_id,
                include_deleted,
            )
            return _row_to_media(row) if row else None

    async def update(self, media_id: str, changes: dict[str, Any]) -> Media | None:
        """
        Update editable fields of a non-deleted file.

        Args:
            media_id: Media ID
            changes: Record field names → new values (subset of UPDATABLE)

        Returns:
            Updated Media, or None if missing or deleted
        """
        unknown = set(changes) - UPDATABLE
        if unknown:
            raise ValueError(f"media fields cannot be updated: {sorted(unknown)}")
        if not changes:
            return await self.get(media_id)

        set_clause = ", ".join(f"{k} = ${i + 2}" for i, k in enumerate(changes))
        async with tenant_conn(self.tenant_id) as conn:
            # S608/B608: set_clause only contains names from UPDATABLE
            row = await conn.fetchrow(
                f"""
                UPDATE media
                SET {set_clause}, updated_at = now()
                WHERE id = $1 AND deleted_at IS NULL
                RETURNING *
                """,  # nosec B608
                media_id,
                *changes.values(),
            )
            return _row_to_media(row) if row else None

    async def soft_delete(self, media_id: str, at: datetime) -> None:
        async with tenant_conn(self.tenant_id) as conn:
            await conn.execute("UPDATE media SET deleted_at = $2, updated_at = $2 WHERE id = $1", media_id, at)

    async def delete(self, media_id: str) -> None:
        async with tenant_conn(self.tenant_id) as conn:
            await conn.execute("DELETE FROM media WHERE id = $1", media_id)

    async def list_folders(self, parent_id: str | None = None) -> list[MediaFolder]:
        async with tenant_conn(self.tenant_id) as conn:
            rows = await conn.fetch(
                "SELECT * FROM media_folders WHERE parent_id IS NOT DISTINCT FROM $1 ORDER BY name, id",
                parent_id,
            )
            return [_row_to_folder(r) for r in rows]

    async def get_folder(self, folder_id: str) -> MediaFolder | None:
        async with tenant_conn(self.tenant_id) as conn:
            row = await conn.fetchrow("SELECT * FROM media_folders WHERE id = $1", folder_id)
            return _row_to_folder(row) if row else None

    async def find_folder(self, name: str, parent_id: str | None) -> MediaFolder | None:
        async with tenant_conn(self.tenant_id) as conn:
            row = await conn.fetchrow(
                "SELECT * FROM media_folders WHERE name = $1 AND parent_id IS NOT DISTINCT FROM $2",
                name,
                parent_id,
            )
            return _row_to_folder(row) if row else None

    async def create_folder(self, folder: MediaFolder) -> MediaFolder:
        async with tenant_conn(self.tenant_id) as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO media_folders (id, tenant_id, name, path, parent_id, created_at)
                VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING *
                """,
                folder.id,
                self.tenant_id,
                folder.name,
                folder.path,
                folder.parent_id,
                folder.created_at,
            )
            return _row_to_folder(row)

    async def count_files(self, folder_ids: Sequence[str]) -> dict[str, int]:
        if not folder_ids:
            return {}
        async with tenant_conn(self.tenant_id) as conn:
            rows = await conn.fetch(
                """
                SELECT folder_id, count(*) AS files FROM media
                WHERE folder_id = ANY($1::text[]) AND deleted_at IS NULL
                GROUP BY folder_id
                """,
                list(folder_ids),
            )
            return {r["folder_id"]: r["files"] for r in rows}

    async def folders_with_children(self, folder_ids: Sequence[str]) -> set[str]:
        if not folder_ids:
            return set()
        async with tenant_conn(self.tenant_id) as conn:
            rows = await conn.fetch(
                "SELECT DISTINCT parent_id FROM media_folders WHERE parent_id = ANY($1::text[])",
                list(folder_ids),
            )
            return {r["parent_id"] for r in rows}
