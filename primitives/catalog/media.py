"""Catalog: Media Library Primitives"""

from __future__ import annotations

from typing import Any

from primitives.catalog.common import PAGE_PROPERTIES, SORT_ORDER, page_from
from primitives.catalog.records import Media, MediaFolder, iso, now_utc
from primitives.kernel.errors import DomainRuleViolation, NotFoundError, ValidationError
from primitives.kernel.types import CategoryDefaults, HandlerContext, PrimitiveDefinition

CATEGORY = "media"
DEFAULTS = CategoryDefaults(timeout_ms=5_000)

MEDIA_KINDS = ["image", "video", "audio", "document", "other"]
NOT_FOUND = "Media not found"

# argument name → record field
EDITABLE_FIELDS = {"name": "name", "alt": "alt", "caption": "caption", "folderId": "folder_id"}


def media_info(m: Media) -> dict[str, Any]:
    return {
        "id": m.id,
        "name": m.name,
        "url": m.url,
        "thumbnailUrl": m.thumbnail_url,
        "mimeType": m.mime_type,
        "size": m.size,
        "width": m.width,
        "height": m.height,
        "alt": m.alt,
        "caption": m.caption,
        "folderId": m.folder_id,
        "createdAt": iso(m.created_at),
        "updatedAt": iso(m.updated_at),
    }


async def list_media(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    page = page_from(args)
    files, total = await ctx.store.media.list(
        kind=args.get("type"),
        folder_id=args.get("folderId"),
        search=args.get("search"),
        sort_by=args["sortBy"],
        sort_order=args["sortOrder"],
        page=page,
    )
    return {
        "files": [media_info(m) for m in files],
        "pagination": page.meta(total),
        "message": f"{total} file(s)",
    }


async def get_media(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    media = await ctx.store.media.get(args["mediaId"])
    if media is None:
        raise NotFoundError(NOT_FOUND)
    return {**media_info(media), "metadata": dict(media.metadata), "message": media.name}


async def update_media(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    media_id = args["mediaId"]
    changes = {field: args[key] for key, field in EDITABLE_FIELDS.items() if key in args}
    if changes.get("folder_id") == "":
        changes["folder_id"] = None  # empty string moves the file to the root

    if not changes:
        media = await ctx.store.media.get(media_id)
    else:
        media = await ctx.store.media.update(media_id, changes)
    if media is None:
        raise NotFoundError(NOT_FOUND)

    return {**media_info(media), "message": f"{media.name} updated" if changes else "Nothing to update"}


async def delete_media(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    media_id = args["mediaId"]
    permanent = args["permanent"]

    # A soft-deleted file can still be purged permanently
    media = await ctx.store.media.get(media_id, include_deleted=permanent)
    if media is None:
        raise NotFoundError(NOT_FOUND)

    if permanent:
        await ctx.store.media.delete(media_id)
    else:
        await ctx.store.media.soft_delete(media_id, now_utc())

    return {
        "deleted": True,
        "permanent": permanent,
        "mediaId": media_id,
        "message": f"{media.name} deleted" + (" permanently" if permanent else ""),
    }


async def get_folders(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    store = ctx.store.media
    folders = await store.list_folders(args.get("parentId"))
    ids = [f.id for f in folders]
    counts = await store.count_files(ids) if ids and args["includeFileCount"] else {}
    parents = await store.folders_with_children(ids) if ids else set()

    return {
        "folders": [
            {
                "id": f.id,
                "name": f.name,
                "path": f.path,
                "fileCount": counts.get(f.id, 0),
                "hasChildren": f.id in parents,
                "createdAt": iso(f.created_at),
            }
            for f in folders
        ],
        "total": len(folders),
        "message": f"{len(folders)} folder(s)",
    }


async def create_folder(ctx: HandlerContext, args: dict[str, Any]) -> dict[str, Any]:
    store = ctx.store.media
    name = args["name"].strip()
    if not name or "/" in name:
        raise ValidationError([f"name: {args['name']!r} is not a valid folder name"])
    parent_id = args.get("parentId")

    path = f"/{name}"
    if parent_id:
        parent = await store.get_folder(parent_id)
        if parent is None:
            raise NotFoundError("Parent folder not found")
        path = f"{parent.path.rstrip('/')}/{name}"

    if await store.find_folder(name, parent_id) is not None:
        raise DomainRuleViolation("Folder with this name already exists")

    folder = await store.create_folder(MediaFolder(name=name, path=path, parent_id=parent_id))
    return {
        "folder": {
            "id": folder.id,
            "name": folder.name,
            "path": folder.path,
            "parentId": folder.parent_id,
            "createdAt": iso(folder.created_at),
        },
        "message": f"Folder {folder.path} created",
    }


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------

_MEDIA_ID = {"type": "string", "minLength": 1, "description": "Media ID"}

MEDIA_PRIMITIVES: list[PrimitiveDefinition] = [
    PrimitiveDefinition(
        name="media.list",
        category=CATEGORY,
        description="List files in the media library with filtering and sorting.",
        tags=frozenset({"media", "files", "storage"}),
        icon="Image",
        timeout_ms=10_000,
        built_in=True,
        handler=list_media,
        input_schema={
            "type": "object",
            "properties": {
                **PAGE_PROPERTIES,
                "type": {"type": "string", "enum": MEDIA_KINDS},
                "folderId": {"type": "string"},
                "search": {"type": "string", "description": "Match on file name"},
                "sortBy": {"type": "string", "enum": ["name", "size", "createdAt"], "default": "createdAt"},
                "sortOrder": SORT_ORDER,
            },
        },
    ),
    PrimitiveDefinition(
        name="media.get",
        category=CATEGORY,
        description="Get one media file with its metadata.",
        tags=frozenset({"media", "files", "storage"}),
        icon="File",
        timeout_ms=3_000,
        built_in=True,
        handler=get_media,
        input_schema={"type": "object", "properties": {"mediaId": _MEDIA_ID}, "required": ["mediaId"]},
    ),
    PrimitiveDefinition(
        name="media.update",
        category=CATEGORY,
        description="Rename a file, change its alt text or caption, or move it to another folder.",
        tags=frozenset({"media", "update", "storage"}),
        icon="Edit",
        built_in=True,
        handler=update_media,
        input_schema={
            "type": "object",
            "properties": {
                "mediaId": _MEDIA_ID,
                "name": {"type": "string", "minLength": 1},
                "alt": {"type": "string"},
                "caption": {"type": "string"},
                "folderId": {"type": "string", "description": "Target folder; empty string for the root"},
            },
            "required": ["mediaId"],
        },
    ),
    PrimitiveDefinition(
        name="media.delete",
        category=CATEGORY,
        description="Delete a file. Soft delete by default; permanent removes the record.",
        tags=frozenset({"media", "delete", "storage"}),
        icon="Trash2",
        built_in=True,
        handler=delete_media,
        input_schema={
            "type": "object",
            "properties": {"mediaId": _MEDIA_ID, "permanent": {"type": "boolean", "default": False}},
            "required": ["mediaId"],
        },
    ),
    PrimitiveDefinition(
        name="media.getFolders",
        category=CATEGORY,
        description="List media folders one level at a time, with file counts.",
        tags=frozenset({"media", "folders", "storage"}),
        icon="Folder",
        built_in=True,
        handler=get_folders,
        input_schema={
            "type": "object",
            "properties": {
                "parentId": {"type": "string", "description": "Parent folder (root folders when omitted)"},
                "includeFileCount": {"type": "boolean", "default": True},
            },
        },
    ),
    PrimitiveDefinition(
        name="media.createFolder",
        category=CATEGORY,
        description="Create a media folder, at the root or inside another folder.",
        tags=frozenset({"media", "folders", "create"}),
        icon="FolderPlus",
        built_in=True,
        handler=create_folder,
        input_schema={
            "type": "object",
            "properties": {
                "name": {"type": "string", "minLength": 1, "maxLength": 100},
                "parentId": {"type": "string"},
            },
            "required": ["name"],
        },
    ),
]
