"""
Catalog Routes - lessons and downloadable tools
Content is filtered through the access policy before it leaves the API
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from pecc.core.security import get_current_user, require_auth
from pecc.db import DocumentNotFound, DocumentStore, StoreError, get_store
from pecc.models.catalog import LessonView, ToolView
from pecc.services.access import can_access, can_view_lesson, plan_of
from pecc.services.utils import log_error

logger = logging.getLogger(__name__)

router = APIRouter(tags=["catalog"])


def lesson_view(lesson: dict, user: Optional[dict]) -> LessonView:
    # Stored nulls fall back to the model defaults
    view = LessonView(**{k: v for k, v in lesson.items() if v is not None})
    if not can_view_lesson(lesson, user):
        view.locked = True
        view.video_url = None
    return view


def tool_view(tool: dict, user: Optional[dict]) -> ToolView:
    return ToolView(
        id=tool["id"],
        name=tool["name"],
        description=tool.get("description") or "",
        category=tool.get("category") or "geral",
        version=tool.get("version"),
        image_url=tool.get("image_url"),
        required_plan=tool.get("required_plan"),
        locked=not can_access(tool.get("required_plan"), plan_of(user))
    )


# =============================================================================
# LESSONS
# =============================================================================

@router.get("/lessons")
async def list_lessons(
    category: str = None,
    user: Optional[dict] = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    filters = {"category": category} if category else None
    lessons = await store.query("lessons", filters, order_by=[("category", 1), ("created_at", 1)])
    return {"lessons": [lesson_view(lesson, user) for lesson in lessons]}


@router.get("/lessons/{lesson_id}", response_model=LessonView)
async def get_lesson(
    lesson_id: str,
    user: Optional[dict] = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    try:
        lesson = await store.get("lessons", lesson_id)
    except DocumentNotFound:
        raise HTTPException(status_code=404, detail="Lesson not found")
    return lesson_view(lesson, user)


# =============================================================================
# TOOLS
# =============================================================================

@router.get("/tools")
async def list_tools(
    category: str = None,
    user: Optional[dict] = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    filters = {"category": category} if category else None
    tools = await store.query("tools", filters, order_by=[("created_at", -1)])
    return {"tools": [tool_view(tool, user) for tool in tools]}


@router.get("/tools/{tool_id}", response_model=ToolView)
async def get_tool(
    tool_id: str,
    user: Optional[dict] = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    try:
        tool = await store.get("tools", tool_id)
    except DocumentNotFound:
        raise HTTPException(status_code=404, detail="Tool not found")
    return tool_view(tool, user)


@router.get("/tools/{tool_id}/download")
async def get_tool_download(
    tool_id: str,
    user: dict = Depends(require_auth),
    store: DocumentStore = Depends(get_store)
):
    if not tool_id.strip():
        return JSONResponse({"error": "Tool ID is required"}, status_code=400)

    try:
        tool = await store.get("tools", tool_id)
    except DocumentNotFound:
        return JSONResponse({"error": "Tool not found"}, status_code=404)
    except StoreError as e:
        logger.exception("Error fetching download URL for tool %s", tool_id)
        await log_error(store, "StoreError", str(e), f"/tools/{tool_id}/download", user["id"])
        return JSONResponse({"error": "Failed to retrieve download link"}, status_code=500)

    if not can_access(tool.get("required_plan"), plan_of(user)):
        logger.warning("Unauthorized download attempt for tool %s by user %s", tool_id, user["id"])
        return JSONResponse({"error": "Your plan does not include this tool"}, status_code=403)

    download_url = tool.get("download_url")
    if not download_url:
        logger.error("Download URL missing for tool %s", tool_id)
        return JSONResponse({"error": "Download link unavailable for this tool"}, status_code=500)

    return {"download_url": download_url}
