"""
Threads API

Thin mapping of HTTP onto the lifecycle, reaction and bookmark services.
Caller identity comes from core.auth; typed errors are rendered by the app's
AppError handler.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from threadspire.core.auth import get_current_user_id, get_optional_user_id
from threadspire.features.bookmarks import service as bookmarks_service
from threadspire.features.reactions import service as reactions_service
from threadspire.features.threads import service as threads_service
from threadspire.models.engagement import BookmarkResult, ReactionResult, ReactRequest
from threadspire.models.thread import (
    CreateThreadRequest,
    PublishResult,
    Thread,
    ThreadPage,
    ThreadView,
    UpdateThreadRequest,
)

router = APIRouter(prefix="/api/threads", tags=["threads"])


def _split_tags(tags: Optional[str]) -> List[str]:
    return [t for t in (tags or "").split(",") if t.strip()]


@router.get("", response_model=ThreadPage)
def list_threads_endpoint(
    status: Optional[str] = Query(None, description="draft | published"),
    tags: Optional[str] = Query(None, description="Comma-separated tags"),
    tag_mode: Optional[str] = Query(None, alias="tagMode", description="any (default) | all"),
    sort: Optional[str] = Query(None, description="newest (default) | bookmarks | forks"),
    page: int = Query(1),
    limit: Optional[int] = Query(None),
    caller_id: Optional[str] = Depends(get_optional_user_id),
):
    return threads_service.list_threads(
        caller_id,
        status=status,
        tags=_split_tags(tags),
        tag_mode=tag_mode,
        sort=sort,
        page=page,
        limit=limit,
    )


@router.post("", response_model=Thread, status_code=201)
def create_thread_endpoint(
    request: CreateThreadRequest,
    caller_id: str = Depends(get_current_user_id),
):
    return threads_service.create_thread(caller_id, request)


@router.get("/bookmarks", response_model=ThreadPage)
def list_bookmarks_endpoint(
    page: int = Query(1),
    limit: Optional[int] = Query(None),
    caller_id: str = Depends(get_current_user_id),
):
    return bookmarks_service.list_bookmarked_threads(caller_id, page=page, limit=limit)


@router.get("/{thread_id}", response_model=ThreadView)
def get_thread_endpoint(thread_id: str, caller_id: Optional[str] = Depends(get_optional_user_id)):
    return threads_service.get_thread(thread_id, caller_id)


@router.put("/{thread_id}", response_model=PublishResult)
def update_thread_endpoint(
    thread_id: str,
    request: UpdateThreadRequest,
    caller_id: str = Depends(get_current_user_id),
):
    return threads_service.update_thread(thread_id, caller_id, request)


@router.delete("/{thread_id}")
def delete_thread_endpoint(thread_id: str, caller_id: str = Depends(get_current_user_id)):
    deleted = threads_service.delete_thread(thread_id, caller_id)
    return {"thread_id": deleted, "deleted": True}


@router.get("/{thread_id}/forks", response_model=ThreadPage)
def list_forks_endpoint(
    thread_id: str,
    page: int = Query(1),
    limit: Optional[int] = Query(None),
):
    return threads_service.list_forks(thread_id, page=page, limit=limit)


@router.post("/{thread_id}/segments/{segment_id}/reactions", response_model=ReactionResult)
def react_endpoint(
    thread_id: str,
    segment_id: str,
    request: ReactRequest,
    caller_id: str = Depends(get_current_user_id),
):
    return reactions_service.react(thread_id, segment_id, request.emoji, caller_id)


@router.post("/{thread_id}/bookmark", response_model=BookmarkResult)
def toggle_bookmark_endpoint(thread_id: str, caller_id: str = Depends(get_current_user_id)):
    return bookmarks_service.toggle_bookmark(thread_id, caller_id)
