"""
Users API: public profiles, a user's threads, private analytics and
collections.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from threadspire.core.auth import get_current_user_id, get_optional_user_id
from threadspire.features.analytics import service as analytics_service
from threadspire.features.bookmarks import service as bookmarks_service
from threadspire.features.threads import service as threads_service
from threadspire.features.users import service as users_service
from threadspire.models.analytics import UserAnalytics
from threadspire.models.thread import ThreadPage
from threadspire.models.user import Collection, CreateCollectionRequest, UpdateProfileRequest, UserProfile

router = APIRouter(prefix="/api/users", tags=["users"])


@router.put("/profile", response_model=UserProfile)
def update_profile_endpoint(request: UpdateProfileRequest, caller_id: str = Depends(get_current_user_id)):
    return users_service.update_profile(caller_id, request)


@router.post("/collections", status_code=201)
def create_collection_endpoint(request: CreateCollectionRequest, caller_id: str = Depends(get_current_user_id)):
    collections = bookmarks_service.create_collection(caller_id, request.name)
    return {"collections": [c.model_dump() for c in collections]}


@router.post("/collections/{collection_name}/threads/{thread_id}", response_model=Collection)
def add_to_collection_endpoint(collection_name: str, thread_id: str, caller_id: str = Depends(get_current_user_id)):
    return bookmarks_service.add_to_collection(caller_id, collection_name, thread_id)


@router.delete("/collections/{collection_name}/threads/{thread_id}", response_model=Collection)
def remove_from_collection_endpoint(collection_name: str, thread_id: str, caller_id: str = Depends(get_current_user_id)):
    return bookmarks_service.remove_from_collection(caller_id, collection_name, thread_id)


@router.get("/{user_id}", response_model=UserProfile)
def get_profile_endpoint(user_id: str):
    return users_service.get_user_profile(user_id)


@router.get("/{user_id}/threads", response_model=ThreadPage)
def list_user_threads_endpoint(
    user_id: str,
    status: Optional[str] = Query(None),
    page: int = Query(1),
    limit: Optional[int] = Query(None),
    caller_id: Optional[str] = Depends(get_optional_user_id),
):
    return threads_service.list_user_threads(user_id, caller_id, status=status, page=page, limit=limit)


@router.get("/{user_id}/analytics", response_model=UserAnalytics)
def user_analytics_endpoint(user_id: str, caller_id: str = Depends(get_current_user_id)):
    return analytics_service.compute_user_analytics(user_id, caller_id)


@router.get("/{user_id}/collections")
def get_collections_endpoint(user_id: str, caller_id: str = Depends(get_current_user_id)):
    collections = bookmarks_service.get_collections(user_id, caller_id)
    return {"collections": [c.model_dump() for c in collections]}
