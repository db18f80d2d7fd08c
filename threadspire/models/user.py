from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class Collection(BaseModel):
    """Named, user-owned grouping of bookmarked threads."""

    model_config = ConfigDict(frozen=True)

    name: str
    threads: List[str] = Field(default_factory=list)


class CollectionThread(BaseModel):
    """A collected thread as the owner sees it: id, title and author name."""

    model_config = ConfigDict(frozen=True)

    thread_id: str
    title: str
    author_id: str
    author: str


class CollectionView(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    threads: List[CollectionThread] = Field(default_factory=list)


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    name: str = ""
    email: Optional[str] = None
    bio: str = ""
    avatar: Optional[str] = None
    bookmarks: List[str] = Field(default_factory=list)
    collections: List[Collection] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    version: int = Field(default=1, ge=1)

    @property
    def display_name(self) -> str:
        return User.normalized_display_name(self.user_id, self.name)

    @property
    def collected_thread_ids(self) -> List[str]:
        return [thread_id for collection in self.collections for thread_id in collection.threads]

    def has_bookmarked(self, thread_id: str) -> bool:
        return thread_id in self.bookmarks

    def collection(self, name: str) -> Optional[Collection]:
        for collection in self.collections:
            if collection.name == name:
                return collection
        return None

    def collection_containing(self, thread_id: str) -> Optional[Collection]:
        for collection in self.collections:
            if thread_id in collection.threads:
                return collection
        return None

    @staticmethod
    def normalized_display_name(user_id: str, display_name: Optional[str] = None) -> str:
        if display_name and display_name.strip():
            return display_name.strip()
        # Deterministic fallback handle
        import hashlib
        h = hashlib.sha1(user_id.encode("utf-8")).hexdigest()
        return f"@u_{h[-6:]}"


class UserProfile(BaseModel):
    """Public view of a user (bookmarks and collections stay private)."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    name: str
    bio: str = ""
    avatar: Optional[str] = None
    created_at: datetime


class UpdateProfileRequest(BaseModel):
    name: Optional[str] = None
    bio: Optional[str] = None
    avatar: Optional[str] = None


class CreateCollectionRequest(BaseModel):
    name: str = ""
