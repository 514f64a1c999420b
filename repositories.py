"""
Repositories over the record store.

Every mutation is one ``RecordStore.modify`` cycle. Lookups that miss return
None instead of raising; callers decide whether that is a 404. Failed or
conflicting writes surface as ``StorageError`` from the store.
"""

import logging
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from database import CURRENT_USER, NOTES, PAPERS, USERS, RecordStore
from schemas import Content, ContentView, SortOrder, User

logger = logging.getLogger(__name__)

COLLECTIONS = {"paper": PAPERS, "note": NOTES}


def new_id() -> str:
    return str(uuid.uuid4())


def normalize_email(email: str) -> str:
    return email.strip().lower()


class Session:
    """The signed-in user, kept as a snapshot under the current-user key."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def get(self) -> Optional[User]:
        record = self.store.get_singleton(CURRENT_USER)
        if record is None:
            return None
        try:
            return User.model_validate(record)
        except ValueError:
            logger.warning("Discarding malformed session record")
            return None

    def set(self, user: Optional[User]) -> None:
        self.store.set_singleton(CURRENT_USER, user.model_dump() if user else None)

    def clear(self) -> None:
        self.set(None)


class UserRepository:
    def __init__(self, store: RecordStore, session: Session) -> None:
        self.store = store
        self.session = session

    def _parse(self, records: Iterable[dict]) -> List[User]:
        users = []
        for r in records:
            try:
                users.append(User.model_validate(r))
            except ValueError:
                logger.warning(f"Skipping malformed user record {r.get('id')!r}")
        return users

    def all(self) -> List[User]:
        return self._parse(self.store.get(USERS))

    def get(self, user_id: str) -> Optional[User]:
        return next((u for u in self.all() if u.id == user_id), None)

    def find_by_email(self, email: str) -> Optional[User]:
        wanted = normalize_email(email)
        return next((u for u in self.all() if normalize_email(u.email) == wanted), None)

    def create(self, user: User) -> User:
        """Append ``user``. Email uniqueness is the caller's check."""
        def append(records: List[dict]):
            records.append(user.model_dump())
            return user

        return self.store.modify(USERS, append)

    def update(self, user_id: str, **fields) -> Optional[User]:
        """Shallow-merge ``fields`` into the user. Lists replace, not merge."""
        fields.pop("id", None)

        def merge(records: List[dict]):
            for i, r in enumerate(records):
                if r.get("id") == user_id:
                    updated = User.model_validate({**r, **fields})
                    records[i] = updated.model_dump()
                    return updated
            return None

        updated = self.store.modify(USERS, merge)
        if updated is None:
            logger.info(f"User {user_id} not updated")
            return None
        current = self.session.get()
        if current and current.id == user_id:
            self.session.set(updated)
        return updated

    def increment_counters(self, user_id: str, uploads: int = 0, downloads: int = 0) -> Optional[User]:
        def bump(records: List[dict]):
            for i, r in enumerate(records):
                if r.get("id") == user_id:
                    user = User.model_validate(r)
                    user.uploads_count += uploads
                    user.downloads_count += downloads
                    records[i] = user.model_dump()
                    return user
            return None

        updated = self.store.modify(USERS, bump)
        if updated is None:
            logger.warning(f"Counters not updated for user {user_id}")
            return None
        current = self.session.get()
        if current and current.id == user_id:
            self.session.set(updated)
        return updated

    def names(self) -> Dict[str, str]:
        return {u.id: u.name for u in self.all()}


def _sort(items: List[Content], order: str) -> List[Content]:
    # sorted() is stable, so equal keys keep collection order
    if order == "popular":
        return sorted(items, key=lambda c: c.downloads, reverse=True)
    if order == "title":
        return sorted(items, key=lambda c: c.title.casefold())
    return sorted(items, key=lambda c: c.created_at, reverse=True)


class ContentRepository:
    """Papers or notes, depending on ``kind``."""

    def __init__(self, store: RecordStore, kind: str) -> None:
        if kind not in COLLECTIONS:
            raise ValueError(f"unknown content kind: {kind}")
        self.store = store
        self.kind = kind
        self.collection = COLLECTIONS[kind]

    def all(self) -> List[Content]:
        items = []
        for r in self.store.get(self.collection):
            try:
                items.append(Content.model_validate({**r, "kind": self.kind}))
            except ValueError:
                logger.warning(f"Skipping malformed {self.kind} record {r.get('id')!r}")
        return items

    def get(self, content_id: str) -> Optional[Content]:
        return next((c for c in self.all() if c.id == content_id), None)

    def get_many(self, ids: Iterable[str]) -> List[Content]:
        wanted = set(ids)
        return [c for c in self.all() if c.id in wanted]

    def list(
        self,
        department: Optional[str] = None,
        subject: Optional[str] = None,
        section: Optional[str] = None,
        sort: str = "recent",
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Content]:
        items = [
            c for c in self.all()
            if (department is None or c.department == department)
            and (subject is None or c.subject == subject)
            and (section is None or c.section == section)
        ]
        items = _sort(items, sort)
        if limit is None:
            return items
        offset = max(offset, 0)
        return items[offset:offset + limit]

    def search(
        self,
        query: str,
        department: Optional[str] = None,
        section: Optional[str] = None,
        sort: SortOrder = "recent",
        limit: int = 20,
    ) -> List[Content]:
        """Substring match over title, subject, description and note body.

        ``section`` also matches items that carry it as a tag.
        """
        needle = query.strip().casefold()
        matches = [
            c for c in self.all()
            if (department is None or c.department == department)
            and (section is None or c.section == section or section in c.tags)
            and (not needle or needle in f"{c.title}\n{c.subject}\n{c.description}\n{c.content}".casefold())
        ]
        return _sort(matches, sort)[:limit]

    def create(self, **fields) -> Content:
        item = Content.model_validate({
            **fields,
            "id": new_id(),
            "kind": self.kind,
            "downloads": 0,
            "created_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        })

        def append(records: List[dict]):
            records.append(item.model_dump())
            return item

        return self.store.modify(self.collection, append)

    def increment_downloads(self, content_id: str) -> Optional[Content]:
        def bump(records: List[dict]):
            for i, r in enumerate(records):
                if r.get("id") == content_id:
                    item = Content.model_validate({**r, "kind": self.kind})
                    item.downloads += 1
                    records[i] = item.model_dump()
                    return item
            return None

        item = self.store.modify(self.collection, bump)
        if item is None:
            logger.info(f"No {self.kind} {content_id} to count a download for")
        return item

    def count_by_department(self) -> Counter:
        return Counter(c.department for c in self.all())

    @staticmethod
    def resolve_uploader_names(items: Iterable[Content], users: UserRepository) -> List[ContentView]:
        names = users.names()
        return [
            ContentView(**item.model_dump(), uploader_name=names.get(item.uploader_id, "Unknown"))
            for item in items
        ]
