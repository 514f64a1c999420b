"""
Application services built on the repositories: auth, uploads and downloads,
stars, departments and the leaderboard.
"""

import hashlib
import logging
from datetime import date
from typing import Dict, List, Optional

from database import StorageError
from repositories import ContentRepository, UserRepository, new_id, normalize_email
from schemas import (
    ContentView,
    Department,
    LeaderboardEntry,
    RegisterRequest,
    RegisterResult,
    SearchResults,
    StarredItems,
    UploadRequest,
    UploadResult,
    User,
    UserUpdate,
)
from seed import DEPARTMENTS

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode()).hexdigest()


class DepartmentDirectory:
    """Static departments with content counts derived on every read."""

    def __init__(self, papers: ContentRepository, notes: ContentRepository) -> None:
        self.papers = papers
        self.notes = notes

    def exists(self, department_id: str) -> bool:
        return any(d.id == department_id for d in DEPARTMENTS)

    def name_of(self, department_id: str) -> Optional[str]:
        return next((d.name for d in DEPARTMENTS if d.id == department_id), None)

    def list(self) -> List[Department]:
        paper_counts = self.papers.count_by_department()
        note_counts = self.notes.count_by_department()
        return [
            d.model_copy(update={"paper_count": paper_counts[d.id], "note_count": note_counts[d.id]})
            for d in DEPARTMENTS
        ]

    def get(self, department_id: str) -> Optional[Department]:
        return next((d for d in self.list() if d.id == department_id), None)


class AuthService:
    def __init__(self, users: UserRepository, departments: DepartmentDirectory) -> None:
        self.users = users
        self.departments = departments

    @property
    def session(self):
        return self.users.session

    def register(self, req: RegisterRequest) -> RegisterResult:
        """Create a user and sign them in."""
        email = normalize_email(req.email)
        if not self.departments.exists(req.department):
            return RegisterResult(success=False, error="Unknown department")
        if self.users.find_by_email(email):
            logger.info(f"Registration refused, {email} already registered")
            return RegisterResult(success=False, error="Email already registered")
        user = User(
            id=new_id(),
            email=email,
            name=req.name.strip(),
            department=req.department,
            section=req.section,
            created_at=date.today().isoformat(),
            password_hash=hash_password(req.password) if req.password else None,
        )
        created = self.users.create(user)
        self.session.set(created)
        logger.info(f"Registered user {created.id}")
        return RegisterResult(success=True, user=created)

    def login(self, email: str, password: Optional[str] = None) -> Optional[User]:
        user = self.users.find_by_email(email)
        if user is None:
            return None
        if user.password_hash and user.password_hash != hash_password(password or ""):
            return None
        self.session.set(user)
        return user

    def login_with_provider(self, email: str, name: str) -> Optional[User]:
        """Sign in through an external identity provider, creating the user on first use.

        Accounts registered with a password can only sign in with that
        password; None is returned for them here.
        """
        user = self.users.find_by_email(email)
        if user is not None and user.password_hash:
            logger.warning(f"Provider sign-in refused for password account {user.id}")
            return None
        if user is None:
            user = self.users.create(User(
                id=new_id(),
                email=normalize_email(email),
                name=name.strip(),
                department="",
                section="UG",
                created_at=date.today().isoformat(),
            ))
            logger.info(f"Created user {user.id} from provider login")
        self.session.set(user)
        return user

    def logout(self) -> None:
        self.session.clear()

    def update_profile(self, user_id: str, changes: UserUpdate) -> Optional[User]:
        return self.users.update(user_id, **changes.model_dump(exclude_none=True))


class ContentService:
    def __init__(
        self,
        users: UserRepository,
        papers: ContentRepository,
        notes: ContentRepository,
        departments: DepartmentDirectory,
    ) -> None:
        self.users = users
        self.repos: Dict[str, ContentRepository] = {"paper": papers, "note": notes}
        self.departments = departments

    def repo(self, kind: str) -> ContentRepository:
        return self.repos[kind]

    def views(self, items) -> List[ContentView]:
        return ContentRepository.resolve_uploader_names(items, self.users)

    def list(self, kind: str, **filters) -> List[ContentView]:
        return self.views(self.repo(kind).list(**filters))

    def get(self, kind: str, content_id: str) -> Optional[ContentView]:
        item = self.repo(kind).get(content_id)
        return self.views([item])[0] if item else None

    def search(self, query: str, kind: str = "both", **filters) -> SearchResults:
        """Search papers, notes or both; ``filters`` go to ``ContentRepository.search``."""
        results = SearchResults()
        if kind in ("papers", "both"):
            results.papers = self.views(self.repos["paper"].search(query, **filters))
        if kind in ("notes", "both"):
            results.notes = self.views(self.repos["note"].search(query, **filters))
        return results

    def publish(self, kind: str, req: UploadRequest) -> UploadResult:
        if not self.departments.exists(req.department):
            return UploadResult(success=False, error=f"Unknown department: {req.department}")
        uploader = self.users.get(req.uploader_id)
        if uploader is None:
            return UploadResult(success=False, error="Uploader not found")

        tags = [t for t in (req.section, req.year, req.subject) if t]
        item = self.repo(kind).create(**req.model_dump(), tags=tags)
        try:
            self.users.increment_counters(uploader.id, uploads=1)
        except StorageError as e:
            logger.error(f"Saved {kind} {item.id} but could not credit uploader {uploader.id}: {e}")
        logger.info(f"User {uploader.id} uploaded {kind} {item.id}")
        return UploadResult(success=True, item=self.views([item])[0])

    def track_download(self, kind: str, content_id: str, user_id: str) -> Optional[ContentView]:
        """Count one download of the item and credit the downloading user.

        None if either the user or the item does not exist; nothing is
        counted then. The two writes are independent: if crediting the user
        fails the content counter keeps its increment.
        """
        if self.users.get(user_id) is None:
            logger.info(f"Download of {kind} {content_id} by unknown user {user_id} ignored")
            return None
        item = self.repo(kind).increment_downloads(content_id)
        if item is None:
            return None
        try:
            self.users.increment_counters(user_id, downloads=1)
        except StorageError as e:
            logger.error(f"Download of {kind} {content_id} counted but user {user_id} was not credited: {e}")
        return self.views([item])[0]

    def starred(self, user_id: str) -> Optional[StarredItems]:
        user = self.users.get(user_id)
        if user is None:
            return None
        papers = self.repos["paper"].get_many(user.starred_papers)
        notes = self.repos["note"].get_many(user.starred_notes)
        stale = len(user.starred_papers) + len(user.starred_notes) - len(papers) - len(notes)
        if stale:
            logger.debug(f"Skipped {stale} starred ids of user {user_id} with no matching content")
        departments = [d for d in self.departments.list() if d.id in user.starred_departments]
        return StarredItems(
            departments=departments,
            papers=self.views(sorted(papers, key=lambda c: c.created_at, reverse=True)),
            notes=self.views(sorted(notes, key=lambda c: c.created_at, reverse=True)),
        )


class StarService:
    def __init__(self, users: UserRepository) -> None:
        self.users = users

    def is_starred(self, user_id: str, item_id: str, kind: str) -> bool:
        user = self.users.get(user_id)
        return bool(user) and item_id in user.starred(kind)

    def toggle(self, user_id: str, item_id: str, kind: str) -> Optional[bool]:
        """Flip membership of ``item_id`` in the user's starred list.

        Returns the new state, or None when the user does not exist.
        """
        user = self.users.get(user_id)
        if user is None:
            logger.info(f"Star toggle for unknown user {user_id}")
            return None
        current = user.starred(kind)
        if item_id in current:
            updated = [i for i in current if i != item_id]
        else:
            updated = current + [item_id]
        if self.users.update(user_id, **{f"starred_{kind}s": updated}) is None:
            return None
        return item_id in updated


class Leaderboard:
    def __init__(self, users: UserRepository, departments: DepartmentDirectory) -> None:
        self.users = users
        self.departments = departments

    def rank(self) -> List[LeaderboardEntry]:
        ranked = sorted(self.users.all(), key=lambda u: u.points, reverse=True)
        return [
            LeaderboardEntry(
                rank=i,
                user=u,
                score=u.points,
                department_name=self.departments.name_of(u.department) or "Unknown Department",
            )
            for i, u in enumerate(ranked, start=1)
        ]

    def rank_of(self, user_id: str) -> Optional[int]:
        return next((e.rank for e in self.rank() if e.user.id == user_id), None)
