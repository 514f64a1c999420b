import logging
import sys
from typing import List, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import Settings
from database import RecordStore, StorageError, WriteConflict, create_backend
from repositories import ContentRepository, Session, UserRepository
from schemas import (
    ContentKind,
    ContentView,
    Department,
    DownloadRequest,
    LoginRequest,
    ProviderLoginRequest,
    RegisterRequest,
    SearchResults,
    SortOrder,
    StarredItems,
    StarRequest,
    UploadRequest,
    User,
    UserUpdate,
)
from seed import seed_store
from services import AuthService, ContentService, DepartmentDirectory, Leaderboard, StarService

logger = logging.getLogger(__name__)


class AppContext:
    """Everything a request needs, wired around one record store."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store
        self.session = Session(store)
        self.users = UserRepository(store, self.session)
        self.papers = ContentRepository(store, "paper")
        self.notes = ContentRepository(store, "note")
        self.departments = DepartmentDirectory(self.papers, self.notes)
        self.auth = AuthService(self.users, self.departments)
        self.content = ContentService(self.users, self.papers, self.notes, self.departments)
        self.stars = StarService(self.users)
        self.leaderboard = Leaderboard(self.users, self.departments)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger("pymongo").setLevel(logging.WARNING)


def to_public(user: Optional[User]) -> Optional[dict]:
    if user is None:
        return None
    return user.model_dump(exclude={"password_hash"})


def get_context(request: Request) -> AppContext:
    return request.app.state.context


PLURAL_KINDS = {"papers": "paper", "notes": "note"}


def create_app(settings: Optional[Settings] = None, store: Optional[RecordStore] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    if store is None:
        store = RecordStore(create_backend(settings))
    if settings.seed:
        seed_store(store)

    app = FastAPI(title="PaperShare API")
    app.state.context = AppContext(store)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(WriteConflict)
    async def write_conflict(request: Request, exc: WriteConflict):
        return JSONResponse(status_code=409, content={"detail": "Data changed while saving, please retry"})

    @app.exception_handler(StorageError)
    async def storage_unavailable(request: Request, exc: StorageError):
        logger.error(f"Storage failure on {request.url.path}: {exc}")
        return JSONResponse(status_code=503, content={"detail": "Storage unavailable, please try again"})

    @app.get("/")
    def read_root():
        return {"message": "PaperShare API is running"}

    @app.get("/test")
    def test_storage(ctx: AppContext = Depends(get_context)):
        status = ctx.store.status()
        return {
            "backend": "✅ Running",
            "storage": status["backend"],
            "connection_status": "Connected" if status["connected"] else "Not Connected",
            "collections": status["keys"][:10],
        }

    # ----------------- Auth -----------------
    @app.post("/api/auth/register")
    def register(req: RegisterRequest, ctx: AppContext = Depends(get_context)):
        result = ctx.auth.register(req)
        if not result.success:
            raise HTTPException(status_code=400, detail=result.error)
        return to_public(result.user)

    @app.post("/api/auth/login")
    def login(req: LoginRequest, ctx: AppContext = Depends(get_context)):
        user = ctx.auth.login(req.email, req.password)
        if user is None:
            raise HTTPException(status_code=401, detail="Invalid credentials")
        return to_public(user)

    @app.post("/api/auth/provider")
    def provider_login(req: ProviderLoginRequest, ctx: AppContext = Depends(get_context)):
        user = ctx.auth.login_with_provider(req.email, req.name)
        if user is None:
            raise HTTPException(status_code=401, detail="Invalid credentials")
        return to_public(user)

    @app.post("/api/auth/logout")
    def logout(ctx: AppContext = Depends(get_context)):
        ctx.auth.logout()
        return {"message": "Logged out"}

    @app.get("/api/session")
    def current_session(ctx: AppContext = Depends(get_context)):
        return to_public(ctx.session.get())

    # ----------------- Users -----------------
    @app.get("/api/users")
    def list_users(limit: int = 50, ctx: AppContext = Depends(get_context)):
        return [to_public(u) for u in ctx.users.all()[:limit]]

    @app.get("/api/users/{user_id}")
    def get_user(user_id: str, ctx: AppContext = Depends(get_context)):
        user = ctx.users.get(user_id)
        if user is None:
            raise HTTPException(status_code=404, detail="User not found")
        return to_public(user)

    @app.patch("/api/users/{user_id}")
    def update_user(user_id: str, changes: UserUpdate, ctx: AppContext = Depends(get_context)):
        if changes.department is not None and not ctx.departments.exists(changes.department):
            raise HTTPException(status_code=400, detail="Unknown department")
        user = ctx.auth.update_profile(user_id, changes)
        if user is None:
            raise HTTPException(status_code=404, detail="User not found")
        return to_public(user)

    @app.get("/api/users/{user_id}/starred", response_model=StarredItems)
    def starred_items(user_id: str, ctx: AppContext = Depends(get_context)):
        items = ctx.content.starred(user_id)
        if items is None:
            raise HTTPException(status_code=404, detail="User not found")
        return items

    @app.post("/api/users/{user_id}/stars")
    def toggle_star(user_id: str, req: StarRequest, ctx: AppContext = Depends(get_context)):
        state = ctx.stars.toggle(user_id, req.item_id, req.kind)
        if state is None:
            raise HTTPException(status_code=404, detail="User not found")
        return {"item_id": req.item_id, "kind": req.kind, "starred": state}

    # ----------------- Departments -----------------
    @app.get("/api/departments", response_model=List[Department])
    def list_departments(ctx: AppContext = Depends(get_context)):
        return ctx.departments.list()

    @app.get("/api/departments/{department_id}", response_model=Department)
    def get_department(department_id: str, ctx: AppContext = Depends(get_context)):
        department = ctx.departments.get(department_id)
        if department is None:
            raise HTTPException(status_code=404, detail="Department not found")
        return department

    # ----------------- Leaderboard -----------------
    @app.get("/api/leaderboard")
    def leaderboard(limit: Optional[int] = Query(None, ge=1), ctx: AppContext = Depends(get_context)):
        entries = ctx.leaderboard.rank()
        entries = entries[:limit] if limit else entries
        return [e.model_dump(exclude={"user": {"password_hash"}}) for e in entries]

    @app.get("/api/leaderboard/{user_id}")
    def leaderboard_rank(user_id: str, ctx: AppContext = Depends(get_context)):
        rank = ctx.leaderboard.rank_of(user_id)
        if rank is None:
            raise HTTPException(status_code=404, detail="User not found")
        return {"user_id": user_id, "rank": rank}

    # ----------------- Papers & Notes -----------------
    def content_kind(kind: Literal["papers", "notes"]) -> ContentKind:
        return PLURAL_KINDS[kind]

    @app.get("/api/search", response_model=SearchResults)
    def search(
        q: str = "",
        kind: Literal["papers", "notes", "both"] = "both",
        department: Optional[str] = None,
        section: Optional[str] = None,
        sort: SortOrder = "recent",
        limit: int = Query(20, ge=1, le=100),
        ctx: AppContext = Depends(get_context),
    ):
        return ctx.content.search(q, kind=kind, department=department, section=section, sort=sort, limit=limit)

    @app.get("/api/{kind}", response_model=List[ContentView])
    def list_content(
        item_kind: ContentKind = Depends(content_kind),
        department: Optional[str] = None,
        subject: Optional[str] = None,
        section: Optional[str] = None,
        sort: SortOrder = "recent",
        limit: Optional[int] = Query(None, ge=1),
        offset: int = Query(0, ge=0),
        ctx: AppContext = Depends(get_context),
    ):
        return ctx.content.list(
            item_kind, department=department, subject=subject, section=section,
            sort=sort, limit=limit, offset=offset,
        )

    @app.get("/api/{kind}/{content_id}", response_model=ContentView)
    def get_content(content_id: str, item_kind: ContentKind = Depends(content_kind), ctx: AppContext = Depends(get_context)):
        item = ctx.content.get(item_kind, content_id)
        if item is None:
            raise HTTPException(status_code=404, detail="Not found")
        return item

    @app.post("/api/{kind}", response_model=ContentView)
    def upload_content(req: UploadRequest, item_kind: ContentKind = Depends(content_kind), ctx: AppContext = Depends(get_context)):
        result = ctx.content.publish(item_kind, req)
        if not result.success:
            raise HTTPException(status_code=400, detail=result.error)
        return result.item

    @app.post("/api/{kind}/{content_id}/download", response_model=ContentView)
    def download_content(
        content_id: str,
        req: DownloadRequest,
        item_kind: ContentKind = Depends(content_kind),
        ctx: AppContext = Depends(get_context),
    ):
        item = ctx.content.track_download(item_kind, content_id, req.user_id)
        if item is None:
            raise HTTPException(status_code=404, detail="Not found")
        return item

    return app


if __name__ == "__main__":
    import uvicorn
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    logger.info(f"Starting PaperShare with {settings.storage_backend} storage")
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)
