"""
Data Schemas for PaperShare

Each stored model maps to one record-store collection: User -> users,
Content(kind="paper") -> papers, Content(kind="note") -> notes. Request
models validate input before anything reaches the store.
"""

from pydantic import BaseModel, Field, computed_field, field_validator
from typing import List, Literal, Optional

UPLOAD_WEIGHT = 10
DOWNLOAD_WEIGHT = 2

ContentKind = Literal["paper", "note"]
StarKind = Literal["department", "paper", "note"]
SortOrder = Literal["recent", "popular", "title"]


class User(BaseModel):
    id: str = Field(..., description="Opaque user ID")
    email: str = Field(..., description="Email address, unique")
    name: str = Field(..., description="Full name")
    department: str = Field(..., description="Department ID")
    section: str = Field("UG", description="UG or PG")
    uploads_count: int = Field(0, ge=0)
    downloads_count: int = Field(0, ge=0)
    starred_departments: List[str] = Field(default_factory=list)
    starred_papers: List[str] = Field(default_factory=list)
    starred_notes: List[str] = Field(default_factory=list)
    created_at: str = Field(..., description="ISO date of registration")
    password_hash: Optional[str] = Field(None, description="sha256 hex digest")

    @computed_field
    @property
    def points(self) -> int:
        return self.uploads_count * UPLOAD_WEIGHT + self.downloads_count * DOWNLOAD_WEIGHT

    def starred(self, kind: str) -> List[str]:
        return getattr(self, f"starred_{kind}s")


class Department(BaseModel):
    id: str
    name: str
    description: str = ""
    paper_count: int = 0
    note_count: int = 0


class Content(BaseModel):
    id: str
    kind: ContentKind
    title: str
    subject: str = Field(..., description="Subject or course code")
    department: str
    section: str = "UG"
    year: str = ""
    tags: List[str] = Field(default_factory=list)
    file_url: Optional[str] = None
    uploader_id: str
    downloads: int = Field(0, ge=0)
    created_at: str
    description: str = ""
    content: str = Field("", description="Inline body text of older notes")


class ContentView(Content):
    uploader_name: str = "Unknown"


class LeaderboardEntry(BaseModel):
    rank: int
    user: User
    score: int
    department_name: str


# ----------------- Requests -----------------

class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    password: Optional[str] = None
    department: str = Field(..., min_length=1)
    section: Literal["UG", "PG"] = "UG"


class LoginRequest(BaseModel):
    email: str
    password: Optional[str] = None


class ProviderLoginRequest(BaseModel):
    email: str = Field(..., min_length=3)
    name: str = Field(..., min_length=1)


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    department: Optional[str] = None
    section: Optional[Literal["UG", "PG"]] = None


class UploadRequest(BaseModel):
    title: str = Field(..., min_length=1)
    subject: str = Field(..., min_length=1)
    department: str = Field(..., min_length=1)
    section: str = "UG"
    year: str = ""
    file_url: Optional[str] = None
    uploader_id: str = Field(..., min_length=1)
    description: str = ""

    @field_validator("title", "subject")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class RegisterResult(BaseModel):
    success: bool
    user: Optional[User] = None
    error: Optional[str] = None


class UploadResult(BaseModel):
    success: bool
    item: Optional[ContentView] = None
    error: Optional[str] = None


class StarRequest(BaseModel):
    item_id: str = Field(..., min_length=1)
    kind: StarKind


class DownloadRequest(BaseModel):
    user_id: str = Field(..., min_length=1)


class StarredItems(BaseModel):
    departments: List[Department] = Field(default_factory=list)
    papers: List[ContentView] = Field(default_factory=list)
    notes: List[ContentView] = Field(default_factory=list)


class SearchResults(BaseModel):
    papers: List[ContentView] = Field(default_factory=list)
    notes: List[ContentView] = Field(default_factory=list)
