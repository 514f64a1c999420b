"""
Runtime configuration for the PaperShare API.

Values come from environment variables so the same image runs against a local
JSON directory or a MongoDB deployment.
"""

import os
from typing import Literal, Optional

from pydantic import BaseModel, Field


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in ("0", "false", "no", "off", "")


class Settings(BaseModel):
    storage_backend: Literal["memory", "file", "mongo"] = Field("file", description="Blob backend")
    storage_dir: str = Field("./data", description="Directory for the file backend")
    database_url: Optional[str] = Field(None, description="MongoDB connection string")
    database_name: Optional[str] = Field(None, description="MongoDB database name")
    blob_collection: str = Field("blobs", description="Mongo collection holding the record blobs")
    seed: bool = Field(True, description="Load sample records into an empty store")
    log_level: str = Field("INFO", description="Root logging level")
    port: int = Field(8000, description="HTTP port for uvicorn")

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            storage_backend=os.getenv("STORAGE_BACKEND", "file").lower(),
            storage_dir=os.getenv("STORAGE_DIR", "./data"),
            database_url=os.getenv("DATABASE_URL"),
            database_name=os.getenv("DATABASE_NAME"),
            blob_collection=os.getenv("BLOB_COLLECTION", "blobs"),
            seed=_flag(os.getenv("PAPERSHARE_SEED"), True),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            port=int(os.getenv("PORT", 8000)),
        )
