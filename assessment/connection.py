# assessment/connection.py

import json
import logging
import os
from typing import Optional

from google.auth import default as google_auth_default
from google.cloud import secretmanager, storage
from google.oauth2 import service_account
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from assessment.settings import Settings

logger = logging.getLogger("maturity_backend")

LOCAL_SQLITE_URL = "sqlite:///assessment_results.db"


def _build_creds():
    key_path = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
    scopes = ["https://www.googleapis.com/auth/cloud-platform"]
    if key_path and os.path.exists(key_path):
        return service_account.Credentials.from_service_account_file(key_path, scopes=scopes)
    creds, _ = google_auth_default(scopes=scopes)
    return creds


def get_db_password(settings: Settings) -> str:
    if settings.db_password:
        return settings.db_password

    if settings.db_secret_id:
        client = secretmanager.SecretManagerServiceClient(credentials=_build_creds())
        name = client.secret_version_path(settings.vertex_project, settings.db_secret_id, "latest")
        resp = client.access_secret_version(request={"name": name})
        settings.db_password = resp.payload.data.decode("utf-8")
        return settings.db_password

    raise RuntimeError("No DB_PASSWORD and no Secret Manager configured")


def resolve_database_url(settings: Settings) -> str:
    """
    DATABASE_URL wins; otherwise Postgres from the DB_* values; otherwise a local SQLite file.
    """
    if settings.database_url:
        return settings.database_url
    if settings.db_name:
        password = get_db_password(settings)
        return (
            f"postgresql+pg8000://{settings.db_user}:{password}"
            f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
        )
    logger.info(f"[DB] No database configured, using local SQLite: {LOCAL_SQLITE_URL}")
    return LOCAL_SQLITE_URL


def get_db_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:") or ":memory:" in url:
            # one shared connection so every session sees the same in-memory database
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)

    # pg8000 supports 'timeout' in seconds
    return create_engine(
        url,
        connect_args={"timeout": 10},  # fail in 10s instead of hanging forever
        pool_pre_ping=True,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class GcsUploader:
    """
    Thin Google Cloud Storage writer for diagnostic JSON documents.
    """

    def __init__(self, bucket_name: str, client: Optional[storage.Client] = None):
        self.bucket_name = bucket_name
        self._client = client

    def _storage(self) -> storage.Client:
        if self._client is None:
            self._client = storage.Client(credentials=_build_creds())
        return self._client

    def upload_json(self, blob_path: str, data) -> str:
        bucket = self._storage().bucket(self.bucket_name)
        blob = bucket.blob(blob_path)
        blob.upload_from_string(json.dumps(data, indent=2, default=str), content_type="application/json")
        return f"gs://{self.bucket_name}/{blob_path}"
