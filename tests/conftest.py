from __future__ import annotations

import pathlib
import sys
from typing import Iterator, Optional

import boto3
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

ROOT_DIR = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from intake_api.config import AwsSettings, Settings
from intake_api.db.session import build_engine, build_session_factory, init_db
from intake_api.main import create_app
from intake_api.models.documents import Document
from intake_api.services.documents import DocumentRecordStore
from intake_api.services.storage import StorageGateway

TEST_BUCKET = "test-intake-bucket"
TEST_REGION = "us-east-1"
OWNER_EMAIL = "owner@example.com"


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    """Fake credentials so nothing can reach a real AWS account."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", TEST_REGION)
    monkeypatch.setenv("AWS_REGION", TEST_REGION)
    monkeypatch.delenv("S3_BUCKET", raising=False)
    monkeypatch.delenv("S3_ENDPOINT_URL", raising=False)


@pytest.fixture()
def settings(tmp_path: pathlib.Path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'intake.db'}",
        METRICS_ENABLED=False,
        UPLOAD_FANOUT_WORKERS=4,
        aws=AwsSettings(region=TEST_REGION, s3_bucket=TEST_BUCKET),
    )


@pytest.fixture()
def session_factory(settings: Settings) -> Iterator[sessionmaker[Session]]:
    engine = build_engine(settings.database_url)
    init_db(engine)
    try:
        yield build_session_factory(engine)
    finally:
        engine.dispose()


@pytest.fixture()
def record_store(session_factory: sessionmaker[Session]) -> DocumentRecordStore:
    return DocumentRecordStore(session_factory)


@pytest.fixture()
def mock_s3():
    from moto import mock_aws

    with mock_aws():
        s3 = boto3.client("s3", region_name=TEST_REGION)
        s3.create_bucket(Bucket=TEST_BUCKET)
        yield s3


@pytest.fixture()
def storage(settings: Settings, mock_s3) -> StorageGateway:
    return StorageGateway(settings.aws)


@pytest.fixture()
def app(settings: Settings, storage: StorageGateway, session_factory: sessionmaker[Session]) -> FastAPI:
    return create_app(settings, storage=storage, session_factory=session_factory)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    """Provide a FastAPI TestClient instance."""
    with TestClient(app) as _client:
        yield _client


def fetch_document(session_factory: sessionmaker[Session], document_id) -> Optional[Document]:
    with session_factory() as db:
        return db.get(Document, document_id)
