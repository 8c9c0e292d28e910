import itertools
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.pool import StaticPool
from sqlalchemy import create_engine

from pustok import entities  # noqa: F401
from pustok.db import Base, make_session_factory
from pustok.entities import Author, Genre
from pustok.service import BookService, SliderService
from pustok.storage import AssetStore
from pustok.uploads import Upload

PNG_HEADER = b"\x89PNG\r\n\x1a\n"
JPEG_HEADER = b"\xff\xd8\xff\xe0"


def png_bytes(size: int) -> bytes:
    return PNG_HEADER + b"\0" * (size - len(PNG_HEADER))


def jpeg_bytes(size: int) -> bytes:
    return JPEG_HEADER + b"\0" * (size - len(JPEG_HEADER))


def png_upload(size: int = 1024, name: str = "banner.png") -> Upload:
    return Upload.from_bytes(png_bytes(size), file_name=name, content_type="image/png")


def jpeg_upload(size: int = 1024, name: str = "banner.jpg") -> Upload:
    return Upload.from_bytes(jpeg_bytes(size), file_name=name, content_type="image/jpeg")


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db_session(engine):
    session = make_session_factory(engine)()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture()
def assets(tmp_path):
    return AssetStore(tmp_path / "media")


@pytest.fixture()
def clock():
    start = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    ticks = itertools.count()
    return lambda: start + timedelta(minutes=next(ticks))


@pytest.fixture()
def slider_service(db_session, assets, clock):
    return SliderService(db_session, assets, clock=clock)


@pytest.fixture()
def book_service(db_session, assets, clock):
    return BookService(db_session, assets, clock=clock)


@pytest.fixture()
def catalog(db_session):
    genre = Genre(name="Fantasy")
    author = Author(full_name="Ursula K. Le Guin")
    db_session.add_all([genre, author])
    db_session.commit()
    return {"genre_id": genre.id, "author_id": author.id}


def stored_files(assets: AssetStore, folder: str) -> list[str]:
    path = assets.root / folder
    if not path.exists():
        return []
    return sorted(p.name for p in path.iterdir())


@pytest.fixture()
def anyio_backend():
    return "asyncio"
