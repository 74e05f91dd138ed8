from typing import Generator

from sqlmodel import SQLModel, create_engine, Session
from handymate.server.settings.config import settings

connect_args = {}
if settings.database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(settings.database_url, echo=settings.debug, connect_args=connect_args)

def init_db(bind=None) -> None:
    # Se till att modellerna laddas innan tabellerna skapas
    from handymate.server import models  # noqa: F401
    SQLModel.metadata.create_all(bind or engine)

def get_session() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session
