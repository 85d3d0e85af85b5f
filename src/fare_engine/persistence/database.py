"""Database engine initialization for the settled fare mirror."""

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from .schema import Base, MirrorMetadata

SCHEMA_VERSION = "1.0.0"


def init_database(db_path: str) -> sessionmaker[Any]:
    """Initialize database and return session factory."""
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    engine = create_engine(
        f"sqlite:///{db_path}",
        echo=False,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)

    session_maker = sessionmaker(bind=engine)

    with session_maker() as session:
        schema_version = session.get(MirrorMetadata, "schema_version")
        if not schema_version:
            session.add(MirrorMetadata(key="schema_version", value=SCHEMA_VERSION))
            session.commit()

    return session_maker
