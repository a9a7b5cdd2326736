# optica_core/db/conexion.py
from typing import Generator

from sqlmodel import SQLModel, Session, create_engine

from optica_core import config

# SQLite se usa desde el threadpool de FastAPI
connect_args = {"check_same_thread": False} if config.DB_URL.startswith("sqlite") else {}

engine = create_engine(
    config.DB_URL,
    echo=False,
    connect_args=connect_args,
    pool_pre_ping=not config.DB_URL.startswith("sqlite"),
)


def init_db() -> None:
    """Crea las tablas de la óptica que falten (no migra columnas)."""
    from optica_core.db import modelos  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session() -> Generator[Session, None, None]:
    """
    Sesión por petición para Depends().
    Con expire_on_commit=False los objetos siguen legibles al serializar la respuesta.
    """
    with Session(engine, expire_on_commit=False) as session:
        yield session
