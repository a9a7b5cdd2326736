"""Fixtures compartidas: base SQLite en memoria, cliente HTTP y tokens."""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from optica_core import config
from optica_core.core_app import app
from optica_core.db import almacen
from optica_core.db import modelos  # noqa: F401
from optica_core.db.conexion import get_session
from optica_core.security import create_access_token


@pytest.fixture(autouse=True)
def politica_por_defecto(monkeypatch):
    """Cada test arranca con la política observada: sin roles exigidos ni descuento de stock."""
    monkeypatch.setattr(config, "EXIGIR_ROLES", False)
    monkeypatch.setattr(config, "DESCONTAR_STOCK", False)


@pytest.fixture
def engine():
    """Base SQLite en memoria nueva para cada test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture
def client(session):
    """TestClient que usa la misma sesión que el test."""
    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Genera cabeceras Authorization para un usuario dado."""
    def _headers(user_id: str = "u1", **claims) -> dict:
        token = create_access_token(user_id, **claims)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def auth(auth_headers):
    return auth_headers("u1", email="ana@example.com", first_name="Ana", last_name="Pérez")


@pytest.fixture
def con_rol(session):
    """Asigna un rol directamente en la base."""
    def _asignar(user_id: str, role: str):
        almacen.upsert_user(session, user_id)
        return almacen.set_user_role(session, user_id, {"role": role})
    return _asignar


@pytest.fixture
def aviator(session):
    return almacen.create_product(session, {
        "name": "Aviator",
        "category": "frame",
        "price": "150000",
        "stock": 10,
    })


@pytest.fixture
def producto_payload():
    return {
        "name": "Wayfarer",
        "description": "Armazón acetato",
        "category": "frame",
        "brand": "Ray-Ban",
        "model": "RB2140",
        "price": "89990",
        "stock": 5,
        "imageUrl": "https://img.example.com/wayfarer.jpg",
        "active": True,
    }
