# optica_core/core_app.py
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session

from optica_core import config
from optica_core.db.conexion import engine, init_db
from optica_core.db.semilla import seed_products
from optica_core.errores import registrar_handlers
from optica_core.logging_config import (
    generate_request_id,
    get_logger,
    setup_structured_logging,
)
from optica_core.servicios import (
    autenticacion,
    citas,
    panel,
    pedidos,
    productos,
    recetas,
    usuarios,
)

setup_structured_logging(config.LOG_LEVEL)
logger = get_logger(__name__)


# ---------- Arranque ----------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Inicializa la base de datos al arrancar la app y, fuera de producción,
    siembra el catálogo de ejemplo.
    """
    init_db()
    if config.ENTORNO != "production":
        with Session(engine, expire_on_commit=False) as session:
            seed_products(session)
    logger.info("api_iniciada", entorno=config.ENTORNO)
    yield
    logger.info("api_detenida")


app = FastAPI(title="Óptica API", lifespan=lifespan)


# ---------- CORS ----------

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


# ---------- Request id + errores ----------

@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or generate_request_id()
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


registrar_handlers(app)


# ---------- Routers ----------

app.include_router(
    autenticacion.router,
    prefix="/api",
    tags=["Autenticacion"],
)
app.include_router(
    productos.router,
    prefix="/api/products",
    tags=["Productos"],
)
app.include_router(
    citas.router,
    prefix="/api/appointments",
    tags=["Citas"],
)
app.include_router(
    recetas.router,
    prefix="/api/prescriptions",
    tags=["Recetas"],
)
app.include_router(
    pedidos.router,
    prefix="/api/orders",
    tags=["Pedidos"],
)
app.include_router(
    usuarios.router,
    prefix="/api/users",
    tags=["Usuarios"],
)
app.include_router(
    usuarios.admin_router,
    prefix="/api/admin",
    tags=["Usuarios"],
)
app.include_router(
    panel.router,
    prefix="/api/dashboard",
    tags=["Panel"],
)


# ---------- Endpoint de salud básico ----------

@app.get("/api/salud")
def check_salud():
    """
    Endpoint de prueba para verificar que la API está corriendo.
    """
    return {
        "estado": "ok",
        "mensaje": "API Óptica funcionando",
    }
