# optica_core/config.py
# Configuración leída de variables de entorno.
# Los módulos leen estos valores como config.X para que los tests puedan parchearlos.
import os


def _flag(nombre: str, default: str = "0") -> bool:
    return os.getenv(nombre, default).strip().lower() in ("1", "true", "si", "yes")


# Base de datos de la óptica. En producción apunta a PostgreSQL.
DB_URL = os.getenv("OPTICA_DB_URL", "sqlite:///./datos_optica.db")

# Tokens emitidos por el proveedor de identidad externo (firma HS256 compartida)
SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME_SUPER_SECRET")
ALGO = "HS256"
ACCESS_MIN = int(os.getenv("ACCESS_MINUTES", "720"))  # 12h default

LOGIN_URL = os.getenv("OPTICA_LOGIN_URL", "https://auth.example.com/login")
LOGOUT_URL = os.getenv("OPTICA_LOGOUT_URL", "https://auth.example.com/logout")

# Política de roles en el servidor (desactivada = contrato observado)
EXIGIR_ROLES = _flag("OPTICA_EXIGIR_ROLES")

# Descuento de stock al crear pedidos (compare-and-set sobre products.stock)
DESCONTAR_STOCK = _flag("OPTICA_DESCONTAR_STOCK")

ENTORNO = os.getenv("OPTICA_ENTORNO", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

CORS_ORIGINS = [
    o.strip() for o in os.getenv("OPTICA_CORS_ORIGINS", "*").split(",") if o.strip()
]

# Nombre que aparece en los documentos imprimibles
NOMBRE_OPTICA = os.getenv("OPTICA_NOMBRE", "Óptica Visión Clara")
