# optica_core/security.py
# Autenticación delegada: el proveedor de identidad externo emite un JWT (HS256)
# cuyo "sub" es el id opaco del usuario. Acá solo se verifica y se registra.

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt, JWTError
from sqlmodel import Session

from optica_core import config
from optica_core.db import almacen
from optica_core.db.conexion import get_session
from optica_core.db.modelos import Role, User
from optica_core.errores import AuthenticationError, AuthorizationError
from optica_core.logging_config import get_logger

logger = get_logger(__name__)

# auto_error=False: la falta de token la informamos nosotros como 401
bearer = HTTPBearer(auto_error=False)

CLAIMS_PERFIL = ("email", "first_name", "last_name", "profile_image_url")


def create_access_token(
    subject: str,
    minutes: Optional[int] = None,
    **claims: Any,
) -> str:
    """
    Emite un token con el mismo formato que el proveedor externo.
    Lo usan el script asignar_admin.py y los tests.
    """
    to_encode = {
        k: v for k, v in claims.items() if k in CLAIMS_PERFIL and v is not None
    }
    to_encode.update({
        "sub": subject,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=minutes or config.ACCESS_MIN),
    })
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGO)


def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGO])
    except JWTError:
        logger.warning("token_invalido")
        raise AuthenticationError("Token inválido o expirado")


def get_current_user(
    cred: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    session: Session = Depends(get_session),
) -> User:
    if cred is None:
        raise AuthenticationError("No autenticado")

    payload = decode_token(cred.credentials)
    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Token sin sujeto")

    return almacen.upsert_user(
        session,
        str(user_id),
        **{k: payload.get(k) for k in CLAIMS_PERFIL},
    )


def require_role(*roles: Role) -> Callable:
    """
    Declara los roles de un endpoint. Solo se exige cuando
    OPTICA_EXIGIR_ROLES está activo; si no, basta con estar autenticado.
    """
    def dep(
        user: User = Depends(get_current_user),
        session: Session = Depends(get_session),
    ) -> User:
        if config.EXIGIR_ROLES and roles:
            rol = almacen.role_of(session, user.id)
            if rol not in roles:
                logger.warning("acceso_denegado", user_id=user.id, role=rol.value)
                raise AuthorizationError("Sin permisos para esta operación")
        return user

    return dep


def patient_scope(session: Session, user: User, patient_id: Optional[str]) -> Optional[str]:
    """
    Filtro de paciente efectivo para un listado.
    Con roles exigidos, un paciente solo ve lo suyo.
    """
    if not config.EXIGIR_ROLES:
        return patient_id
    if almacen.role_of(session, user.id) != Role.patient:
        return patient_id
    if patient_id and patient_id != user.id:
        raise AuthorizationError("Solo tus registros", field="patientId")
    return user.id


def ensure_owner(session: Session, user: User, patient_id: str) -> None:
    """Con roles exigidos, un paciente solo accede a registros propios."""
    patient_scope(session, user, patient_id)
