# optica_core/servicios/autenticacion.py
# El login lo resuelve el proveedor de identidad externo; acá solo redirigimos
# y exponemos el perfil del usuario autenticado.
from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from sqlmodel import Session

from optica_core import config
from optica_core.db import almacen
from optica_core.db.conexion import get_session
from optica_core.db.modelos import User
from optica_core.esquemas import UserWithRole
from optica_core.security import get_current_user

router = APIRouter()


@router.get("/login", include_in_schema=False)
def login():
    return RedirectResponse(config.LOGIN_URL)


@router.get("/logout", include_in_schema=False)
def logout():
    return RedirectResponse(config.LOGOUT_URL)


@router.get("/auth/user", response_model=UserWithRole)
def leer_perfil(
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    return UserWithRole.model_validate(
        {**user.model_dump(), "role": almacen.role_of(session, user.id)}
    )
