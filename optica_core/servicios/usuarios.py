# optica_core/servicios/usuarios.py
from typing import List

from fastapi import APIRouter, Depends
from sqlmodel import Session

from optica_core.db import almacen
from optica_core.db.conexion import get_session
from optica_core.db.modelos import Role, User
from optica_core.errores import NotFoundError
from optica_core.esquemas import UserRoleIn, UserRoleRead, UserWithRole
from optica_core.security import ensure_owner, get_current_user, require_role

router = APIRouter()
admin_router = APIRouter()


@router.get("/{user_id}/role", response_model=UserRoleRead)
def obtener_rol(
    user_id: str,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    ensure_owner(session, user, user_id)
    rol = almacen.get_user_role(session, user_id)
    if not rol:
        raise NotFoundError("Rol no encontrado")
    return rol


@router.post("/role", response_model=UserRoleRead)
def asignar_rol(
    body: UserRoleIn,
    session: Session = Depends(get_session),
    _user: User = Depends(require_role(Role.admin)),
):
    """
    Registra o reemplaza el rol y los datos de perfil de un usuario.
    Clave lógica: user_id. Todo lo que no venga vuelve a su valor por defecto.
    """
    return almacen.set_user_role(session, body.user_id, body)


@admin_router.get("/users", response_model=List[UserWithRole])
def listar_usuarios(
    session: Session = Depends(get_session),
    _user: User = Depends(require_role(Role.admin)),
):
    return almacen.list_users_with_roles(session)
