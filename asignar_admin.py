# asignar_admin.py
# Uso: python asignar_admin.py <user_id> [email]
import sys
from typing import Optional

from sqlmodel import Session

from optica_core.db import almacen
from optica_core.db.conexion import engine, init_db
from optica_core.db.modelos import Role
from optica_core.esquemas import UserRoleIn
from optica_core.security import create_access_token


def asignar_admin(user_id: str, email: Optional[str] = None) -> str:
    """
    Registra al usuario (si no existe), le asigna el rol admin y
    devuelve un token de desarrollo para probar la API.
    """
    init_db()

    with Session(engine, expire_on_commit=False) as session:
        usuario = almacen.get_user(session, user_id)
        if usuario is None:
            usuario = almacen.upsert_user(session, user_id, email=email)
        existente = almacen.get_user_role(session, user_id)

        # El upsert reemplaza todo: conservamos los datos de perfil que hubiera
        datos = UserRoleIn(
            user_id=user_id,
            role=Role.admin,
            rut=existente.rut if existente else None,
            phone=existente.phone if existente else None,
            address=existente.address if existente else None,
            birth_date=existente.birth_date if existente else None,
        )
        almacen.set_user_role(session, user_id, datos)

    return create_access_token(user_id, email=email or usuario.email)


def main():
    if len(sys.argv) < 2:
        print("Uso: python asignar_admin.py <user_id> [email]")
        sys.exit(1)

    user_id = sys.argv[1]
    email = sys.argv[2] if len(sys.argv) > 2 else None
    token = asignar_admin(user_id, email)
    print(f"Rol admin asignado a {user_id!r}")
    print(f"Token de desarrollo: {token}")


if __name__ == "__main__":
    main()
