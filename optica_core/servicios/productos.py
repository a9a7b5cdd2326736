# optica_core/servicios/productos.py
from typing import List

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from optica_core.db import almacen
from optica_core.db.conexion import get_session
from optica_core.db.modelos import Role
from optica_core.errores import NotFoundError
from optica_core.esquemas import ProductCreate, ProductRead, ProductUpdate
from optica_core.security import require_role

router = APIRouter()


# Catálogo público: sin autenticación

@router.get("", response_model=List[ProductRead])
def listar_productos(
    active: bool = False,
    session: Session = Depends(get_session),
):
    return almacen.list_products(session, active_only=active)


@router.get("/{producto_id}", response_model=ProductRead)
def obtener_producto(
    producto_id: int,
    session: Session = Depends(get_session),
):
    producto = almacen.get_product(session, producto_id)
    if not producto:
        raise NotFoundError("Producto no encontrado")
    return producto


@router.post("", response_model=ProductRead, status_code=status.HTTP_201_CREATED)
def crear_producto(
    payload: ProductCreate,
    session: Session = Depends(get_session),
    _user=Depends(require_role(Role.admin, Role.staff)),
):
    return almacen.create_product(session, payload)


@router.put("/{producto_id}", response_model=ProductRead)
def actualizar_producto(
    producto_id: int,
    payload: ProductUpdate,
    session: Session = Depends(get_session),
    _user=Depends(require_role(Role.admin, Role.staff)),
):
    producto = almacen.update_product(session, producto_id, payload)
    if not producto:
        raise NotFoundError("Producto no encontrado")
    return producto


@router.delete("/{producto_id}", status_code=status.HTTP_204_NO_CONTENT)
def eliminar_producto(
    producto_id: int,
    session: Session = Depends(get_session),
    _user=Depends(require_role(Role.admin, Role.staff)),
):
    # Con pedidos asociados responde 409: usar active=false para darlo de baja
    if not almacen.delete_product(session, producto_id):
        raise NotFoundError("Producto no encontrado")
    return
