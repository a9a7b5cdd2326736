# optica_core/servicios/pedidos.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from optica_core.db import almacen
from optica_core.db.conexion import get_session
from optica_core.db.modelos import User
from optica_core.errores import NotFoundError
from optica_core.esquemas import OrderCreate, OrderItemWithProduct, OrderRead, OrderRequest
from optica_core.security import ensure_owner, get_current_user, patient_scope

router = APIRouter()


@router.get("", response_model=List[OrderRead])
def listar_pedidos(
    patient_id: Optional[str] = Query(default=None, alias="patientId"),
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    return almacen.list_orders(session, patient_scope(session, user, patient_id))


@router.get("/{pedido_id}", response_model=OrderRead)
def obtener_pedido(
    pedido_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    pedido = almacen.get_order(session, pedido_id)
    if not pedido:
        raise NotFoundError("Pedido no encontrado")
    ensure_owner(session, user, pedido.patient_id)
    return pedido


@router.post("", response_model=OrderRead, status_code=status.HTTP_201_CREATED)
def crear_pedido(
    body: OrderRequest,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    ensure_owner(session, user, body.patient_id)

    # Pedido + items en una sola transacción (ver almacen.create_order)
    datos = OrderCreate.model_validate(body.model_dump(exclude={"items"}))
    return almacen.create_order(session, datos, body.items)


@router.get("/{pedido_id}/items", response_model=List[OrderItemWithProduct])
def listar_items_pedido(
    pedido_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    pedido = almacen.get_order(session, pedido_id)
    if not pedido:
        raise NotFoundError("Pedido no encontrado")
    ensure_owner(session, user, pedido.patient_id)
    return almacen.get_order_items(session, pedido_id)
