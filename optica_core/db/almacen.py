# optica_core/db/almacen.py
# Capa de persistencia: todas las lecturas y escrituras pasan por acá.
# Las funciones reciben la sesión como primer argumento y lanzan errores del
# dominio (optica_core.errores); los routers solo traducen a HTTP.
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, SQLModel, select

from optica_core import config
from optica_core.db.modelos import (
    Appointment,
    Order,
    OrderItem,
    Prescription,
    Product,
    Role,
    User,
    UserRole,
    utc_now,
)
from optica_core.errores import ConflictError, NotFoundError, ValidationError
from optica_core.esquemas import (
    AppointmentCreate,
    AppointmentUpdate,
    OrderCreate,
    OrderItemIn,
    OrderItemWithProduct,
    PrescriptionCreate,
    ProductCreate,
    ProductUpdate,
    UserRoleIn,
    UserWithRole,
)
from optica_core.logging_config import get_logger

logger = get_logger(__name__)

E = TypeVar("E", bound=SQLModel)


def _validar(esquema: Type[E], datos: Union[E, Dict[str, Any]]) -> E:
    """
    Acepta una instancia ya validada del esquema o un dict crudo.
    Un dict inválido se convierte en ValidationError del dominio.
    """
    if isinstance(datos, esquema):
        return datos
    try:
        return esquema.model_validate(datos)
    except PydanticValidationError as exc:
        primero = exc.errors()[0]
        campo = ".".join(str(p) for p in primero.get("loc", ())) or None
        raise ValidationError(
            f"{campo or 'datos'}: {primero.get('msg')}",
            field=campo,
        ) from exc


# =========================
# PRODUCTOS
# =========================

def list_products(session: Session, active_only: bool = False) -> List[Product]:
    q = select(Product)
    if active_only:
        q = q.where(Product.active == True)  # noqa: E712
    return list(session.exec(q.order_by(Product.id.asc())).all())


def get_product(session: Session, product_id: int) -> Optional[Product]:
    return session.get(Product, product_id)


def create_product(session: Session, datos: Union[ProductCreate, dict]) -> Product:
    entrada = _validar(ProductCreate, datos)
    producto = Product(**entrada.model_dump())
    session.add(producto)
    session.commit()
    session.refresh(producto)
    return producto


def update_product(
    session: Session,
    product_id: int,
    cambios: Union[ProductUpdate, dict],
) -> Optional[Product]:
    """Actualización parcial: los campos no enviados conservan su valor."""
    entrada = _validar(ProductUpdate, cambios)
    producto = session.get(Product, product_id)
    if not producto:
        return None

    for campo, valor in entrada.model_dump(exclude_unset=True).items():
        setattr(producto, campo, valor)

    session.add(producto)
    session.commit()
    session.refresh(producto)
    return producto


def delete_product(session: Session, product_id: int) -> bool:
    """
    Borrado físico. Devuelve False si el producto no existe.
    Si algún pedido lo referencia se rechaza: hay que darlo de baja con active=false.
    """
    producto = session.get(Product, product_id)
    if not producto:
        return False

    referenciado = session.exec(
        select(OrderItem.id).where(OrderItem.product_id == product_id).limit(1)
    ).first()
    if referenciado is not None:
        raise ConflictError(
            f"El producto {product_id} figura en pedidos; desactívelo en lugar de borrarlo",
            field="id",
        )

    session.delete(producto)
    session.commit()
    logger.info("producto_eliminado", product_id=product_id)
    return True


# =========================
# CITAS
# =========================

def list_appointments(session: Session, patient_id: Optional[str] = None) -> List[Appointment]:
    q = select(Appointment)
    if patient_id:
        q = q.where(Appointment.patient_id == patient_id)
    q = q.order_by(Appointment.date.desc(), Appointment.id.desc())
    return list(session.exec(q).all())


def get_appointment(session: Session, appointment_id: int) -> Optional[Appointment]:
    return session.get(Appointment, appointment_id)


def create_appointment(session: Session, datos: Union[AppointmentCreate, dict]) -> Appointment:
    # Sin control de superposición: varias citas pueden compartir horario
    entrada = _validar(AppointmentCreate, datos)
    cita = Appointment(**entrada.model_dump())
    session.add(cita)
    session.commit()
    session.refresh(cita)
    return cita


def update_appointment(
    session: Session,
    appointment_id: int,
    cambios: Union[AppointmentUpdate, dict],
) -> Optional[Appointment]:
    # Cualquier estado puede pisar a cualquier otro
    entrada = _validar(AppointmentUpdate, cambios)
    cita = session.get(Appointment, appointment_id)
    if not cita:
        return None

    for campo, valor in entrada.model_dump(exclude_unset=True).items():
        setattr(cita, campo, valor)

    session.add(cita)
    session.commit()
    session.refresh(cita)
    return cita


# =========================
# RECETAS
# =========================

def list_prescriptions(session: Session, patient_id: Optional[str] = None) -> List[Prescription]:
    q = select(Prescription)
    if patient_id:
        q = q.where(Prescription.patient_id == patient_id)
    q = q.order_by(Prescription.date.desc(), Prescription.id.desc())
    return list(session.exec(q).all())


def get_prescription(session: Session, prescription_id: int) -> Optional[Prescription]:
    return session.get(Prescription, prescription_id)


def create_prescription(session: Session, datos: Union[PrescriptionCreate, dict]) -> Prescription:
    entrada = _validar(PrescriptionCreate, datos)
    receta = Prescription(**entrada.model_dump())
    session.add(receta)
    session.commit()
    session.refresh(receta)
    return receta


# =========================
# PEDIDOS
# =========================

def list_orders(session: Session, patient_id: Optional[str] = None) -> List[Order]:
    q = select(Order)
    if patient_id:
        q = q.where(Order.patient_id == patient_id)
    q = q.order_by(Order.date.desc(), Order.id.desc())
    return list(session.exec(q).all())


def get_order(session: Session, order_id: int) -> Optional[Order]:
    return session.get(Order, order_id)


def _descontar_stock(session: Session, producto: Product, cantidad: int) -> None:
    # compare-and-set: solo descuenta si todavía alcanza
    resultado = session.connection().execute(
        update(Product)
        .where(Product.id == producto.id)
        .where(Product.stock >= cantidad)
        .values(stock=Product.stock - cantidad)
    )
    if resultado.rowcount == 0:
        raise ConflictError(
            f"Stock insuficiente para el producto {producto.id}",
            field="items",
        )
    session.expire(producto, ["stock"])


def create_order(
    session: Session,
    datos: Union[OrderCreate, dict],
    items: Sequence[Union[OrderItemIn, dict]],
) -> Order:
    """
    Crea el pedido y sus items en una sola transacción.

    - Cada item guarda el precio vigente del producto (foto del precio).
    - Si un producto no existe se revierte todo: no queda pedido ni items.
    - El total lo informa el cliente; no se recalcula acá.
    """
    entrada = _validar(OrderCreate, datos)
    items_in = [_validar(OrderItemIn, i) for i in items]
    if not items_in:
        raise ValidationError("El pedido debe tener al menos un item", field="items")

    try:
        pedido = Order(**entrada.model_dump())
        session.add(pedido)
        session.flush()  # para tener pedido.id

        for item_in in items_in:
            producto = session.get(Product, item_in.product_id)
            if not producto:
                raise NotFoundError(
                    f"Producto {item_in.product_id} no encontrado",
                    field="items",
                )

            if config.DESCONTAR_STOCK:
                _descontar_stock(session, producto, item_in.quantity)

            session.add(
                OrderItem(
                    order_id=pedido.id,
                    product_id=producto.id,
                    quantity=item_in.quantity,
                    price=producto.price,
                )
            )

        session.commit()
    except Exception:
        session.rollback()
        logger.warning("pedido_revertido", patient_id=entrada.patient_id)
        raise

    session.refresh(pedido)
    logger.info("pedido_creado", order_id=pedido.id, items=len(items_in))
    return pedido


def get_order_items(session: Session, order_id: int) -> List[OrderItemWithProduct]:
    """Items del pedido junto a su producto. Lista vacía si no hay filas."""
    filas = session.exec(
        select(OrderItem, Product)
        .join(Product, OrderItem.product_id == Product.id)
        .where(OrderItem.order_id == order_id)
        .order_by(OrderItem.id.asc())
    ).all()
    return [
        OrderItemWithProduct.model_validate({**item.model_dump(), "product": producto.model_dump()})
        for item, producto in filas
    ]


# =========================
# USUARIOS Y ROLES
# =========================

def get_user(session: Session, user_id: str) -> Optional[User]:
    return session.get(User, user_id)


def upsert_user(
    session: Session,
    user_id: str,
    email: Optional[str] = None,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    profile_image_url: Optional[str] = None,
) -> User:
    """
    Registra o actualiza la identidad que informa el proveedor externo.
    Solo escribe si algo cambió. Si otra petición del mismo usuario lo
    insertó primero, se devuelve esa fila.
    """
    datos = {
        "email": email,
        "first_name": first_name,
        "last_name": last_name,
        "profile_image_url": profile_image_url,
    }
    usuario = session.get(User, user_id)
    if usuario is None:
        usuario = User(id=user_id, **datos)
    elif all(getattr(usuario, k) == v for k, v in datos.items()):
        return usuario
    else:
        for campo, valor in datos.items():
            setattr(usuario, campo, valor)
        usuario.updated_at = utc_now()

    session.add(usuario)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        existente = session.get(User, user_id)
        if existente is None:
            raise
        logger.info("usuario_ya_registrado", user_id=user_id)
        return existente
    session.refresh(usuario)
    return usuario


def list_users_with_roles(session: Session) -> List[UserWithRole]:
    filas = session.exec(
        select(User, UserRole)
        .join(UserRole, UserRole.user_id == User.id, isouter=True)
        .order_by(User.created_at.asc(), User.id.asc())
    ).all()
    return [
        UserWithRole.model_validate(
            {**usuario.model_dump(), "role": rol.role if rol else Role.patient}
        )
        for usuario, rol in filas
    ]


def get_user_role(session: Session, user_id: str) -> Optional[UserRole]:
    return session.exec(
        select(UserRole).where(UserRole.user_id == user_id)
    ).first()


def set_user_role(session: Session, user_id: str, datos: Union[UserRoleIn, dict]) -> UserRole:
    """
    Upsert por user_id. Si ya existe se reemplazan todos los campos
    (lo que no venga queda en su valor por defecto, no se mezcla).
    """
    if isinstance(datos, dict):
        datos = {**datos, "user_id": user_id}
    entrada = _validar(UserRoleIn, datos)
    valores = entrada.model_dump()
    valores["user_id"] = user_id

    existente = get_user_role(session, user_id)
    if existente:
        for campo, valor in valores.items():
            setattr(existente, campo, valor)
        fila = existente
    else:
        fila = UserRole(**valores)

    session.add(fila)
    session.commit()
    session.refresh(fila)
    logger.info("rol_asignado", user_id=user_id, role=fila.role.value)
    return fila


def role_of(session: Session, user_id: str) -> Role:
    """Rol efectivo: patient cuando no hay registro."""
    fila = get_user_role(session, user_id)
    return fila.role if fila else Role.patient
