# optica_core/db/modelos.py
from typing import Optional
from datetime import datetime, date, timezone
from decimal import Decimal
from enum import Enum

from pydantic import field_validator
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field


def utc_now() -> datetime:
    """Momento actual en UTC, sin tzinfo (así se guarda en la base)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Las columnas de fecha son DateTime sin zona y guardan UTC.
def a_utc(valor: Optional[datetime]) -> Optional[datetime]:
    """Lleva una fecha con zona a UTC sin tzinfo. Sin zona se asume UTC."""
    if valor is not None and valor.tzinfo is not None:
        return valor.astimezone(timezone.utc).replace(tzinfo=None)
    return valor


# =========================
# Enums base
# =========================

class Role(str, Enum):
    """
    Roles de usuario en la óptica.
    """
    admin = "admin"
    staff = "staff"
    patient = "patient"


class ProductCategory(str, Enum):
    frame = "frame"
    lens = "lens"
    contact_lens = "contact_lens"
    accessory = "accessory"
    service = "service"


class AppointmentStatus(str, Enum):
    scheduled = "scheduled"
    confirmed = "confirmed"
    completed = "completed"
    cancelled = "cancelled"
    no_show = "no_show"


class OrderStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    ready = "ready"
    delivered = "delivered"
    cancelled = "cancelled"


# =========================
# Bases compartidas
# =========================
# Cada base define los campos una sola vez. Las tablas heredan de ellas y los
# contratos de entrada/salida de optica_core.esquemas también; las tablas no
# validan, los contratos sí.

class UserBase(SQLModel):
    email: Optional[str] = Field(default=None, index=True)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None


class UserRoleBase(SQLModel):
    user_id: str = Field(
        foreign_key="users.id",
        unique=True,
        index=True,
        min_length=1,
        description="Identidad externa (uno a uno)"
    )
    role: Role = Field(default=Role.patient)
    rut: Optional[str] = Field(default=None, description="RUT chileno")
    phone: Optional[str] = None
    address: Optional[str] = None
    birth_date: Optional[date] = None


class ProductBase(SQLModel):
    name: str = Field(index=True, min_length=1)
    description: Optional[str] = None
    category: ProductCategory
    brand: Optional[str] = None
    model: Optional[str] = None
    price: Decimal = Field(
        ge=0,
        max_digits=12,
        decimal_places=2,
        description="Precio de venta al público"
    )
    stock: int = Field(default=0, ge=0)
    image_url: Optional[str] = None
    active: bool = Field(
        default=True,
        description="Los inactivos no aparecen en el catálogo por defecto"
    )


class AppointmentBase(SQLModel):
    patient_id: str = Field(foreign_key="users.id", index=True, min_length=1)
    doctor_name: Optional[str] = None
    date: datetime = Field(index=True, sa_type=DateTime)
    reason: Optional[str] = None
    status: AppointmentStatus = Field(default=AppointmentStatus.scheduled)
    notes: Optional[str] = None

    @field_validator("date")
    @classmethod
    def _fecha_utc(cls, valor):
        return a_utc(valor)


class PrescriptionBase(SQLModel):
    patient_id: str = Field(foreign_key="users.id", index=True, min_length=1)
    date: datetime = Field(default_factory=utc_now, index=True, sa_type=DateTime)
    doctor_name: Optional[str] = None

    # Ojo derecho (OD) - lejos / cerca
    sphere_od_lejos: Optional[str] = None
    cylinder_od_lejos: Optional[str] = None
    axis_od_lejos: Optional[str] = None
    sphere_od_cerca: Optional[str] = None
    cylinder_od_cerca: Optional[str] = None
    axis_od_cerca: Optional[str] = None

    # Ojo izquierdo (OS) - lejos / cerca
    sphere_os_lejos: Optional[str] = None
    cylinder_os_lejos: Optional[str] = None
    axis_os_lejos: Optional[str] = None
    sphere_os_cerca: Optional[str] = None
    cylinder_os_cerca: Optional[str] = None
    axis_os_cerca: Optional[str] = None

    addition: Optional[str] = None
    pupillary_distance: Optional[str] = None
    diagnosis: Optional[str] = None
    notes: Optional[str] = None

    # Transcripción de una receta en papel
    is_transcription: bool = Field(default=False)
    original_image_url: Optional[str] = None

    @field_validator("date")
    @classmethod
    def _fecha_utc(cls, valor):
        return a_utc(valor)


class OrderBase(SQLModel):
    patient_id: str = Field(foreign_key="users.id", index=True, min_length=1)
    prescription_id: Optional[int] = Field(default=None, foreign_key="prescriptions.id")
    date: datetime = Field(default_factory=utc_now, index=True, sa_type=DateTime)
    status: OrderStatus = Field(default=OrderStatus.pending)
    total_amount: Decimal = Field(
        ge=0,
        max_digits=12,
        decimal_places=2,
        description="Total informado por el cliente (no se recalcula)"
    )
    deposit_amount: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        max_digits=12,
        decimal_places=2,
        description="Abono"
    )
    notes: Optional[str] = None

    @field_validator("date")
    @classmethod
    def _fecha_utc(cls, valor):
        return a_utc(valor)


class OrderItemBase(SQLModel):
    product_id: int = Field(foreign_key="products.id", index=True)
    quantity: int = Field(default=1, gt=0)


# =========================
# Tablas
# =========================

class User(UserBase, table=True):
    """
    Usuario administrado por el proveedor de identidad externo.
    Se registra/actualiza cada vez que llega un token válido.
    """
    __tablename__ = "users"

    id: str = Field(primary_key=True)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=DateTime)


class UserRole(UserRoleBase, table=True):
    __tablename__ = "user_roles"

    id: Optional[int] = Field(default=None, primary_key=True)


class Product(ProductBase, table=True):
    """
    Catálogo de la óptica: armazones, cristales, lentes de contacto, etc.
    """
    __tablename__ = "products"

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime)


class Appointment(AppointmentBase, table=True):
    __tablename__ = "appointments"

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime)


class Prescription(PrescriptionBase, table=True):
    """
    Receta óptica. No se edita ni se borra una vez creada.
    """
    __tablename__ = "prescriptions"

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime)


class Order(OrderBase, table=True):
    """
    Encabezado de un pedido. Es dueño de sus OrderItem.
    """
    __tablename__ = "orders"

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime)


class OrderItem(OrderItemBase, table=True):
    """
    Detalle de un pedido. El precio es una foto del precio del producto al
    momento del pedido y no cambia después.
    """
    __tablename__ = "order_items"

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(
        foreign_key="orders.id",
        index=True,
        description="Pedido al que pertenece este item"
    )
    price: Decimal = Field(
        ge=0,
        max_digits=12,
        decimal_places=2,
        description="Precio unitario aplicado en el pedido"
    )
