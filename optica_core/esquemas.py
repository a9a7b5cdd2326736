# optica_core/esquemas.py
# Contratos de entrada y salida de la API.
# Los campos vienen de las bases de db.modelos; acá se agregan los alias camelCase
# del JSON y las reglas de validación propias de cada operación.
from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Literal, Optional, Union

import pydantic
from pydantic import ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel
from sqlmodel import SQLModel, Field

from optica_core.db.modelos import (
    AppointmentBase,
    AppointmentStatus,
    OrderBase,
    OrderItemBase,
    PrescriptionBase,
    ProductBase,
    ProductCategory,
    Role,
    UserBase,
    UserRoleBase,
    a_utc,
)

API_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    from_attributes=True,
)


def _rechazar_nulos(datos, campos):
    # En una actualización parcial se puede omitir un campo, pero no anularlo
    if isinstance(datos, dict):
        for campo in campos:
            for clave in (campo, to_camel(campo)):
                if clave in datos and datos[clave] is None:
                    raise ValueError(f"{clave} no puede ser null")
    return datos


# --------- Usuarios y roles ---------

class UserRead(UserBase):
    model_config = API_CONFIG

    id: str
    created_at: Optional[datetime] = None


class UserWithRole(UserRead):
    role: Role = Role.patient


class UserRoleIn(UserRoleBase):
    """Cuerpo de POST /api/users/role: reemplaza el registro completo."""
    model_config = API_CONFIG


class UserRoleRead(UserRoleBase):
    model_config = API_CONFIG

    id: int


# --------- Productos ---------

class ProductCreate(ProductBase):
    model_config = API_CONFIG


class ProductUpdate(SQLModel):
    model_config = API_CONFIG

    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    category: Optional[ProductCategory] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    stock: Optional[int] = Field(default=None, ge=0)
    image_url: Optional[str] = None
    active: Optional[bool] = None

    @model_validator(mode="before")
    @classmethod
    def _obligatorios_no_nulos(cls, datos):
        return _rechazar_nulos(datos, ("name", "category", "price", "stock", "active"))


class ProductRead(ProductBase):
    model_config = API_CONFIG

    id: int
    created_at: datetime


# --------- Citas ---------

class AppointmentCreate(AppointmentBase):
    model_config = API_CONFIG


class AppointmentUpdate(SQLModel):
    model_config = API_CONFIG

    patient_id: Optional[str] = Field(default=None, min_length=1)
    doctor_name: Optional[str] = None
    date: Optional[datetime] = None
    reason: Optional[str] = None
    status: Optional[AppointmentStatus] = None
    notes: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _obligatorios_no_nulos(cls, datos):
        return _rechazar_nulos(datos, ("patient_id", "date", "status"))

    @field_validator("date")
    @classmethod
    def _fecha_utc(cls, valor):
        return a_utc(valor)


class AppointmentRead(AppointmentBase):
    model_config = API_CONFIG

    id: int
    created_at: datetime


# --------- Recetas ---------

class PrescriptionCreate(PrescriptionBase):
    model_config = API_CONFIG


class PrescriptionRead(PrescriptionBase):
    model_config = API_CONFIG

    id: int
    created_at: datetime


class PrescriptionPrint(SQLModel):
    html: str


# --------- Pedidos ---------

class OrderItemIn(OrderItemBase):
    model_config = API_CONFIG


class OrderCreate(OrderBase):
    """Campos propios del pedido, sin los items."""
    model_config = API_CONFIG


class OrderRequest(OrderCreate):
    """Cuerpo de POST /api/orders: campos del pedido + items[]."""
    items: List[OrderItemIn]


class OrderRead(OrderBase):
    model_config = API_CONFIG

    id: int
    created_at: datetime


class OrderItemRead(OrderItemBase):
    model_config = API_CONFIG

    id: int
    order_id: int
    price: Decimal


class OrderItemWithProduct(OrderItemRead):
    product: ProductRead


# --------- Panel por rol ---------

class PanelPaciente(SQLModel):
    model_config = API_CONFIG

    kind: Literal["patient"] = "patient"
    appointments: List[AppointmentRead]
    prescriptions: List[PrescriptionRead]
    orders: List[OrderRead]


class PanelPersonal(SQLModel):
    model_config = API_CONFIG

    kind: Literal["staff"] = "staff"
    products: List[ProductRead]
    appointments: List[AppointmentRead]
    orders: List[OrderRead]


class PanelAdmin(SQLModel):
    model_config = API_CONFIG

    kind: Literal["admin"] = "admin"
    products: List[ProductRead]
    appointments: List[AppointmentRead]
    orders: List[OrderRead]
    users: List[UserWithRole]


Panel = Annotated[
    Union[PanelAdmin, PanelPersonal, PanelPaciente],
    pydantic.Field(discriminator="kind"),
]
