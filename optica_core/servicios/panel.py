# optica_core/servicios/panel.py
# Panel principal según rol. El rol se consulta una sola vez y se despacha
# a la variante correspondiente.
from typing import Callable, Dict

from fastapi import APIRouter, Depends
from sqlmodel import Session

from optica_core.db import almacen
from optica_core.db.conexion import get_session
from optica_core.db.modelos import Role, User
from optica_core.esquemas import (
    AppointmentRead,
    OrderRead,
    Panel,
    PanelAdmin,
    PanelPaciente,
    PanelPersonal,
    PrescriptionRead,
    ProductRead,
)
from optica_core.security import get_current_user

router = APIRouter()


def _leer(esquema, filas):
    return [esquema.model_validate(f) for f in filas]


def panel_paciente(session: Session, user: User) -> PanelPaciente:
    return PanelPaciente(
        appointments=_leer(AppointmentRead, almacen.list_appointments(session, user.id)),
        prescriptions=_leer(PrescriptionRead, almacen.list_prescriptions(session, user.id)),
        orders=_leer(OrderRead, almacen.list_orders(session, user.id)),
    )


def panel_personal(session: Session, user: User) -> PanelPersonal:
    return PanelPersonal(
        products=_leer(ProductRead, almacen.list_products(session)),
        appointments=_leer(AppointmentRead, almacen.list_appointments(session)),
        orders=_leer(OrderRead, almacen.list_orders(session)),
    )


def panel_admin(session: Session, user: User) -> PanelAdmin:
    return PanelAdmin(
        products=_leer(ProductRead, almacen.list_products(session)),
        appointments=_leer(AppointmentRead, almacen.list_appointments(session)),
        orders=_leer(OrderRead, almacen.list_orders(session)),
        users=almacen.list_users_with_roles(session),
    )


PANELES: Dict[Role, Callable[[Session, User], object]] = {
    Role.admin: panel_admin,
    Role.staff: panel_personal,
    Role.patient: panel_paciente,
}


def build_dashboard(session: Session, user: User):
    rol = almacen.role_of(session, user.id)
    return PANELES[rol](session, user)


@router.get("", response_model=Panel)
def ver_panel(
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    return build_dashboard(session, user)
