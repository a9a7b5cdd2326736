# optica_core/servicios/citas.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from optica_core.db import almacen
from optica_core.db.conexion import get_session
from optica_core.db.modelos import User
from optica_core.errores import NotFoundError
from optica_core.esquemas import AppointmentCreate, AppointmentRead, AppointmentUpdate
from optica_core.security import (
    ensure_owner,
    get_current_user,
    patient_scope,
)

router = APIRouter()


@router.get("", response_model=List[AppointmentRead])
def listar_citas(
    patient_id: Optional[str] = Query(default=None, alias="patientId"),
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    # Más recientes primero
    return almacen.list_appointments(session, patient_scope(session, user, patient_id))


@router.get("/{cita_id}", response_model=AppointmentRead)
def obtener_cita(
    cita_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    cita = almacen.get_appointment(session, cita_id)
    if not cita:
        raise NotFoundError("Cita no encontrada")
    ensure_owner(session, user, cita.patient_id)
    return cita


@router.post("", response_model=AppointmentRead, status_code=status.HTTP_201_CREATED)
def crear_cita(
    payload: AppointmentCreate,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    ensure_owner(session, user, payload.patient_id)
    return almacen.create_appointment(session, payload)


@router.put("/{cita_id}", response_model=AppointmentRead)
def actualizar_cita(
    cita_id: int,
    payload: AppointmentUpdate,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    cita = almacen.get_appointment(session, cita_id)
    if not cita:
        raise NotFoundError("Cita no encontrada")
    ensure_owner(session, user, cita.patient_id)
    if payload.patient_id:
        ensure_owner(session, user, payload.patient_id)
    return almacen.update_appointment(session, cita_id, payload)
