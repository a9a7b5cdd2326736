# optica_core/servicios/recetas.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from optica_core import config
from optica_core.db import almacen
from optica_core.db.conexion import get_session
from optica_core.db.modelos import Prescription, Role, User
from optica_core.errores import NotFoundError
from optica_core.esquemas import PrescriptionCreate, PrescriptionPrint, PrescriptionRead
from optica_core.impresion import render_prescription
from optica_core.security import (
    ensure_owner,
    get_current_user,
    patient_scope,
    require_role,
)

router = APIRouter()


def _receta_visible(session: Session, user: User, receta_id: int) -> Prescription:
    receta = almacen.get_prescription(session, receta_id)
    if not receta:
        raise NotFoundError("Receta no encontrada")
    ensure_owner(session, user, receta.patient_id)
    return receta


@router.get("", response_model=List[PrescriptionRead])
def listar_recetas(
    patient_id: Optional[str] = Query(default=None, alias="patientId"),
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    return almacen.list_prescriptions(session, patient_scope(session, user, patient_id))


@router.get("/{receta_id}", response_model=PrescriptionRead)
def obtener_receta(
    receta_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    return _receta_visible(session, user, receta_id)


@router.get("/{receta_id}/print", response_model=PrescriptionPrint)
def imprimir_receta(
    receta_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    receta = _receta_visible(session, user, receta_id)
    paciente = almacen.get_user(session, receta.patient_id)
    return {"html": render_prescription(receta, paciente, config.NOMBRE_OPTICA)}


@router.post("", response_model=PrescriptionRead, status_code=status.HTTP_201_CREATED)
def crear_receta(
    payload: PrescriptionCreate,
    session: Session = Depends(get_session),
    _user: User = Depends(require_role(Role.admin, Role.staff)),
):
    # Las recetas no se editan ni se borran
    return almacen.create_prescription(session, payload)
