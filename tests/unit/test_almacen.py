"""
Tests de la capa de persistencia.

Cubre el alta y lectura de productos, la transacción de pedidos (atomicidad y
foto del precio), el upsert de roles y los listados filtrados.
"""
import threading
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlmodel import Session, SQLModel, create_engine, func, select

from optica_core import config
from optica_core.db import almacen
from optica_core.db.modelos import (
    AppointmentStatus,
    Order,
    OrderItem,
    Product,
    Role,
    User,
    UserRole,
    utc_now,
)
from optica_core.errores import ConflictError, NotFoundError, ValidationError


def contar(session, modelo) -> int:
    return session.exec(select(func.count()).select_from(modelo)).one()


def pedido_u1(total="150000"):
    return {"patientId": "u1", "totalAmount": total}


# ---------- productos ----------

def test_create_then_get_product_returns_input_plus_id(session, producto_payload):
    """Lo que se guarda es lo que se lee, con id y createdAt."""
    creado = almacen.create_product(session, producto_payload)
    leido = almacen.get_product(session, creado.id)

    assert leido.id is not None
    assert leido.created_at is not None
    assert leido.name == "Wayfarer"
    assert leido.description == "Armazón acetato"
    assert leido.category.value == "frame"
    assert leido.brand == "Ray-Ban"
    assert leido.model == "RB2140"
    assert leido.price == Decimal("89990")
    assert leido.stock == 5
    assert leido.image_url == "https://img.example.com/wayfarer.jpg"
    assert leido.active is True


def test_first_product_gets_id_one(aviator):
    assert aviator.id == 1


def test_get_missing_product_returns_none(session):
    assert almacen.get_product(session, 42) is None


def test_create_product_without_name_is_validation_error(session):
    """Un campo obligatorio ausente se informa con su nombre."""
    with pytest.raises(ValidationError) as exc:
        almacen.create_product(session, {"category": "frame", "price": "10"})

    assert exc.value.field == "name"
    assert contar(session, Product) == 0


def test_create_product_rejects_negative_price(session):
    with pytest.raises(ValidationError) as exc:
        almacen.create_product(session, {"name": "X", "category": "lens", "price": "-1"})

    assert exc.value.field == "price"


def test_list_products_empty_is_empty_list(session):
    assert almacen.list_products(session) == []
    assert almacen.list_products(session, active_only=True) == []


def test_list_active_products_is_subset(session):
    """active_only devuelve solo los activos, y todos ellos están en el listado completo."""
    almacen.create_product(session, {"name": "A", "category": "frame", "price": "1"})
    almacen.create_product(session, {"name": "B", "category": "lens", "price": "2", "active": False})
    almacen.create_product(session, {"name": "C", "category": "service", "price": "3"})

    todos = almacen.list_products(session)
    activos = almacen.list_products(session, active_only=True)

    assert [p.name for p in todos] == ["A", "B", "C"]
    assert [p.name for p in activos] == ["A", "C"]
    assert {p.id for p in activos} < {p.id for p in todos}


def test_update_product_is_partial(session, aviator):
    """Los campos no enviados conservan su valor."""
    actualizado = almacen.update_product(session, aviator.id, {"price": "120000"})

    assert actualizado.price == Decimal("120000")
    assert actualizado.name == "Aviator"
    assert actualizado.stock == 10


def test_update_product_rejects_null_for_required_field(session, aviator):
    with pytest.raises(ValidationError):
        almacen.update_product(session, aviator.id, {"name": None})


def test_update_missing_product_returns_none(session):
    assert almacen.update_product(session, 7, {"stock": 1}) is None


def test_delete_product(session, aviator):
    assert almacen.delete_product(session, aviator.id) is True
    assert almacen.get_product(session, aviator.id) is None
    assert almacen.delete_product(session, aviator.id) is False


def test_delete_product_referenced_by_order_is_conflict(session, aviator):
    """Un producto vendido no se borra; se desactiva."""
    almacen.create_order(session, pedido_u1(), [{"productId": aviator.id}])

    with pytest.raises(ConflictError):
        almacen.delete_product(session, aviator.id)

    assert almacen.get_product(session, aviator.id) is not None


# ---------- pedidos ----------

def test_create_order_scenario(session, aviator):
    """Pedido de un Aviator: un Order con id y un OrderItem con el precio vigente."""
    pedido = almacen.create_order(
        session,
        pedido_u1(),
        [{"productId": aviator.id, "quantity": 1}],
    )

    assert pedido.id is not None
    assert pedido.total_amount == Decimal("150000")
    items = session.exec(select(OrderItem).where(OrderItem.order_id == pedido.id)).all()
    assert len(items) == 1
    assert items[0].price == Decimal("150000")
    assert items[0].quantity == 1


def test_create_order_persists_n_items(session, aviator):
    lente = almacen.create_product(session, {"name": "Lente", "category": "lens", "price": "50"})

    pedido = almacen.create_order(
        session,
        pedido_u1("150100"),
        [
            {"productId": aviator.id, "quantity": 1},
            {"productId": lente.id, "quantity": 2},
            {"productId": lente.id, "quantity": 1},
        ],
    )

    assert contar(session, Order) == 1
    assert contar(session, OrderItem) == 3
    assert [i.product.name for i in almacen.get_order_items(session, pedido.id)] == [
        "Aviator", "Lente", "Lente",
    ]


def test_create_order_missing_product_persists_nothing(session):
    """Producto 999 inexistente: falla y no queda pedido del paciente."""
    with pytest.raises(NotFoundError):
        almacen.create_order(session, pedido_u1(), [{"productId": 999, "quantity": 1}])

    assert almacen.list_orders(session, "u1") == []
    assert contar(session, OrderItem) == 0


def test_create_order_missing_product_mid_list_rolls_back(session, aviator):
    """Si falla el segundo item tampoco queda el primero."""
    with pytest.raises(NotFoundError):
        almacen.create_order(
            session,
            pedido_u1(),
            [
                {"productId": aviator.id, "quantity": 1},
                {"productId": 999, "quantity": 1},
                {"productId": aviator.id, "quantity": 1},
            ],
        )

    assert contar(session, Order) == 0
    assert contar(session, OrderItem) == 0


def test_create_order_without_items_is_validation_error(session):
    with pytest.raises(ValidationError) as exc:
        almacen.create_order(session, pedido_u1(), [])

    assert exc.value.field == "items"
    assert contar(session, Order) == 0


def test_create_order_rejects_zero_quantity(session, aviator):
    with pytest.raises(ValidationError):
        almacen.create_order(session, pedido_u1(), [{"productId": aviator.id, "quantity": 0}])


def test_order_item_price_is_a_snapshot(session, aviator):
    """Cambiar el precio del producto después no altera el item ya vendido."""
    pedido = almacen.create_order(session, pedido_u1(), [{"productId": aviator.id}])

    almacen.update_product(session, aviator.id, {"price": "99000"})
    session.expire_all()

    items = almacen.get_order_items(session, pedido.id)
    assert items[0].price == Decimal("150000")
    assert items[0].product.price == Decimal("99000")


def test_order_total_is_not_recomputed(session, aviator):
    pedido = almacen.create_order(session, pedido_u1("1"), [{"productId": aviator.id}])
    assert pedido.total_amount == Decimal("1")


def test_stock_untouched_by_default(session, aviator):
    almacen.create_order(session, pedido_u1(), [{"productId": aviator.id, "quantity": 3}])
    session.expire_all()
    assert almacen.get_product(session, aviator.id).stock == 10


def test_stock_decrement_when_enabled(session, aviator, monkeypatch):
    monkeypatch.setattr(config, "DESCONTAR_STOCK", True)

    almacen.create_order(session, pedido_u1(), [{"productId": aviator.id, "quantity": 3}])
    session.expire_all()

    assert almacen.get_product(session, aviator.id).stock == 7


def test_insufficient_stock_rolls_back(session, aviator, monkeypatch):
    """Sin stock suficiente no queda pedido ni se descuenta nada."""
    monkeypatch.setattr(config, "DESCONTAR_STOCK", True)

    with pytest.raises(ConflictError):
        almacen.create_order(
            session,
            pedido_u1(),
            [
                {"productId": aviator.id, "quantity": 4},
                {"productId": aviator.id, "quantity": 7},
            ],
        )

    session.expire_all()
    assert contar(session, Order) == 0
    assert almacen.get_product(session, aviator.id).stock == 10


def test_get_order_items_of_order_without_items(session):
    assert almacen.get_order_items(session, 123) == []


def test_list_orders_newest_first(session, aviator):
    viejo = almacen.create_order(
        session, {**pedido_u1(), "date": "2024-01-01T10:00:00"}, [{"productId": aviator.id}],
    )
    nuevo = almacen.create_order(
        session, {**pedido_u1(), "date": "2024-06-01T10:00:00"}, [{"productId": aviator.id}],
    )
    almacen.create_order(
        session, {"patientId": "u2", "totalAmount": "5"}, [{"productId": aviator.id}],
    )

    assert [p.id for p in almacen.list_orders(session, "u1")] == [nuevo.id, viejo.id]
    assert len(almacen.list_orders(session)) == 3


# ---------- citas y recetas ----------

def test_appointments_filtered_and_sorted(session):
    almacen.create_appointment(session, {"patientId": "u1", "date": "2024-03-01T09:00:00"})
    almacen.create_appointment(session, {"patientId": "u1", "date": "2024-05-01T09:00:00"})
    almacen.create_appointment(session, {"patientId": "u2", "date": "2024-04-01T09:00:00"})

    del_u1 = almacen.list_appointments(session, "u1")

    assert [c.date for c in del_u1] == [datetime(2024, 5, 1, 9), datetime(2024, 3, 1, 9)]
    assert all(c.status == AppointmentStatus.scheduled for c in del_u1)
    assert len(almacen.list_appointments(session)) == 3


def test_overlapping_appointments_are_allowed(session):
    datos = {"patientId": "u1", "date": "2024-03-01T09:00:00"}
    almacen.create_appointment(session, datos)
    almacen.create_appointment(session, datos)
    assert len(almacen.list_appointments(session, "u1")) == 2


def test_update_appointment_any_status_transition(session):
    cita = almacen.create_appointment(session, {"patientId": "u1", "date": "2024-03-01T09:00:00"})

    almacen.update_appointment(session, cita.id, {"status": "cancelled"})
    reabierta = almacen.update_appointment(session, cita.id, {"status": "confirmed"})

    assert reabierta.status == AppointmentStatus.confirmed
    assert reabierta.date == datetime(2024, 3, 1, 9)


def test_update_missing_appointment_returns_none(session):
    assert almacen.update_appointment(session, 5, {"notes": "x"}) is None


def test_create_prescription_defaults(session):
    receta = almacen.create_prescription(session, {
        "patientId": "u1",
        "sphereOdLejos": "-1.25",
        "axisOsCerca": "90",
    })

    assert receta.id is not None
    assert receta.date is not None
    assert receta.is_transcription is False
    assert almacen.get_prescription(session, receta.id).sphere_od_lejos == "-1.25"
    assert almacen.list_prescriptions(session, "u2") == []


# ---------- usuarios y roles ----------

def test_get_user_role_missing_user_returns_none(session):
    assert almacen.get_user_role(session, "missing-user") is None


def test_role_of_defaults_to_patient(session):
    assert almacen.role_of(session, "nadie") == Role.patient


def test_set_user_role_twice_overwrites(session):
    """Dos upserts del mismo user_id dejan una sola fila con los datos del segundo."""
    almacen.upsert_user(session, "u1")
    almacen.set_user_role(session, "u1", {
        "role": "staff", "rut": "11.111.111-1", "phone": "+56 9 1111 1111",
    })
    almacen.set_user_role(session, "u1", {"role": "admin", "address": "Av. Siempre Viva 742"})

    filas = session.exec(select(UserRole).where(UserRole.user_id == "u1")).all()
    assert len(filas) == 1
    assert filas[0].role == Role.admin
    assert filas[0].address == "Av. Siempre Viva 742"
    assert filas[0].rut is None
    assert filas[0].phone is None


def test_upsert_user_only_writes_on_change(session):
    primero = almacen.upsert_user(session, "u1", email="ana@example.com")
    marca = primero.updated_at

    igual = almacen.upsert_user(session, "u1", email="ana@example.com")
    assert igual.updated_at == marca

    cambiado = almacen.upsert_user(session, "u1", email="ana@optica.cl", first_name="Ana")
    assert cambiado.email == "ana@optica.cl"
    assert cambiado.first_name == "Ana"
    assert almacen.get_user(session, "u1").email == "ana@optica.cl"


def test_list_users_with_roles_defaults_to_patient(session, con_rol):
    almacen.upsert_user(session, "u1", email="ana@example.com")
    con_rol("boss", "admin")

    usuarios = {u.id: u.role for u in almacen.list_users_with_roles(session)}

    assert usuarios == {"u1": Role.patient, "boss": Role.admin}


def test_concurrent_first_login_registers_user_once(tmp_path):
    """Varias peticiones simultáneas de un usuario nuevo terminan en una sola fila."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'concurrencia.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    SQLModel.metadata.create_all(engine)
    hilos = 8
    barrera = threading.Barrier(hilos)
    errores, ids = [], []

    def primera_peticion():
        with Session(engine, expire_on_commit=False) as s:
            barrera.wait()
            try:
                ids.append(almacen.upsert_user(s, "nuevo", email="nuevo@example.com").id)
            except Exception as exc:
                errores.append(type(exc).__name__)

    trabajadores = [threading.Thread(target=primera_peticion) for _ in range(hilos)]
    for t in trabajadores:
        t.start()
    for t in trabajadores:
        t.join()

    with Session(engine) as s:
        filas = s.exec(select(User).where(User.id == "nuevo")).all()
    engine.dispose()

    assert errores == []
    assert ids == ["nuevo"] * hilos
    assert len(filas) == 1


# ---------- fechas ----------

def test_timestamps_are_stored_and_read_back_as_utc(session):
    """Las fechas con zona se guardan en UTC; las de sistema también."""
    cita = almacen.create_appointment(
        session, {"patientId": "u1", "date": "2024-03-01T09:00:00-03:00"},
    )
    almacen.upsert_user(session, "u1")
    session.expire_all()

    leida = almacen.get_appointment(session, cita.id)
    usuario = almacen.get_user(session, "u1")

    assert leida.date == datetime(2024, 3, 1, 12, 0)
    assert leida.date.tzinfo is None
    assert leida.created_at.tzinfo is None
    assert abs(utc_now() - leida.created_at) < timedelta(minutes=5)
    assert abs(utc_now() - usuario.updated_at) < timedelta(minutes=5)


def test_naive_dates_are_kept_as_utc(session, aviator):
    pedido = almacen.create_order(
        session,
        {"patientId": "u1", "totalAmount": "1", "date": "2024-06-01T10:00:00"},
        [{"productId": aviator.id}],
    )
    session.expire_all()

    assert almacen.get_order(session, pedido.id).date == datetime(2024, 6, 1, 10, 0)


def test_update_appointment_normalises_date(session):
    cita = almacen.create_appointment(session, {"patientId": "u1", "date": "2024-03-01T09:00:00"})

    almacen.update_appointment(session, cita.id, {"date": "2024-03-02T10:00:00Z"})
    session.expire_all()

    assert almacen.get_appointment(session, cita.id).date == datetime(2024, 3, 2, 10, 0)
