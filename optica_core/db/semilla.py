# optica_core/db/semilla.py
# Datos de ejemplo para desarrollo: solo si el catálogo está vacío.
from decimal import Decimal
from typing import List

from sqlmodel import Session, select

from optica_core.db import almacen
from optica_core.db.modelos import Product, ProductCategory
from optica_core.esquemas import ProductCreate
from optica_core.logging_config import get_logger

logger = get_logger(__name__)

PRODUCTOS_INICIALES = [
    ProductCreate(
        name="Ray-Ban Aviator",
        description="Armazón clásico estilo piloto",
        category=ProductCategory.frame,
        brand="Ray-Ban",
        model="RB3025",
        price=Decimal("150.00"),
        stock=10,
        image_url="https://images.unsplash.com/photo-1572635196237-14b3f281503f?w=800&q=80",
    ),
    ProductCreate(
        name="Blue Light Blockers",
        description="Cristales con filtro de luz azul para pantallas",
        category=ProductCategory.lens,
        brand="OptiGuard",
        model="BL-100",
        price=Decimal("50.00"),
        stock=50,
        image_url="https://images.unsplash.com/photo-1577803645773-f96470509666?w=800&q=80",
    ),
    ProductCreate(
        name="Contact Lens Solution",
        description="Solución multipropósito para lentes de contacto",
        category=ProductCategory.accessory,
        brand="BioTrue",
        model="BT-300",
        price=Decimal("15.00"),
        stock=100,
        image_url="https://images.unsplash.com/photo-1588643542263-23963286b976?w=800&q=80",
    ),
]


def seed_products(session: Session) -> List[Product]:
    """Inserta el catálogo inicial. Devuelve lo insertado (vacío si ya había productos)."""
    if session.exec(select(Product.id).limit(1)).first() is not None:
        return []

    creados = [almacen.create_product(session, p) for p in PRODUCTOS_INICIALES]
    logger.info("catalogo_sembrado", productos=len(creados))
    return creados
