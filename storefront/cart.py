"""Cart lines, one per (user, product).

Adding a product that is already in the cart bumps the existing line instead
of inserting a second one. The merge is a single ``INSERT .. ON CONFLICT``
(or ``ON DUPLICATE KEY``) statement keyed on the ``(user_id, product_id)``
unique constraint, so concurrent adds for the same pair cannot race each other
into duplicate rows.
"""
import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models, schemas
from .errors import NotFoundError, ShopError, translate_db_error
from .utils import round_amount

logger = logging.getLogger(__name__)

_UPSERT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
    "mysql": mysql.insert,
    "mariadb": mysql.insert,
}


def _snapshot(db: Session, product_id: int) -> dict:
    product = db.get(models.Product, product_id)
    if product is None:
        raise NotFoundError("product not found")
    first_image = db.scalar(
        select(models.ProductImage.data)
        .where(models.ProductImage.product_id == product_id)
        .order_by(models.ProductImage.id)
        .limit(1)
    )
    return {
        "title": product.title,
        "description": product.description,
        "price": product.price,
        "image": first_image,
    }


def _upsert_statement(dialect: str, values: dict, total_override: Optional[Decimal]):
    table = models.CartLine.__table__
    insert = _UPSERT_INSERTS.get(dialect)
    if insert is None:
        logger.error("cart upsert is not supported on the %s dialect", dialect)
        raise ShopError()
    stmt = insert(table).values(**values)

    if dialect in ("mysql", "mariadb"):
        added = stmt.inserted.quantity
    else:
        added = stmt.excluded.quantity
    new_quantity = table.c.quantity + added
    new_total = total_override if total_override is not None else new_quantity * table.c.price
    # total first: MySQL evaluates SET left to right against the updated row
    changes = [("total_price", new_total), ("quantity", new_quantity)]

    if dialect in ("mysql", "mariadb"):
        return stmt.on_duplicate_key_update(changes)
    return stmt.on_conflict_do_update(index_elements=[table.c.user_id, table.c.product_id], set_=dict(changes))


def add_to_cart(db: Session, item: schemas.CartAddRequest) -> models.CartLine:
    """Insert a cart line or increase the quantity of the existing one."""
    # both lookups raise NotFoundError before any write
    if db.get(models.User, item.user_id) is None:
        raise NotFoundError("user not found")
    snapshot = _snapshot(db, item.item_id)
    override = round_amount(item.total_price) if item.total_price is not None else None
    values = dict(
        snapshot,
        user_id=item.user_id,
        product_id=item.item_id,
        quantity=item.quantity,
        total_price=override if override is not None else round_amount(snapshot["price"] * item.quantity),
    )
    stmt = _upsert_statement(db.get_bind().dialect.name, values, override)
    try:
        db.execute(stmt)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("cart upsert failed for user %s product %s", item.user_id, item.item_id)
        raise translate_db_error(e) from e
    return get_line(db, item.user_id, item.item_id)


def get_line(db: Session, user_id: int, product_id: int) -> models.CartLine:
    line = db.scalar(
        select(models.CartLine)
        .where(models.CartLine.user_id == user_id, models.CartLine.product_id == product_id)
    )
    if line is None:
        raise NotFoundError("item not in cart")
    return line


def get_cart(db: Session, user_id: int) -> List[models.CartLine]:
    return list(
        db.scalars(
            select(models.CartLine).where(models.CartLine.user_id == user_id).order_by(models.CartLine.id)
        ).all()
    )


def set_quantity(db: Session, user_id: int, product_id: int, quantity: int) -> models.CartLine:
    line = get_line(db, user_id, product_id)
    line.quantity = quantity
    line.total_price = round_amount(line.price * quantity)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise translate_db_error(e) from e
    db.refresh(line)
    return line


def remove_from_cart(db: Session, user_id: int, product_id: int) -> bool:
    result = db.execute(
        delete(models.CartLine).where(
            models.CartLine.user_id == user_id, models.CartLine.product_id == product_id
        )
    )
    if result.rowcount == 0:
        db.rollback()
        raise NotFoundError("item not in cart")
    db.commit()
    return True


def clear_cart(db: Session, user_id: int) -> int:
    """Delete every line for ``user_id`` without committing; returns the row count."""
    return db.execute(delete(models.CartLine).where(models.CartLine.user_id == user_id)).rowcount
