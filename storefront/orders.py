"""Order placement and order lifecycle.

:func:`place_order` is the one multi-statement write in the app. The order
header, its line items and the purge of the buyer's cart commit together or
not at all.
"""
import logging
from typing import List, Optional

from sqlalchemy import insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from . import models, schemas
from .cart import clear_cart
from .errors import ConflictError, NotFoundError, TransactionFailure, ValidationError, is_transient, translate_db_error
from .utils import round_amount

logger = logging.getLogger(__name__)

# pending is the only state an order can leave
ALLOWED_TRANSITIONS = {
    models.OrderStatus.pending: {models.OrderStatus.delivered, models.OrderStatus.cancelled},
    models.OrderStatus.delivered: set(),
    models.OrderStatus.cancelled: set(),
}


def place_order(db: Session, placement: schemas.OrderPlacement) -> models.Order:
    """Write the order header and its items, and empty the buyer's cart.

    The session must arrive clean: the writes join its current transaction,
    which is committed or rolled back as a whole, so pending changes left by
    the caller are refused rather than committed alongside the order.
    """
    if not placement.items:
        raise ValidationError("order must contain at least one item")
    if db.new or db.dirty or db.deleted:
        logger.error("refusing to place order on a session with pending changes")
        raise TransactionFailure("failed to place order")

    try:
        order = models.Order(
            user_id=placement.user_id,
            total_price=round_amount(placement.total_price),
            status=models.OrderStatus.pending,
            phone=placement.phone,
            location=placement.location,
            email=placement.email,
            name=placement.name,
        )
        db.add(order)
        db.flush()

        db.execute(
            insert(models.OrderItem),
            [
                {
                    "order_id": order.id,
                    "product_id": line.product_id,
                    "quantity": line.quantity,
                    "price_at_purchase": round_amount(line.price_at_purchase),
                }
                for line in placement.items
            ],
        )

        purged = 0
        if placement.user_id is not None:
            purged = clear_cart(db, placement.user_id)

        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("order placement rolled back (user=%s, lines=%d)", placement.user_id, len(placement.items))
        if is_transient(e):
            raise translate_db_error(e) from e
        raise TransactionFailure("failed to place order") from e

    logger.info(
        "placed order %s for user %s: %d line(s), %d cart line(s) cleared",
        order.id,
        placement.user_id,
        len(placement.items),
        purged,
    )
    return get_order(db, order.id)


def placement_for_product(request: schemas.ProductOrderRequest) -> schemas.OrderPlacement:
    """Single-product checkout expressed as a one-line placement."""
    unit_price = round_amount(request.total_price / request.quantity)
    return schemas.OrderPlacement(
        user_id=request.user_id,
        items=[
            schemas.OrderLine(
                product_id=request.product_id,
                quantity=request.quantity,
                price_at_purchase=unit_price,
            )
        ],
        total_price=request.total_price,
        phone=request.phone,
        location=request.location,
        email=request.email,
        name=request.name,
    )


def get_order(db: Session, order_id: int) -> models.Order:
    order = db.scalar(
        select(models.Order)
        .where(models.Order.id == order_id)
        .options(selectinload(models.Order.items))
    )
    if order is None:
        raise NotFoundError("order not found")
    return order


def list_orders(db: Session, user_id: Optional[int] = None) -> List[models.Order]:
    stmt = select(models.Order).options(selectinload(models.Order.items)).order_by(models.Order.id)
    if user_id is not None:
        stmt = stmt.where(models.Order.user_id == user_id)
    return list(db.scalars(stmt).all())


def update_order_status(db: Session, order_id: int, status: models.OrderStatus) -> models.Order:
    order = get_order(db, order_id)
    if status == order.status:
        return order
    if status not in ALLOWED_TRANSITIONS[order.status]:
        raise ConflictError(f"cannot change order from {order.status.value} to {status.value}")
    order.status = status
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise translate_db_error(e) from e
    logger.info("order %s is now %s", order_id, status.value)
    return get_order(db, order_id)


def delete_order(db: Session, order_id: int) -> bool:
    order = get_order(db, order_id)
    # items go with it
    db.delete(order)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise translate_db_error(e) from e
    return True
