import logging
from typing import Iterable, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models, schemas
from .aggregation import fold_images
from .auth import hash_password, verify_password
from .errors import AuthError, ConflictError, NotFoundError, ValidationError, translate_db_error
from .utils import escape_like, round_amount, sanitize_text

logger = logging.getLogger(__name__)

CATEGORY_NAMES = {
    models.CategoryKey.electronics: "Electronics",
    models.CategoryKey.clothing: "Clothing",
    models.CategoryKey.home: "Home & Living",
    models.CategoryKey.beauty: "Beauty",
    models.CategoryKey.groceries: "Groceries",
}


def _commit(db: Session, conflict_message: str = "conflict"):
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise translate_db_error(e, conflict_message) from e


# -------------------- users --------------------

def create_user(db: Session, signup: schemas.SignupRequest) -> models.User:
    if signup.password != signup.confirm_password:
        raise ValidationError("Passwords do not match")

    existing = db.scalar(select(models.User.id).where(models.User.email == signup.email))
    if existing is not None:
        raise ConflictError("Email already registered")

    user = models.User(email=signup.email, password_hash=hash_password(signup.password))
    db.add(user)
    # a concurrent signup can still win the race; the unique index decides
    _commit(db, "Email already registered")
    db.refresh(user)
    logger.info("registered user %s", user.id)
    return user


def authenticate(db: Session, email: str, password: str) -> models.User:
    user = db.scalar(select(models.User).where(models.User.email == email))
    if user is None or not verify_password(password, user.password_hash):
        raise AuthError("Invalid email or password")
    return user


def get_user(db: Session, user_id: int) -> models.User:
    user = db.get(models.User, user_id)
    if user is None:
        raise NotFoundError("user not found")
    return user


def change_password(db: Session, user_id: int, change: schemas.PasswordChange) -> models.User:
    if change.new_password != change.confirm_password:
        raise ValidationError("Passwords do not match")
    user = get_user(db, user_id)
    if not verify_password(change.current_password, user.password_hash):
        raise AuthError("Invalid email or password")
    user.password_hash = hash_password(change.new_password)
    _commit(db)
    return user


def delete_user(db: Session, user_id: int, password: str) -> bool:
    user = get_user(db, user_id)
    if not verify_password(password, user.password_hash):
        raise AuthError("Invalid email or password")
    db.delete(user)
    _commit(db)
    logger.info("deleted user %s", user_id)
    return True


# -------------------- categories --------------------

def ensure_categories(db: Session) -> None:
    """Insert any missing rows for the fixed category set."""
    present = set(db.scalars(select(models.Category.key)).all())
    for key, name in CATEGORY_NAMES.items():
        if key.value not in present:
            db.add(models.Category(key=key.value, name=name))
    _commit(db)


def list_categories(db: Session) -> List[models.Category]:
    return list(db.scalars(select(models.Category).order_by(models.Category.id)).all())


def get_category(db: Session, key: models.CategoryKey) -> models.Category:
    category = db.scalar(select(models.Category).where(models.Category.key == key.value))
    if category is None:
        raise NotFoundError("category not found")
    return category


def parse_category_key(value: str) -> models.CategoryKey:
    try:
        return models.CategoryKey(value.strip().lower())
    except ValueError:
        raise ValidationError(f"unknown category: {value!r}") from None


# -------------------- products --------------------

def _product_rows(db: Session, *criteria) -> Iterable[dict]:
    stmt = (
        select(
            models.Product.id,
            models.Product.title,
            models.Product.description,
            models.Product.price,
            models.Product.is_new,
            models.Product.category_id,
            models.ProductImage.data.label("image"),
        )
        .outerjoin(models.ProductImage, models.ProductImage.product_id == models.Product.id)
        .where(*criteria)
        .order_by(models.Product.id, models.ProductImage.id)
    )
    return (dict(row) for row in db.execute(stmt).mappings())


def create_product(db: Session, product: schemas.ProductCreate, images: List[bytes]) -> models.Product:
    if not images:
        raise ValidationError("No images uploaded")
    title = sanitize_text(product.title)
    if not title:
        raise ValidationError("title is required")

    category_id = None
    if product.category:
        category_id = get_category(db, parse_category_key(product.category)).id

    db_product = models.Product(
        title=title,
        description=sanitize_text(product.description),
        price=round_amount(product.price),
        is_new=product.is_new,
        category_id=category_id,
        images=[models.ProductImage(data=data) for data in images],
    )
    db.add(db_product)
    _commit(db)
    db.refresh(db_product)
    logger.info("created product %s with %d image(s)", db_product.id, len(images))
    return db_product


def list_products(db: Session, category_id: Optional[int] = None, search: Optional[str] = None) -> List[dict]:
    """Products with nested images, optionally narrowed by category and/or search text.

    Both filters are independent and combine with AND.
    """
    criteria = []
    if category_id is not None:
        criteria.append(models.Product.category_id == category_id)
    term = sanitize_text(search)
    if term:
        pattern = f"%{escape_like(term)}%"
        criteria.append(
            or_(
                models.Product.title.ilike(pattern, escape="\\"),
                models.Product.description.ilike(pattern, escape="\\"),
            )
        )
    return fold_images(_product_rows(db, *criteria))


def get_product(db: Session, product_id: int) -> dict:
    folded = fold_images(_product_rows(db, models.Product.id == product_id))
    if not folded:
        raise NotFoundError("product not found")
    return folded[0]


def delete_product(db: Session, product_id: int, category: Optional[models.CategoryKey] = None) -> bool:
    product = db.get(models.Product, product_id)
    if product is None:
        raise NotFoundError("product not found")
    if category is not None and product.category_id != get_category(db, category).id:
        raise NotFoundError("product not found in category")
    # images cascade with the product; order history keeps it alive
    db.delete(product)
    _commit(db, "product is referenced by existing orders")
    logger.info("deleted product %s", product_id)
    return True
