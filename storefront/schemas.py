from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Optional

from pydantic import AfterValidator, AliasChoices, BaseModel, EmailStr, Field, PositiveInt, field_validator
from pydantic.config import ConfigDict

from .aggregation import encode_image
from .models import OrderStatus

Money = Decimal


# accounts are keyed on the lower-cased address
Email = Annotated[EmailStr, AfterValidator(str.lower)]


# -------------------- accounts --------------------

class SignupRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: Email
    password: str = Field(..., min_length=1, max_length=128)
    confirm_password: str = Field(..., min_length=1, max_length=128, alias="confirmPassword")


class LoginRequest(BaseModel):
    email: Email
    password: str = Field(..., min_length=1, max_length=128)


class PasswordChange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(..., min_length=1, alias="currentPassword")
    new_password: str = Field(..., min_length=1, max_length=128, alias="newPassword")
    confirm_password: str = Field(..., min_length=1, max_length=128, alias="confirmPassword")


class AccountDelete(BaseModel):
    password: str = Field(..., min_length=1)


class UserRead(BaseModel):
    id: int
    email: str

    model_config = ConfigDict(from_attributes=True)


# -------------------- catalog --------------------

class CategoryRead(BaseModel):
    id: int
    key: str
    name: str

    model_config = ConfigDict(from_attributes=True)


class ProductCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(default="", max_length=10_000)
    price: Money = Field(..., ge=0, max_digits=10, decimal_places=2)
    category: Optional[str] = None
    is_new: bool = False


class ProductRead(BaseModel):
    id: int
    title: str
    description: str
    price: Money
    is_new: bool
    category_id: Optional[int] = None
    images: List[str] = []


# -------------------- cart --------------------

class CartAddRequest(BaseModel):
    user_id: PositiveInt
    item_id: PositiveInt
    quantity: PositiveInt
    # overrides the computed line total when given
    total_price: Optional[Money] = Field(default=None, ge=0)


class CartQuantityUpdate(BaseModel):
    quantity: PositiveInt


class CartLineRead(BaseModel):
    id: int
    user_id: int
    product_id: int
    quantity: int
    title: str
    description: str
    price: Money
    image: Optional[str] = None
    total_price: Money

    model_config = ConfigDict(from_attributes=True)

    @field_validator("image", mode="before")
    def image_as_data_uri(cls, v):
        if isinstance(v, (bytes, bytearray, memoryview)):
            return encode_image(bytes(v))
        return v


# -------------------- orders --------------------

class OrderLine(BaseModel):
    product_id: PositiveInt = Field(..., validation_alias=AliasChoices("product_id", "item_id"))
    quantity: PositiveInt
    price_at_purchase: Money = Field(..., ge=0)


class OrderPlacement(BaseModel):
    """Cart checkout: a user (or guest) and the lines being bought."""

    user_id: Optional[PositiveInt] = None
    items: List[OrderLine] = []
    total_price: Money = Field(..., ge=0)
    phone: Optional[str] = Field(default=None, max_length=50)
    location: Optional[str] = Field(default=None, max_length=255)
    email: Optional[Email] = None
    name: Optional[str] = Field(default=None, max_length=255)


class ProductOrderRequest(BaseModel):
    """Single product checkout, with delivery contact details."""

    product_id: PositiveInt
    quantity: PositiveInt
    total_price: Money = Field(..., ge=0)
    phone: str = Field(..., min_length=1, max_length=50)
    location: str = Field(..., min_length=1, max_length=255)
    name: str = Field(..., min_length=1, max_length=255)
    title: str = Field(..., min_length=1, max_length=255)
    email: Optional[Email] = None
    user_id: Optional[PositiveInt] = None


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderItemRead(BaseModel):
    id: int
    product_id: int
    quantity: int
    price_at_purchase: Money

    model_config = ConfigDict(from_attributes=True)


class OrderRead(BaseModel):
    id: int
    user_id: Optional[int] = None
    total_price: Money
    status: OrderStatus
    created_at: datetime
    phone: Optional[str] = None
    location: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    items: List[OrderItemRead] = []

    model_config = ConfigDict(from_attributes=True)
