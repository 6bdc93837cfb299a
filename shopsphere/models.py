import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from shopsphere.config import CURRENCY
from shopsphere.database import Base


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _values(enum_cls):
    return [member.value for member in enum_cls]


class OrderStatus(str, enum.Enum):
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    IN_TRANSIT = "In Transit"
    OUT_FOR_DELIVERY = "Out for Delivery"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    MOBILE_MONEY = "mobile_money"
    USSD = "ussd"


class Store(Base):
    __tablename__ = "stores"

    id = Column(String, primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    owner_id = Column(String, nullable=False, index=True)
    owner_email = Column(String, nullable=False)     # out-of-stock alerts go here

    products = relationship("Product", back_populates="store")


class Product(Base):
    __tablename__ = "products"

    id = Column(String, primary_key=True, default=new_id)
    store_id = Column(String, ForeignKey("stores.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(String, default="")
    price = Column(Float, nullable=False)
    image = Column(String, default="/default-product.jpg")
    stock = Column(Integer, nullable=False, default=0)   # may dip below 0 only via racing decrements

    store = relationship("Store", back_populates="products")


class Order(Base):
    __tablename__ = "orders"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    shipping_info = Column(JSON, nullable=False)
    payment_info = Column(JSON)                      # {id, status, reference, channel, amount}
    items_price = Column(Float, nullable=False, default=0.0)
    tax_price = Column(Float, nullable=False, default=0.0)
    shipping_price = Column(Float, nullable=False, default=0.0)
    total_price = Column(Float, nullable=False, default=0.0)
    status = Column(
        Enum(OrderStatus, values_callable=_values, name="order_status"),
        nullable=False,
        default=OrderStatus.PROCESSING,
    )
    is_paid = Column(Boolean, nullable=False, default=False)
    paid_at = Column(DateTime)
    delivered_at = Column(DateTime)
    tracking_number = Column(String)
    courier = Column(String)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
    )
    payments = relationship("Payment", back_populates="order")


class OrderItem(Base):
    """Line snapshot taken when the order is placed."""

    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(String, ForeignKey("products.id"), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Float, nullable=False)
    image = Column(String, nullable=False)

    order = relationship("Order", back_populates="items")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String, primary_key=True, default=new_id)
    order_id = Column(String, ForeignKey("orders.id"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    email = Column(String, nullable=False)           # payer, reused for saved-card charges
    amount = Column(Float, nullable=False)
    currency = Column(String, nullable=False, default=CURRENCY)
    method = Column(
        Enum(PaymentMethod, values_callable=_values, name="payment_method"),
        nullable=False,
        default=PaymentMethod.CARD,
    )
    status = Column(
        Enum(PaymentStatus, values_callable=_values, name="payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    transaction_reference = Column(String, unique=True, nullable=False, index=True)
    authorization_code = Column(String)
    paid_at = Column(DateTime)
    details = Column("metadata", JSON, default=dict)   # audit only, never drives business rules
    created_at = Column(DateTime, nullable=False, default=utcnow)

    order = relationship("Order", back_populates="payments")


class Cart(Base):
    __tablename__ = "carts"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, unique=True, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
    )


class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    cart_id = Column(String, ForeignKey("carts.id"), nullable=False, index=True)
    product_id = Column(String, ForeignKey("products.id"), nullable=False)
    name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Float, nullable=False)
    image = Column(String, nullable=False)

    cart = relationship("Cart", back_populates="items")
