from typing import List, Optional

from pydantic import BaseModel, Field

from shopsphere.models import OrderStatus
from shopsphere.stock import StockLine


class ShippingInfo(BaseModel):
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)


class OrderLine(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)


class OrderRequest(BaseModel):
    items: List[OrderLine] = Field(..., min_length=1)
    shipping_info: ShippingInfo
    tax_price: float = Field(0.0, ge=0)
    shipping_price: float = Field(0.0, ge=0)

    def stock_lines(self):
        return [StockLine(line.product_id, line.quantity) for line in self.items]


class StatusUpdateRequest(BaseModel):
    status: Optional[OrderStatus] = None
    tracking_number: Optional[str] = None
    courier: Optional[str] = None


class CartQuantity(BaseModel):
    quantity: int


class CheckoutRequest(BaseModel):
    shipping_info: ShippingInfo
    tax_price: float = Field(0.0, ge=0)
    shipping_price: float = Field(0.0, ge=0)


class StoreRequest(BaseModel):
    name: str = Field(..., min_length=1)
    owner_email: Optional[str] = None


class ProductRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    price: float = Field(..., gt=0)
    image: Optional[str] = None
    stock: int = Field(0, ge=0)


class PaymentRequest(BaseModel):
    save_card: bool = False


class ChargeRequest(BaseModel):
    amount: Optional[float] = None
