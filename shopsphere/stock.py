from dataclasses import dataclass

from shopsphere.errors import ConflictError, NotFoundError, ValidationError
from shopsphere.models import Product


@dataclass
class StockLine:
    product_id: str
    quantity: int
    label: str = None


def ensure_stock(db, lines):
    """Check every line before anything is written.

    Returns the loaded products keyed by id. The first failing line aborts the
    whole operation, naming the product and its position.
    """
    if not lines:
        raise ValidationError("At least one item is required")

    requested = {}
    for line in lines:
        if line.quantity is None or line.quantity < 1:
            raise ValidationError(f"Quantity must be a positive integer for {line.label or line.product_id}")
        requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity

    products = {}
    for position, line in enumerate(lines, start=1):
        product = products.get(line.product_id) or db.get(Product, line.product_id)
        if product is None:
            raise NotFoundError(
                f"Product not found: {line.label or line.product_id}",
                product_id=line.product_id,
                line=position,
            )
        if product.stock < requested[line.product_id]:
            raise ConflictError(
                f"Insufficient stock for {product.name}",
                product_id=product.id,
                line=position,
                available=product.stock,
                requested=requested[line.product_id],
            )
        products[product.id] = product
    return products
