from fastapi import APIRouter, Depends
from sqlalchemy import select

from shopsphere import database
from shopsphere.auth import CurrentUser, get_current_user
from shopsphere.errors import AuthorizationError, NotFoundError
from shopsphere.models import Product, Store
from shopsphere.schemas import ProductRequest, StoreRequest

router = APIRouter()


def serialize_product(product: Product) -> dict:
    return {
        "id": product.id,
        "store_id": product.store_id,
        "name": product.name,
        "description": product.description,
        "price": product.price,
        "image": product.image,
        "stock": product.stock,
    }


@router.post("/stores", status_code=201)
def create_store_api(request: StoreRequest, user: CurrentUser = Depends(get_current_user)):
    db = database.SessionLocal()
    try:
        store = Store(name=request.name, owner_id=user.id, owner_email=request.owner_email or user.email)
        db.add(store)
        db.commit()
        data = {"id": store.id, "name": store.name, "owner_email": store.owner_email}
    finally:
        db.close()

    return {"status": "success", "message": "Store created", "data": data}


@router.post("/stores/{store_id}/products", status_code=201)
def create_product_api(store_id: str, request: ProductRequest, user: CurrentUser = Depends(get_current_user)):
    db = database.SessionLocal()
    try:
        store = db.get(Store, store_id)
        if store is None:
            raise NotFoundError("Store not found")
        if store.owner_id != user.id and not user.is_admin:
            raise AuthorizationError("Unauthorized")

        product = Product(store_id=store.id, **request.model_dump(exclude_none=True))
        db.add(product)
        db.commit()
        data = serialize_product(product)
    finally:
        db.close()

    return {"status": "success", "message": "Product created", "data": data}


@router.get("/products")
def list_products_api(store_id: str = None):
    db = database.SessionLocal()
    try:
        query = select(Product).order_by(Product.name)
        if store_id:
            query = query.where(Product.store_id == store_id)
        data = [serialize_product(product) for product in db.execute(query).scalars()]
    finally:
        db.close()

    return {"status": "success", "count": len(data), "data": data}


@router.get("/products/{product_id}")
def get_product_api(product_id: str):
    db = database.SessionLocal()
    try:
        product = db.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product not found")
        data = serialize_product(product)
    finally:
        db.close()

    return {"status": "success", "data": data}
