"""
Shopping cart: one cart document per user.

Lines hold a snapshot of name/price/image taken when the product was first
added; reads resolve each line's product against the live catalog.
"""
from typing import List, Optional

import structlog
from bson.objectid import ObjectId
from fastapi import APIRouter, Depends
from pydantic import Field
from pymongo.database import Database

from auth import Principal, get_current_user
from database import create_document, get_db, save_document, serialize_doc
from errors import CartItemNotFoundError, CartNotFoundError
from schemas import CamelModel, Cart, CartItem

logger = structlog.get_logger(__name__)

CATALOG_COLLECTIONS = ("products", "accessories", "full_marine_setups")


# ----------------------- Service -----------------------
def _resolve_products(db: Database, product_ids: List[str]) -> dict:
    ids = [ObjectId(p) for p in set(product_ids) if ObjectId.is_valid(p)]
    found = {}
    for name in CATALOG_COLLECTIONS:
        missing = [i for i in ids if str(i) not in found]
        if not missing:
            break
        for doc in db[name].find({"_id": {"$in": missing}}, {"reviews": 0}):
            found[str(doc["_id"])] = serialize_doc(doc)
    return found


def _present(db: Database, cart: dict) -> dict:
    out = serialize_doc(cart)
    products = _resolve_products(db, [line["product"] for line in cart.get("items", [])])
    items = []
    for line in out.get("items", []):
        line = dict(line)
        line["product_id"] = line["product"]
        line["product"] = products.get(line["product"])
        items.append(line)
    out["items"] = items
    return out


def _find_cart(db: Database, user_id: str) -> Optional[dict]:
    return db["carts"].find_one({"user": str(user_id)})


def get_cart(db: Database, user_id: str) -> dict:
    cart = _find_cart(db, user_id)
    if not cart:
        return {"items": []}
    return _present(db, cart)


def add_item(
    db: Database,
    user_id: str,
    product_id: str,
    name: Optional[str] = None,
    price: float = 0,
    image: Optional[str] = None,
    quantity: int = 1,
) -> dict:
    product_id = str(product_id)
    cart = _find_cart(db, user_id)
    line = CartItem(product=product_id, name=name, price=price or 0, image=image, quantity=quantity).model_dump()

    if not cart:
        cart = create_document(db, "carts", Cart(user=str(user_id), items=[line]))
        logger.info("cart_created", user_id=user_id, product_id=product_id, quantity=quantity)
        return _present(db, cart)

    existing = next((i for i in cart["items"] if i["product"] == product_id), None)
    if existing:
        existing["quantity"] += quantity
    else:
        cart["items"].append(line)

    save_document(db, "carts", cart)
    logger.info("cart_item_added", user_id=user_id, product_id=product_id, quantity=quantity)
    return _present(db, cart)


def set_quantity(db: Database, user_id: str, product_id: str, quantity: int) -> dict:
    cart = _find_cart(db, user_id)
    if not cart:
        raise CartNotFoundError()

    index = next((n for n, i in enumerate(cart["items"]) if i["product"] == str(product_id)), None)
    if index is None:
        raise CartItemNotFoundError()

    if quantity <= 0:
        cart["items"].pop(index)
    else:
        cart["items"][index]["quantity"] = quantity

    save_document(db, "carts", cart)
    return _present(db, cart)


def remove_item(db: Database, user_id: str, product_id: str) -> dict:
    cart = _find_cart(db, user_id)
    if not cart:
        raise CartNotFoundError()

    cart["items"] = [i for i in cart["items"] if i["product"] != str(product_id)]
    save_document(db, "carts", cart)
    return _present(db, cart)


def clear_cart(db: Database, user_id: str) -> None:
    db["carts"].delete_one({"user": str(user_id)})
    logger.info("cart_cleared", user_id=user_id)


# ----------------------- Routes -----------------------
router = APIRouter(prefix="/api/cart", tags=["cart"])


class AddToCartBody(CamelModel):
    product_id: str
    name: Optional[str] = None
    price: float = Field(0, ge=0)
    image: Optional[str] = None
    quantity: int = Field(1, ge=1)


class UpdateQuantityBody(CamelModel):
    quantity: int


@router.get("")
def read_cart(user: Principal = Depends(get_current_user), db: Database = Depends(get_db)):
    return get_cart(db, user.id)


@router.post("", status_code=201)
def add_to_cart(body: AddToCartBody, user: Principal = Depends(get_current_user), db: Database = Depends(get_db)):
    return add_item(db, user.id, body.product_id, body.name, body.price, body.image, body.quantity)


@router.put("/{product_id}")
def update_cart_item(
    product_id: str,
    body: UpdateQuantityBody,
    user: Principal = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return set_quantity(db, user.id, product_id, body.quantity)


@router.delete("/{product_id}")
def delete_cart_item(product_id: str, user: Principal = Depends(get_current_user), db: Database = Depends(get_db)):
    return remove_item(db, user.id, product_id)


@router.delete("")
def delete_cart(user: Principal = Depends(get_current_user), db: Database = Depends(get_db)):
    clear_cart(db, user.id)
    return {"message": "Cart cleared"}
