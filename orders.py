"""
Orders.

An order is a snapshot: its lines are copied from the submission and never
follow later catalog changes. Only the payment, delivery and status fields
change after creation.
"""
from typing import Any, Dict, Iterable, List, Optional

import structlog
from fastapi import APIRouter, Body, Depends
from pymongo import DESCENDING
from pymongo.database import Database

from auth import Principal, get_current_user, require_admin
from database import create_document, get_db, parse_object_id, save_document, serialize_doc, utcnow
from errors import EmptyOrderError, ForbiddenError, NotFoundError, ValidationError
from schemas import ORDER_STATUSES, CamelModel, Order, OrderItem, OrderStatus, ShippingAddress

logger = structlog.get_logger(__name__)


# ----------------------- Pricing -----------------------
def _line(item) -> dict:
    if isinstance(item, OrderItem):
        return item.model_dump()
    return OrderItem.model_validate(item).model_dump()


def compute_items_price(order_items: Optional[Iterable[dict]]) -> float:
    """Sum of price * qty; a line missing either value contributes nothing."""
    return sum((item.get("price") or 0) * (item.get("qty") or 0) for item in (order_items or []))


# ----------------------- Service -----------------------
def _load(db: Database, order_id: str) -> dict:
    order = db["orders"].find_one({"_id": parse_object_id(order_id, "Order")})
    if not order:
        raise NotFoundError("Order not found")
    return order


def create_order(
    db: Database,
    user_id: str,
    order_items: Optional[List[Any]],
    shipping_address: Optional[dict] = None,
    payment_method: Optional[str] = None,
    items_price: Optional[float] = None,
    tax_price: Optional[float] = None,
    shipping_price: Optional[float] = None,
    total_price: Optional[float] = None,
    status: Optional[str] = None,
) -> dict:
    # Only an explicit empty list is rejected; a missing list yields an
    # order without lines and zero prices.
    if order_items is not None and len(order_items) == 0:
        raise EmptyOrderError()
    if status is not None and status not in ORDER_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(ORDER_STATUSES)}")

    lines = [_line(item) for item in (order_items or [])]

    if not items_price:
        items_price = compute_items_price(lines)
    shipping_price = shipping_price or 0
    if not total_price:
        total_price = items_price + shipping_price

    if isinstance(shipping_address, ShippingAddress):
        shipping_address = shipping_address.model_dump()

    order = Order(
        user=str(user_id),
        order_items=lines,
        shipping_address=shipping_address,
        payment_method=payment_method,
        items_price=items_price,
        tax_price=tax_price or 0,
        shipping_price=shipping_price,
        total_price=total_price,
        status=status or "pending",
    )
    if order.status == "delivered":
        order.is_delivered = True
        order.delivered_at = utcnow()
    doc = create_document(db, "orders", order)
    logger.info(
        "order_created",
        order_id=str(doc["_id"]),
        user_id=user_id,
        lines=len(lines),
        items_price=items_price,
        total_price=total_price,
    )
    return doc


def mark_paid(db: Database, order_id: str, payment_result: Optional[dict]) -> dict:
    order = _load(db, order_id)
    order["is_paid"] = True
    order["paid_at"] = utcnow()
    order["payment_result"] = payment_result
    save_document(db, "orders", order)
    logger.info("order_paid", order_id=order_id)
    return order


def mark_delivered(db: Database, order_id: str) -> dict:
    order = _load(db, order_id)
    order["is_delivered"] = True
    order["delivered_at"] = utcnow()
    order["status"] = "delivered"
    save_document(db, "orders", order)
    logger.info("order_delivered", order_id=order_id)
    return order


def set_status(db: Database, order_id: str, status: str) -> dict:
    if status not in ORDER_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(ORDER_STATUSES)}")

    order = _load(db, order_id)
    order["status"] = status
    if status == "delivered":
        order["is_delivered"] = True
        order["delivered_at"] = utcnow()
    elif status in ("pending", "confirmed"):
        order["is_delivered"] = False
        order["delivered_at"] = None

    save_document(db, "orders", order)
    logger.info("order_status_changed", order_id=order_id, status=status)
    return order


def _owner_summary(db: Database, user_id: str, fields: tuple) -> Optional[dict]:
    owner = db["users"].find_one({"_id": parse_object_id(user_id, "User")}, {f: 1 for f in fields})
    return serialize_doc(owner) if owner else None


def get_order(db: Database, order_id: str, requester_id: str, requester_is_admin: bool) -> dict:
    order = _load(db, order_id)
    if order["user"] != str(requester_id) and not requester_is_admin:
        raise ForbiddenError("Not authorized to view this order")

    out = serialize_doc(order)
    out["user"] = _owner_summary(db, order["user"], ("name", "email")) or {"id": order["user"]}
    return out


def list_my_orders(db: Database, user_id: str) -> List[dict]:
    return [serialize_doc(o) for o in db["orders"].find({"user": str(user_id)})]


def list_orders(db: Database) -> List[dict]:
    orders = list(db["orders"].find({}).sort("created_at", DESCENDING))
    owners = {}
    out = []
    for order in orders:
        owner_id = order["user"]
        if owner_id not in owners:
            owners[owner_id] = _owner_summary(db, owner_id, ("name",))
        item = serialize_doc(order)
        item["user"] = owners[owner_id] or {"id": owner_id}
        out.append(item)
    return out


# ----------------------- Routes -----------------------
router = APIRouter(prefix="/api/orders", tags=["orders"])


class OrderCreateBody(CamelModel):
    order_items: Optional[List[OrderItem]] = None
    shipping_address: Optional[ShippingAddress] = None
    payment_method: Optional[str] = None
    items_price: Optional[float] = None
    tax_price: Optional[float] = None
    shipping_price: Optional[float] = None
    total_price: Optional[float] = None
    status: Optional[OrderStatus] = None


class OrderStatusBody(CamelModel):
    status: str


@router.post("", status_code=201)
def create_order_route(body: OrderCreateBody, user: Principal = Depends(get_current_user), db: Database = Depends(get_db)):
    if body.status is not None and not user.is_admin:
        raise ForbiddenError("Not authorized to set order status")
    order = create_order(
        db,
        user.id,
        body.order_items,
        body.shipping_address,
        body.payment_method,
        body.items_price,
        body.tax_price,
        body.shipping_price,
        body.total_price,
        body.status,
    )
    return serialize_doc(order)


@router.get("/myorders")
def my_orders(user: Principal = Depends(get_current_user), db: Database = Depends(get_db)):
    return list_my_orders(db, user.id)


@router.get("")
def all_orders(admin: Principal = Depends(require_admin), db: Database = Depends(get_db)):
    return list_orders(db)


@router.get("/{order_id}")
def order_detail(order_id: str, user: Principal = Depends(get_current_user), db: Database = Depends(get_db)):
    return get_order(db, order_id, user.id, user.is_admin)


@router.put("/{order_id}/pay")
def pay_order(
    order_id: str,
    payment_result: Optional[Dict[str, Any]] = Body(None),
    user: Principal = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return serialize_doc(mark_paid(db, order_id, payment_result))


@router.put("/{order_id}/deliver")
def deliver_order(order_id: str, admin: Principal = Depends(require_admin), db: Database = Depends(get_db)):
    return serialize_doc(mark_delivered(db, order_id))


@router.put("/{order_id}/status")
def update_order_status(
    order_id: str,
    body: OrderStatusBody,
    admin: Principal = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return serialize_doc(set_status(db, order_id, body.status))
