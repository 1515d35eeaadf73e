"""Tests for order creation, pricing and status transitions."""

import pytest

import orders
from errors import EmptyOrderError, ForbiddenError, NotFoundError, ValidationError

LINES = [
    {"product": "p1", "name": "Clownfish", "price": 10, "qty": 2},
    {"product": "p2", "name": "Live rock", "price": 5, "qty": 1},
]


class TestPricing:
    def test_items_price_is_sum_of_lines(self):
        assert orders.compute_items_price(LINES) == 25

    def test_missing_price_or_qty_counts_as_zero(self):
        lines = [{"price": 10}, {"qty": 3}, {"price": 2, "qty": 3}]
        assert orders.compute_items_price(lines) == 6


class TestCreateOrder:
    def test_derives_items_and_total(self, db):
        order = orders.create_order(db, "user-1", LINES, shipping_price=5)

        assert order["items_price"] == 25
        assert order["total_price"] == 30
        assert order["tax_price"] == 0
        assert order["shipping_price"] == 5

    def test_tax_is_not_added_to_derived_total(self, db):
        order = orders.create_order(db, "user-1", LINES, tax_price=3, shipping_price=5)
        assert order["tax_price"] == 3
        assert order["total_price"] == 30

    def test_explicit_prices_are_kept(self, db):
        order = orders.create_order(db, "user-1", LINES, items_price=100, total_price=123)
        assert order["items_price"] == 100
        assert order["total_price"] == 123

    def test_zero_prices_are_derived(self, db):
        order = orders.create_order(db, "user-1", LINES, items_price=0, total_price=0)
        assert order["items_price"] == 25
        assert order["total_price"] == 25

    def test_initial_state(self, db):
        order = orders.create_order(db, "user-1", LINES, {"address": "1 Reef Rd", "city": "Sydney"}, "PayPal")
        stored = db["orders"].find_one({"_id": order["_id"]})

        assert stored["user"] == "user-1"
        assert stored["is_paid"] is False
        assert stored["is_delivered"] is False
        assert stored["status"] == "pending"
        assert stored["payment_method"] == "PayPal"
        assert stored["shipping_address"]["city"] == "Sydney"
        assert stored["created_at"] is not None

    def test_caller_supplied_status(self, db):
        order = orders.create_order(db, "user-1", LINES, status="confirmed")
        assert order["status"] == "confirmed"
        assert order["is_delivered"] is False

    def test_initial_delivered_status_sets_delivery_flags(self, db):
        order = orders.create_order(db, "user-1", LINES, status="delivered")
        stored = db["orders"].find_one({"_id": order["_id"]})

        assert stored["status"] == "delivered"
        assert stored["is_delivered"] is True
        assert stored["delivered_at"] is not None

    def test_empty_items_rejected(self, db):
        with pytest.raises(EmptyOrderError):
            orders.create_order(db, "user-1", [])
        assert db["orders"].count_documents({}) == 0

    def test_absent_items_are_not_rejected(self, db):
        # Only an explicit empty list is refused; a missing list goes through.
        order = orders.create_order(db, "user-1", None)
        assert order["order_items"] == []
        assert order["items_price"] == 0
        assert order["total_price"] == 0

    def test_lines_are_a_snapshot(self, db):
        lines = [dict(line) for line in LINES]
        order = orders.create_order(db, "user-1", lines)
        lines[0]["price"] = 999

        stored = db["orders"].find_one({"_id": order["_id"]})
        assert stored["order_items"][0]["price"] == 10


class TestTransitions:
    @pytest.fixture()
    def order_id(self, db):
        return str(orders.create_order(db, "user-1", LINES)["_id"])

    def test_mark_paid(self, db, order_id):
        payload = {"id": "PAY-1", "status": "COMPLETED", "payer": {"email_address": "a@b.com"}}
        order = orders.mark_paid(db, order_id, payload)

        assert order["is_paid"] is True
        assert order["paid_at"] is not None
        assert db["orders"].find_one({"_id": order["_id"]})["payment_result"] == payload

    def test_mark_paid_unknown_order(self, db):
        with pytest.raises(NotFoundError):
            orders.mark_paid(db, "64b7f0c2a1b2c3d4e5f60718", {})

    def test_mark_delivered(self, db, order_id):
        order = orders.mark_delivered(db, order_id)
        assert order["is_delivered"] is True
        assert order["delivered_at"] is not None
        assert order["status"] == "delivered"

    def test_status_delivered_then_pending(self, db, order_id):
        order = orders.set_status(db, order_id, "delivered")
        assert order["is_delivered"] is True
        assert order["delivered_at"] is not None

        order = orders.set_status(db, order_id, "pending")
        assert order["is_delivered"] is False
        assert order["delivered_at"] is None

    def test_status_confirmed_clears_delivery(self, db, order_id):
        orders.set_status(db, order_id, "delivered")
        order = orders.set_status(db, order_id, "confirmed")
        assert order["is_delivered"] is False

    def test_other_status_leaves_delivery_untouched(self, db, order_id):
        orders.set_status(db, order_id, "delivered")
        order = orders.set_status(db, order_id, "cancelled")
        assert order["status"] == "cancelled"
        assert order["is_delivered"] is True
        assert order["delivered_at"] is not None

    def test_unknown_status(self, db, order_id):
        with pytest.raises(ValidationError):
            orders.set_status(db, order_id, "teleported")


class TestReads:
    def test_get_order_owner_and_admin(self, db, make_user):
        owner_id, _ = make_user("Marlin")
        admin_id, _ = make_user("Admin", is_admin=True)
        order_id = str(orders.create_order(db, owner_id, LINES)["_id"])

        assert orders.get_order(db, order_id, owner_id, False)["user"]["name"] == "Marlin"
        assert orders.get_order(db, order_id, admin_id, True)["id"] == order_id

    def test_get_order_forbidden_for_other_user(self, db, make_user):
        owner_id, _ = make_user("Marlin")
        other_id, _ = make_user("Bruce")
        order_id = str(orders.create_order(db, owner_id, LINES)["_id"])

        with pytest.raises(ForbiddenError):
            orders.get_order(db, order_id, other_id, False)

    def test_get_order_missing(self, db):
        with pytest.raises(NotFoundError):
            orders.get_order(db, "64b7f0c2a1b2c3d4e5f60718", "user-1", True)

    def test_list_my_orders(self, db):
        orders.create_order(db, "user-1", LINES)
        orders.create_order(db, "user-2", LINES)
        orders.create_order(db, "user-1", LINES)
        assert len(orders.list_my_orders(db, "user-1")) == 2

    def test_list_orders_newest_first(self, db, make_user):
        user_id, _ = make_user("Marlin")
        first = orders.create_order(db, user_id, LINES)
        second = orders.create_order(db, user_id, LINES)
        db["orders"].update_one({"_id": first["_id"]}, {"$set": {"created_at": second["created_at"].replace(year=2001)}})

        listed = orders.list_orders(db)
        assert [o["id"] for o in listed] == [str(second["_id"]), str(first["_id"])]
        assert listed[0]["user"]["name"] == "Marlin"
        assert "email" not in listed[0]["user"]


class TestOrderEndpoints:
    def test_create_order(self, client, customer):
        _, headers = customer
        body = {
            "orderItems": [{"product": "p1", "name": "Clownfish", "price": 10, "qty": 2}],
            "shippingAddress": {"address": "1 Reef Rd", "city": "Sydney", "postalCode": "2000", "country": "AU"},
            "paymentMethod": "PayPal",
            "shippingPrice": 5,
        }
        response = client.post("/api/orders", json=body, headers=headers)

        assert response.status_code == 201
        data = response.json()
        assert data["items_price"] == 20
        assert data["total_price"] == 25
        assert data["shipping_address"]["postal_code"] == "2000"

    def test_create_empty_order(self, client, customer):
        _, headers = customer
        response = client.post("/api/orders", json={"orderItems": []}, headers=headers)
        assert response.status_code == 400
        assert response.json()["message"] == "No order items"

    def test_customer_cannot_set_initial_status(self, client, db, customer):
        _, headers = customer
        body = {"orderItems": LINES, "status": "delivered"}

        response = client.post("/api/orders", json=body, headers=headers)
        assert response.status_code == 403
        assert response.json()["message"] == "Not authorized to set order status"
        assert db["orders"].count_documents({}) == 0

    def test_admin_created_delivered_order(self, client, admin):
        _, headers = admin
        body = {"orderItems": LINES, "status": "delivered"}

        response = client.post("/api/orders", json=body, headers=headers)
        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "delivered"
        assert data["is_delivered"] is True
        assert data["delivered_at"] is not None

    def test_get_order_access(self, client, db, make_user):
        owner_id, owner_headers = make_user("Marlin")
        _, other_headers = make_user("Bruce")
        _, admin_headers = make_user("Admin", is_admin=True)
        order_id = str(orders.create_order(db, owner_id, LINES)["_id"])

        assert client.get(f"/api/orders/{order_id}", headers=owner_headers).status_code == 200
        assert client.get(f"/api/orders/{order_id}", headers=admin_headers).status_code == 200
        response = client.get(f"/api/orders/{order_id}", headers=other_headers)
        assert response.status_code == 403
        assert response.json()["message"] == "Not authorized to view this order"

    def test_my_orders(self, client, db, customer):
        user_id, headers = customer
        orders.create_order(db, user_id, LINES)
        response = client.get("/api/orders/myorders", headers=headers)
        assert response.status_code == 200
        assert len(response.json()) == 1

    def test_pay(self, client, db, customer):
        user_id, headers = customer
        order_id = str(orders.create_order(db, user_id, LINES)["_id"])
        payload = {"id": "PAY-1", "status": "COMPLETED", "update_time": "now", "payer": {"email_address": "n@reefshop.com"}}

        response = client.put(f"/api/orders/{order_id}/pay", json=payload, headers=headers)
        assert response.status_code == 200
        assert response.json()["is_paid"] is True
        assert response.json()["payment_result"] == payload

    def test_admin_only_routes(self, client, db, customer, admin):
        user_id, headers = customer
        _, admin_headers = admin
        order_id = str(orders.create_order(db, user_id, LINES)["_id"])

        assert client.get("/api/orders", headers=headers).status_code == 403
        assert client.put(f"/api/orders/{order_id}/deliver", headers=headers).status_code == 403
        assert client.put(f"/api/orders/{order_id}/status", json={"status": "shipped"}, headers=headers).status_code == 403

        assert client.get("/api/orders", headers=admin_headers).status_code == 200
        response = client.put(f"/api/orders/{order_id}/status", json={"status": "shipped"}, headers=admin_headers)
        assert response.json()["status"] == "shipped"
        response = client.put(f"/api/orders/{order_id}/deliver", headers=admin_headers)
        assert response.json()["is_delivered"] is True

    def test_unknown_status_is_400(self, client, db, admin):
        admin_id, headers = admin
        order_id = str(orders.create_order(db, admin_id, LINES)["_id"])
        response = client.put(f"/api/orders/{order_id}/status", json={"status": "lost"}, headers=headers)
        assert response.status_code == 400
