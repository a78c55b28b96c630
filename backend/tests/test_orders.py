"""
Checkout, refund and note-edit tests.

Verifies:
- A completed checkout writes order, items, stock and one OUT movement per line
- Any rejected checkout leaves no order, no ledger rows and untouched stock
- DEPOSIT payments may drive the customer's deposit negative
- Refund restores stock, deposit and exactly the points granted at checkout
- Only the note is editable, and never on refunded orders
"""

import re

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from conftest import checkout_body, make_variant
from kedai.extensions import db
from kedai.models import Order, OrderItem, StockMovement, Customer, Variant
from kedai.services import document_service, inventory_service, order_service
from kedai.time_utils import utcnow


def _movements(variant_id, movement_type=None):
    query = db.session.query(StockMovement).filter_by(variant_id=variant_id)
    if movement_type:
        query = query.filter_by(type=movement_type)
    return query.order_by(StockMovement.id).all()


def _assert_nothing_written(variant, stock_before):
    db.session.expire_all()
    assert db.session.query(Order).count() == 0
    assert db.session.query(OrderItem).count() == 0
    assert _movements(variant.id, "OUT") == []
    assert variant.stock == stock_before


# =============================================================================
# CHECKOUT
# =============================================================================


class TestCheckout:

    def test_cash_checkout_completes_order(self, client, kasir_headers, open_shift, variant):
        resp = client.post(
            "/api/orders",
            json=checkout_body(variant.id, qty=3, paid=60000),
            headers=kasir_headers,
        )
        assert resp.status_code == 201, resp.json
        order = resp.json["order"]
        assert order["status"] == "COMPLETED"
        assert order["total"] == 60000
        assert order["subtotal"] == 60000
        assert order["shiftId"] == open_shift.id
        assert resp.json["change"] == 0
        assert re.fullmatch(r"POS-\d{6}-\d{6}-\d{2}", order["code"])

        db.session.expire_all()
        assert variant.stock == 7
        out = _movements(variant.id, "OUT")
        assert len(out) == 1
        assert out[0].qty == 3
        assert out[0].ref_order_id == order["id"]

    def test_change_is_returned_for_overpayment(self, client, kasir_headers, open_shift, variant):
        resp = client.post(
            "/api/orders",
            json=checkout_body(variant.id, qty=1, paid=50000),
            headers=kasir_headers,
        )
        assert resp.status_code == 201
        assert resp.json["change"] == 30000
        assert resp.json["order"]["paid"] == 50000

    def test_discounts_reduce_total(self, client, kasir_headers, open_shift, variant):
        body = checkout_body(variant.id, paid=40000, discount=5000)
        body["items"] = [{"variantId": variant.id, "qty": 2, "discount": 1000}]
        resp = client.post("/api/orders", json=body, headers=kasir_headers)
        assert resp.status_code == 201
        order = resp.json["order"]
        assert order["subtotal"] == 39000
        assert order["total"] == 34000
        assert order["items"][0]["price"] == 20000
        assert order["items"][0]["lineTotal"] == 39000

    def test_item_snapshots_price_and_cost(self, client, kasir_headers, open_shift, variant):
        resp = client.post("/api/orders", json=checkout_body(variant.id, paid=20000), headers=kasir_headers)
        assert resp.status_code == 201

        variant.price = 25000
        db.session.commit()

        order = client.get(f"/api/orders/{resp.json['order']['id']}", headers=kasir_headers).json["order"]
        assert order["items"][0]["price"] == 20000
        assert order["items"][0]["cost"] == 8000

    def test_multiple_lines_write_one_movement_each(self, client, kasir_headers, open_shift, db_session):
        a = make_variant(db_session, name="Americano", label="Hot", price=18000, stock=5)
        b = make_variant(db_session, name="Croissant", label="Butter", price=22000, stock=4)
        body = checkout_body(a.id, paid=100000)
        body["items"] = [{"variantId": a.id, "qty": 2}, {"variantId": b.id, "qty": 1}]

        resp = client.post("/api/orders", json=body, headers=kasir_headers)
        assert resp.status_code == 201
        assert resp.json["order"]["total"] == 58000

        db.session.expire_all()
        assert (a.stock, b.stock) == (3, 3)
        assert [m.qty for m in _movements(a.id, "OUT")] == [2]
        assert [m.qty for m in _movements(b.id, "OUT")] == [1]

    def test_requires_auth(self, client, db_session, variant):
        resp = client.post("/api/orders", json=checkout_body(variant.id, paid=20000))
        assert resp.status_code == 401


class TestCheckoutRejections:

    def test_no_active_shift(self, client, kasir_headers, variant):
        resp = client.post("/api/orders", json=checkout_body(variant.id, paid=20000), headers=kasir_headers)
        assert resp.status_code == 400
        assert resp.json["code"] == "NoActiveShift"
        _assert_nothing_written(variant, 10)

    def test_closed_shift_blocks_checkout(self, client, kasir_headers, kasir, open_shift, variant):
        client.post("/api/shifts/close", json={"closingCash": 200000}, headers=kasir_headers)
        resp = client.post("/api/orders", json=checkout_body(variant.id, paid=20000), headers=kasir_headers)
        assert resp.status_code == 400
        assert resp.json["code"] == "NoActiveShift"

    def test_insufficient_stock(self, client, kasir_headers, open_shift, variant):
        resp = client.post("/api/orders", json=checkout_body(variant.id, qty=11, paid=999999), headers=kasir_headers)
        assert resp.status_code == 400
        assert resp.json["code"] == "InsufficientStock"
        assert resp.json["error"] == "Stock not enough for Kopi Susu - Ice - M"
        assert resp.json["details"]["available"] == 10
        _assert_nothing_written(variant, 10)

    def test_insufficient_stock_sums_repeated_lines(self, client, kasir_headers, open_shift, variant):
        body = checkout_body(variant.id, paid=999999)
        body["items"] = [{"variantId": variant.id, "qty": 6}, {"variantId": variant.id, "qty": 5}]
        resp = client.post("/api/orders", json=body, headers=kasir_headers)
        assert resp.status_code == 400
        assert resp.json["code"] == "InsufficientStock"
        _assert_nothing_written(variant, 10)

    def test_one_bad_line_rejects_whole_cart(self, client, kasir_headers, open_shift, db_session, variant):
        scarce = make_variant(db_session, name="Croissant", label="Butter", price=22000, stock=1)
        body = checkout_body(variant.id, paid=999999)
        body["items"] = [{"variantId": variant.id, "qty": 2}, {"variantId": scarce.id, "qty": 2}]

        resp = client.post("/api/orders", json=body, headers=kasir_headers)
        assert resp.status_code == 400
        _assert_nothing_written(variant, 10)
        assert scarce.stock == 1

    def test_unknown_variant(self, client, kasir_headers, open_shift, variant):
        resp = client.post("/api/orders", json=checkout_body(99999, paid=20000), headers=kasir_headers)
        assert resp.status_code == 400
        assert resp.json["code"] == "VariantNotFound"
        assert resp.json["details"]["variantId"] == 99999

    def test_insufficient_payment(self, client, kasir_headers, open_shift, variant):
        resp = client.post("/api/orders", json=checkout_body(variant.id, qty=2, paid=39999), headers=kasir_headers)
        assert resp.status_code == 400
        assert resp.json["code"] == "InsufficientPayment"
        _assert_nothing_written(variant, 10)

    def test_deposit_requires_customer(self, client, kasir_headers, open_shift, variant):
        resp = client.post(
            "/api/orders",
            json=checkout_body(variant.id, paymentType="DEPOSIT"),
            headers=kasir_headers,
        )
        assert resp.status_code == 400
        assert resp.json["code"] == "CustomerRequired"
        _assert_nothing_written(variant, 10)

    @pytest.mark.parametrize("payment_type", ["DEPOSIT", "CASH"])
    def test_unknown_customer(self, client, kasir_headers, open_shift, variant, payment_type):
        resp = client.post(
            "/api/orders",
            json=checkout_body(variant.id, paymentType=payment_type, paid=20000, customerId=4242),
            headers=kasir_headers,
        )
        assert resp.status_code == 400
        assert resp.json["code"] == "CustomerNotFound"

    def test_pricing_is_checked_before_shift(self, client, kasir_headers, variant):
        resp = client.post("/api/orders", json=checkout_body(variant.id, qty=50, paid=0), headers=kasir_headers)
        assert resp.json["code"] == "InsufficientStock"

    @pytest.mark.parametrize(
        "body",
        [
            {"paymentType": "BITCOIN", "paid": 0, "items": [{"variantId": 1, "qty": 1}]},
            {"paymentType": "CASH", "items": [{"variantId": 1, "qty": 1}]},
            {"paymentType": "CASH", "paid": 0, "items": []},
            {"paymentType": "CASH", "paid": 0, "items": [{"variantId": 1, "qty": 0}]},
            {"paymentType": "CASH", "paid": 10.5, "items": [{"variantId": 1, "qty": 1}]},
            {"paymentType": "CASH", "paid": 0, "dineType": "DRIVE_THRU", "items": [{"variantId": 1, "qty": 1}]},
            {"paymentType": "CASH", "paid": 0, "total": 1, "items": [{"variantId": 1, "qty": 1}]},
            {"paymentType": "CASH", "paid": 0, "items": [{"variantId": 10**20, "qty": 1}]},
            {"paymentType": "CASH", "paid": 0, "items": [{"variantId": 0, "qty": 1}]},
            {"paymentType": "CASH", "paid": 0, "customerId": 10**20, "items": [{"variantId": 1, "qty": 1}]},
            {"paymentType": "CASH", "paid": 0, "items": [{"variantId": 1, "qty": 10**20}]},
        ],
    )
    def test_invalid_payload(self, client, kasir_headers, open_shift, body):
        resp = client.post("/api/orders", json=body, headers=kasir_headers)
        assert resp.status_code == 400
        assert resp.json["code"] == "ValidationError"

    def test_stock_taken_after_quote_rolls_back_everything(self, client, kasir_headers, open_shift, db_session,
                                                          variant, customer, monkeypatch):
        other = make_variant(db_session, name="Croissant", label="Butter", price=22000, stock=5)
        real_price_order = order_service.price_order

        def price_then_sell_elsewhere(items, order_discount=0):
            quote = real_price_order(items, order_discount)
            db.session.execute(update(Variant).where(Variant.id == other.id).values(stock=1))
            db.session.commit()
            return quote

        monkeypatch.setattr(order_service, "price_order", price_then_sell_elsewhere)
        body = checkout_body(variant.id, paymentType="DEPOSIT", customerId=customer.id)
        body["items"] = [{"variantId": variant.id, "qty": 2}, {"variantId": other.id, "qty": 5}]

        resp = client.post("/api/orders", json=body, headers=kasir_headers)
        assert resp.status_code == 409
        assert resp.json["code"] == "CheckoutFailed"
        assert resp.json["details"]["variantId"] == other.id

        _assert_nothing_written(variant, 10)
        assert other.stock == 1
        assert _movements(other.id, "OUT") == []
        assert (customer.deposit, customer.points) == (5000, 0)

    def test_database_error_mid_transaction_rolls_back(self, client, kasir_headers, open_shift, variant,
                                                       customer, monkeypatch):
        def fail(*args, **kwargs):
            raise OperationalError("UPDATE customers", {}, Exception("database is locked"))

        monkeypatch.setattr(order_service, "add_to_customer", fail)
        resp = client.post(
            "/api/orders",
            json=checkout_body(variant.id, qty=3, paymentType="DEPOSIT", customerId=customer.id),
            headers=kasir_headers,
        )
        assert resp.status_code == 409
        assert resp.json["code"] == "CheckoutFailed"

        _assert_nothing_written(variant, 10)
        assert customer.deposit == 5000

    def test_order_codes_exhausted(self, client, kasir_headers, open_shift, variant, monkeypatch):
        monkeypatch.setattr(document_service, "make_order_code", lambda: "POS-260314-090507-11")
        first = client.post("/api/orders", json=checkout_body(variant.id, paid=20000), headers=kasir_headers)
        assert first.status_code == 201

        resp = client.post("/api/orders", json=checkout_body(variant.id, paid=20000), headers=kasir_headers)
        assert resp.status_code == 409
        assert resp.json["code"] == "CheckoutFailed"

        db.session.expire_all()
        assert db.session.query(Order).count() == 1
        assert variant.stock == 9


class TestDepositCheckout:

    def test_deposit_may_go_negative(self, client, kasir_headers, open_shift, variant, customer):
        resp = client.post(
            "/api/orders",
            json=checkout_body(variant.id, paymentType="DEPOSIT", customerId=customer.id),
            headers=kasir_headers,
        )
        assert resp.status_code == 201, resp.json
        order = resp.json["order"]
        assert order["paid"] == 20000
        assert resp.json["change"] == 0

        db.session.expire_all()
        assert customer.deposit == -15000
        assert customer.points == 2

    def test_non_deposit_payment_leaves_deposit_alone(self, client, kasir_headers, open_shift, variant, customer):
        resp = client.post(
            "/api/orders",
            json=checkout_body(variant.id, qty=3, paid=60000, customerId=customer.id),
            headers=kasir_headers,
        )
        assert resp.status_code == 201
        assert resp.json["order"]["pointsAwarded"] == 6

        db.session.expire_all()
        assert customer.deposit == 5000
        assert customer.points == 6

    def test_no_points_without_customer(self, client, kasir_headers, open_shift, variant):
        resp = client.post("/api/orders", json=checkout_body(variant.id, qty=3, paid=60000), headers=kasir_headers)
        assert resp.json["order"]["pointsAwarded"] == 0


class TestIdempotency:

    def test_same_key_returns_existing_order(self, client, kasir_headers, open_shift, variant):
        body = checkout_body(variant.id, qty=2, paid=40000, idempotencyKey="till-1-0001")
        first = client.post("/api/orders", json=body, headers=kasir_headers)
        second = client.post("/api/orders", json=body, headers=kasir_headers)

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json["order"]["id"] == first.json["order"]["id"]

        db.session.expire_all()
        assert db.session.query(Order).count() == 1
        assert variant.stock == 8
        assert len(_movements(variant.id, "OUT")) == 1

    def test_header_key_is_honoured(self, client, kasir_headers, open_shift, variant):
        headers = {**kasir_headers, "Idempotency-Key": "till-1-0002"}
        first = client.post("/api/orders", json=checkout_body(variant.id, paid=20000), headers=headers)
        second = client.post("/api/orders", json=checkout_body(variant.id, paid=20000), headers=headers)
        assert (first.status_code, second.status_code) == (201, 200)
        assert db.session.query(Order).count() == 1

    def test_without_key_each_submit_creates_an_order(self, client, kasir_headers, open_shift, variant):
        client.post("/api/orders", json=checkout_body(variant.id, paid=20000), headers=kasir_headers)
        client.post("/api/orders", json=checkout_body(variant.id, paid=20000), headers=kasir_headers)
        assert db.session.query(Order).count() == 2

    def test_concurrent_insert_with_same_key_replays(self, client, kasir_headers, open_shift, variant, monkeypatch):
        body = checkout_body(variant.id, qty=2, paid=40000, idempotencyKey="till-1-0003")
        first = client.post("/api/orders", json=body, headers=kasir_headers)

        # The pre-check misses the order, as if it were committed by another
        # request in between; the unique key then rejects the insert.
        real_find = order_service.find_by_idempotency_key
        calls = []

        def miss_first_lookup(key):
            calls.append(key)
            return None if len(calls) == 1 else real_find(key)

        monkeypatch.setattr(order_service, "find_by_idempotency_key", miss_first_lookup)
        second = client.post("/api/orders", json=body, headers=kasir_headers)

        assert second.status_code == 200, second.json
        assert second.json["order"]["id"] == first.json["order"]["id"]
        assert len(calls) == 2

        db.session.expire_all()
        assert db.session.query(Order).count() == 1
        assert variant.stock == 8

    def test_key_is_not_replayed_for_another_cashier(self, client, kasir_headers, admin_headers, open_shift,
                                                     variant):
        body = checkout_body(variant.id, paid=20000, idempotencyKey="till-1-0004")
        assert client.post("/api/orders", json=body, headers=kasir_headers).status_code == 201

        resp = client.post("/api/orders", json=body, headers=admin_headers)
        assert resp.status_code == 409
        assert resp.json["code"] == "CheckoutFailed"
        assert "order" not in resp.json
        assert db.session.query(Order).count() == 1


# =============================================================================
# REFUND
# =============================================================================


def _checkout(client, headers, variant, **overrides):
    body = checkout_body(variant.id, qty=3, paid=60000)
    body.update(overrides)
    resp = client.post("/api/orders", json=body, headers=headers)
    assert resp.status_code == 201, resp.json
    return resp.json["order"]


class TestRefund:

    def test_refund_restores_stock(self, client, kasir_headers, open_shift, variant):
        order = _checkout(client, kasir_headers, variant)

        resp = client.post(f"/api/orders/{order['id']}/refund", headers=kasir_headers)
        assert resp.status_code == 200, resp.json
        assert resp.json["order"]["status"] == "REFUNDED"
        assert resp.json["order"]["refundedAt"] is not None

        db.session.expire_all()
        assert variant.stock == 10
        refund_in = [m for m in _movements(variant.id, "IN") if m.ref_order_id == order["id"]]
        assert len(refund_in) == 1
        assert refund_in[0].qty == 3
        assert inventory_service.reconcile_variant(variant.id).in_sync

    def test_refund_returns_deposit_and_points(self, client, kasir_headers, open_shift, variant, customer):
        order = _checkout(client, kasir_headers, variant, paymentType="DEPOSIT", customerId=customer.id)
        db.session.expire_all()
        assert (customer.deposit, customer.points) == (-55000, 6)

        resp = client.post(f"/api/orders/{order['id']}/refund", headers=kasir_headers)
        assert resp.status_code == 200

        db.session.expire_all()
        assert customer.deposit == 5000
        assert customer.points == 0

    def test_refund_reverses_points_actually_awarded(self, app, client, kasir_headers, open_shift, variant,
                                                     customer, monkeypatch):
        order = _checkout(client, kasir_headers, variant, customerId=customer.id)
        assert order["pointsAwarded"] == 6

        monkeypatch.setitem(app.config, "POINTS_UNIT", 1000)
        client.post(f"/api/orders/{order['id']}/refund", headers=kasir_headers)

        db.session.expire_all()
        assert customer.points == 0

    def test_second_refund_is_rejected(self, client, kasir_headers, open_shift, variant):
        order = _checkout(client, kasir_headers, variant)
        client.post(f"/api/orders/{order['id']}/refund", headers=kasir_headers)

        resp = client.post(f"/api/orders/{order['id']}/refund", headers=kasir_headers)
        assert resp.status_code == 400
        assert resp.json["code"] == "AlreadyRefunded"

        db.session.expire_all()
        assert variant.stock == 10
        assert len([m for m in _movements(variant.id, "IN") if m.ref_order_id == order["id"]]) == 1

    def test_cancelled_order_cannot_be_refunded(self, client, kasir_headers, open_shift, variant):
        order = _checkout(client, kasir_headers, variant)
        db.session.get(Order, order["id"]).status = "CANCELLED"
        db.session.commit()

        resp = client.post(f"/api/orders/{order['id']}/refund", headers=kasir_headers)
        assert resp.status_code == 400
        assert resp.json["code"] == "OrderCancelled"

    def test_unknown_order(self, client, kasir_headers):
        resp = client.post("/api/orders/99999/refund", headers=kasir_headers)
        assert resp.status_code == 404
        assert resp.json["code"] == "OrderNotFound"

    def test_refund_does_not_need_open_shift(self, client, kasir_headers, open_shift, variant):
        order = _checkout(client, kasir_headers, variant)
        client.post("/api/shifts/close", json={"closingCash": 260000}, headers=kasir_headers)

        resp = client.post(f"/api/orders/{order['id']}/refund", headers=kasir_headers)
        assert resp.status_code == 200


# =============================================================================
# EDIT / READ
# =============================================================================


class TestOrderEdit:

    def test_note_can_be_edited(self, client, kasir_headers, open_shift, variant):
        order = _checkout(client, kasir_headers, variant, note="less sugar")
        resp = client.patch(f"/api/orders/{order['id']}", json={"note": "no sugar"}, headers=kasir_headers)
        assert resp.status_code == 200
        assert resp.json["order"]["note"] == "no sugar"

    def test_other_fields_are_rejected(self, client, kasir_headers, open_shift, variant):
        order = _checkout(client, kasir_headers, variant)
        resp = client.patch(f"/api/orders/{order['id']}", json={"total": 1}, headers=kasir_headers)
        assert resp.status_code == 400
        assert db.session.get(Order, order["id"]).total == 60000

    def test_refunded_order_is_not_editable(self, client, kasir_headers, open_shift, variant):
        order = _checkout(client, kasir_headers, variant)
        client.post(f"/api/orders/{order['id']}/refund", headers=kasir_headers)

        resp = client.patch(f"/api/orders/{order['id']}", json={"note": "late"}, headers=kasir_headers)
        assert resp.status_code == 400
        assert resp.json["code"] == "OrderNotEditable"

    def test_unknown_order(self, client, kasir_headers):
        resp = client.patch("/api/orders/99999", json={"note": "x"}, headers=kasir_headers)
        assert resp.status_code == 404


class TestOrderRead:

    def test_get_order_includes_items_and_cashier(self, client, kasir_headers, kasir, open_shift, variant):
        order = _checkout(client, kasir_headers, variant)
        resp = client.get(f"/api/orders/{order['id']}", headers=kasir_headers)
        assert resp.status_code == 200
        data = resp.json["order"]
        assert data["cashier"]["id"] == kasir.id
        assert data["items"][0]["variant"]["product"]["name"] == "Kopi Susu"

    def test_list_filters_by_status_and_code(self, client, kasir_headers, open_shift, variant):
        first = _checkout(client, kasir_headers, variant, paid=60000)
        second = _checkout(client, kasir_headers, variant, paid=60000)
        client.post(f"/api/orders/{first['id']}/refund", headers=kasir_headers)

        refunded = client.get("/api/orders?status=REFUNDED", headers=kasir_headers).json["orders"]
        assert [o["id"] for o in refunded] == [first["id"]]

        by_code = client.get(f"/api/orders?q={second['code']}", headers=kasir_headers).json["orders"]
        assert [o["id"] for o in by_code] == [second["id"]]

    def test_list_rejects_unknown_status(self, client, kasir_headers):
        resp = client.get("/api/orders?status=LOST", headers=kasir_headers)
        assert resp.status_code == 400

    def test_deposit_not_touched_by_failed_checkout(self, client, kasir_headers, open_shift, variant, customer):
        client.post(
            "/api/orders",
            json=checkout_body(variant.id, qty=99, paymentType="DEPOSIT", customerId=customer.id),
            headers=kasir_headers,
        )
        db.session.expire_all()
        assert db.session.get(Customer, customer.id).deposit == 5000

    def test_date_only_to_covers_whole_day(self, client, kasir_headers, open_shift, variant):
        order = _checkout(client, kasir_headers, variant)
        today = utcnow().date().isoformat()

        resp = client.get(f"/api/orders?from={today}&to={today}", headers=kasir_headers)
        assert resp.status_code == 200
        assert [o["id"] for o in resp.json["orders"]] == [order["id"]]

    def test_inverted_date_range(self, client, kasir_headers):
        resp = client.get("/api/orders?from=2026-03-15&to=2026-03-14", headers=kasir_headers)
        assert resp.status_code == 400
