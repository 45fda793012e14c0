# tests/test_order_lifecycle.py

import pytest
from fastapi import HTTPException

from app.models.loyalty import EARN, REDEEM, LoyaltyTransaction
from app.models.notification import AdminNotification
from app.models.product import Product, ProductVariant
from app.models.voucher import Voucher
from app.services import loyalty as loyalty_service
from app.services import order as order_service
from app.services import order_lifecycle as lifecycle_service

from factories import give_points, make_product, make_variant, make_voucher, order_data

pytestmark = pytest.mark.asyncio


async def _advance(db_session, order_id: int, *statuses: str, actor_id: int | None = None):
    order = None
    for new_status in statuses:
        order = await lifecycle_service.update_status(db_session, order_id, new_status, actor_id=actor_id)
    return order


@pytest.mark.parametrize("current, new, allowed", [
    ("PENDING", "CONFIRMED", True),
    ("PENDING", "CANCELLED", True),
    ("PENDING", "SHIPPING", False),
    ("CONFIRMED", "PROCESSING", True),
    ("PROCESSING", "SHIPPING", True),
    ("SHIPPING", "DELIVERED", True),
    ("SHIPPING", "CANCELLED", False),
    ("DELIVERED", "REFUNDED", True),
    ("DELIVERED", "PENDING", False),
    ("CANCELLED", "PENDING", False),
    ("REFUNDED", "DELIVERED", False),
])
async def test_transition_graph(current, new, allowed):
    assert lifecycle_service.can_transition(current, new) is allowed

async def test_invalid_transition_is_rejected(db_session, customer, shirt, admin_user):
    order = await order_service.create_order(db_session, order_data([{"product_id": shirt.id, "quantity": 1}]), customer)

    with pytest.raises(HTTPException) as exc_info:
        await lifecycle_service.update_status(db_session, order.id, "SHIPPING", actor_id=admin_user.id)

    assert exc_info.value.status_code == 400
    assert exc_info.value.detail == "Cannot change order status from PENDING to SHIPPING"

async def test_unknown_order_is_not_found(db_session):
    with pytest.raises(HTTPException) as exc_info:
        await lifecycle_service.update_status(db_session, 404, "CONFIRMED")
    assert exc_info.value.status_code == 404

async def test_cod_order_is_paid_on_delivery(db_session, customer, shirt, admin_user, mock_notifications, drain_background):
    order = await order_service.create_order(db_session, order_data([{"product_id": shirt.id, "quantity": 2}]), customer)

    shipped = await _advance(db_session, order.id, "CONFIRMED", "PROCESSING", "SHIPPING", actor_id=admin_user.id)
    assert shipped.shipped_at is not None
    assert shipped.payment_status == "PENDING"

    delivered = await _advance(db_session, order.id, "DELIVERED", actor_id=admin_user.id)
    await drain_background()

    assert delivered.status == "DELIVERED"
    assert delivered.payment_status == "PAID"
    assert delivered.paid_at is not None
    assert delivered.delivered_at is not None
    assert [entry.status for entry in delivered.timeline] == ["PENDING", "CONFIRMED", "PROCESSING", "SHIPPING", "DELIVERED"]
    assert delivered.timeline[-1].created_by == admin_user.id

    mock_notifications["send_shipping_update"].assert_awaited_once()
    mock_notifications["send_delivery_confirmation"].assert_awaited_once()

async def test_delivery_earns_points(db_session, customer, shirt, mock_notifications, drain_background):
    order = await order_service.create_order(db_session, order_data([{"product_id": shirt.id, "quantity": 2}]), customer)
    await _advance(db_session, order.id, "CONFIRMED", "PROCESSING", "SHIPPING", "DELIVERED")
    await drain_background()

    # 430 000 VND / 100 = 4300 базовых баллов, уровень Bac (x1)
    earned = db_session.query(LoyaltyTransaction).filter_by(user_id=customer.id, type=EARN).one()
    assert earned.points == 4300
    assert earned.order_id == order.id
    mock_notifications["send_points_earned"].assert_awaited_once_with(customer.id, 4300, order.order_number)

    balance = loyalty_service.get_balance(db_session, customer.id)
    assert balance.current_balance == 4300
    assert balance.tier == "Vang"

async def test_guest_delivery_earns_nothing(db_session, shirt, drain_background):
    order = await order_service.create_order(db_session, order_data([{"product_id": shirt.id, "quantity": 1}]))
    await _advance(db_session, order.id, "CONFIRMED", "PROCESSING", "SHIPPING", "DELIVERED")
    await drain_background()

    assert db_session.query(LoyaltyTransaction).count() == 0

async def test_cancel_restores_stock_voucher_and_points(db_session, customer, shirt, mock_notifications, drain_background):
    voucher = make_voucher(db_session, code="SAVE10")
    give_points(db_session, customer, 1000)

    order = await order_service.create_order(
        db_session,
        order_data([{"product_id": shirt.id, "quantity": 3}], voucher_code="SAVE10", points_to_redeem=200),
        customer
    )
    db_session.expire_all()
    assert db_session.get(Product, shirt.id).stock_quantity == 47
    assert loyalty_service.get_balance(db_session, customer.id).current_balance == 800

    cancelled = await lifecycle_service.cancel_order(db_session, order.id, reason="Doi y", current_user=customer)
    await drain_background()

    assert cancelled.status == "CANCELLED"
    assert cancelled.cancel_reason == "Doi y"
    assert cancelled.cancelled_at is not None
    assert cancelled.timeline[-1].note == "Doi y"

    db_session.expire_all()
    product = db_session.get(Product, shirt.id)
    assert product.stock_quantity == 50
    assert product.sold_count == 0
    assert db_session.get(Voucher, voucher.id).used_count == 0
    balance = loyalty_service.get_balance(db_session, customer.id)
    assert balance.current_balance == 1000
    assert balance.total_earned == 1000
    assert balance.total_redeemed == 0
    assert balance.tier == "Vang"

    mock_notifications["send_order_cancellation"].assert_awaited_once()
    assert db_session.query(AdminNotification).filter(AdminNotification.subject.like("Huy don%")).count() == 1

async def test_returned_points_do_not_raise_tier(db_session, customer, shirt):
    give_points(db_session, customer, 900)

    for _ in range(3):
        order = await order_service.create_order(
            db_session,
            order_data([{"product_id": shirt.id, "quantity": 1}], points_to_redeem=900),
            customer
        )
        assert order.loyalty_points_redeemed == 900
        await lifecycle_service.cancel_order(db_session, order.id, current_user=customer)

    balance = loyalty_service.get_balance(db_session, customer.id)
    assert balance.current_balance == 900
    assert balance.total_earned == 900
    assert balance.tier == "Bac"

    returned = db_session.query(LoyaltyTransaction).filter(
        LoyaltyTransaction.user_id == customer.id,
        LoyaltyTransaction.type == REDEEM,
        LoyaltyTransaction.points > 0
    ).all()
    assert len(returned) == 3
    assert all(t.order_id is not None for t in returned)

async def test_cancel_restores_variant_stock(db_session, customer):
    product = make_product(db_session, name="Ao so mi", stock=0)
    variant = make_variant(db_session, product, name="Size M", price=250_000, stock=10)

    order = await order_service.create_order(
        db_session,
        order_data([{"product_id": product.id, "variant_id": variant.id, "quantity": 2}]),
        customer
    )
    db_session.expire_all()
    assert db_session.get(ProductVariant, variant.id).stock_quantity == 8
    assert db_session.get(Product, product.id).sold_count == 2

    await lifecycle_service.cancel_order(db_session, order.id, current_user=customer)

    db_session.expire_all()
    assert db_session.get(ProductVariant, variant.id).stock_quantity == 10
    restored = db_session.get(Product, product.id)
    assert restored.sold_count == 0
    assert restored.stock_quantity == 0

async def test_only_pending_orders_can_be_cancelled_by_customer(db_session, customer, shirt):
    order = await order_service.create_order(db_session, order_data([{"product_id": shirt.id, "quantity": 1}]), customer)
    await lifecycle_service.update_status(db_session, order.id, "CONFIRMED")

    with pytest.raises(HTTPException) as exc_info:
        await lifecycle_service.cancel_order(db_session, order.id, current_user=customer)
    assert exc_info.value.status_code == 400

async def test_customer_cannot_cancel_foreign_order(db_session, customer, other_customer, shirt):
    order = await order_service.create_order(db_session, order_data([{"product_id": shirt.id, "quantity": 1}]), customer)

    with pytest.raises(HTTPException) as exc_info:
        await lifecycle_service.cancel_order(db_session, order.id, current_user=other_customer)
    assert exc_info.value.status_code == 403

    with pytest.raises(HTTPException) as exc_info:
        await lifecycle_service.cancel_order(db_session, order.id)
    assert exc_info.value.status_code == 403

async def test_guest_order_can_be_cancelled(db_session, shirt):
    order = await order_service.create_order(db_session, order_data([{"product_id": shirt.id, "quantity": 1}]))
    cancelled = await lifecycle_service.cancel_order(db_session, order.id)
    assert cancelled.status == "CANCELLED"
    assert cancelled.timeline[-1].note == "Order cancelled by user"

async def test_admin_cancel_keeps_note_as_reason(db_session, customer, shirt):
    order = await order_service.create_order(db_session, order_data([{"product_id": shirt.id, "quantity": 2}]), customer)
    await lifecycle_service.update_status(db_session, order.id, "CONFIRMED")
    cancelled = await lifecycle_service.update_status(db_session, order.id, "CANCELLED", note="Het hang")

    assert cancelled.cancel_reason == "Het hang"
    db_session.expire_all()
    assert db_session.get(Product, shirt.id).stock_quantity == 50

async def test_refund_restores_stock(db_session, customer, shirt):
    order = await order_service.create_order(db_session, order_data([{"product_id": shirt.id, "quantity": 1}]), customer)
    await _advance(db_session, order.id, "CONFIRMED", "PROCESSING", "SHIPPING", "DELIVERED", "REFUNDED")

    db_session.expire_all()
    product = db_session.get(Product, shirt.id)
    assert product.stock_quantity == 50
    assert product.sold_count == 0

async def test_refund_revokes_delivery_points(db_session, customer, shirt, drain_background):
    order = await order_service.create_order(db_session, order_data([{"product_id": shirt.id, "quantity": 1}]), customer)
    await _advance(db_session, order.id, "CONFIRMED", "PROCESSING", "SHIPPING", "DELIVERED")
    await drain_background()

    # 230 000 VND / 100 = 2300 баллов, уровень Vang
    assert loyalty_service.get_balance(db_session, customer.id).tier == "Vang"

    await _advance(db_session, order.id, "REFUNDED")

    balance = loyalty_service.get_balance(db_session, customer.id)
    assert balance.current_balance == 0
    assert balance.total_earned == 0
    assert balance.tier == "Bac"
    revoked = db_session.query(LoyaltyTransaction).filter_by(user_id=customer.id, type=EARN).order_by(LoyaltyTransaction.id).all()
    assert [t.points for t in revoked] == [2300, -2300]

async def test_refund_revokes_only_unspent_points(db_session, customer, shirt, drain_background):
    order = await order_service.create_order(db_session, order_data([{"product_id": shirt.id, "quantity": 1}]), customer)
    await _advance(db_session, order.id, "CONFIRMED", "PROCESSING", "SHIPPING", "DELIVERED")
    await drain_background()
    loyalty_service.adjust_points(db_session, customer.id, -2000, "Doi qua")

    await _advance(db_session, order.id, "REFUNDED")

    balance = loyalty_service.get_balance(db_session, customer.id)
    assert balance.current_balance == 0
    assert balance.total_earned == 2000

async def test_cancelled_order_is_terminal(db_session, customer, shirt):
    order = await order_service.create_order(db_session, order_data([{"product_id": shirt.id, "quantity": 1}]), customer)
    await lifecycle_service.cancel_order(db_session, order.id, current_user=customer)

    with pytest.raises(HTTPException):
        await lifecycle_service.update_status(db_session, order.id, "CONFIRMED")

async def test_manual_timeline_entry_keeps_status(db_session, customer, shirt, admin_user):
    order = await order_service.create_order(db_session, order_data([{"product_id": shirt.id, "quantity": 1}]), customer)

    updated = lifecycle_service.add_timeline(db_session, order.id, "NOTE", note="Khach goi lai", actor_id=admin_user.id)

    assert updated.status == "PENDING"
    assert updated.timeline[-1].status == "NOTE"
    assert updated.timeline[-1].note == "Khach goi lai"
    assert updated.timeline[-1].created_by == admin_user.id
