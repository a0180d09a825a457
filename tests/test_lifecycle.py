from decimal import Decimal

import pytest

from dispatch.notifications import ADMIN_RECIPIENT, EventType
from dispatch.state_machines.order_state import driver_binding_is_consistent
from orders.exceptions import (
    ActiveOrderExists,
    ConcurrentModification,
    DriverUnavailable,
    InvalidTransition,
    OrderNotFound,
    TankSizeNotFound,
    TransitionNotPermitted,
)
from orders.filters import OrderFilter
from orders.models import Actor, ActorRole, OrderStatus, PaymentStatus

from conftest import DELIVERY_POINT, order_fields, point_km_north, seed_driver


@pytest.fixture
def driver(repository):
    return seed_driver(repository, "drv-1", point_km_north(DELIVERY_POINT, 1.5), total_trips=10)


@pytest.fixture
def assigned_order(lifecycle, driver):
    order = lifecycle.create_order("cust-1", **order_fields())
    return lifecycle.assign(order.id, driver.id)


def test_new_order_is_pending_without_driver(lifecycle, push):
    order = lifecycle.create_order("cust-1", **order_fields(quantity=2))

    assert order.status == OrderStatus.PENDING
    assert order.driver_id is None
    assert order.total_amount == Decimal("30000.00")
    assert len(order.order_id) == 4 and order.order_id.isdigit()
    assert order.tracking_id.startswith("TRK-")

    # 1. Customer and admins are both told about the new order
    assert [e.type for e in push.events_for("cust-1")] == [EventType.ORDER_CREATED]
    assert [e.type for e in push.events_for(ADMIN_RECIPIENT)] == [EventType.ORDER_CREATED]


def test_second_active_order_is_rejected(lifecycle):
    lifecycle.create_order("cust-1", **order_fields())

    with pytest.raises(ActiveOrderExists):
        lifecycle.create_order("cust-1", **order_fields())

    # other customers are unaffected
    lifecycle.create_order("cust-2", **order_fields())


def test_customer_can_order_again_after_cancelling(lifecycle):
    first = lifecycle.create_order("cust-1", **order_fields())
    lifecycle.cancel(first.id, Actor.customer("cust-1"), "Wrong address")

    second = lifecycle.create_order("cust-1", **order_fields())
    assert second.status == OrderStatus.PENDING


def test_price_comes_from_the_tank_size_catalog(lifecycle):
    order = lifecycle.create_order("cust-1", **order_fields(tank_size="6kg", quantity=3))

    assert order.tank_size == "6kg"
    assert order.amount == Decimal("8000.00")
    assert order.total_amount == Decimal("24000.00")


@pytest.mark.parametrize("size", ["7kg", "50kg"])
def test_unknown_or_retired_tank_size_is_rejected(lifecycle, repository, size):
    with pytest.raises(TankSizeNotFound):
        lifecycle.create_order("cust-1", **order_fields(tank_size=size))

    assert repository.count_orders(OrderFilter()) == 0


def test_tank_size_listing(lifecycle):
    assert [t.size for t in lifecycle.list_tank_sizes()] == ["12.5kg", "3kg", "6kg"]
    assert "50kg" in [t.size for t in lifecycle.list_tank_sizes(include_inactive=True)]


def test_invalid_quantity_is_rejected(lifecycle):
    with pytest.raises(ValueError):
        lifecycle.create_order("cust-1", **order_fields(quantity=0))


def test_assign_binds_and_claims_the_driver(assigned_order, repository, push, clock):
    assert assigned_order.status == OrderStatus.ASSIGNED
    assert assigned_order.driver_id == "drv-1"
    assert assigned_order.assigned_at == clock()
    assert not repository.get_driver("drv-1").is_available

    [offer] = push.events_for("drv-1")
    assert offer.type == EventType.DRIVER_ASSIGNED
    assert offer.payload["estimated_distance_km"] == pytest.approx(1.5, abs=0.05)


def test_busy_driver_cannot_be_assigned_twice(lifecycle, assigned_order):
    other = lifecycle.create_order("cust-2", **order_fields())

    with pytest.raises(DriverUnavailable):
        lifecycle.assign(other.id, "drv-1")

    assert lifecycle.get_order(other.id).status == OrderStatus.PENDING


def test_blocked_driver_cannot_be_assigned(lifecycle, repository):
    seed_driver(repository, "drv-x", point_km_north(DELIVERY_POINT, 1), is_blocked=True)
    order = lifecycle.create_order("cust-1", **order_fields())

    with pytest.raises(DriverUnavailable):
        lifecycle.assign(order.id, "drv-x")


def test_assigning_a_non_pending_order_leaves_the_driver_free(lifecycle, repository, assigned_order):
    seed_driver(repository, "drv-2", point_km_north(DELIVERY_POINT, 1))

    with pytest.raises(InvalidTransition):
        lifecycle.assign(assigned_order.id, "drv-2")

    assert repository.get_driver("drv-2").is_available


def test_driver_is_released_when_the_order_update_keeps_failing(lifecycle, repository, driver, monkeypatch):
    order = lifecycle.create_order("cust-1", **order_fields())

    def always_stale(order_id, *args, **kwargs):
        raise ConcurrentModification(order_id)

    monkeypatch.setattr(repository, "update_order_status", always_stale)
    with pytest.raises(ConcurrentModification):
        lifecycle.assign(order.id, driver.id)
    monkeypatch.undo()

    assert repository.get_driver(driver.id).is_available
    assert repository.get_alarm(order.id) is None
    assert lifecycle.get_order(order.id).status == OrderStatus.PENDING


def test_full_delivery_flow(lifecycle, repository, assigned_order, clock, push):
    driver = Actor.driver("drv-1")

    clock.advance(minutes=1)
    accepted = lifecycle.accept(assigned_order.id, driver)
    clock.advance(minutes=10)
    picked = lifecycle.pick_up(assigned_order.id, driver)
    clock.advance(minutes=1)
    moving = lifecycle.start_transit(assigned_order.id, driver)
    clock.advance(minutes=15)
    delivered = lifecycle.deliver(assigned_order.id, driver)

    assert accepted.status == OrderStatus.ACCEPTED and accepted.accepted_at is not None
    assert picked.picked_up_at is not None
    assert moving.status == OrderStatus.IN_TRANSIT
    assert delivered.status == OrderStatus.DELIVERED
    assert delivered.delivered_at == clock()
    assert delivered.driver_id == "drv-1"
    assert driver_binding_is_consistent(delivered)

    # 1. The driver is free again and gets credit for the trip
    released = repository.get_driver("drv-1")
    assert released.is_available
    assert released.total_trips == 11

    # 2. The customer heard about every status change
    statuses = [e.status for e in push.events_for("cust-1") if e.type == EventType.ORDER_STATUS]
    assert statuses == ["ASSIGNED", "ACCEPTED", "PICKED_UP", "IN_TRANSIT", "DELIVERED"]


def test_deliver_on_pending_fails_and_changes_nothing(lifecycle):
    order = lifecycle.create_order("cust-1", **order_fields())

    with pytest.raises(InvalidTransition):
        lifecycle.deliver(order.id, Actor.driver("drv-1"))

    assert lifecycle.get_order(order.id).status == OrderStatus.PENDING


def test_other_driver_cannot_accept(lifecycle, repository, assigned_order):
    seed_driver(repository, "drv-2", point_km_north(DELIVERY_POINT, 1))

    with pytest.raises(TransitionNotPermitted):
        lifecycle.accept(assigned_order.id, Actor.driver("drv-2"))


def test_confirm_delivery_is_idempotent(lifecycle, assigned_order):
    driver = Actor.driver("drv-1")
    for step in (lifecycle.accept, lifecycle.start_transit, lifecycle.deliver):
        step(assigned_order.id, driver)

    once = lifecycle.confirm_delivery(assigned_order.id, Actor.customer("cust-1"))
    twice = lifecycle.confirm_delivery(assigned_order.id, Actor.customer("cust-1"))

    assert once.delivery_confirmed and twice.delivery_confirmed
    assert once.status == twice.status == OrderStatus.DELIVERED
    assert once.updated_at == twice.updated_at


def test_confirm_before_delivery_is_invalid(lifecycle, assigned_order):
    with pytest.raises(InvalidTransition):
        lifecycle.confirm_delivery(assigned_order.id, Actor.customer("cust-1"))


def test_decline_returns_order_to_pending(lifecycle, repository, assigned_order, push):
    declined = lifecycle.decline(assigned_order.id, Actor.driver("drv-1"), "Vehicle issue")

    assert declined.status == OrderStatus.PENDING
    assert declined.driver_id is None
    assert "Vehicle issue" in declined.notes
    assert repository.get_driver("drv-1").is_available
    assert any(e.payload.get("declined_reason") == "Vehicle issue" for e in push.events_for(ADMIN_RECIPIENT))


def test_cancel_releases_and_notifies_driver(lifecycle, repository, assigned_order, push):
    lifecycle.accept(assigned_order.id, Actor.driver("drv-1"))

    cancelled = lifecycle.cancel(assigned_order.id, Actor.customer("cust-1"), "No longer needed")

    assert cancelled.status == OrderStatus.CANCELLED
    assert cancelled.driver_id is None
    assert cancelled.cancelled_by == ActorRole.CUSTOMER
    assert repository.get_driver("drv-1").is_available
    assert push.events_for("drv-1")[-1].status == "CANCELLED"


def test_admin_reassign_moves_the_order(lifecycle, repository, assigned_order, push):
    seed_driver(repository, "drv-2", point_km_north(DELIVERY_POINT, 3))
    lifecycle.accept(assigned_order.id, Actor.driver("drv-1"))

    moved = lifecycle.reassign(assigned_order.id, "drv-2", Actor.admin("admin-1"))

    assert moved.status == OrderStatus.ASSIGNED
    assert moved.driver_id == "drv-2"
    assert moved.accepted_at is None
    assert repository.get_driver("drv-1").is_available
    assert not repository.get_driver("drv-2").is_available
    assert push.events_for("drv-1")[-1].type == EventType.ORDER_REASSIGNED
    assert push.events_for("drv-2")[-1].type == EventType.DRIVER_ASSIGNED


def test_reassign_to_same_driver_is_a_no_op(lifecycle, assigned_order):
    same = lifecycle.reassign(assigned_order.id, "drv-1", Actor.admin("admin-1"))
    assert same == assigned_order


def test_payment_results(lifecycle):
    order = lifecycle.create_order("cust-1", **order_fields())

    failed = lifecycle.record_payment_result(order.id, PaymentStatus.FAILED, "REF-1")
    assert failed.payment_status == PaymentStatus.FAILED
    assert failed.payment_reference == "REF-1"
    assert failed.status == OrderStatus.PENDING

    paid = lifecycle.record_payment_result(order.id, "COMPLETED", "REF-2")
    assert paid.payment_status == PaymentStatus.COMPLETED

    # same outcome again is a no-op, a different one is refused
    assert lifecycle.record_payment_result(order.id, PaymentStatus.COMPLETED) == paid
    with pytest.raises(InvalidTransition):
        lifecycle.record_payment_result(order.id, PaymentStatus.FAILED)


def test_no_payments_on_cancelled_orders(lifecycle):
    order = lifecycle.create_order("cust-1", **order_fields())
    lifecycle.cancel(order.id, Actor.customer("cust-1"))

    with pytest.raises(InvalidTransition):
        lifecycle.record_payment_result(order.id, PaymentStatus.COMPLETED)


def test_failing_push_service_does_not_fail_transitions(repository, clock):
    from orders.lifecycle import OrderLifecycle

    class BrokenPush:
        def notify(self, recipient_id, event):
            raise RuntimeError("push gateway down")

    lifecycle = OrderLifecycle(repository, push_service=BrokenPush(), clock=clock)
    order = lifecycle.create_order("cust-1", **order_fields())
    cancelled = lifecycle.cancel(order.id, Actor.customer("cust-1"))

    assert cancelled.status == OrderStatus.CANCELLED


def test_reads(lifecycle, repository, clock):
    seed_driver(repository, "drv-9", point_km_north(DELIVERY_POINT, 1))
    orders = []
    for i in range(3):
        order = lifecycle.create_order(f"cust-{i}", **order_fields())
        lifecycle.assign(order.id, "drv-9")
        for step in (lifecycle.accept, lifecycle.start_transit, lifecycle.deliver):
            step(order.id, Actor.driver("drv-9"))
        orders.append(order)
        clock.advance(minutes=30)

    page, total = lifecycle.get_driver_history("drv-9", page=1, limit=2)
    assert total == 3
    assert [o.id for o in page] == [orders[2].id, orders[1].id]

    assert lifecycle.track_order(orders[0].tracking_id).id == orders[0].id
    assert lifecycle.get_active_orders("cust-0") == []
    assert [o.id for o in lifecycle.get_customer_history("cust-0")] == [orders[0].id]

    with pytest.raises(OrderNotFound):
        lifecycle.track_order("TRK-NOPE")
