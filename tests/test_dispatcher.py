from orders.models import Actor, OrderStatus, PaymentMethod, PaymentStatus

from conftest import DELIVERY_POINT, order_fields, point_km_north, seed_driver, seed_order


def test_place_order_assigns_straight_away(dispatcher, repository):
    seed_driver(repository, "d1", point_km_north(DELIVERY_POINT, 1))

    order = dispatcher.place_order("cust-1", **order_fields())

    assert order.status == OrderStatus.ASSIGNED
    assert order.driver_id == "d1"


def test_place_order_without_drivers_stays_pending(dispatcher):
    order = dispatcher.place_order("cust-1", **order_fields())

    assert order.status == OrderStatus.PENDING
    assert order.driver_id is None


def test_auto_assign_can_be_switched_off(manual_dispatcher, repository):
    seed_driver(repository, "d1", point_km_north(DELIVERY_POINT, 1))

    order = manual_dispatcher.place_order("cust-1", **order_fields())

    assert order.status == OrderStatus.PENDING


def test_completed_payment_on_waiting_order_triggers_matching(dispatcher, repository):
    order = dispatcher.place_order("cust-1", **order_fields(payment_method=PaymentMethod.ONLINE))
    seed_driver(repository, "d1", point_km_north(DELIVERY_POINT, 1))

    paid = dispatcher.record_payment_result(order.id, PaymentStatus.COMPLETED, "PAY-123")

    assert paid.payment_status == PaymentStatus.COMPLETED
    assert paid.status == OrderStatus.ASSIGNED
    assert paid.driver_id == "d1"


def test_failed_payment_does_not_trigger_matching(dispatcher, repository):
    order = dispatcher.place_order("cust-1", **order_fields(payment_method=PaymentMethod.ONLINE))
    seed_driver(repository, "d1", point_km_north(DELIVERY_POINT, 1))

    failed = dispatcher.record_payment_result(order.id, PaymentStatus.FAILED)

    assert failed.status == OrderStatus.PENDING


def test_customer_queries(dispatcher, repository):
    assert not dispatcher.has_active_order("cust-1")
    assert not dispatcher.can_use_pos("cust-1")

    seed_order(repository, "cust-1", payment_method=PaymentMethod.POS)
    dispatcher.place_order("cust-1", **order_fields(payment_method=PaymentMethod.POS))

    assert dispatcher.has_active_order("cust-1")
    assert dispatcher.can_use_pos("cust-1")


def test_end_to_end_through_the_facade(dispatcher, repository):
    seed_driver(repository, "d1", point_km_north(DELIVERY_POINT, 1))
    order = dispatcher.place_order("cust-1", **order_fields())
    driver = Actor.driver("d1")

    dispatcher.accept(order.id, driver)
    dispatcher.pick_up(order.id, driver)
    dispatcher.start_transit(order.id, driver)
    dispatcher.deliver(order.id, driver)
    done = dispatcher.confirm_delivery(order.id, Actor.customer("cust-1"))

    assert done.status == OrderStatus.DELIVERED
    assert done.delivery_confirmed
    assert not dispatcher.has_active_order("cust-1")

    # next order can go to the same, now free, driver
    again = dispatcher.place_order("cust-1", **order_fields())
    assert again.driver_id == "d1"


def test_cancel_through_the_facade(dispatcher, repository):
    seed_driver(repository, "d1", point_km_north(DELIVERY_POINT, 1))
    order = dispatcher.place_order("cust-1", **order_fields())

    cancelled = dispatcher.cancel(order.id, Actor.admin("admin-1"), "Duplicate")

    assert cancelled.status == OrderStatus.CANCELLED
    assert repository.get_driver("d1").is_available
