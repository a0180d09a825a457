import pytest

from dispatch.notifications import ADMIN_RECIPIENT, EventType
from orders.exceptions import DriverUnavailable, NoDriverAvailable
from orders.models import Actor, OrderStatus

from conftest import DELIVERY_POINT, order_fields, point_km_north, seed_driver, seed_order


@pytest.fixture
def matcher(manual_dispatcher):
    return manual_dispatcher.matcher


@pytest.fixture
def pending(manual_dispatcher):
    return manual_dispatcher.place_order("cust-1", **order_fields())


def test_auto_assign_picks_the_highest_score(matcher, repository, pending):
    """
    The close driver is buried in work; the idle one 2 km away must win.
    """
    seed_driver(repository, "busy-veteran", point_km_north(DELIVERY_POINT, 0.5), total_trips=500)
    seed_driver(repository, "idle", point_km_north(DELIVERY_POINT, 2.0), total_trips=100)
    for i in range(50):
        seed_order(repository, f"old-{i}", status=OrderStatus.DELIVERED, driver_id="busy-veteran")

    result = matcher.assign_driver(pending.id)

    assert result.assigned
    assert result.driver_id == "idle"
    assert result.score == pytest.approx(14.2, abs=0.01)
    assert result.order.status == OrderStatus.ASSIGNED


def test_no_drivers_leaves_order_pending(matcher, pending, push):
    result = matcher.assign_driver(pending.id)

    assert not result.assigned
    assert isinstance(result.error, NoDriverAvailable)
    assert result.order.status == OrderStatus.PENDING
    assert result.order.driver_id is None
    assert push.events_for(ADMIN_RECIPIENT)[-1].type == EventType.NO_DRIVER_AVAILABLE


def test_ineligible_drivers_are_never_auto_assigned(matcher, repository, pending):
    seed_driver(repository, "offline", point_km_north(DELIVERY_POINT, 0.1), is_available=False)
    seed_driver(repository, "blocked", point_km_north(DELIVERY_POINT, 0.1), is_blocked=True)
    seed_driver(repository, "deactivated", point_km_north(DELIVERY_POINT, 0.1), is_active=False)
    seed_driver(repository, "no-gps")

    result = matcher.assign_driver(pending.id)

    assert isinstance(result.error, NoDriverAvailable)


def test_next_best_driver_is_tried_when_the_best_is_taken(matcher, repository, pending, monkeypatch):
    seed_driver(repository, "best", point_km_north(DELIVERY_POINT, 0.5))
    seed_driver(repository, "second", point_km_north(DELIVERY_POINT, 1.0))

    original_claim = repository.claim_driver

    def claim_lost_for_best(driver_id):
        if driver_id == "best":
            # another request got there first
            original_claim(driver_id)
            return False
        return original_claim(driver_id)

    monkeypatch.setattr(repository, "claim_driver", claim_lost_for_best)

    result = matcher.assign_driver(pending.id)

    assert result.driver_id == "second"
    assert result.candidates_tried == ["best", "second"]


def test_manual_assign_of_driver_without_location(matcher, repository, pending):
    seed_driver(repository, "no-gps")

    result = matcher.assign_driver(pending.id, "no-gps", Actor.admin("admin-1"))

    assert result.order.driver_id == "no-gps"
    assert result.order.status == OrderStatus.ASSIGNED


def test_manual_assign_of_unavailable_driver_raises(matcher, repository, pending):
    seed_driver(repository, "offline", point_km_north(DELIVERY_POINT, 1), is_available=False)

    with pytest.raises(DriverUnavailable):
        matcher.assign_driver(pending.id, "offline", Actor.admin("admin-1"))

    with pytest.raises(DriverUnavailable):
        matcher.assign_driver(pending.id, "does-not-exist", Actor.admin("admin-1"))


def test_manual_assign_of_bound_order_reassigns(matcher, repository, pending):
    seed_driver(repository, "first", point_km_north(DELIVERY_POINT, 1))
    seed_driver(repository, "second", point_km_north(DELIVERY_POINT, 2))
    matcher.assign_driver(pending.id, "first", Actor.admin("admin-1"))

    result = matcher.assign_driver(pending.id, "second", Actor.admin("admin-1"))

    assert result.order.driver_id == "second"
    assert repository.get_driver("first").is_available


def test_auto_assign_skips_orders_that_are_not_pending(matcher, repository, pending):
    seed_driver(repository, "d1", point_km_north(DELIVERY_POINT, 1))
    seed_driver(repository, "d2", point_km_north(DELIVERY_POINT, 2))
    first = matcher.assign_driver(pending.id)

    again = matcher.assign_driver(pending.id)

    assert again.driver_id == first.driver_id
    assert repository.get_driver("d2").is_available


def test_reassign_after_decline_excludes_the_decliner(manual_dispatcher, repository, pending):
    seed_driver(repository, "near", point_km_north(DELIVERY_POINT, 0.5))
    seed_driver(repository, "far", point_km_north(DELIVERY_POINT, 5))
    manual_dispatcher.assign(pending.id)

    result = manual_dispatcher.decline(pending.id, Actor.driver("near"), "Out of gas")

    assert result.driver_id == "far"
    assert result.order.status == OrderStatus.ASSIGNED
    # the decliner is free for other orders
    assert repository.get_driver("near").is_available


def test_decline_with_nobody_else_stays_pending(manual_dispatcher, repository, pending):
    seed_driver(repository, "only", point_km_north(DELIVERY_POINT, 1))
    manual_dispatcher.assign(pending.id)

    result = manual_dispatcher.decline(pending.id, Actor.driver("only"))

    assert isinstance(result.error, NoDriverAvailable)
    assert result.order.status == OrderStatus.PENDING


def test_sweep_assigns_oldest_first_until_drivers_run_out(manual_dispatcher, repository, clock):
    orders = []
    for i in range(3):
        orders.append(manual_dispatcher.place_order(f"cust-{i}", **order_fields()))
        clock.advance(minutes=5)
    seed_driver(repository, "d1", point_km_north(DELIVERY_POINT, 1))
    seed_driver(repository, "d2", point_km_north(DELIVERY_POINT, 2))

    results = manual_dispatcher.sweep()

    assert [r.assigned for r in results] == [True, True, False]
    assert repository.get_order(orders[0].id).status == OrderStatus.ASSIGNED
    assert repository.get_order(orders[1].id).status == OrderStatus.ASSIGNED
    assert repository.get_order(orders[2].id).status == OrderStatus.PENDING
