"""
Races between request handlers, simulated with threads over the shared
in-memory repository. Each test releases all threads together.
"""

import threading

from drivers.tracking import BUSY_STATUSES, DriverTracker

from orders.exceptions import ActiveOrderExists, InvalidTransition, OrderEngineError
from orders.filters import OrderFilter
from orders.models import ACTIVE_STATUSES, Actor, OrderStatus

from conftest import DELIVERY_POINT, order_fields, point_km_north, seed_driver

THREADS = 8


def run_together(targets):
    barrier = threading.Barrier(len(targets))
    results = [None] * len(targets)

    def worker(index, target):
        barrier.wait()
        try:
            results[index] = target()
        except OrderEngineError as exc:
            results[index] = exc

    threads = [threading.Thread(target=worker, args=(i, t)) for i, t in enumerate(targets)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)
    return results


def test_one_active_order_per_customer(manual_dispatcher, repository):
    results = run_together([lambda: manual_dispatcher.place_order("cust-1", **order_fields())] * THREADS)

    created = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, ActiveOrderExists)]

    assert len(created) == 1
    assert len(rejected) == THREADS - 1
    assert repository.count_orders(OrderFilter(customer_id="cust-1", statuses=ACTIVE_STATUSES)) == 1


def test_one_driver_is_never_bound_to_two_orders(manual_dispatcher, repository):
    seed_driver(repository, "only", point_km_north(DELIVERY_POINT, 1))
    orders = [manual_dispatcher.place_order(f"cust-{i}", **order_fields()) for i in range(THREADS)]

    run_together([lambda order_id=o.id: manual_dispatcher.assign(order_id) for o in orders])

    bound = repository.find_orders(OrderFilter(driver_id="only"))
    assert len(bound) == 1
    assert bound[0].status == OrderStatus.ASSIGNED
    assert not repository.get_driver("only").is_available

    pending = repository.find_orders(OrderFilter(statuses=frozenset({OrderStatus.PENDING})))
    assert len(pending) == THREADS - 1
    assert all(o.driver_id is None for o in pending)


def test_drivers_are_spread_over_concurrent_orders(manual_dispatcher, repository):
    for i in range(THREADS):
        seed_driver(repository, f"d{i}", point_km_north(DELIVERY_POINT, 0.5 + i * 0.1))
    orders = [manual_dispatcher.place_order(f"cust-{i}", **order_fields()) for i in range(THREADS)]

    results = run_together([lambda order_id=o.id: manual_dispatcher.assign(order_id) for o in orders])

    drivers = [r.driver_id for r in results if not isinstance(r, Exception) and r.assigned]
    # everyone wanted d0; each order still ends up with its own driver
    assert len(drivers) == len(set(drivers))
    for order in repository.find_orders(OrderFilter(statuses=frozenset({OrderStatus.ASSIGNED}))):
        assert order.driver_id in drivers


def test_accept_racing_cancel_ends_cancelled(manual_dispatcher, repository):
    """
    Cancel is allowed from ASSIGNED and ACCEPTED, so whichever lands first
    the order ends CANCELLED; accept either went first or is refused.
    """
    seed_driver(repository, "d1", point_km_north(DELIVERY_POINT, 1))
    order = manual_dispatcher.place_order("cust-1", **order_fields())
    manual_dispatcher.assign(order.id)

    accepted, cancelled = run_together([
        lambda: manual_dispatcher.accept(order.id, Actor.driver("d1")),
        lambda: manual_dispatcher.cancel(order.id, Actor.customer("cust-1"), "Too slow"),
    ])

    final = repository.get_order(order.id)
    assert final.status == OrderStatus.CANCELLED
    assert final.driver_id is None
    assert cancelled.status == OrderStatus.CANCELLED
    assert isinstance(accepted, InvalidTransition) or accepted.status == OrderStatus.ACCEPTED
    assert repository.get_driver("d1").is_available


def test_going_available_racing_assignments_binds_the_driver_once(manual_dispatcher, repository):
    seed_driver(repository, "d1", point_km_north(DELIVERY_POINT, 1))
    tracker = DriverTracker(repository)
    orders = [manual_dispatcher.place_order(f"cust-{i}", **order_fields()) for i in range(THREADS // 2)]

    run_together(
        [lambda: tracker.set_availability("d1", True)] * (THREADS // 2)
        + [lambda order_id=o.id: manual_dispatcher.assign(order_id) for o in orders]
    )

    assert len(repository.find_orders(OrderFilter(driver_id="d1"))) == 1
    assert not repository.get_driver("d1").is_available


def test_atomic_block_holds_back_availability_updates(repository):
    seed_driver(repository, "d1", point_km_north(DELIVERY_POINT, 1), is_available=False)
    done = threading.Event()

    def go_available():
        repository.make_driver_available("d1", BUSY_STATUSES)
        done.set()

    with repository.atomic():
        thread = threading.Thread(target=go_available)
        thread.start()
        assert not done.wait(0.2)

    thread.join(timeout=5)
    assert done.is_set()
    assert repository.get_driver("d1").is_available
