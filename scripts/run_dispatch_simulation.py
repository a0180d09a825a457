import csv
import os
import random
import time
from collections import Counter
from decimal import Decimal

from dispatch.dispatcher import Dispatcher
from dispatch.notifications import RecordingPushService
from drivers.models import Driver, User, UserRole
from drivers.tracking import DriverTracker
from orders.exceptions import ActiveOrderExists, OrderEngineError, PosPaymentNotAllowed
from orders.filters import DriverFilter
from orders.models import Actor, OrderStatus, PaymentMethod, TankSize
from orders.repository import InMemoryOrderRepository

from generate_mock_data import TANK_PRICES, generate_mock_orders
from generate_mock_drivers import generate_mock_drivers

# Share of assigned orders whose driver declines / customer cancels
DECLINE_RATE = 0.1
CANCEL_RATE = 0.05

def load_tank_sizes(repository):
    for size, price in TANK_PRICES.items():
        repository.add_tank_size(TankSize(size, f"{size} Cylinder", Decimal(f"{price:.2f}")))

def load_drivers(repository, filepath):
    with open(filepath, 'r') as file:
        reader = csv.DictReader(file)
        for row in reader:
            repository.add_user(User(id=row['user_id'], phone_number="", role=UserRole.DRIVER))
            repository.add_driver(
                Driver.new(
                    row['driver_id'],
                    row['user_id'],
                    float(row['lat']),
                    float(row['lon']),
                    is_available=row['is_available'] == "True",
                    total_trips=int(row['total_trips']),
                    rating=float(row['rating']),
                )
            )

def load_orders(filepath, limit):
    with open(filepath, 'r') as file:
        return list(csv.DictReader(file))[:limit]

def run_order(dispatcher, tracker, row, stats):
    """
    Walk one order through the engine the way the mobile apps would.
    """
    customer_id = row['customer_id']
    order_fields = dict(
        tank_size=row['tank_size'],
        quantity=int(row['quantity']),
        delivery_address=row['delivery_address'],
        delivery_latitude=float(row['delivery_lat']),
        delivery_longitude=float(row['delivery_lon']),
    )

    try:
        order = dispatcher.place_order(customer_id, payment_method=row['payment_method'], **order_fields)
    except ActiveOrderExists:
        stats["rejected_active_order"] += 1
        return None
    except PosPaymentNotAllowed:
        # the app offers cash instead when POS is refused
        stats["pos_refused_fell_back_to_cash"] += 1
        order = dispatcher.place_order(customer_id, payment_method=PaymentMethod.CASH, **order_fields)

    if order.status == OrderStatus.PENDING:
        stats["waiting_for_driver"] += 1
        if random.random() < 0.5:
            dispatcher.cancel(order.id, Actor.customer(customer_id), "Took too long")
            stats["cancelled_by_customer"] += 1
        return dispatcher.lifecycle.get_order(order.id)

    if random.random() < DECLINE_RATE:
        result = dispatcher.decline(order.id, Actor.driver(order.driver_id), "Too far")
        stats["declined"] += 1
        if not result.assigned:
            return result.order
        order = result.order

    if random.random() < CANCEL_RATE:
        stats["cancelled_by_customer"] += 1
        return dispatcher.cancel(order.id, Actor.customer(customer_id), "Changed my mind")

    driver = Actor.driver(order.driver_id)
    dispatcher.acknowledge(order.id, driver)
    dispatcher.accept(order.id, driver)
    dispatcher.pick_up(order.id, driver)
    dispatcher.start_transit(order.id, driver)

    # one ping half way to the customer
    current = dispatcher.lifecycle.repository.get_driver(order.driver_id)
    tracker.update_location(
        order.driver_id,
        (current.current_lat + order.delivery_latitude) / 2,
        (current.current_long + order.delivery_longitude) / 2,
    )

    dispatcher.deliver(order.id, driver)
    dispatcher.confirm_delivery(order.id, Actor.customer(customer_id))
    stats["delivered"] += 1

    return dispatcher.record_payment_result(order.id, row['payment_status'], reference=f"SIM-{row['order_index']}")

def run_simulation(limit=200):
    print("=== STARTING END-TO-END DISPATCH SIMULATION ===")

    base_dir = os.path.dirname(os.path.abspath(__file__))
    drivers_path = os.path.join(base_dir, "mock_drivers_100.csv")
    orders_path = os.path.join(base_dir, "raw_gas_orders_generated.csv")

    # 1. Load Data (generate it on first run)
    if not os.path.exists(drivers_path):
        generate_mock_drivers(drivers_path)
    if not os.path.exists(orders_path):
        generate_mock_orders(output_file=orders_path)

    repository = InMemoryOrderRepository()
    load_tank_sizes(repository)
    load_drivers(repository, drivers_path)
    rows = load_orders(orders_path, limit)
    all_drivers = repository.find_available_drivers(DriverFilter(is_available=None, require_location=False))
    print(f"Loaded {len(rows)} Orders and {len(all_drivers)} Drivers.\n")

    # 2. Configure System
    push = RecordingPushService()
    dispatcher = Dispatcher.build(repository, push_service=push)
    tracker = DriverTracker(repository, push_service=push, matcher=dispatcher.matcher)

    # 3. Replay the orders
    stats = Counter()
    start_time = time.time()

    output_path = os.path.join(base_dir, "dispatch_results.csv")
    with open(output_path, "w", newline='') as file:
        writer = csv.writer(file)
        writer.writerow(["order_id", "customer_id", "status", "driver_id", "payment_method", "payment_status"])

        for row in rows:
            try:
                order = run_order(dispatcher, tracker, row, stats)
            except OrderEngineError as exc:
                stats[type(exc).__name__] += 1
                continue
            if order is not None:
                writer.writerow([
                    order.order_id, order.customer_id, order.status.value,
                    order.driver_id or "", order.payment_method.value, order.payment_status.value,
                ])

    # 4. Silent drivers lose their orders, then whatever is still waiting gets one more matching pass
    expired = dispatcher.sweep_acknowledgements()
    swept = dispatcher.sweep()

    print(f"Replayed {len(rows)} orders in {time.time() - start_time:.2f}s.\n")
    print("--- Outcome Summary ---")
    for outcome, count in sorted(stats.items()):
        print(f"  {outcome}: {count}")
    print(f"  assigned by final sweep: {sum(1 for r in swept if r.assigned)}")
    print(f"  taken back from silent drivers: {len(expired)}")
    print(f"  events pushed: {len(push.sent)}")
    print(f"\nResults written to '{output_path}'")

if __name__ == "__main__":
    run_simulation()
