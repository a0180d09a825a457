import pandas as pd
import numpy as np
from datetime import datetime, timezone, timedelta

# Cylinder sizes on the menu and their price in NGN
TANK_PRICES = {
    "3kg": 3600.00,
    "5kg": 6000.00,
    "6kg": 7200.00,
    "12.5kg": 15000.00,
    "25kg": 30000.00,
    "50kg": 60000.00,
}

def generate_mock_orders(num_orders=500, num_customers=400, output_file="raw_gas_orders_generated.csv"):
    """
    Generates a realistic dataset of gas cylinder orders to drive the dispatch simulation.
    Several orders share a customer so the one-active-order rule gets exercised,
    and a slice of POS payments fail so POS eligibility varies between customers.
    """
    # Center around Lagos, Nigeria (same as the mock drivers)
    CENTER_LAT = 6.5244
    CENTER_LON = 3.3792

    # 1. Generate customers with a fixed home address
    customers = []
    for customer_index in range(num_customers):
        # Homes placed within a ~7km radius (roughly 0.06 degrees)
        customers.append({
            "customer_id": f"CUS-{str(customer_index+1).zfill(4)}",
            "lat": CENTER_LAT + np.random.uniform(-0.06, 0.06),
            "lon": CENTER_LON + np.random.uniform(-0.06, 0.06),
            "address": f"{np.random.randint(1, 200)} Mock Street, Lagos",
        })

    data = []
    now = datetime.now(timezone.utc)
    tank_sizes = list(TANK_PRICES)

    # 2. Generate Orders
    for order_index in range(num_orders):
        customer = customers[np.random.randint(0, num_customers)]
        tank_size = np.random.choice(tank_sizes, p=[0.05, 0.1, 0.15, 0.5, 0.15, 0.05])
        quantity = int(np.random.choice([1, 2], p=[0.9, 0.1]))
        payment_method = np.random.choice(["CASH", "CARD", "POS", "BANK_TRANSFER", "ONLINE"], p=[0.3, 0.2, 0.2, 0.15, 0.15])

        # POS attempts fail more often than the rest
        failure_rate = 0.15 if payment_method == "POS" else 0.05
        payment_status = "FAILED" if np.random.random() < failure_rate else "COMPLETED"

        data.append({
            "order_index": order_index + 1,
            "created_at": (now - timedelta(days=int(np.random.randint(0, 45)), minutes=int(np.random.randint(0, 1440)))).isoformat(),
            "customer_id": customer["customer_id"],
            "tank_size": tank_size,
            "quantity": quantity,
            "amount": TANK_PRICES[tank_size],
            "delivery_address": customer["address"],
            "delivery_lat": np.round(customer["lat"], 6),
            "delivery_lon": np.round(customer["lon"], 6),
            "payment_method": payment_method,
            "payment_status": payment_status,
        })

    # 3. Save to CSV
    df = pd.DataFrame(data).sort_values("created_at")
    df.to_csv(output_file, index=False)
    print(f"✅ Generated {num_orders} orders and saved to '{output_file}'")

    # Print a quick preview of POS history per customer
    pos = df[df["payment_method"] == "POS"]
    print("\nPOS payments by outcome:")
    for outcome, count in pos["payment_status"].value_counts().items():
        print(f"  {outcome}: {count}")

    repeat = df["customer_id"].value_counts()
    print(f"\nCustomers with more than one order: {(repeat > 1).sum()}")

if __name__ == "__main__":
    generate_mock_orders(num_orders=500, num_customers=400)
