import csv
import random

def generate_mock_drivers(filename="mock_drivers_100.csv", count=100):
    # Base coordinate roughly mapping to the center of Lagos, where the
    # mock gas orders are clustered (around 6.52, 3.38)
    base_lat = 6.5244
    base_lon = 3.3792

    with open(filename, mode='w', newline='') as file:
        writer = csv.writer(file)
        writer.writerow(["driver_id", "user_id", "lat", "lon", "is_available", "total_trips", "rating"])

        for i in range(count):
            driver_id = f"DRV-{str(i+1).zfill(3)}"
            user_id = f"USR-D{str(i+1).zfill(3)}"

            # Scatter drivers randomly around the city center (roughly +/- 8km)
            lat = base_lat + (random.random() - 0.5) * 0.15
            lon = base_lon + (random.random() - 0.5) * 0.15

            # 80% chance of being available, 20% offline
            is_available = random.random() < 0.8

            # Mix of new drivers and veterans past the 100-trip experience cap
            total_trips = random.choice([0, random.randint(1, 99), random.randint(100, 600)])
            rating = round(random.uniform(3.5, 5.0), 1)

            writer.writerow([driver_id, user_id, round(lat, 6), round(lon, 6), is_available, total_trips, rating])

    print(f"Successfully generated {count} mock drivers into '{filename}'.")

if __name__ == "__main__":
    generate_mock_drivers()
