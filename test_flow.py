import httpx
import asyncio
import uuid


BASE_URL = "http://localhost:8000"


async def safe_request(resp: httpx.Response, step: str):
    """Print response + fail loudly if error"""
    print(f"{step}: {resp.status_code}")

    try:
        print(resp.json())
    except ValueError:
        print(resp.text)

    resp.raise_for_status()


async def poll(client: httpx.AsyncClient, url: str, headers: dict, want: str, step: str, attempts: int = 20):
    """Poll a notification endpoint until it reports `want`."""
    for _ in range(attempts):
        resp = await client.get(url, headers=headers)
        await safe_request(resp, step)
        body = resp.json()
        if body["data"] and body["data"]["status"] == want:
            return body
        await asyncio.sleep(body["retry_after_ms"] / 1000)
    raise RuntimeError(f"{step}: never saw {want}")


async def main():

    async with httpx.AsyncClient(timeout=30.0) as client:

        # ---------------------------------------------------
        print("\n1️⃣ Checking Health...")
        resp = await client.get(f"{BASE_URL}/health")
        await safe_request(resp, "Health")

        # ---------------------------------------------------
        print("\n2️⃣ Registering Chair...")
        resp = await client.post(f"{BASE_URL}/v1/chair/chairs", json={
            "owner_id": f"owner-{uuid.uuid4().hex[:8]}",
            "name": "Smoke Chair",
            "model": "Standard",
            "speed": 5,
        })
        await safe_request(resp, "Register Chair")
        chair = resp.json()
        chair_headers = {"Authorization": f"Bearer {chair['access_token']}"}

        # ---------------------------------------------------
        print("\n3️⃣ Chair goes on duty...")
        resp = await client.post(f"{BASE_URL}/v1/chair/activity", json={"is_active": True}, headers=chair_headers)
        await safe_request(resp, "Chair Active")

        resp = await client.post(
            f"{BASE_URL}/v1/chair/coordinate", json={"latitude": 5, "longitude": 5}, headers=chair_headers
        )
        await safe_request(resp, "Send Coordinate")

        # ---------------------------------------------------
        print("\n4️⃣ Rider signs up...")
        resp = await client.post(f"{BASE_URL}/v1/app/users", json={
            "username": f"smoke-{uuid.uuid4().hex[:8]}",
            "firstname": "Smoke",
            "lastname": "Test",
            "date_of_birth": "2000-01-01",
        })
        await safe_request(resp, "Signup")
        rider_headers = {"Authorization": f"Bearer {resp.json()['access_token']}"}

        resp = await client.post(
            f"{BASE_URL}/v1/app/payment-methods", json={"token": "smoke-token"}, headers=rider_headers
        )
        await safe_request(resp, "Payment Method")

        # ---------------------------------------------------
        print("\n5️⃣ Rider requests ride...")
        ride_payload = {
            "pickup_coordinate": {"latitude": 0, "longitude": 0},
            "destination_coordinate": {"latitude": 10, "longitude": 10},
        }
        resp = await client.post(f"{BASE_URL}/v1/app/rides/estimated-fare", json=ride_payload, headers=rider_headers)
        await safe_request(resp, "Estimate")

        resp = await client.post(
            f"{BASE_URL}/v1/app/rides",
            json=ride_payload,
            headers={**rider_headers, "Idempotency-Key": str(uuid.uuid4())},
        )
        await safe_request(resp, "Create Ride")
        ride_id = resp.json()["ride_id"]

        # ---------------------------------------------------
        print("\n6️⃣ Matching...")
        resp = await client.post(f"{BASE_URL}/v1/internal/matching")
        await safe_request(resp, "Matching")
        await poll(client, f"{BASE_URL}/v1/chair/notification", chair_headers, "MATCHING", "Chair Notification")

        # ---------------------------------------------------
        print("\n7️⃣ Chair drives the ride...")
        status_url = f"{BASE_URL}/v1/chair/rides/{ride_id}/status"
        coordinate_url = f"{BASE_URL}/v1/chair/coordinate"

        await safe_request(await client.post(status_url, json={"status": "ENROUTE"}, headers=chair_headers), "Enroute")
        await safe_request(
            await client.post(coordinate_url, json=ride_payload["pickup_coordinate"], headers=chair_headers), "At Pickup"
        )
        await safe_request(await client.post(status_url, json={"status": "CARRYING"}, headers=chair_headers), "Carrying")
        await safe_request(
            await client.post(coordinate_url, json=ride_payload["destination_coordinate"], headers=chair_headers),
            "At Destination",
        )

        # ---------------------------------------------------
        print("\n8️⃣ Rider evaluates (charges the fare)...")
        resp = await client.post(
            f"{BASE_URL}/v1/app/rides/{ride_id}/evaluation", json={"evaluation": 5}, headers=rider_headers
        )
        await safe_request(resp, "Evaluation")

        await poll(client, f"{BASE_URL}/v1/app/notification", rider_headers, "COMPLETED", "Rider Notification")
        await poll(client, f"{BASE_URL}/v1/chair/notification", chair_headers, "COMPLETED", "Chair Notification")

        resp = await client.get(f"{BASE_URL}/v1/app/rides", headers=rider_headers)
        await safe_request(resp, "Ride History")

        print("\n✅ FLOW COMPLETED SUCCESSFULLY")


if __name__ == "__main__":
    asyncio.run(main())
