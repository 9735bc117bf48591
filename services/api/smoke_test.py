from __future__ import annotations

from starlette.testclient import TestClient

from bikebusters.main import app


def main() -> None:
    with TestClient(app) as client:
        r = client.get("/v1/health")
        assert r.status_code == 200, r.text

        r = client.post(
            "/v1/auth/login",
            json={"email": "admin@example.com", "password": "admin12345"},
        )
        assert r.status_code == 200, r.text
        token = r.json()["access_token"]

        headers = {"authorization": f"Bearer {token}"}

        r = client.post(
            "/v1/bikes/report",
            json={
                "manufacturer": "Gazelle",
                "model": "Ultimate C8",
                "serial_number": "SMOKE-001",
                "member_email": "owner@example.com",
                "tracker_id": "a1b2c3d4",
            },
        )
        assert r.status_code == 201, r.text
        bike_id = r.json()["bike_id"]

        r = client.post(f"/v1/bikes/{bike_id}/position", json={"latitude": 52.37, "longitude": 4.9})
        assert r.status_code == 200, r.text
        assert r.json()["status"] == "investigating"

        r = client.get(f"/v1/bikes/{bike_id}/locations", headers=headers)
        assert r.status_code == 200, r.text
        assert len(r.json()) >= 1

    print("smoke_test: OK")


if __name__ == "__main__":
    main()
