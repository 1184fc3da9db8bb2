from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import delete, select, update

from shared.security import create_access_token
from services.order_service.models import Order, OrderStatus
from services.user_service.models import User


def bearer(user_id):
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user_id)})}"}


@pytest.fixture
async def placed_orders(client, order_payload):
    """Three orders for ana@..., one for bob@..., oldest first."""
    ids = []
    for email in ["ana@example.com", "ana@example.com", "ana@example.com", "bob@example.com"]:
        response = await client.post("/api/orders", json={**order_payload, "customer_email": email, "skip_email": True})
        assert response.status_code == 201
        ids.append(response.json())
    return ids


async def user_id_for(database, email):
    async with database.session() as db:
        return (await db.execute(select(User.id).where(User.email == email))).scalar_one()


async def status_id_for(database, name):
    async with database.session() as db:
        return (await db.execute(select(OrderStatus.id).where(OrderStatus.name == name))).scalar_one()


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "running"


async def test_get_order_detail(client, placed_orders):
    order_id = placed_orders[0]["id"]

    response = await client.get(f"/api/orders/{order_id}")

    assert response.status_code == 200
    body = response.json()
    assert body["order"]["order_number"] == placed_orders[0]["order_number"]
    assert body["order"]["status_name"] == "pending"
    assert body["order"]["total_amount"] == 300.0
    assert [i["product_name"] for i in body["items"]] == ["Desk Lamp"]
    assert body["service_items"] == []
    assert [h["notes"] for h in body["history"]] == ["Order created"]


async def test_get_unknown_order_is_404(client, database):
    response = await client.get("/api/orders/12345")
    assert response.status_code == 404
    assert response.json() == {"error": "Order not found"}


async def test_my_orders_requires_token(client):
    response = await client.get("/api/orders")
    assert response.status_code == 401
    assert response.json() == {"error": "Authentication required"}

    response = await client.get("/api/orders", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


async def test_my_orders_are_paginated_newest_first(client, database, placed_orders):
    ana = await user_id_for(database, "ana@example.com")

    response = await client.get("/api/orders", params={"page": 1, "limit": 2}, headers=bearer(ana))

    assert response.status_code == 200
    body = response.json()
    assert [o["id"] for o in body["orders"]] == [placed_orders[2]["id"], placed_orders[1]["id"]]
    assert body["pagination"] == {
        "total": 3,
        "total_pages": 2,
        "current_page": 1,
        "has_next_page": True,
        "has_prev_page": False,
    }

    page_two = (await client.get("/api/orders", params={"page": 2, "limit": 2}, headers=bearer(ana))).json()
    assert [o["id"] for o in page_two["orders"]] == [placed_orders[0]["id"]]
    assert page_two["pagination"]["has_prev_page"] is True
    assert page_two["pagination"]["has_next_page"] is False


async def test_my_orders_status_filter(client, database, admin_headers, placed_orders):
    ana = await user_id_for(database, "ana@example.com")
    await client.delete(f"/api/orders/{placed_orders[0]['id']}", headers=admin_headers)

    cancelled = (await client.get("/api/orders", params={"status": "cancelled"}, headers=bearer(ana))).json()
    assert [o["id"] for o in cancelled["orders"]] == [placed_orders[0]["id"]]
    assert cancelled["orders"][0]["status_name"] == "cancelled"

    # Unknown status names do not filter
    everything = (await client.get("/api/orders", params={"status": "lost"}, headers=bearer(ana))).json()
    assert everything["pagination"]["total"] == 3


async def test_list_statuses(client):
    response = await client.get("/api/order-statuses")

    assert response.status_code == 200
    names = [s["name"] for s in response.json()["statuses"]]
    assert names == ["pending", "confirmed", "processing", "shipped", "delivered", "cancelled"]


async def test_list_statuses_falls_back_to_defaults(client, database):
    async with database.transaction() as db:
        await db.execute(delete(OrderStatus))

    statuses = (await client.get("/api/order-statuses")).json()["statuses"]

    assert [s["id"] for s in statuses][:2] == ["pending", "confirmed"]
    assert len(statuses) == 6


async def test_update_status_requires_internal_key(client, placed_orders):
    response = await client.put(f"/api/orders/{placed_orders[0]['id']}", json={"notes": "x"})
    assert response.status_code == 403

    response = await client.put(
        f"/api/orders/{placed_orders[0]['id']}", json={"notes": "x"}, headers={"X-Internal-API-Key": "wrong"}
    )
    assert response.status_code == 403


async def test_update_status_with_tracking(client, database, admin_headers, placed_orders):
    order_id = placed_orders[0]["id"]
    shipped = await status_id_for(database, "shipped")

    response = await client.put(
        f"/api/orders/{order_id}",
        json={
            "status_id": shipped,
            "notes": "Sent with DHL",
            "tracking_id": "DHL123",
            "carrier_company": "DHL",
            "tracking_url": "https://dhl.example.com/DHL123",
        },
        headers=admin_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status_name"] == "shipped"
    assert body["notes"] == "Sent with DHL"
    assert (body["tracking_id"], body["carrier_company"]) == ("DHL123", "DHL")

    detail = (await client.get(f"/api/orders/{order_id}")).json()
    assert [h["notes"] for h in detail["history"]] == ["Order created", "Sent with DHL"]
    assert detail["history"][-1]["status_id"] == shipped


async def test_update_status_without_notes_records_default_history(client, database, admin_headers, placed_orders):
    order_id = placed_orders[0]["id"]
    confirmed = await status_id_for(database, "confirmed")

    await client.put(f"/api/orders/{order_id}", json={"status_id": confirmed}, headers=admin_headers)

    detail = (await client.get(f"/api/orders/{order_id}")).json()
    assert detail["order"]["status_name"] == "confirmed"
    assert detail["history"][-1]["notes"] == "Status updated"


async def test_update_unknown_order_or_status(client, admin_headers, placed_orders):
    response = await client.put("/api/orders/999", json={"status_id": 1}, headers=admin_headers)
    assert response.status_code == 404
    assert response.json() == {"error": "Order not found"}

    response = await client.put(f"/api/orders/{placed_orders[0]['id']}", json={"status_id": 999}, headers=admin_headers)
    assert response.status_code == 404
    assert response.json() == {"error": "Status not found"}


async def test_cancel_order(client, admin_headers, placed_orders, count_rows):
    order_id = placed_orders[1]["id"]

    response = await client.delete(f"/api/orders/{order_id}", headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Order cancelled successfully"
    assert body["order"]["status_name"] == "cancelled"
    # Cancelling never deletes the row
    assert await count_rows(Order) == len(placed_orders)

    detail = (await client.get(f"/api/orders/{order_id}")).json()
    assert detail["history"][-1]["notes"] == "Order cancelled"


async def test_cancel_without_cancelled_status(client, database, admin_headers, placed_orders):
    async with database.transaction() as db:
        await db.execute(delete(OrderStatus).where(OrderStatus.name == "cancelled"))

    response = await client.delete(f"/api/orders/{placed_orders[0]['id']}", headers=admin_headers)

    assert response.status_code == 500
    assert response.json() == {"error": "Cancelled status not found"}


async def test_admin_listing_requires_internal_key(client):
    response = await client.get("/api/admin/orders")
    assert response.status_code == 403


async def test_admin_listing_search_and_names(client, admin_headers, placed_orders):
    response = await client.get("/api/admin/orders", params={"search": "BOB@"}, headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert [o["id"] for o in body["orders"]] == [placed_orders[3]["id"]]
    assert (body["orders"][0]["first_name"], body["orders"][0]["last_name"]) == ("Ana", "Lopez Garcia")

    by_number = (
        await client.get("/api/admin/orders", params={"search": placed_orders[0]["order_number"]}, headers=admin_headers)
    ).json()
    assert [o["id"] for o in by_number["orders"]] == [placed_orders[0]["id"]]


async def test_admin_listing_date_range_is_inclusive(client, database, admin_headers, placed_orders):
    old = datetime(2024, 3, 10, 23, 30, tzinfo=timezone.utc)
    async with database.transaction() as db:
        await db.execute(update(Order).where(Order.id == placed_orders[0]["id"]).values(created_at=old))

    day = date(2024, 3, 10)
    response = await client.get(
        "/api/admin/orders",
        params={"date_from": day.isoformat(), "date_to": day.isoformat()},
        headers=admin_headers,
    )
    assert [o["id"] for o in response.json()["orders"]] == [placed_orders[0]["id"]]

    recent = (
        await client.get(
            "/api/admin/orders",
            params={"date_from": (day + timedelta(days=1)).isoformat()},
            headers=admin_headers,
        )
    ).json()
    assert recent["pagination"]["total"] == 3
    assert recent["pagination"]["current_page"] == 1


async def test_admin_listing_stats_cover_the_filtered_set(client, database, admin_headers, placed_orders):
    delivered = await status_id_for(database, "delivered")
    await client.put(f"/api/orders/{placed_orders[0]['id']}", json={"status_id": delivered}, headers=admin_headers)
    async with database.transaction() as db:
        await db.execute(
            update(Order)
            .where(Order.id == placed_orders[1]["id"])
            .values(created_at=datetime.now(timezone.utc) - timedelta(days=45))
        )

    body = (await client.get("/api/admin/orders", params={"limit": 1}, headers=admin_headers)).json()

    assert len(body["orders"]) == 1
    assert body["stats"] == {
        "total_orders": 4,
        "pending_orders": 3,
        "delivered_orders": 1,
        "recent_orders": 3,
        "total_revenue": 1200.0,
    }

    filtered = (await client.get("/api/admin/orders", params={"search": "bob@"}, headers=admin_headers)).json()
    assert filtered["stats"]["total_orders"] == 1
    assert filtered["stats"]["total_revenue"] == 300.0
    assert filtered["stats"]["delivered_orders"] == 0


async def test_admin_listing_stats_when_nothing_matches(client, admin_headers, placed_orders):
    body = (await client.get("/api/admin/orders", params={"search": "nobody"}, headers=admin_headers)).json()

    assert body["orders"] == []
    assert body["stats"] == {
        "total_orders": 0,
        "pending_orders": 0,
        "delivered_orders": 0,
        "recent_orders": 0,
        "total_revenue": 0.0,
    }


async def test_admin_listing_accepts_camel_case_dates(client, admin_headers, placed_orders):
    future = (await client.get("/api/admin/orders", params={"dateFrom": "2099-01-01"}, headers=admin_headers)).json()
    assert future["pagination"]["total"] == 0
    assert future["stats"]["total_orders"] == 0

    past = (await client.get("/api/admin/orders", params={"dateTo": "2000-01-01"}, headers=admin_headers)).json()
    assert past["pagination"]["total"] == 0

    today = datetime.now(timezone.utc).date().isoformat()
    current = (
        await client.get("/api/admin/orders", params={"dateFrom": today, "dateTo": today}, headers=admin_headers)
    ).json()
    assert current["pagination"]["total"] == len(placed_orders)


async def test_admin_search_treats_wildcards_literally(client, admin_headers, placed_orders):
    for term in ["%", "_", "ana%example"]:
        body = (await client.get("/api/admin/orders", params={"search": term}, headers=admin_headers)).json()
        assert body["pagination"]["total"] == 0, term

    # Plain substrings still match
    body = (await client.get("/api/admin/orders", params={"search": "ORD-"}, headers=admin_headers)).json()
    assert body["pagination"]["total"] == len(placed_orders)


async def test_order_detail_includes_owner_profile(client, placed_orders):
    order = (await client.get(f"/api/orders/{placed_orders[0]['id']}")).json()["order"]

    assert (order["first_name"], order["last_name"], order["phone"]) == ("Ana", "Lopez Garcia", "5551234567")


async def test_internal_key_is_required_to_be_configured(client, admin_headers, monkeypatch):
    from shared.security import dependencies

    monkeypatch.setattr(dependencies, "INTERNAL_API_KEY", "")

    assert dependencies.verify_api_key("") is False
    response = await client.get("/api/admin/orders", headers={"X-Internal-API-Key": ""})
    assert response.status_code == 403
    response = await client.get("/api/admin/orders", headers=admin_headers)
    assert response.status_code == 403
