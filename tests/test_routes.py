import pytest
from datetime import datetime, timedelta, timezone
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession


ADMIN_SALES = "/api/v1/admin/flash-sales"


def window(starts_in=timedelta(hours=-1), lasts=timedelta(hours=2)):
    start_time = datetime.now(timezone.utc) + starts_in
    return {"start_time": start_time.isoformat(), "end_time": (start_time + lasts).isoformat()}


async def create_sale(client, headers, name="Tết Sale", starts_in=timedelta(hours=-1), lasts=timedelta(hours=2), **extra):
    payload = {"name": name, **window(starts_in, lasts), **extra}
    response = await client.post(ADMIN_SALES, json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def add_item(client, headers, flash_sale_id, product_id, **overrides):
    payload = {
        "product_id": product_id,
        "original_price": 100000,
        "sale_price": 80000,
        "discount_percent": 20,
        "total_quantity": 50,
        "max_per_user": 2,
        **overrides,
    }
    return await client.post(f"{ADMIN_SALES}/{flash_sale_id}/items", json=payload, headers=headers)


async def test_root_and_health(client):
    root = await client.get("/")
    assert root.status_code == 200
    assert root.json()["docs"] == "/api/v1/docs"

    health = await client.get("/health")
    assert health.json() == {"status": "healthy"}


async def test_admin_routes_require_a_session(client):
    response = await client.get(ADMIN_SALES)

    assert response.status_code == 401
    assert response.json() == {"error": "Not authenticated! Please login again to proceed."}


async def test_admin_routes_reject_non_admins(client, customer_headers):
    response = await client.post(ADMIN_SALES, json={"name": "x", **window()}, headers=customer_headers)

    assert response.status_code == 401
    assert response.json()["error"] == "Only admins can access this resource!"


async def test_admin_routes_reject_bad_tokens(client):
    response = await client.get(ADMIN_SALES, headers={"Authorization": "Bearer not-a-token"})

    assert response.status_code == 401
    assert response.json()["error"] == "Invalid or expired token provided!"


async def test_create_flash_sale(client, admin_headers):
    body = await create_sale(client, admin_headers, description="<b>Giảm</b> giá<script>alert(1)</script>")

    assert body["status"] == "ACTIVE"
    assert body["effective_status"] == "ACTIVE"
    assert body["items"] == []
    assert "<script>" not in body["description"]


async def test_create_flash_sale_with_inverted_window(client, admin_headers):
    response = await client.post(
        ADMIN_SALES, json={"name": "Backwards", **window(lasts=timedelta(hours=-1))}, headers=admin_headers
    )

    assert response.status_code == 400
    assert response.json()["error"] == "End time must be after start time"

    listing = await client.get(ADMIN_SALES, headers=admin_headers)
    assert listing.json()["pagination"]["total"] == 0


async def test_malformed_body_uses_error_envelope(client, admin_headers):
    response = await client.post(ADMIN_SALES, json={"name": "No window"}, headers=admin_headers)

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Validation error"
    assert body["details"]


async def test_unknown_flash_sale_is_404(client, admin_headers):
    response = await client.get(f"{ADMIN_SALES}/999", headers=admin_headers)

    assert response.status_code == 404
    assert response.json() == {"error": "Flash sale not found"}


async def test_unsupported_method_uses_error_envelope(client, admin_headers):
    response = await client.patch(f"{ADMIN_SALES}/1", json={}, headers=admin_headers)

    assert response.status_code == 405
    assert response.json() == {"error": "Method Not Allowed"}


async def test_unknown_path_uses_error_envelope(client):
    response = await client.get("/api/v1/flash-sale-of-the-day")

    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}


async def test_update_and_delete_flash_sale(client, admin_headers):
    sale = await create_sale(client, admin_headers, starts_in=timedelta(days=1))
    assert sale["status"] == "UPCOMING"

    response = await client.put(
        f"{ADMIN_SALES}/{sale['id']}",
        json={"start_time": (datetime.now(timezone.utc) - timedelta(minutes=5)).isoformat()},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "ACTIVE"

    response = await client.delete(f"{ADMIN_SALES}/{sale['id']}", headers=admin_headers)
    assert response.json() == {"message": "Flash sale deleted successfully"}

    response = await client.get(f"{ADMIN_SALES}/{sale['id']}", headers=admin_headers)
    assert response.status_code == 404


async def test_list_flash_sales_with_filters(client, admin_headers):
    await create_sale(client, admin_headers, name="Tết Sale")
    await create_sale(client, admin_headers, name="Black Friday", starts_in=timedelta(days=3))

    response = await client.get(ADMIN_SALES, params={"status": "upcoming"}, headers=admin_headers)
    body = response.json()
    assert [sale["name"] for sale in body["flash_sales"]] == ["Black Friday"]
    assert body["pagination"] == {"page": 1, "limit": 10, "total": 1, "total_pages": 1}

    response = await client.get(ADMIN_SALES, params={"status": "ALL", "search": "tết"}, headers=admin_headers)
    assert [sale["name"] for sale in response.json()["flash_sales"]] == ["Tết Sale"]


@pytest.mark.parametrize("params", [{"page": 0}, {"limit": 500}, {"status": "CANCELLED"}])
async def test_list_flash_sales_rejects_bad_query(client, admin_headers, params):
    response = await client.get(ADMIN_SALES, params=params, headers=admin_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "Validation error"


async def test_item_endpoints(client, admin_headers, products):
    sale = await create_sale(client, admin_headers)

    response = await add_item(client, admin_headers, sale["id"], products[0].id)
    assert response.status_code == 201
    item = response.json()
    assert item["remaining_quantity"] == 50
    assert item["sold_quantity"] == 0
    assert item["product"]["name"] == "Product 1"

    duplicate = await add_item(client, admin_headers, sale["id"], products[0].id)
    assert duplicate.status_code == 400
    assert duplicate.json()["error"] == "Product already exists in this flash sale"

    mismatch = await add_item(client, admin_headers, sale["id"], products[1].id, discount_percent=15)
    assert mismatch.status_code == 400
    assert mismatch.json()["details"] == {"expected": 20, "received": 15}

    missing = await add_item(client, admin_headers, sale["id"], 999)
    assert missing.status_code == 404

    response = await client.put(
        f"{ADMIN_SALES}/{sale['id']}/items/{item['id']}",
        json={"total_quantity": 70},
        headers=admin_headers,
    )
    assert response.json()["remaining_quantity"] == 50
    assert response.json()["sold_quantity"] == 20

    response = await client.get(f"{ADMIN_SALES}/{sale['id']}/items", headers=admin_headers)
    assert [i["id"] for i in response.json()["items"]] == [item["id"]]

    response = await client.delete(f"{ADMIN_SALES}/{sale['id']}/items/{item['id']}", headers=admin_headers)
    assert response.json() == {"message": "Flash sale item deleted successfully"}

    response = await client.get(f"{ADMIN_SALES}/{sale['id']}/items/{item['id']}", headers=admin_headers)
    assert response.status_code == 404


async def test_replace_items_endpoint(client, admin_headers, products):
    sale = await create_sale(client, admin_headers)
    await add_item(client, admin_headers, sale["id"], products[0].id)

    items = [
        {
            "product_id": products[1].id,
            "original_price": 200000,
            "sale_price": 100000,
            "discount_percent": 50,
            "total_quantity": 10,
            "max_per_user": 1,
            "priority": 1,
        },
        {
            "product_id": products[2].id,
            "original_price": 300000,
            "sale_price": 270000,
            "discount_percent": 10,
            "total_quantity": 10,
            "max_per_user": 1,
            "priority": 2,
        },
    ]
    response = await client.put(f"{ADMIN_SALES}/{sale['id']}/items", json={"items": items}, headers=admin_headers)

    assert response.status_code == 200
    assert [i["product_id"] for i in response.json()["items"]] == [products[2].id, products[1].id]


async def test_active_flash_sale(client, admin_headers, products):
    response = await client.get("/api/v1/flash-sales/active")
    assert response.status_code == 200
    assert response.json() == {"flash_sale": None}

    await create_sale(client, admin_headers, name="Later", starts_in=timedelta(days=1))
    sale = await create_sale(client, admin_headers)
    await add_item(client, admin_headers, sale["id"], products[0].id, priority=1)
    await add_item(
        client, admin_headers, sale["id"], products[1].id,
        original_price=200000, sale_price=100000, discount_percent=50, priority=7,
    )

    response = await client.get("/api/v1/flash-sales/active")
    body = response.json()["flash_sale"]
    assert body["id"] == sale["id"]
    assert [i["product_id"] for i in body["items"]] == [products[1].id, products[0].id]
    assert body["items"][0]["product"]["image"] == "https://cdn.example.com/p2.jpg"


async def test_track_view_is_always_successful(client, customer_headers):
    response = await client.post("/api/v1/flash-sales/track-view", json={"flash_sale_item_id": 4242})

    assert response.status_code == 200
    assert response.json() == {"success": True}

    response = await client.post(
        "/api/v1/flash-sales/track-view", json={"flash_sale_item_id": 4242}, headers=customer_headers
    )
    assert response.json() == {"success": True}


async def test_track_view_survives_storage_errors(client, admin_headers, products, monkeypatch):
    sale = await create_sale(client, admin_headers)
    item = (await add_item(client, admin_headers, sale["id"], products[0].id)).json()

    async def failing_commit(self):
        raise OperationalError("INSERT INTO flash_sale_item_views", {}, Exception("database is locked"))

    monkeypatch.setattr(AsyncSession, "commit", failing_commit)
    response = await client.post("/api/v1/flash-sales/track-view", json={"flash_sale_item_id": item["id"]})
    monkeypatch.undo()

    assert response.status_code == 200
    assert response.json() == {"success": True}

    response = await client.get(f"{ADMIN_SALES}/{sale['id']}/analytics", headers=admin_headers)
    assert response.json()["analytics"]["total_views"] == 0


async def test_track_view_then_analytics(client, admin_headers, customer_headers, products):
    sale = await create_sale(client, admin_headers)
    item = (await add_item(client, admin_headers, sale["id"], products[0].id)).json()

    for headers in (customer_headers, {}):
        response = await client.post(
            "/api/v1/flash-sales/track-view",
            json={"flash_sale_item_id": item["id"], "user_agent": "Mozilla/5.0 (iPhone) Mobile"},
            headers={**headers, "X-Forwarded-For": "203.0.113.9, 10.0.0.1"},
        )
        assert response.json() == {"success": True}

    response = await client.get(f"{ADMIN_SALES}/{sale['id']}/analytics", headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["flash_sale"]["id"] == sale["id"]
    analytics = body["analytics"]
    assert analytics["total_views"] == 2
    assert analytics["today_views"] == 2
    assert analytics["unique_visitors"] == 1
    assert analytics["conversion_rate"] == 0
    assert analytics["devices"] == {"mobile": 2, "tablet": 0, "desktop": 0}


async def test_analytics_for_unknown_sale(client, admin_headers):
    response = await client.get(f"{ADMIN_SALES}/999/analytics", headers=admin_headers)

    assert response.status_code == 404
