import pytest

from tests.factories import (
    get_service_by_name,
    make_booking,
    make_customer,
    make_mechanic,
    make_offering,
    make_review,
)

pytestmark = pytest.mark.anyio


def _registration(**overrides):
    payload = {
        "business_name": "Lopez Auto Repair",
        "owner_name": "Ana Lopez",
        "phone": "+13105550100",
        "address": "123 Main St",
        "city": "Los Angeles",
        "state": "CA",
        "zip_code": "90012",
        "latitude": 34.0522,
        "longitude": -118.2437,
        "speaks_spanish": True,
    }
    payload.update(overrides)
    return payload


# ----------------------------------------------------------------------
# nearby
# ----------------------------------------------------------------------

async def test_nearby_returns_mechanic_at_point(client, db):
    mechanic = await make_mechanic(db)
    await make_offering(db, mechanic, "Oil Change", min_price="30", max_price="50")

    resp = await client.get(
        "/api/mechanics/nearby",
        params={"latitude": "34.0522", "longitude": "-118.2437", "radius": "1"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["search_criteria"] == {
        "latitude": 34.0522,
        "longitude": -118.2437,
        "radius": 1,
        "service": None,
    }
    assert body["mechanics"] == [
        {
            "id": mechanic.id,
            "business_name": mechanic.business_name,
            "distance_miles": 0.0,
            "rating": 0.0,
            "min_price": 30.0,
            "max_price": 50.0,
        }
    ]


async def test_nearby_default_radius(client):
    resp = await client.get("/api/mechanics/nearby", params={"latitude": "34", "longitude": "-118"})
    assert resp.status_code == 200
    assert resp.json()["search_criteria"]["radius"] == 10
    assert resp.json()["mechanics"] == []


async def test_nearby_service_filter_echoed(client, db):
    mechanic = await make_mechanic(db)
    await make_offering(db, mechanic, "Brake Inspection")

    resp = await client.get(
        "/api/mechanics/nearby",
        params={"latitude": "34.0522", "longitude": "-118.2437", "service": " brake "},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["search_criteria"]["service"] == "brake"
    assert [m["id"] for m in body["mechanics"]] == [mechanic.id]


@pytest.mark.parametrize(
    "params",
    [
        {},
        {"latitude": "34.05"},
        {"longitude": "-118.24"},
        {"latitude": "abc", "longitude": "-118.24"},
        {"latitude": "91", "longitude": "0"},
        {"latitude": "0", "longitude": "-180.5"},
        {"latitude": "nan", "longitude": "0"},
        {"latitude": "34", "longitude": "-118", "radius": "0"},
        {"latitude": "34", "longitude": "-118", "radius": "-5"},
        {"latitude": "34", "longitude": "-118", "radius": "2.5"},
        {"latitude": "34", "longitude": "-118", "radius": "ten"},
    ],
)
async def test_nearby_rejects_bad_parameters(client, params):
    resp = await client.get("/api/mechanics/nearby", params=params)
    assert resp.status_code == 400
    body = resp.json()
    assert body["status"] == "error"
    assert body["error_code"] == "VALIDATION_ERROR"
    assert body["path"] == "/api/mechanics/nearby"


async def test_nearby_radius_has_no_default_cap(client, db):
    # about 24 miles north of the search point
    mechanic = await make_mechanic(db, latitude=34.40, longitude=-118.2437)
    await make_offering(db, mechanic, "Oil Change")

    params = {"latitude": "34.0522", "longitude": "-118.2437"}
    resp = await client.get("/api/mechanics/nearby", params={**params, "radius": "20"})
    assert resp.json()["mechanics"] == []

    resp = await client.get("/api/mechanics/nearby", params={**params, "radius": "30"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["search_criteria"]["radius"] == 30
    assert [m["id"] for m in body["mechanics"]] == [mechanic.id]


async def test_nearby_radius_cap_when_configured(client, settings):
    settings.MAX_SEARCH_RADIUS_MILES = 25

    params = {"latitude": "34", "longitude": "-118"}
    assert (await client.get("/api/mechanics/nearby", params={**params, "radius": "25"})).status_code == 200

    resp = await client.get("/api/mechanics/nearby", params={**params, "radius": "26"})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Radius must be between 1 and 25"


async def test_nearby_storage_failure_is_500(client, monkeypatch):
    from sqlalchemy.exc import OperationalError

    from backend.app.services import mechanics_service

    async def _broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is gone"))

    monkeypatch.setattr(mechanics_service, "execute_with_timeout", _broken)

    resp = await client.get("/api/mechanics/nearby", params={"latitude": "34", "longitude": "-118"})
    assert resp.status_code == 500
    body = resp.json()
    assert body["error_code"] == "STORAGE_ERROR"
    assert body["message"] == "Failed to find nearby mechanics"
    # no internals unless DEBUG
    assert body["details"] is None
    assert "mechanics" not in body


# ----------------------------------------------------------------------
# detail
# ----------------------------------------------------------------------

async def test_mechanic_detail_lists_services(client, db):
    mechanic = await make_mechanic(db)
    await make_offering(db, mechanic, "Oil Change")
    await make_offering(db, mechanic, "Brake Inspection", is_available=False)

    resp = await client.get(f"/api/mechanics/{mechanic.id}")
    assert resp.status_code == 200
    data = resp.json()["mechanic"]
    assert data["id"] == mechanic.id
    assert data["business_name"] == "Test Garage"
    assert data["services"] == ["Brake Inspection", "Oil Change"]
    assert data["rating"] == 0.0
    assert data["review_count"] == 0


async def test_mechanic_detail_not_found(client, db):
    inactive = await make_mechanic(db, is_active=False)

    for mechanic_id in (inactive.id, 999_999):
        resp = await client.get(f"/api/mechanics/{mechanic_id}")
        assert resp.status_code == 404
        assert resp.json()["error_code"] == "NOT_FOUND"


async def test_mechanic_detail_bad_id(client):
    resp = await client.get("/api/mechanics/not-a-number")
    assert resp.status_code == 400
    assert resp.json()["error_code"] == "VALIDATION_ERROR"


# ----------------------------------------------------------------------
# registration / moderation
# ----------------------------------------------------------------------

async def test_register_mechanic_starts_unverified(client):
    resp = await client.post("/api/mechanics", json=_registration(rating=5, is_verified=True))
    assert resp.status_code == 201
    data = resp.json()
    assert data["is_verified"] is False
    assert data["is_active"] is True
    assert data["rating"] == 0.0
    assert data["review_count"] == 0


async def test_register_requires_both_coordinates(client):
    resp = await client.post("/api/mechanics", json=_registration(longitude=None))
    assert resp.status_code == 400


async def test_register_unknown_language(client):
    resp = await client.post("/api/mechanics", json=_registration(preferred_language="xx"))
    assert resp.status_code == 400


async def test_register_duplicate_phone_is_storage_error(client):
    assert (await client.post("/api/mechanics", json=_registration())).status_code == 201
    resp = await client.post("/api/mechanics", json=_registration(business_name="Copycat"))
    assert resp.status_code == 500
    assert resp.json()["error_code"] == "STORAGE_ERROR"


async def test_verified_mechanic_becomes_searchable(client, db):
    created = (await client.post("/api/mechanics", json=_registration())).json()
    service = await get_service_by_name(db, "Oil Change")

    resp = await client.put(
        f"/api/mechanics/{created['id']}/services/{service.id}",
        json={"min_price": 35, "max_price": 55},
    )
    assert resp.status_code == 201

    params = {"latitude": "34.0522", "longitude": "-118.2437"}
    assert (await client.get("/api/mechanics/nearby", params=params)).json()["mechanics"] == []

    resp = await client.patch(f"/api/mechanics/{created['id']}", json={"is_verified": True})
    assert resp.status_code == 200
    assert resp.json()["is_verified"] is True

    found = (await client.get("/api/mechanics/nearby", params=params)).json()["mechanics"]
    assert [m["id"] for m in found] == [created["id"]]
    assert (found[0]["min_price"], found[0]["max_price"]) == (35.0, 55.0)


async def test_moving_mechanic_moves_search_result(client, db):
    mechanic = await make_mechanic(db)
    await make_offering(db, mechanic)

    resp = await client.patch(
        f"/api/mechanics/{mechanic.id}",
        json={"latitude": 40.7128, "longitude": -74.0060},
    )
    assert resp.status_code == 200

    la = {"latitude": "34.0522", "longitude": "-118.2437"}
    ny = {"latitude": "40.7128", "longitude": "-74.0060"}
    assert (await client.get("/api/mechanics/nearby", params=la)).json()["mechanics"] == []
    assert len((await client.get("/api/mechanics/nearby", params=ny)).json()["mechanics"]) == 1


async def test_patch_null_on_required_field_is_400(client, db):
    mechanic = await make_mechanic(db)

    for payload in ({"business_name": None}, {"is_active": None}, {"speaks_english": None}):
        resp = await client.patch(f"/api/mechanics/{mechanic.id}", json=payload)
        assert resp.status_code == 400, payload
        assert resp.json()["error_code"] == "VALIDATION_ERROR"

    # nullable columns may still be cleared
    resp = await client.patch(f"/api/mechanics/{mechanic.id}", json={"owner_name": None})
    assert resp.status_code == 200
    assert resp.json()["business_name"] == "Test Garage"


async def test_deactivate_mechanic(client, db):
    mechanic = await make_mechanic(db)
    await make_offering(db, mechanic)

    resp = await client.delete(f"/api/mechanics/{mechanic.id}")
    assert resp.status_code == 204

    assert (await client.get(f"/api/mechanics/{mechanic.id}")).status_code == 404
    params = {"latitude": "34.0522", "longitude": "-118.2437"}
    assert (await client.get("/api/mechanics/nearby", params=params)).json()["mechanics"] == []


async def test_upsert_offering_replaces_prices(client, db):
    mechanic = await make_mechanic(db)
    service = await get_service_by_name(db, "Oil Change")
    url = f"/api/mechanics/{mechanic.id}/services/{service.id}"

    assert (await client.put(url, json={"min_price": 30, "max_price": 50})).status_code == 201
    resp = await client.put(url, json={"min_price": 40, "max_price": 60, "notes": "synthetic"})
    assert resp.status_code == 200
    data = resp.json()
    assert (data["min_price"], data["max_price"], data["notes"]) == (40.0, 60.0, "synthetic")


async def test_upsert_offering_validation(client, db):
    mechanic = await make_mechanic(db)
    service = await get_service_by_name(db, "Oil Change")

    resp = await client.put(
        f"/api/mechanics/{mechanic.id}/services/{service.id}",
        json={"min_price": 80, "max_price": 50},
    )
    assert resp.status_code == 400

    resp = await client.put(
        f"/api/mechanics/{mechanic.id}/services/999999",
        json={"min_price": 30, "max_price": 50},
    )
    assert resp.status_code == 404


# ----------------------------------------------------------------------
# reviews
# ----------------------------------------------------------------------

async def test_list_reviews_published_only_and_anonymous_hidden(client, db):
    mechanic = await make_mechanic(db)
    await make_review(db, mechanic, 5)
    await make_review(db, mechanic, 2, is_published=False)

    customer = await make_customer(db)
    booking = await make_booking(db, customer, mechanic)
    resp = await client.post(
        "/api/reviews",
        json={
            "booking_id": booking.id,
            "customer_id": customer.id,
            "mechanic_id": mechanic.id,
            "rating": 4,
            "is_anonymous": True,
        },
    )
    assert resp.status_code == 201

    reviews = (await client.get(f"/api/mechanics/{mechanic.id}/reviews")).json()
    assert sorted(r["rating"] for r in reviews) == [4, 5]
    anonymous = [r for r in reviews if r["is_anonymous"]]
    assert anonymous[0]["customer_id"] is None


async def test_review_updates_rating_immediately(client, db):
    mechanic = await make_mechanic(db)
    customer = await make_customer(db)
    booking = await make_booking(db, customer, mechanic)

    resp = await client.post(
        "/api/reviews",
        json={"booking_id": booking.id, "customer_id": customer.id, "mechanic_id": mechanic.id, "rating": 5},
    )
    review_id = resp.json()["id"]

    data = (await client.get(f"/api/mechanics/{mechanic.id}")).json()["mechanic"]
    assert (data["rating"], data["review_count"]) == (5.0, 1)

    resp = await client.patch(f"/api/reviews/{review_id}", json={"is_published": False, "is_flagged": True})
    assert resp.status_code == 200

    data = (await client.get(f"/api/mechanics/{mechanic.id}")).json()["mechanic"]
    assert (data["rating"], data["review_count"]) == (0.0, 0)


async def test_review_must_match_booking(client, db):
    mechanic = await make_mechanic(db)
    other = await make_mechanic(db, business_name="Other")
    customer = await make_customer(db)
    booking = await make_booking(db, customer, mechanic)

    payload = {"booking_id": booking.id, "customer_id": customer.id, "mechanic_id": other.id, "rating": 5}
    assert (await client.post("/api/reviews", json=payload)).status_code == 400

    payload["mechanic_id"] = mechanic.id
    assert (await client.post("/api/reviews", json=payload)).status_code == 201
    # one review per booking
    assert (await client.post("/api/reviews", json=payload)).status_code == 400


async def test_update_unknown_review(client):
    resp = await client.patch("/api/reviews/999999", json={"is_published": False})
    assert resp.status_code == 404


async def test_patch_review_null_on_required_field_is_400(client, db):
    mechanic = await make_mechanic(db)
    review = await make_review(db, mechanic, 4)

    for payload in ({"is_published": None}, {"rating": None}, {"is_flagged": None}):
        resp = await client.patch(f"/api/reviews/{review.id}", json=payload)
        assert resp.status_code == 400, payload
        assert resp.json()["error_code"] == "VALIDATION_ERROR"

    resp = await client.patch(f"/api/reviews/{review.id}", json={"comment": None})
    assert resp.status_code == 200


async def test_delete_review_recomputes_rating(client, db):
    mechanic = await make_mechanic(db)
    await make_review(db, mechanic, 5)
    low = await make_review(db, mechanic, 2)

    data = (await client.get(f"/api/mechanics/{mechanic.id}")).json()["mechanic"]
    assert (data["rating"], data["review_count"]) == (3.5, 2)

    resp = await client.delete(f"/api/reviews/{low.id}")
    assert resp.status_code == 204

    data = (await client.get(f"/api/mechanics/{mechanic.id}")).json()["mechanic"]
    assert (data["rating"], data["review_count"]) == (5.0, 1)

    reviews = (await client.get(f"/api/mechanics/{mechanic.id}/reviews")).json()
    assert [r["rating"] for r in reviews] == [5]


async def test_delete_unknown_review(client):
    resp = await client.delete("/api/reviews/999999")
    assert resp.status_code == 404
