"""
Tests del repositorio de encuestas: listados, proximidad, estadísticas,
detalle, eliminación y exportación.
"""

import csv
import io
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import func, select, update

from agrisync.models.photo import Photo
from agrisync.models.survey import Survey

SYNC_URL = "/api/v1/sync"
SURVEYS_URL = "/api/v1/surveys"


async def _seed(client, surveys: list[dict], device_id: str = "D1") -> dict:
    response = await client.post(SYNC_URL, json={"surveys": surveys, "deviceId": device_id})
    assert response.status_code == 200
    return response.json()


async def test_list_requires_authentication(client):
    response = await client.get(SURVEYS_URL)
    assert response.status_code in (401, 403)


async def test_refresh_token_is_not_accepted(client, test_user, token_for):
    headers = {"Authorization": f"Bearer {token_for(test_user.id, 'refresh')}"}
    response = await client.get(SURVEYS_URL, headers=headers)
    assert response.status_code == 401


async def test_expired_token_is_not_accepted(client, test_user, token_for):
    headers = {"Authorization": f"Bearer {token_for(test_user.id, minutes=-1)}"}
    response = await client.get(SURVEYS_URL, headers=headers)
    assert response.status_code == 401


async def test_list_is_paginated_newest_first(client, auth_headers, make_survey):
    await _seed(client, [make_survey(f"C{i}", farmerName=f"Farmer {i}") for i in range(5)])

    response = await client.get(SURVEYS_URL, params={"page": 1, "size": 2}, headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 5
    assert body["pages"] == 3
    assert body["page"] == 1
    assert [item["farmer_name"] for item in body["items"]] == ["Farmer 4", "Farmer 3"]

    last = await client.get(SURVEYS_URL, params={"page": 3, "size": 2}, headers=auth_headers)
    assert [item["farmer_name"] for item in last.json()["items"]] == ["Farmer 0"]


async def test_list_filters(client, auth_headers, make_survey):
    await _seed(client, [
        make_survey("C1", farmerName="Maria", village="Kolovai", island="Tongatapu"),
        make_survey("C2", farmerName="Sione", village="Neiafu", island="Vava'u"),
        make_survey("C3", farmerName="Mele", village="Pangai", island="Ha'apai", userId="enum-009"),
    ])

    async def names(**params) -> list[str]:
        response = await client.get(SURVEYS_URL, params=params, headers=auth_headers)
        return sorted(item["farmer_name"] for item in response.json()["items"])

    assert await names(search="mar") == ["Maria"]
    assert await names(search="neiafu") == ["Sione"]
    assert await names(island="Ha'apai") == ["Mele"]
    assert await names(village="Kolovai") == ["Maria"]
    assert await names(user_id="enum-009") == ["Mele"]


async def test_search_treats_wildcards_literally(client, auth_headers, make_survey):
    await _seed(client, [
        make_survey("C1", farmerName="Maria_1"),
        make_survey("C2", farmerName="Maria21"),
        make_survey("C3", farmerName="Sione 100%"),
        make_survey("C4", farmerName="Sione 1000"),
    ])

    async def names(search: str) -> list[str]:
        response = await client.get(SURVEYS_URL, params={"search": search}, headers=auth_headers)
        return [item["farmer_name"] for item in response.json()["items"]]

    assert await names("a_1") == ["Maria_1"]
    assert await names("100%") == ["Sione 100%"]


async def test_list_date_range_is_inclusive(client, db_session, auth_headers, make_survey):
    await _seed(client, [make_survey("C1"), make_survey("C2")])
    old = datetime(2025, 1, 10, 15, 30, tzinfo=timezone.utc)
    await db_session.execute(
        update(Survey).where(Survey.client_id == "C1").values(created_at=old)
    )

    response = await client.get(
        SURVEYS_URL,
        params={"start_date": "2025-01-10", "end_date": "2025-01-10"},
        headers=auth_headers,
    )
    assert [item["client_id"] for item in response.json()["items"]] == ["C1"]

    yesterday = date.today() - timedelta(days=1)
    recent = await client.get(
        SURVEYS_URL, params={"start_date": yesterday.isoformat()}, headers=auth_headers
    )
    assert [item["client_id"] for item in recent.json()["items"]] == ["C2"]


async def test_list_includes_enumerator_name(client, auth_headers, test_user, make_survey):
    await _seed(client, [make_survey("C1", userId=test_user.id), make_survey("C2")])

    response = await client.get(SURVEYS_URL, params={"search": ""}, headers=auth_headers)

    by_client = {item["client_id"]: item for item in response.json()["items"]}
    assert by_client["C1"]["enumerator_name"] == "Ana Tupou"
    assert by_client["C2"]["enumerator_name"] is None


# ── Proximidad ───────────────────────────────────────

async def test_nearby_orders_by_distance(client, auth_headers, make_survey):
    await _seed(client, [
        make_survey("FAR", farmerName="Lejos", latitude=-21.30, longitude=-175.20),
        make_survey("NEAR", farmerName="Cerca", latitude=-21.135, longitude=-175.20),
        make_survey("OUT", farmerName="Fuera", latitude=-18.65, longitude=-173.98),
        make_survey("NOGPS", farmerName="Sin GPS", latitude=None, longitude=None),
    ])

    response = await client.get(
        f"{SURVEYS_URL}/nearby",
        params={"latitude": -21.13, "longitude": -175.20, "radius": 25},
        headers=auth_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["radius_km"] == 25
    assert [farm["farmer_name"] for farm in body["farms"]] == ["Cerca", "Lejos"]
    distances = [farm["distance_km"] for farm in body["farms"]]
    assert distances == sorted(distances)
    assert 0.5 < distances[0] < 0.6
    assert 18.5 < distances[1] < 19.5


async def test_nearby_rejects_invalid_coordinates(client, auth_headers):
    response = await client.get(
        f"{SURVEYS_URL}/nearby",
        params={"latitude": 95, "longitude": 10},
        headers=auth_headers,
    )
    assert response.status_code == 422

    response = await client.get(
        f"{SURVEYS_URL}/nearby",
        params={"latitude": 10, "longitude": 10, "radius": 0},
        headers=auth_headers,
    )
    assert response.status_code == 422


# ── Estadísticas ─────────────────────────────────────

async def test_statistics(client, auth_headers, make_survey):
    await _seed(client, [
        make_survey("C1", farmSize=2.0, crops=["kava", "taro"], livestock={"pigs": 3},
                    pestIssues="pests", pestSeverity="high", userId="enum-1"),
        make_survey("C2", farmSize=4.0, crops=["Kava"], livestock={"pigs": 1, "goats": 2},
                    island="Vava'u", village="Neiafu", userId="enum-2"),
        make_survey("C3", farmSize=None, crops=[], livestock=None, latitude=None,
                    longitude=None, userId="enum-2"),
    ])

    response = await client.get(f"{SURVEYS_URL}/statistics", headers=auth_headers)

    assert response.status_code == 200
    stats = response.json()
    summary = stats["summary"]
    assert summary["total_surveys"] == 3
    assert summary["total_farm_area"] == 6.0
    assert summary["avg_farm_size"] == 3.0
    assert summary["active_enumerators"] == 2
    assert summary["islands_covered"] == 2
    assert summary["surveys_with_pests"] == 1

    assert stats["crop_distribution"] == [
        {"name": "kava", "count": 2},
        {"name": "taro", "count": 1},
    ]
    assert stats["island_distribution"][0] == {"name": "Tongatapu", "count": 2}
    assert stats["livestock"] == {"cattle": 0, "pigs": 4, "chickens": 0, "goats": 2}
    assert stats["pest_issues"] == [
        {"pest_issues": "pests", "pest_severity": "high", "count": 1}
    ]
    assert len(stats["gps_points"]) == 2
    assert len(stats["recent_surveys"]) == 3


async def test_statistics_on_empty_repository(client, auth_headers):
    response = await client.get(f"{SURVEYS_URL}/statistics", headers=auth_headers)

    stats = response.json()
    assert stats["summary"]["total_surveys"] == 0
    assert stats["summary"]["total_farm_area"] == 0.0
    assert stats["summary"]["avg_farm_size"] is None
    assert stats["crop_distribution"] == []


# ── Detalle / eliminación ────────────────────────────

async def test_get_survey_with_photos(client, auth_headers, make_survey):
    result = await _seed(client, [
        make_survey("C1", photos=[{"data": "AAAA", "caption": "Parcela"}, "BBBB"]),
    ])
    listing = await client.get(SURVEYS_URL, headers=auth_headers)
    survey_id = listing.json()["items"][0]["id"]
    assert result["inserted_count"] == 1

    response = await client.get(f"{SURVEYS_URL}/{survey_id}", headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["client_id"] == "C1"
    assert [p["caption"] for p in body["photos"]] == ["Parcela", None]
    assert "photo_data" not in body["photos"][0]


async def test_get_missing_survey_returns_404(client, auth_headers):
    response = await client.get(f"{SURVEYS_URL}/9999", headers=auth_headers)
    assert response.status_code == 404


async def test_delete_survey_cascades_photos(client, db_session, auth_headers, make_survey):
    await _seed(client, [
        make_survey("C1", photos=["AAAA", "BBBB"]),
        make_survey("C2", photos=["CCCC"]),
    ])
    survey_id = (
        await db_session.execute(select(Survey.id).where(Survey.client_id == "C1"))
    ).scalar_one()

    response = await client.delete(f"{SURVEYS_URL}/{survey_id}", headers=auth_headers)

    assert response.status_code == 204
    assert (await db_session.execute(select(func.count(Survey.id)))).scalar() == 1
    assert (await db_session.execute(select(func.count(Photo.id)))).scalar() == 1

    again = await client.delete(f"{SURVEYS_URL}/{survey_id}", headers=auth_headers)
    assert again.status_code == 404


# ── Exportación ──────────────────────────────────────

async def test_export_csv(client, auth_headers, test_user, make_survey):
    await _seed(client, [
        make_survey("C1", farmerName='Maria "Mele"', userId=test_user.id,
                    livestock={"cattle": 2, "pigs": 4}),
    ])

    response = await client.get("/api/v1/export/csv", headers=auth_headers)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment" in response.headers["content-disposition"]
    rows = list(csv.reader(io.StringIO(response.text)))
    assert rows[0][0] == "ID"
    assert len(rows) == 2
    row = dict(zip(rows[0], rows[1]))
    assert row["Farmer Name"] == 'Maria "Mele"'
    assert row["Crops"] == "kava; taro"
    assert row["Cattle"] == "2"
    assert row["Goats"] == "0"
    assert row["Enumerator"] == "Ana Tupou"
    assert row["Device ID"] == "D1"


async def test_export_json_and_geojson(client, auth_headers, make_survey):
    await _seed(client, [
        make_survey("C1"),
        make_survey("C2", latitude=None, longitude=None),
    ])

    as_json = await client.get("/api/v1/export/json", headers=auth_headers)
    assert as_json.status_code == 200
    assert {item["client_id"] for item in as_json.json()} == {"C1", "C2"}

    as_geojson = await client.get("/api/v1/export/geojson", headers=auth_headers)
    collection = as_geojson.json()
    assert collection["type"] == "FeatureCollection"
    [feature] = collection["features"]
    assert feature["geometry"] == {"type": "Point", "coordinates": [-175.33, -21.10]}
    assert feature["properties"]["farmer_name"] == "Maria"


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
