"""
Tests del endpoint de sincronización y de su auditoría.
"""

from sqlalchemy import func, select, text

from agrisync.models.photo import Photo
from agrisync.models.survey import Survey
from agrisync.models.sync_log import SyncLog

SYNC_URL = "/api/v1/sync"


async def _logs(db) -> list[SyncLog]:
    result = await db.execute(select(SyncLog).order_by(SyncLog.id))
    return list(result.scalars().all())


async def test_anonymous_device_can_sync(client, db_session, make_survey):
    response = await client.post(
        SYNC_URL,
        json={"surveys": [make_survey(device_id=None)], "deviceId": "D1"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["synced_count"] == 1
    assert body["inserted_count"] == 1
    assert body["conflict_count"] == 0
    assert body["conflicts"] == []
    assert body["message"]

    survey = (await db_session.execute(select(Survey))).scalar_one()
    assert survey.device_id == "D1"
    assert survey.user_id == "anonymous"
    assert survey.synced_by == "anonymous"

    [log] = await _logs(db_session)
    assert log.success is True
    assert log.user_id == "anonymous"
    assert log.device_id == "D1"
    assert log.survey_count == 1
    assert log.inserted_count == 1


async def test_authenticated_user_is_the_actor(client, db_session, auth_headers, make_survey):
    response = await client.post(
        SYNC_URL,
        json={"surveys": [make_survey()], "deviceId": "D1", "userId": "someone-else"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    survey = (await db_session.execute(select(Survey))).scalar_one()
    assert survey.synced_by == "enum-001"
    [log] = await _logs(db_session)
    assert log.user_id == "enum-001"


async def test_declared_user_id_used_without_session(client, db_session, make_survey):
    await client.post(
        SYNC_URL,
        json={"surveys": [make_survey()], "deviceId": "D1", "userId": "enum-042"},
    )

    [log] = await _logs(db_session)
    assert log.user_id == "enum-042"


async def test_invalid_token_is_rejected(client, make_survey):
    response = await client.post(
        SYNC_URL,
        json={"surveys": [make_survey()], "deviceId": "D1"},
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert response.status_code == 401


async def test_device_id_from_header(client, db_session, make_survey):
    response = await client.post(
        SYNC_URL,
        json={"surveys": [make_survey(device_id=None)]},
        headers={"X-Device-Id": "tablet-07"},
    )

    assert response.status_code == 200
    survey = (await db_session.execute(select(Survey))).scalar_one()
    assert survey.device_id == "tablet-07"


async def test_conflicts_are_reported_per_record(client, make_survey):
    await client.post(SYNC_URL, json={"surveys": [make_survey("C1"), make_survey("C2")]})

    response = await client.post(
        SYNC_URL,
        json={
            "surveys": [
                make_survey("C1", clientTimestamp=200, farmSize=3.0),
                make_survey("C2"),
                make_survey("C3"),
            ],
        },
    )

    body = response.json()
    assert body["synced_count"] == 3
    assert body["inserted_count"] == 1
    assert body["conflict_count"] == 2
    resolutions = {c["client_id"]: c["resolution"] for c in body["conflicts"]}
    assert resolutions == {"C1": "updated", "C2": "rejected"}
    assert all(c["farmer_name"] == "Maria" for c in body["conflicts"])
    assert all(c["server_id"] for c in body["conflicts"])


async def test_invalid_record_does_not_abort_batch(client, db_session, make_survey):
    response = await client.post(
        SYNC_URL,
        json={
            "surveys": [
                make_survey("C1"),
                make_survey("C2", latitude=123.0),
                make_survey("C3"),
            ],
            "deviceId": "D1",
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["synced_count"] == 2
    assert body["inserted_count"] == 2
    assert body["failed_count"] == 1
    assert body["failures"][0]["client_id"] == "C2"
    assert "latitude" in body["failures"][0]["error"]

    stored = (await db_session.execute(select(Survey.client_id).order_by(Survey.client_id))).scalars().all()
    assert stored == ["C1", "C3"]

    [log] = await _logs(db_session)
    assert log.success is True
    assert log.survey_count == 3
    assert log.inserted_count == 2
    assert log.failed_count == 1
    assert "C2" in log.error_message


async def test_out_of_range_timestamp_fails_only_that_record(client, db_session, make_survey):
    response = await client.post(
        SYNC_URL,
        json={
            "surveys": [
                make_survey("C1"),
                make_survey("C2", clientTimestamp=10**20),
                make_survey("C3"),
            ],
            "deviceId": "D1",
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["inserted_count"] == 2
    assert body["failed_count"] == 1
    assert body["failures"][0]["client_id"] == "C2"

    [log] = await _logs(db_session)
    assert (log.success, log.survey_count, log.failed_count) == (True, 3, 1)


async def test_storage_error_rolls_back_only_that_record(client, db_session, monkeypatch, make_survey):
    from agrisync.services import sync_service

    real_upsert = sync_service.upsert_survey

    async def failing_upsert(db, payload, **kwargs):
        result = await real_upsert(db, payload, **kwargs)
        if payload.client_id == "C2":
            await db.execute(text("INSERT INTO tabla_inexistente VALUES (1)"))
        return result

    monkeypatch.setattr(sync_service, "upsert_survey", failing_upsert)

    response = await client.post(
        SYNC_URL,
        json={"surveys": [make_survey("C1"), make_survey("C2"), make_survey("C3")], "deviceId": "D1"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["inserted_count"] == 2
    assert body["failed_count"] == 1
    assert body["failures"][0]["client_id"] == "C2"

    stored = (await db_session.execute(select(Survey.client_id).order_by(Survey.client_id))).scalars().all()
    assert stored == ["C1", "C3"]
    [log] = await _logs(db_session)
    assert (log.success, log.survey_count, log.failed_count) == (True, 3, 1)


async def test_resubmitting_same_batch_creates_no_duplicates(client, db_session, make_survey):
    batch = {
        "surveys": [
            make_survey("C1", photos=[{"data": "aGVsbG8="}]),
            make_survey("C2", farmSize=1.5),
        ],
        "deviceId": "D1",
    }

    first = await client.post(SYNC_URL, json=batch)
    # Respuesta "perdida": el dispositivo reenvía el mismo batch
    second = await client.post(SYNC_URL, json=batch)

    assert first.json()["inserted_count"] == 2
    assert second.json()["inserted_count"] == 0
    assert second.json()["conflict_count"] == 2

    surveys = (await db_session.execute(select(func.count(Survey.id)))).scalar()
    photos = (await db_session.execute(select(func.count(Photo.id)))).scalar()
    area = (await db_session.execute(select(func.sum(Survey.farm_size)))).scalar()
    assert surveys == 2
    assert photos == 1
    assert area == 4.0


async def test_empty_batch_is_accepted_and_audited(client, db_session):
    response = await client.post(SYNC_URL, json={"surveys": [], "deviceId": "D1"})

    assert response.status_code == 200
    assert response.json()["synced_count"] == 0
    [log] = await _logs(db_session)
    assert log.success is True
    assert log.survey_count == 0


# ── Batches mal formados ─────────────────────────────

async def test_surveys_not_a_list_rejects_whole_batch(client, db_session):
    response = await client.post(SYNC_URL, json={"surveys": {"clientId": "C1"}, "deviceId": "D1"})

    assert response.status_code == 400
    [log] = await _logs(db_session)
    assert log.success is False
    assert log.device_id == "D1"
    assert log.error_message


async def test_body_not_an_object_is_rejected(client, db_session):
    response = await client.post(SYNC_URL, json=[1, 2, 3])

    assert response.status_code == 400
    [log] = await _logs(db_session)
    assert log.success is False
    assert log.survey_count == 0


async def test_missing_client_id_rejects_whole_batch(client, db_session, make_survey):
    orphan = make_survey("C2")
    del orphan["clientId"]

    response = await client.post(
        SYNC_URL,
        json={"surveys": [make_survey("C1"), orphan], "deviceId": "D1"},
    )

    assert response.status_code == 400
    assert "clientId" in response.json()["detail"]
    assert (await db_session.execute(select(func.count(Survey.id)))).scalar() == 0
    [log] = await _logs(db_session)
    assert log.success is False
    assert log.survey_count == 2


async def test_missing_device_identity_rejects_whole_batch(client, db_session, make_survey):
    response = await client.post(SYNC_URL, json={"surveys": [make_survey(device_id=None)]})

    assert response.status_code == 400
    assert (await db_session.execute(select(func.count(Survey.id)))).scalar() == 0


async def test_batch_over_limit_is_rejected(client, monkeypatch, make_survey):
    from agrisync.services import sync_service

    monkeypatch.setattr(sync_service.settings, "SYNC_MAX_BATCH_SIZE", 2)
    response = await client.post(
        SYNC_URL,
        json={"surveys": [make_survey(f"C{i}") for i in range(3)]},
    )

    assert response.status_code == 400


# ── Auditoría ────────────────────────────────────────

async def test_audit_failure_does_not_fail_sync(client, db_session, make_survey, caplog):
    await db_session.execute(text("DROP TABLE sync_logs"))
    await db_session.commit()

    with caplog.at_level("ERROR"):
        response = await client.post(SYNC_URL, json={"surveys": [make_survey()]})

    assert response.status_code == 200
    assert response.json()["inserted_count"] == 1
    assert (await db_session.execute(select(func.count(Survey.id)))).scalar() == 1
    assert "auditoría" in caplog.text


async def test_recent_logs_newest_first(client, auth_headers, make_survey):
    for i in range(3):
        await client.post(SYNC_URL, json={"surveys": [make_survey(f"C{i}")], "deviceId": f"D{i}"})

    response = await client.get(f"{SYNC_URL}/logs", params={"limit": 2}, headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["limit"] == 2
    assert [item["device_id"] for item in body["items"]] == ["D2", "D1"]
    assert body["items"][0]["conflict_count"] == 0


async def test_recent_logs_filtered_by_device(client, auth_headers, make_survey):
    await client.post(SYNC_URL, json={"surveys": [make_survey("C1")], "deviceId": "D1"})
    await client.post(SYNC_URL, json={"surveys": [make_survey("C2")], "deviceId": "D2"})

    response = await client.get(
        f"{SYNC_URL}/logs", params={"device_id": "D1"}, headers=auth_headers
    )

    assert [item["device_id"] for item in response.json()["items"]] == ["D1"]


async def test_recent_logs_require_authentication(client):
    response = await client.get(f"{SYNC_URL}/logs")
    assert response.status_code in (401, 403)


async def test_device_status(client, auth_headers, make_survey):
    await client.post(SYNC_URL, json={"surveys": [make_survey("C1"), make_survey("C2")]})
    await client.post(SYNC_URL, json={"surveys": "nope", "deviceId": "D1"})

    response = await client.get(
        f"{SYNC_URL}/status", params={"device_id": "D1"}, headers=auth_headers
    )

    assert response.status_code == 200
    body = response.json()
    assert body["device_id"] == "D1"
    assert body["attempts"] == 2
    assert body["failed_attempts"] == 1
    assert body["surveys_stored"] == 2
    assert body["last_sync"] is not None
