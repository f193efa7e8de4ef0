from conftest import add_notification, add_session, all_notifications, auth_header

from datetime import datetime, timezone

BOOKING = {
    "start_time": "2025-03-10T10:00:00Z",
    "end_time": "2025-03-10T11:00:00Z",
    "type": "regular",
    "format": "video",
}


def booking(therapist_id, **overrides):
    return {"therapist_id": therapist_id, **BOOKING, **overrides}


async def test_health(api):
    resp = await api.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}


async def test_requires_token(api):
    resp = await api.get("/sessions")
    assert resp.status_code == 401


async def test_client_books_session_with_reminders_and_confirmation(api, session_factory, users, mail):
    client = users["client"]
    resp = await api.post("/sessions", json=booking(users["therapist"].id), headers=auth_header(client))
    assert resp.status_code == 201
    body = resp.json()
    assert body["client_id"] == client.id
    assert body["status"] == "scheduled"
    assert body["private_notes"] is None

    reminders = await all_notifications(session_factory, type="session_reminder")
    assert len(reminders) == 4
    assert {n.payload["session_id"] for n in reminders} == {body["id"]}

    [confirmation] = await all_notifications(session_factory, type="session_confirmation")
    assert confirmation.user_id == client.id
    assert confirmation.sent_at is not None
    assert "Dr. Theo" in confirmation.message
    assert [m["subject"] for m in mail.sent] == ["Session Confirmed"]


async def test_overlapping_booking_returns_409(api, session_factory, users):
    therapist_id = users["therapist"].id
    first = await api.post("/sessions", json=booking(therapist_id), headers=auth_header(users["client"]))
    assert first.status_code == 201

    resp = await api.post(
        "/sessions",
        json=booking(therapist_id, start_time="2025-03-10T10:30:00Z", end_time="2025-03-10T11:30:00Z"),
        headers=auth_header(users["other"]),
    )
    assert resp.status_code == 409
    detail = resp.json()["detail"]
    assert detail["therapist_id"] == therapist_id
    assert detail["conflicting_session_ids"] == [first.json()["id"]]

    # 충돌 시에는 리마인더가 추가되지 않음
    assert len(await all_notifications(session_factory, type="session_reminder")) == 4


async def test_back_to_back_booking_is_allowed(api, users):
    therapist_id = users["therapist"].id
    await api.post("/sessions", json=booking(therapist_id), headers=auth_header(users["client"]))
    resp = await api.post(
        "/sessions",
        json=booking(therapist_id, start_time="2025-03-10T11:00:00Z", end_time="2025-03-10T12:00:00Z"),
        headers=auth_header(users["other"]),
    )
    assert resp.status_code == 201


async def test_inverted_range_is_rejected(api, users):
    resp = await api.post(
        "/sessions",
        json=booking(users["therapist"].id, start_time="2025-03-10T11:00:00Z", end_time="2025-03-10T10:00:00Z"),
        headers=auth_header(users["client"]),
    )
    assert resp.status_code == 422


async def test_unknown_therapist_is_404(api, users):
    resp = await api.post("/sessions", json=booking(9999), headers=auth_header(users["client"]))
    assert resp.status_code == 404


async def test_therapist_must_name_the_client(api, users):
    resp = await api.post(
        "/sessions", json=booking(users["therapist"].id), headers=auth_header(users["therapist_user"])
    )
    assert resp.status_code == 400

    resp = await api.post(
        "/sessions",
        json=booking(users["therapist"].id, client_id=users["client"].id),
        headers=auth_header(users["therapist_user"]),
    )
    assert resp.status_code == 201
    assert resp.json()["client_id"] == users["client"].id


async def test_cancel_frees_slot_and_notifies_therapist(api, session_factory, users):
    client = users["client"]
    created = (await api.post("/sessions", json=booking(users["therapist"].id), headers=auth_header(client))).json()

    resp = await api.post(f"/sessions/{created['id']}/cancel", headers=auth_header(client))
    assert resp.status_code == 200
    assert resp.json()["status"] == "canceled"

    assert await all_notifications(session_factory, type="session_reminder") == []
    [notice] = await all_notifications(session_factory, type="session_cancellation")
    assert notice.user_id == users["therapist_user"].id

    # 취소된 시간대는 다시 예약 가능
    again = await api.post("/sessions", json=booking(users["therapist"].id), headers=auth_header(users["other"]))
    assert again.status_code == 201


async def test_admin_cancel_notifies_both_parties(api, session_factory, users):
    created = (await api.post(
        "/sessions", json=booking(users["therapist"].id), headers=auth_header(users["client"])
    )).json()

    resp = await api.post(f"/sessions/{created['id']}/cancel", headers=auth_header(users["admin"]))
    assert resp.status_code == 200

    notices = await all_notifications(session_factory, type="session_cancellation")
    assert {n.user_id for n in notices} == {users["client"].id, users["therapist_user"].id}


async def test_reschedule_checks_conflicts_and_replans_reminders(api, session_factory, users):
    therapist = users["therapist_user"]
    therapist_id = users["therapist"].id
    first = (await api.post(
        "/sessions", json=booking(therapist_id, client_id=users["client"].id), headers=auth_header(therapist)
    )).json()
    second = (await api.post(
        "/sessions",
        json=booking(therapist_id, client_id=users["other"].id,
                     start_time="2025-03-10T12:00:00Z", end_time="2025-03-10T13:00:00Z"),
        headers=auth_header(therapist),
    )).json()

    clash = await api.patch(
        f"/sessions/{second['id']}",
        json={"start_time": "2025-03-10T10:30:00Z", "end_time": "2025-03-10T11:30:00Z"},
        headers=auth_header(therapist),
    )
    assert clash.status_code == 409
    assert clash.json()["detail"]["conflicting_session_ids"] == [first["id"]]

    moved = await api.patch(
        f"/sessions/{second['id']}",
        json={"start_time": "2025-03-11T12:00:00Z", "end_time": "2025-03-11T13:00:00Z"},
        headers=auth_header(therapist),
    )
    assert moved.status_code == 200

    reminders = [
        n for n in await all_notifications(session_factory, type="session_reminder")
        if n.payload["session_id"] == second["id"]
    ]
    assert len(reminders) == 4
    assert min(n.scheduled_for for n in reminders) == datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


async def test_session_access_is_role_scoped(api, users):
    created = (await api.post(
        "/sessions", json=booking(users["therapist"].id), headers=auth_header(users["client"])
    )).json()
    session_id = created["id"]

    assert (await api.get(f"/sessions/{session_id}", headers=auth_header(users["client"]))).status_code == 200
    assert (await api.get(f"/sessions/{session_id}", headers=auth_header(users["therapist_user"]))).status_code == 200
    assert (await api.get(f"/sessions/{session_id}", headers=auth_header(users["other"]))).status_code == 403
    assert (await api.get("/sessions/9999", headers=auth_header(users["admin"]))).status_code == 404

    # 내담자는 세션을 수정할 수 없음
    resp = await api.patch(f"/sessions/{session_id}", json={"shared_notes": "hi"}, headers=auth_header(users["client"]))
    assert resp.status_code == 403

    other_list = (await api.get("/sessions", headers=auth_header(users["other"]))).json()
    assert other_list["sessions"] == []
    admin_list = (await api.get("/sessions", headers=auth_header(users["admin"]))).json()
    assert admin_list["pagination"] == {"total": 1, "pages": 1, "page": 1, "limit": 10}


async def test_private_notes_hidden_from_clients(api, session_factory, users):
    session = await add_session(
        session_factory, users["therapist"].id, users["client"].id,
        datetime(2025, 3, 12, 9, tzinfo=timezone.utc), datetime(2025, 3, 12, 10, tzinfo=timezone.utc),
    )
    therapist = auth_header(users["therapist_user"])
    resp = await api.patch(f"/sessions/{session.id}", json={"private_notes": "secret"}, headers=therapist)
    assert resp.json()["private_notes"] == "secret"

    resp = await api.get(f"/sessions/{session.id}", headers=auth_header(users["client"]))
    assert resp.json()["private_notes"] is None


async def test_therapist_directory(api, users):
    resp = await api.get("/therapists", headers=auth_header(users["client"]))
    assert resp.status_code == 200
    [entry] = resp.json()
    assert entry["name"] == "Dr. Theo"
    assert entry["specialties"] == ["anxiety"]

    assert (await api.get("/therapists/9999", headers=auth_header(users["client"]))).status_code == 404


async def test_notification_inbox_endpoints(api, session_factory, users):
    client = auth_header(users["client"])
    n1 = await add_notification(session_factory, users["client"].id, None)
    n2 = await add_notification(session_factory, users["client"].id, None)

    listed = (await api.get("/notifications", headers=client)).json()
    assert {n["id"] for n in listed} == {n1.id, n2.id}

    resp = await api.post(f"/notifications/{n1.id}/read", headers=client)
    assert resp.json()["read"] is True
    assert (await api.post(f"/notifications/{n1.id}/read", headers=auth_header(users["other"]))).status_code == 404

    assert (await api.post("/notifications/read-all", headers=client)).json() == {"updated": 1}
    assert (await api.get("/notifications", headers=client)).json() == []

    assert (await api.delete(f"/notifications/{n2.id}", headers=client)).status_code == 204
    remaining = (await api.get("/notifications?include_read=true", headers=client)).json()
    assert [n["id"] for n in remaining] == [n1.id]


async def test_dispatch_endpoint_is_admin_only(api, session_factory, users, clock, mail):
    await add_notification(session_factory, users["client"].id, clock.now)

    assert (await api.post("/notifications/dispatch", headers=auth_header(users["client"]))).status_code == 403

    resp = await api.post("/notifications/dispatch", headers=auth_header(users["admin"]))
    assert resp.status_code == 200
    assert resp.json() == {"sent": 1}
    assert len(mail.sent) == 1


async def test_null_meta_is_stored_as_empty_object(api, session_factory, users):
    session = await add_session(
        session_factory, users["therapist"].id, users["client"].id,
        datetime(2025, 3, 12, 9, tzinfo=timezone.utc), datetime(2025, 3, 12, 10, tzinfo=timezone.utc),
    )
    therapist = auth_header(users["therapist_user"])

    resp = await api.patch(f"/sessions/{session.id}", json={"meta": None}, headers=therapist)
    assert resp.status_code == 200
    assert resp.json()["meta"] == {}

    # 이후 조회도 정상
    assert (await api.get(f"/sessions/{session.id}", headers=therapist)).status_code == 200
    assert (await api.get("/sessions", headers=therapist)).status_code == 200


async def test_moving_a_canceled_session_skips_the_conflict_check(api, session_factory, users):
    therapist_id = users["therapist"].id
    canceled = await add_session(
        session_factory, therapist_id, users["client"].id,
        datetime(2025, 3, 10, 9, tzinfo=timezone.utc), datetime(2025, 3, 10, 10, tzinfo=timezone.utc),
        status="canceled",
    )
    await add_session(
        session_factory, therapist_id, users["other"].id,
        datetime(2025, 3, 10, 11, tzinfo=timezone.utc), datetime(2025, 3, 10, 12, tzinfo=timezone.utc),
    )

    resp = await api.patch(
        f"/sessions/{canceled.id}",
        json={"start_time": "2025-03-10T11:00:00Z", "end_time": "2025-03-10T12:00:00Z"},
        headers=auth_header(users["therapist_user"]),
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "canceled"
    assert await all_notifications(session_factory, type="session_reminder") == []


async def test_reactivating_a_session_replans_reminders(api, session_factory, users):
    client = users["client"]
    created = (await api.post("/sessions", json=booking(users["therapist"].id), headers=auth_header(client))).json()
    await api.post(f"/sessions/{created['id']}/cancel", headers=auth_header(client))
    assert await all_notifications(session_factory, type="session_reminder") == []

    resp = await api.patch(
        f"/sessions/{created['id']}", json={"status": "scheduled"}, headers=auth_header(users["therapist_user"])
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "scheduled"

    reminders = await all_notifications(session_factory, type="session_reminder")
    assert len(reminders) == 4
    assert {n.payload["session_id"] for n in reminders} == {created["id"]}


async def test_reactivating_into_a_taken_slot_returns_409(api, session_factory, users):
    therapist_id = users["therapist"].id
    first = (await api.post("/sessions", json=booking(therapist_id), headers=auth_header(users["client"]))).json()
    await api.post(f"/sessions/{first['id']}/cancel", headers=auth_header(users["client"]))
    taken = (await api.post("/sessions", json=booking(therapist_id), headers=auth_header(users["other"]))).json()

    resp = await api.patch(
        f"/sessions/{first['id']}", json={"status": "scheduled"}, headers=auth_header(users["therapist_user"])
    )
    assert resp.status_code == 409
    assert resp.json()["detail"]["conflicting_session_ids"] == [taken["id"]]


async def test_completing_a_session_drops_pending_reminders(api, session_factory, users):
    created = (await api.post(
        "/sessions", json=booking(users["therapist"].id), headers=auth_header(users["client"])
    )).json()
    assert len(await all_notifications(session_factory, type="session_reminder")) == 4

    resp = await api.patch(
        f"/sessions/{created['id']}", json={"status": "completed"}, headers=auth_header(users["therapist_user"])
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "completed"
    assert await all_notifications(session_factory, type="session_reminder") == []
