from datetime import date, timedelta

import pytest

from habit_tracker import db
from habit_tracker import progress as progress_module
from habit_tracker.errors import FutureDateError
from habit_tracker.models import Progress


def _shift(day, days):
    return (date.fromisoformat(day) + timedelta(days=days)).isoformat()


def _log(client, headers, habit_id, day, value, **extra):
    return client.post("/api/progress", json={"habitId": habit_id, "date": day, "value": value, **extra}, headers=headers)


def test_drink_water_scenario(client, make_user, make_habit, today):
    headers, _, _ = make_user()
    habit = make_habit(headers, name="Drink Water", targetValue=8, unit="glasses")

    created = _log(client, headers, habit["id"], today, 8)
    assert created.status_code == 201
    record = created.get_json()["progress"]
    assert record["completed"] is True
    assert record["completedAt"] is not None
    assert record["status"] == "completed"
    assert record["habit"] == {
        "id": habit["id"],
        "name": "Drink Water",
        "category": "general",
        "color": "#3B82F6",
        "targetValue": 8,
        "unit": "glasses",
    }

    updated = _log(client, headers, habit["id"], today, 3)
    assert updated.status_code == 200
    record = updated.get_json()["progress"]
    assert record["completed"] is False
    assert record["completedAt"] is None
    assert record["status"] == "partial"


def test_completion_matches_value_against_target(client, make_user, make_habit, today):
    headers, _, _ = make_user()
    habit = make_habit(headers, targetValue=4)

    for offset, value in enumerate([0, 3.5, 4, 10]):
        day = _shift(today, -offset)
        _log(client, headers, habit["id"], day, value)
        listed = client.get(f"/api/progress?date={day}", headers=headers).get_json()
        assert len(listed) == 1
        assert listed[0]["completed"] is (value >= 4)


def test_second_upsert_keeps_single_record(client, make_user, make_habit, today):
    headers, _, _ = make_user()
    habit = make_habit(headers)

    _log(client, headers, habit["id"], today, 1, notes="first")
    _log(client, headers, habit["id"], today, 0, notes="second")

    listed = client.get(f"/api/progress?habitId={habit['id']}", headers=headers).get_json()
    assert len(listed) == 1
    assert listed[0]["value"] == 0
    assert listed[0]["notes"] == "second"
    assert listed[0]["status"] == "not-started"


def test_future_date_is_rejected_and_today_accepted(client, make_user, make_habit, today):
    headers, _, _ = make_user()
    habit = make_habit(headers)

    tomorrow = _log(client, headers, habit["id"], _shift(today, 1), 1)
    assert tomorrow.status_code == 400
    assert "future" in tomorrow.get_json()["message"]
    assert _log(client, headers, habit["id"], today, 1).status_code == 201


def test_future_date_check_helper_raises_future_date_error(app, make_user, today):
    _, user, _ = make_user()
    with app.app_context(), pytest.raises(FutureDateError) as excinfo:
        progress_module.upsert_progress(user["id"], {"habitId": 1, "date": _shift(today, 1), "value": 1})
    assert excinfo.value.status_code == 400


def test_validation_lists_every_bad_field(client, make_user):
    headers, _, _ = make_user()
    response = client.post(
        "/api/progress",
        json={"habitId": "abc", "date": "18/10/2026", "value": -1, "notes": "n" * 501},
        headers=headers,
    )
    assert response.status_code == 400
    fields = {error["field"] for error in response.get_json()["errors"]}
    assert fields == {"habitId", "date", "value", "notes"}


def test_missing_fields_are_required(client, make_user):
    headers, _, _ = make_user()
    response = client.post("/api/progress", json={}, headers=headers)
    assert response.status_code == 400
    messages = {error["message"] for error in response.get_json()["errors"]}
    assert {"Habit ID is required", "Date is required", "Value is required"} <= messages


def test_cannot_log_against_unknown_or_foreign_habit(client, make_user, make_habit, today):
    headers, _, _ = make_user()
    other_headers, _, _ = make_user()
    foreign = make_habit(other_headers)

    assert _log(client, headers, foreign["id"], today, 1).status_code == 404
    assert _log(client, headers, 999, today, 1).status_code == 404


def test_upsert_recovers_when_insert_loses_race(client, make_user, make_habit, today, monkeypatch):
    headers, _, _ = make_user()
    habit = make_habit(headers, targetValue=5)
    assert _log(client, headers, habit["id"], today, 2).status_code == 201

    real_lookup = progress_module._find_progress
    calls = []

    def stale_lookup(*args):
        # First lookup misses, as if the other request had not committed yet
        calls.append(args)
        return None if len(calls) == 1 else real_lookup(*args)

    monkeypatch.setattr(progress_module, "_find_progress", stale_lookup)
    response = _log(client, headers, habit["id"], today, 5)

    assert response.status_code == 200
    assert response.get_json()["progress"]["value"] == 5
    assert response.get_json()["progress"]["completed"] is True
    assert len(calls) == 2
    listed = client.get(f"/api/progress?habitId={habit['id']}", headers=headers).get_json()
    assert [record["value"] for record in listed] == [5]


def test_update_by_id_moves_record(client, make_user, make_habit, today):
    headers, _, _ = make_user()
    habit = make_habit(headers, targetValue=2)
    record = _log(client, headers, habit["id"], today, 1).get_json()["progress"]

    yesterday = _shift(today, -1)
    response = client.put(
        f"/api/progress/{record['id']}",
        json={"habitId": habit["id"], "date": yesterday, "value": 2, "notes": "moved"},
        headers=headers,
    )
    assert response.status_code == 200
    moved = response.get_json()["progress"]
    assert moved["date"] == yesterday
    assert moved["completed"] is True
    assert moved["notes"] == "moved"


def test_update_by_id_refuses_to_collide(client, make_user, make_habit, today):
    headers, _, _ = make_user()
    habit = make_habit(headers)
    yesterday = _shift(today, -1)
    _log(client, headers, habit["id"], today, 1)
    other = _log(client, headers, habit["id"], yesterday, 1).get_json()["progress"]

    response = client.put(
        f"/api/progress/{other['id']}",
        json={"habitId": habit["id"], "date": today, "value": 3},
        headers=headers,
    )
    assert response.status_code == 409
    assert response.get_json()["message"] == "Progress already exists for this habit and date"


def test_update_by_id_errors(client, make_user, make_habit, today):
    headers, _, _ = make_user()
    habit = make_habit(headers)
    body = {"habitId": habit["id"], "date": today, "value": 1}

    assert client.put("/api/progress/12345", json=body, headers=headers).status_code == 404
    assert client.put("/api/progress/abc", json=body, headers=headers).status_code == 400
    future = {**body, "date": _shift(today, 1)}
    assert client.put("/api/progress/1", json=future, headers=headers).status_code == 400


def test_toggle_completion_overrides_derivation(client, make_user, make_habit, today):
    headers, _, _ = make_user()
    habit = make_habit(headers, targetValue=10)
    record = _log(client, headers, habit["id"], today, 2).get_json()["progress"]
    assert record["completed"] is False

    toggled = client.patch(f"/api/progress/{record['id']}/toggle-completion", headers=headers)
    assert toggled.status_code == 200
    body = toggled.get_json()["progress"]
    assert body["completed"] is True
    assert body["completedAt"] is not None
    assert body["value"] == 2
    assert toggled.get_json()["message"] == "Progress marked as completed"

    # The next value write derives completion again
    rewritten = _log(client, headers, habit["id"], today, 2).get_json()["progress"]
    assert rewritten["completed"] is False

    back = client.patch(f"/api/progress/{record['id']}/toggle-completion", headers=headers)
    assert back.get_json()["progress"]["completed"] is True
    again = client.patch(f"/api/progress/{record['id']}/toggle-completion", headers=headers)
    assert again.get_json()["progress"]["completedAt"] is None


def test_delete_progress(client, make_user, make_habit, today):
    headers, _, _ = make_user()
    other_headers, _, _ = make_user()
    habit = make_habit(headers)
    record = _log(client, headers, habit["id"], today, 1).get_json()["progress"]

    assert client.delete(f"/api/progress/{record['id']}", headers=other_headers).status_code == 404
    assert client.delete(f"/api/progress/{record['id']}", headers=headers).status_code == 200
    assert client.delete(f"/api/progress/{record['id']}", headers=headers).status_code == 404
    assert client.delete("/api/progress/xyz", headers=headers).status_code == 400


def test_out_of_range_ids_are_rejected(client, make_user, today):
    headers, _, _ = make_user()
    huge = "9" * 25
    assert client.delete(f"/api/progress/{huge}", headers=headers).status_code == 400
    assert client.patch(f"/api/progress/{huge}/toggle-completion", headers=headers).status_code == 400
    assert client.get(f"/api/progress/habit/{huge}", headers=headers).status_code == 400
    assert client.get(f"/api/progress?habitId={huge}", headers=headers).status_code == 400
    assert client.get(f"/api/progress?limit={huge}", headers=headers).status_code == 400

    response = _log(client, headers, 10**30, today, 1)
    assert response.status_code == 400
    assert [error["field"] for error in response.get_json()["errors"]] == ["habitId"]


def test_query_filters_and_ordering(client, make_user, make_habit, today):
    headers, _, _ = make_user()
    water = make_habit(headers, name="Water")
    walk = make_habit(headers, name="Walk")
    for offset in range(5):
        _log(client, headers, water["id"], _shift(today, -offset), 1)
    _log(client, headers, walk["id"], today, 1)

    everything = client.get("/api/progress", headers=headers).get_json()
    dates = [record["date"] for record in everything]
    assert dates == sorted(dates, reverse=True)
    assert len(everything) == 6

    by_date = client.get(f"/api/progress/date/{today}", headers=headers).get_json()
    assert {record["habit"]["name"] for record in by_date} == {"Water", "Walk"}

    window = client.get(
        f"/api/progress?startDate={_shift(today, -3)}&endDate={_shift(today, -1)}",
        headers=headers,
    ).get_json()
    assert [record["date"] for record in window] == [_shift(today, -1), _shift(today, -2), _shift(today, -3)]

    limited = client.get(f"/api/progress/habit/{water['id']}?limit=2", headers=headers).get_json()
    assert [record["date"] for record in limited] == [today, _shift(today, -1)]


def test_query_rejects_malformed_parameters(client, make_user):
    headers, _, _ = make_user()
    assert client.get("/api/progress/date/2026-1-5", headers=headers).status_code == 400
    assert client.get("/api/progress/habit/abc", headers=headers).status_code == 400
    assert client.get("/api/progress/habit/1?limit=zero", headers=headers).status_code == 400
    assert client.get("/api/progress?startDate=yesterday", headers=headers).status_code == 400


def test_query_is_scoped_to_user(client, make_user, make_habit, today):
    headers, _, _ = make_user()
    other_headers, _, _ = make_user()
    habit = make_habit(headers)
    _log(client, headers, habit["id"], today, 1)

    assert client.get("/api/progress", headers=other_headers).get_json() == []
    assert client.get(f"/api/progress/habit/{habit['id']}", headers=other_headers).get_json() == []


def test_cleanup_removes_orphaned_records(app, client, make_user, make_habit, today):
    headers, user, _ = make_user()
    habit = make_habit(headers)
    _log(client, headers, habit["id"], today, 1)
    with app.app_context():
        db.session.add(Progress(user_id=user["id"], habit_id=9999, date=today, value=1, notes=""))
        db.session.commit()

    response = client.post("/api/progress/cleanup", headers=headers)
    assert response.status_code == 200
    assert response.get_json()["cleanedCount"] == 1
    assert len(client.get("/api/progress", headers=headers).get_json()) == 1

    again = client.post("/api/progress/cleanup", headers=headers)
    assert again.get_json() == {"message": "No orphaned progress entries found", "cleanedCount": 0}
