import pytest

DAY = "2026-03-02"


def slots_for(res, technician_id):
    for entry in res.json()["technicianSlots"]:
        if entry["technician"]["id"] == technician_id:
            return entry
    raise AssertionError(f"technician {technician_id} missing")


def starts(entry):
    return [slot["startTime"] for slot in entry["availableSlots"]]


@pytest.fixture
def lunch_break(client, headers, users):
    client.put(
        f"/users/{users['tech']}",
        headers=headers["admin"],
        json={"breakTimes": [{"description": "Lunch", "startTime": "12:00", "endTime": "13:00"}]},
    )


# ────────────────────────────── TECHNICIANS ──────────────────────────────

def test_available_technicians_skip_overlapping_jobs(client, headers, make_job, users):
    make_job(time_start="08:00", time_end="10:00")

    busy = client.get(
        "/job-orders/technicians/available",
        params={"date": DAY, "startTime": "09:00", "endTime": "09:30"},
        headers=headers["controller"],
    )
    assert busy.status_code == 200
    assert [t["id"] for t in busy.json()["technicians"]] == [users["tech2"]]

    after = client.get(
        "/job-orders/technicians/available",
        params={"date": DAY, "startTime": "10:00", "endTime": "11:00"},
        headers=headers["controller"],
    )
    assert [t["id"] for t in after.json()["technicians"]] == [users["tech"], users["tech2"]]


def test_available_technicians_needs_the_whole_slot(client, headers, users):
    res = client.get("/job-orders/technicians/available", params={"date": DAY}, headers=headers["controller"])
    assert res.status_code == 400
    assert res.json() == {"error": "Date, startTime, and endTime are required"}

    bad = client.get(
        "/job-orders/technicians/available",
        params={"date": DAY, "startTime": "9am", "endTime": "10:00"},
        headers=headers["controller"],
    )
    assert bad.status_code == 400


# ────────────────────────────── SLOTS ──────────────────────────────

def test_walk_in_slots_avoid_jobs_breaks_and_closing(client, headers, make_job, users, lunch_break):
    make_job(time_start="08:00", time_end="10:00")
    res = client.get("/job-orders/walk-in-slots", params={"date": DAY, "duration": 60}, headers=headers["advisor"])
    assert res.status_code == 200

    tina = slots_for(res, users["tech"])
    assert tina["currentDailyHours"] == 2.0
    assert tina["dailyHoursRemaining"] == 5.5
    assert tina["availableSlots"][0] == {
        "startTime": "07:00",
        "endTime": "08:00",
        "durationHighlight": "60 min",
        "dailyHoursRemaining": 5.5,
    }
    offered = starts(tina)
    for taken in ("07:30", "08:00", "09:30", "11:30", "12:00", "12:30", "17:30", "18:00"):
        assert taken not in offered
    for free in ("10:00", "11:00", "13:00", "17:00"):
        assert free in offered


def test_walk_in_slots_respect_appointments(client, headers, users):
    client.post(
        "/appointments",
        headers=headers["controller"],
        json={
            "assignedTechnician": users["tech2"],
            "serviceAdvisor": users["advisor"],
            "plateNumber": "WLK100",
            "timeRange": {"start": "13:00", "end": "14:00"},
            "date": DAY,
        },
    )
    res = client.get("/job-orders/walk-in-slots", params={"date": DAY, "duration": 30}, headers=headers["advisor"])
    offered = starts(slots_for(res, users["tech2"]))
    assert "12:30" in offered
    assert "13:00" not in offered
    assert "13:30" not in offered
    assert "14:00" in offered


def test_walk_in_slots_stop_at_the_daily_limit(client, headers, make_job, users):
    make_job(time_start="08:00", time_end="15:00")

    hour = client.get("/job-orders/walk-in-slots", params={"date": DAY, "duration": 60}, headers=headers["advisor"])
    tina = slots_for(hour, users["tech"])
    assert tina["availableSlots"] == []
    assert tina["dailyHoursRemaining"] == 0.5

    half = client.get("/job-orders/walk-in-slots", params={"date": DAY, "duration": 30}, headers=headers["advisor"])
    assert starts(slots_for(half, users["tech"]))[0] == "07:00"


def test_walk_in_slots_need_date_and_duration(client, headers, users):
    res = client.get("/job-orders/walk-in-slots", params={"date": DAY}, headers=headers["advisor"])
    assert res.status_code == 400
    assert res.json() == {"error": "Date and duration are required"}


def test_workshop_slots_are_half_hour_cells(client, headers, make_job, users, lunch_break):
    make_job(time_start="08:00", time_end="10:00")
    res = client.get("/job-orders/workshop-slots", params={"date": DAY}, headers=headers["tech"])
    assert res.status_code == 200
    assert [e["technician"]["name"] for e in res.json()["technicianSlots"]] == ["Tina Tech", "Tom Wrench"]

    tina = slots_for(res, users["tech"])
    assert tina["availableSlots"][:2] == [
        {"startTime": "07:00", "endTime": "07:30", "duration": 30},
        {"startTime": "07:30", "endTime": "08:00", "duration": 30},
    ]
    offered = starts(tina)
    assert "08:00" not in offered
    assert "12:30" not in offered
    assert offered[-1] == "17:30"

    tom = slots_for(res, users["tech2"])
    assert len(tom["availableSlots"]) == 22


def test_workshop_slots_need_a_date(client, headers, users):
    res = client.get("/job-orders/workshop-slots", headers=headers["tech"])
    assert res.status_code == 400
    assert res.json() == {"error": "Date is required"}


def test_jobs_for_slot_rank_and_fit(client, headers, make_job):
    long_job = make_job(assigned_technician_id=None, status="UA", time_start="09:00", time_end="11:00")
    urgent = make_job(assigned_technician_id=None, status="WP", time_start="13:00", time_end="13:30", is_important=True)
    make_job(assigned_technician_id=None, status="CP")
    make_job(status="OG")

    res = client.get(
        "/job-orders/available-for-slot",
        params={"date": DAY, "startTime": "14:00", "endTime": "15:00"},
        headers=headers["controller"],
    )
    assert res.status_code == 200
    body = res.json()
    assert body["availableMinutes"] == 60
    assert body["timeSlot"] == {"start": "14:00", "end": "15:00"}
    assert [j["id"] for j in body["jobs"]] == [urgent, long_job]

    first, second = body["jobs"]
    assert (first["originalDuration"], first["canFit"], first["suggestedDuration"]) == (30, True, 30)
    assert (second["originalDuration"], second["canFit"], second["suggestedDuration"]) == (120, False, 60)
    assert second["jobNumber"] == "JO-0001"


# ────────────────────────────── DASHBOARD ──────────────────────────────

def test_dashboard_counts_and_lists(client, headers, make_job):
    make_job(status="OG")
    make_job(status="FR")
    held = make_job(status="HC", carried_over=True)
    flagged = make_job(status="QI", is_important=True)
    make_job(status="FU")
    for _ in range(3):
        make_job(status="CP")

    res = client.get("/job-orders/dashboard", headers=headers["advisor"])
    assert res.status_code == 200
    body = res.json()
    assert body["stats"] == {
        "total": 8,
        "onGoing": 1,
        "forRelease": 1,
        "onHold": 1,
        "carriedOver": 1,
        "important": 1,
        "qualityInspection": 1,
        "finishedUnclaimed": 4,
        "averageCompletedPerDay": 0.1,
    }
    assert [j["id"] for j in body["carriedOverJobs"]] == [held]
    assert [j["id"] for j in body["importantJobs"]] == [flagged]
    assert len(body["anomalyJobs"]) == 6


# ────────────────────────────── CONFLICTS ──────────────────────────────

@pytest.fixture
def appointment_id(client, headers, users):
    res = client.post(
        "/appointments",
        headers=headers["controller"],
        json={
            "assignedTechnician": users["tech2"],
            "serviceAdvisor": users["advisor"],
            "plateNumber": "APT100",
            "timeRange": {"start": "09:00", "end": "10:00"},
            "date": DAY,
        },
    )
    return res.json()["appointment"]["id"]


def test_check_and_resolve_conflicts(client, headers, make_job, users, appointment_id):
    clash = make_job(time_start="09:00", time_end="11:00")
    make_job(status="FR", time_start="09:30", time_end="10:00")
    request = {"assignedTechnician": users["tech"], "timeRange": {"start": "09:30", "end": "10:30"}}

    report = client.post(f"/appointments/{appointment_id}/check-conflicts", headers=headers["controller"], json=request)
    assert report.status_code == 200
    assert report.json()["hasConflicts"] is True
    conflicting = report.json()["conflictingJobs"]
    assert [j["id"] for j in conflicting] == [clash]
    assert conflicting[0]["assignedTechnician"]["name"] == "Tina Tech"

    resolved = client.post(
        f"/appointments/{appointment_id}/resolve-conflicts",
        headers=headers["controller"],
        json={"conflictingJobIds": [clash, 9999]},
    )
    assert resolved.json() == {
        "message": "Conflicts resolved successfully",
        "updatedJobs": [{"id": clash, "jobNumber": "JO-0001", "status": "UA"}],
    }
    job = client.get(f"/job-orders/{clash}", headers=headers["admin"]).json()["jobOrder"]
    assert job["assignedTechnicianId"] is None
    assert job["timeRange"] == {"start": "00:00", "end": "00:00"}

    again = client.post(f"/appointments/{appointment_id}/check-conflicts", headers=headers["controller"], json=request)
    assert again.json() == {"hasConflicts": False, "conflictingJobs": []}


def test_check_conflicts_for_missing_appointment(client, headers, users):
    res = client.post(
        "/appointments/999/check-conflicts",
        headers=headers["controller"],
        json={"assignedTechnician": users["tech"], "timeRange": {"start": "09:00", "end": "10:00"}},
    )
    assert res.status_code == 404
    assert res.json() == {"error": "Appointment not found"}


def test_technician_cannot_resolve_conflicts(client, headers, appointment_id):
    res = client.post(
        f"/appointments/{appointment_id}/resolve-conflicts",
        headers=headers["tech"],
        json={"conflictingJobIds": []},
    )
    assert res.status_code == 403
