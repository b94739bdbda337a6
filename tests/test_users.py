from conftest import PASSWORD


def test_me_returns_session_identity(client, headers, users):
    res = client.get("/users/me", headers=headers["controller"])
    assert res.status_code == 200
    assert res.json() == {"user": {"id": str(users["controller"]), "role": "job-controller"}}


def test_list_filters_by_role(client, headers, users):
    res = client.get("/users", params={"role": "technician"}, headers=headers["controller"])
    assert res.status_code == 200
    listed = res.json()["users"]
    assert {u["id"] for u in listed} == {users["tech"], users["tech2"]}
    assert all("passwordHash" not in u for u in listed)


def test_admin_creates_technician_with_default_level(client, headers, users):
    res = client.post(
        "/users",
        headers=headers["admin"],
        json={"name": "New Tech", "email": "new@workshop.test", "password": "hunter22", "role": "technician"},
    )
    assert res.status_code == 201
    new_id = res.json()["id"]

    listed = client.get("/users", params={"role": "technician"}, headers=headers["admin"]).json()["users"]
    created = next(u for u in listed if u["id"] == new_id)
    assert created["level"] == "untrained"

    login = client.post("/auth/login", json={"email": "new@workshop.test", "password": "hunter22"})
    assert login.status_code == 200


def test_duplicate_email_conflicts(client, headers, users):
    res = client.post(
        "/users",
        headers=headers["admin"],
        json={"name": "Copy", "email": "tina@workshop.test", "password": PASSWORD, "role": "technician"},
    )
    assert res.status_code == 409
    assert res.json() == {"error": "Email already exists"}


def test_duplicate_username_conflicts(client, headers, users):
    res = client.post(
        "/users",
        headers=headers["admin"],
        json={"name": "Copy", "email": "copy@workshop.test", "username": "tina", "password": PASSWORD, "role": "technician"},
    )
    assert res.status_code == 409


def test_only_admins_manage_users(client, headers, users):
    res = client.post(
        "/users",
        headers=headers["controller"],
        json={"name": "X", "email": "x@workshop.test", "password": PASSWORD, "role": "technician"},
    )
    assert res.status_code == 403
    assert client.delete(f"/users/{users['tech']}", headers=headers["controller"]).status_code == 403


def test_update_user_break_times(client, headers, users):
    res = client.put(
        f"/users/{users['tech']}",
        headers=headers["admin"],
        json={
            "name": "Tina T.",
            "level": "level-2",
            "breakTimes": [{"description": "Lunch", "startTime": "12:00", "endTime": "13:00"}],
        },
    )
    assert res.status_code == 200
    body = res.json()
    assert body["ok"] is True
    assert body["user"]["name"] == "Tina T."
    assert body["user"]["level"] == "level-2"
    assert body["user"]["breakTimes"] == [{"description": "Lunch", "startTime": "12:00", "endTime": "13:00"}]


def test_update_rejects_bad_break_time(client, headers, users):
    res = client.put(
        f"/users/{users['tech']}",
        headers=headers["admin"],
        json={"breakTimes": [{"description": "Lunch", "startTime": "12", "endTime": "13:00"}]},
    )
    assert res.status_code == 400


def test_delete_user(client, headers, users):
    res = client.delete(f"/users/{users['tech2']}", headers=headers["admin"])
    assert res.status_code == 200
    assert res.json() == {"ok": True}
    missing = client.put(f"/users/{users['tech2']}", headers=headers["admin"], json={"name": "Ghost"})
    assert missing.status_code == 404
