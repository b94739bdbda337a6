import datetime as dt

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from workshop_board import models
from workshop_board.config import Settings
from workshop_board.database import Database
from workshop_board.main import create_app
from workshop_board.utils import create_jwt, hash_password

JWT_SECRET = "test-secret-for-the-workshop-board"
PASSWORD = "secret123"
# hashed once, bcrypt is slow
PASSWORD_HASH = hash_password(PASSWORD)

PEOPLE = {
    "admin": ("Ada Admin", "admin@workshop.test", "admin", "administrator", None),
    "controller": ("Carl Controller", "controller@workshop.test", "controller", "job-controller", None),
    "tech": ("Tina Tech", "tina@workshop.test", "tina", "technician", "level-1"),
    "tech2": ("Tom Wrench", "tom@workshop.test", None, "technician", "level-2"),
    "advisor": ("Sam Advisor", "sam@workshop.test", None, "service-advisor", None),
}


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url="sqlite://",
        jwt_secret=JWT_SECRET,
        api_base_url="http://backend",
        public_dir=str(tmp_path),
    )


@pytest.fixture
def database():
    db = Database("sqlite://", poolclass=StaticPool)
    db.create_all()
    yield db
    db.close()


@pytest.fixture
def app(settings, database):
    return create_app(settings, database)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def users(database):
    """Seed one user per role and return their ids by nickname."""
    session = database.SessionLocal()
    created = {}
    for key, (name, email, username, role, level) in PEOPLE.items():
        created[key] = models.User(
            name=name,
            email=email,
            username=username,
            password_hash=PASSWORD_HASH,
            role=role,
            level=level,
        )
    session.add_all(created.values())
    session.commit()
    ids = {key: user.id for key, user in created.items()}
    session.close()
    return ids


def bearer(settings, user_id, role):
    token = create_jwt({"sub": str(user_id), "role": role}, settings)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers(settings, users):
    return {key: bearer(settings, users[key], PEOPLE[key][3]) for key in users}


@pytest.fixture
def make_job(database, users):
    """Insert a job order straight into the store."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        values = dict(
            job_number=f"JO-{counter['n']:04d}",
            created_by_id=users["controller"],
            assigned_technician_id=users["tech"],
            service_advisor_id=users["advisor"],
            plate_number=f"ABC{counter['n']:03d}",
            vin="VIN0000000001",
            time_start="08:00",
            time_end="10:00",
            job_list=[{"description": "Oil change", "status": "Unfinished"}],
            parts=[],
            status="OG",
            date=dt.date(2026, 3, 2),
        )
        values.update(overrides)
        session = database.SessionLocal()
        job = models.JobOrder(**values)
        session.add(job)
        session.commit()
        job_id = job.id
        session.close()
        return job_id

    return _make


@pytest.fixture
def job_payload(users):
    """Build a job order creation body."""

    def _payload(**overrides):
        payload = {
            "jobNumber": "jo-100",
            "assignedTechnician": users["tech"],
            "serviceAdvisor": users["advisor"],
            "plateNumber": "abc123",
            "vin": "1hgcm82633a00",
            "timeRange": {"start": "08:00", "end": "10:00"},
            "jobList": [{"description": "Brake pads", "status": "Unfinished"}],
            "parts": [{"name": "Pads", "availability": "Available"}],
            "date": "2026-03-02",
        }
        payload.update(overrides)
        return payload

    return _payload
