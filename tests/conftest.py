"""
Eventify - Test Configuration and Fixtures
"""
import os
import tempfile

# Set testing environment before the app modules read it
_TEST_DIR = tempfile.mkdtemp(prefix="eventify-tests-")
os.environ['DATABASE_URL'] = f"sqlite:///{os.path.join(_TEST_DIR, 'test.db')}"
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-key-for-testing'
os.environ['API_SECRET_KEY'] = 'test-api-key'
os.environ['ADMIN_REGISTRATION_CODE'] = 'ADMIN123'
os.environ['CERTIFICATE_STORAGE_DIR'] = os.path.join(_TEST_DIR, 'certificates')
os.environ['UPLOAD_DIR'] = os.path.join(_TEST_DIR, 'uploads')
os.environ['RATE_LIMIT_ENABLED'] = 'false'
os.environ['LOG_FILE'] = os.path.join(_TEST_DIR, 'test.log')

import pytest
from faker import Faker
from fastapi.testclient import TestClient

import database
import main
import models
import utils

API_KEY = 'test-api-key'

fake = Faker()


def auth_headers(user: models.User) -> dict:
    """Bearer header for a user without going through /login"""
    token = utils.create_access_token({'sub': user.id, 'role': user.role.value})
    return {'Authorization': f'Bearer {token}'}


def team(size: int = 2) -> list:
    return [
        {'name': fake.name(), 'department': fake.random_element(['CSE', 'ECE', 'MECH', 'IT']), 'email': fake.email()}
        for _ in range(size)
    ]


@pytest.fixture(autouse=True)
def reset_database():
    """Fresh schema for each test"""
    database.init_db(reset=True)
    yield


@pytest.fixture
def db_session():
    db = database.SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client():
    with TestClient(main.api, headers={'X-API-Key': API_KEY}) as test_client:
        yield test_client


@pytest.fixture
def make_user(db_session):
    def _make(role=models.UserRole.STUDENT, name=None, email=None, password='testpassword123'):
        user = models.User(
            email=email or fake.unique.email(),
            name=name or fake.name(),
            hashed_password=utils.hash_password(password),
            role=role,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _make


@pytest.fixture
def student(make_user):
    return make_user()


@pytest.fixture
def other_student(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(role=models.UserRole.ADMIN)


@pytest.fixture
def student_headers(student):
    return auth_headers(student)


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def make_event(client, admin_headers):
    """Create an event through the API as an admin and return its JSON"""
    def _make(**overrides):
        body = {
            'title': fake.catch_phrase(),
            'description': fake.sentence(),
            'date': '2025-09-05T09:30:00',
            'location': 'Innovation Lab',
            'department': 'Technology',
            'total_slots': 20,
        }
        body.update(overrides)
        response = client.post('/events', json=body, headers=admin_headers)
        assert response.status_code == 201, response.text
        return response.json()['data']
    return _make


@pytest.fixture
def event(make_event):
    return make_event()
