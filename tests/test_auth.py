import models
from conftest import fake


def signup_body(**overrides):
    body = {
        'name': fake.name(),
        'email': fake.unique.email(),
        'password': 'testpassword123',
        'role': 'student',
    }
    body.update(overrides)
    return body


def test_signup_student(client):
    """Test user registration"""
    body = signup_body()
    response = client.post('/signup', json=body)

    assert response.status_code == 201
    data = response.json()['data']
    assert data['email'] == body['email'].lower()
    assert data['role'] == 'student'
    assert 'id' in data
    assert 'password' not in data and 'hashed_password' not in data


def test_signup_duplicate_email(client):
    body = signup_body()
    client.post('/signup', json=body)

    response = client.post('/signup', json=body)

    assert response.status_code == 400
    assert 'already registered' in response.json()['detail']


def test_admin_signup_requires_code(client):
    response = client.post('/signup', json=signup_body(role='admin'))
    assert response.status_code == 403

    response = client.post('/signup', json=signup_body(role='admin', admin_code='WRONG'))
    assert response.status_code == 403

    response = client.post('/signup', json=signup_body(role='admin', admin_code='ADMIN123'))
    assert response.status_code == 201
    assert response.json()['data']['role'] == 'admin'


def test_signup_validation(client):
    response = client.post('/signup', json=signup_body(email='not-an-email'))
    assert response.status_code == 422

    response = client.post('/signup', json=signup_body(password='123'))
    assert response.status_code == 422


def test_missing_api_key_is_rejected(client):
    response = client.get('/events', headers={'X-API-Key': 'wrong'})
    assert response.status_code == 403


def test_login_and_session(client):
    body = signup_body()
    client.post('/signup', json=body)

    response = client.post('/login', data={'username': body['email'], 'password': body['password']})

    assert response.status_code == 200
    token = response.json()
    assert token['token_type'] == 'bearer'

    me = client.get('/users/me', headers={'Authorization': f"Bearer {token['access_token']}"})
    assert me.status_code == 200
    assert me.json()['data']['name'] == body['name']


def test_login_invalid_credentials(client, student):
    response = client.post('/login', data={'username': student.email, 'password': 'wrongpassword'})
    assert response.status_code == 401

    response = client.post('/login', data={'username': 'nobody@example.com', 'password': 'whatever'})
    assert response.status_code == 401


def test_login_history_records_attempts(client, student):
    client.post('/login', data={'username': student.email, 'password': 'wrongpassword'}, headers={'User-Agent': 'pytest-agent'})
    response = client.post('/login', data={'username': student.email, 'password': 'testpassword123'}, headers={'User-Agent': 'pytest-agent'})
    token = response.json()['access_token']

    history = client.get('/users/me/logins', headers={'Authorization': f'Bearer {token}'})

    assert history.status_code == 200
    records = history.json()['data']
    assert len(records) == 2
    assert sorted(r['success'] for r in records) == [False, True]
    assert all(r['user_agent'] == 'pytest-agent' for r in records)


def test_logout_revokes_token(client, student):
    response = client.post('/login', data={'username': student.email, 'password': 'testpassword123'})
    headers = {'Authorization': f"Bearer {response.json()['access_token']}"}

    assert client.post('/logout', headers=headers).status_code == 200

    assert client.get('/users/me', headers=headers).status_code == 401


def test_unauthorized_access(client):
    """Test accessing protected route without auth"""
    assert client.get('/users/me').status_code == 401
    assert client.get('/users/me', headers={'Authorization': 'Bearer garbage'}).status_code == 401


def test_student_cannot_manage_events(client, student_headers):
    body = {'title': 'Sneaky', 'date': '2025-09-05T09:30:00', 'location': 'Lab'}
    response = client.post('/events', json=body, headers=student_headers)
    assert response.status_code == 403


def test_token_for_deleted_user_is_rejected(client, db_session, student, student_headers):
    db_session.delete(db_session.get(models.User, student.id))
    db_session.commit()

    assert client.get('/users/me', headers=student_headers).status_code == 401
