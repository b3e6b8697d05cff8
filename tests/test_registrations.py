import models
from conftest import auth_headers, team


def register(client, event_id, headers, team_name='Alpha', members=None):
    return client.post(
        f'/events/{event_id}/registrations',
        json={'team_name': team_name, 'team_members': members if members is not None else team()},
        headers=headers,
    )


def test_register_claims_one_slot(client, student, student_headers, event):
    members = team(3)
    response = register(client, event['id'], student_headers, members=members)

    assert response.status_code == 201
    body = response.json()
    assert body['data']['user_id'] == student.id
    assert body['data']['team_name'] == 'Alpha'
    assert [m['name'] for m in body['data']['team_members']] == [m['name'] for m in members]
    assert body['event']['available_slots'] == event['available_slots'] - 1
    assert body['event']['version'] == event['version'] + 1


def test_cannot_register_twice(client, student_headers, event):
    assert register(client, event['id'], student_headers).status_code == 201

    response = register(client, event['id'], student_headers, team_name='Beta')

    assert response.status_code == 409
    assert response.json()['detail'] == 'Already registered for this event'
    remaining = client.get(f"/events/{event['id']}").json()['data']['available_slots']
    assert remaining == event['available_slots'] - 1


def test_last_slot_goes_to_first_registrant(client, db_session, student_headers, other_student, make_event):
    event = make_event(total_slots=20)
    # leave exactly one slot
    db_event = db_session.get(models.Event, event['id'])
    db_event.available_slots = 1
    db_session.commit()

    first = register(client, event['id'], student_headers)
    assert first.status_code == 201
    assert first.json()['event']['available_slots'] == 0

    second = register(client, event['id'], auth_headers(other_student), team_name='Late Team')
    assert second.status_code == 409
    assert second.json()['detail'] == 'No slots available'

    assert db_session.query(models.Registration).filter_by(event_id=event['id']).count() == 1


def test_rejected_registration_leaves_no_rows(client, db_session, student_headers, make_event):
    event = make_event(total_slots=1)
    db_event = db_session.get(models.Event, event['id'])
    db_event.available_slots = 0
    db_session.commit()

    assert register(client, event['id'], student_headers).status_code == 409
    assert db_session.query(models.Registration).count() == 0
    assert db_session.query(models.TeamMember).count() == 0


def test_register_for_unknown_event(client, student_headers):
    assert register(client, 'missing', student_headers).status_code == 404


def test_registration_requires_login(client, event):
    assert register(client, event['id'], {}).status_code == 401


def test_team_validation(client, student_headers, event):
    assert register(client, event['id'], student_headers, team_name='   ').status_code == 422
    assert register(client, event['id'], student_headers, members=[]).status_code == 422
    assert register(client, event['id'], student_headers, members=team(6)).status_code == 422

    missing_department = [{'name': 'Asha', 'department': ' '}]
    assert register(client, event['id'], student_headers, members=missing_department).status_code == 422

    bad_email = [{'name': 'Asha', 'department': 'CSE', 'email': 'nope'}]
    assert register(client, event['id'], student_headers, members=bad_email).status_code == 422

    # nothing was claimed by the rejected attempts
    remaining = client.get(f"/events/{event['id']}").json()['data']['available_slots']
    assert remaining == event['available_slots']


def test_member_email_is_optional(client, student_headers, event):
    members = [{'name': 'Asha', 'department': 'CSE'}, {'name': 'Ravi', 'department': 'ECE', 'email': ''}]
    response = register(client, event['id'], student_headers, members=members)

    assert response.status_code == 201
    assert [m['email'] for m in response.json()['data']['team_members']] == [None, None]


def test_registration_status(client, student_headers, event):
    status = client.get(f"/events/{event['id']}/registration-status", headers=student_headers).json()['data']
    assert status['registered'] is False

    registration_id = register(client, event['id'], student_headers).json()['data']['id']

    status = client.get(f"/events/{event['id']}/registration-status", headers=student_headers).json()['data']
    assert status['registered'] is True
    assert status['registration_id'] == registration_id


def test_my_registrations(client, student_headers, make_event):
    first = make_event()
    second = make_event()
    make_event()
    register(client, first['id'], student_headers, team_name='One')
    register(client, second['id'], student_headers, team_name='Two')

    mine = client.get('/users/me/registrations', headers=student_headers).json()['data']

    assert {r['event_id'] for r in mine} == {first['id'], second['id']}
    assert all(len(r['team_members']) == 2 for r in mine)


def test_admin_sees_event_registrations(client, admin_headers, student, student_headers, other_student, event):
    register(client, event['id'], student_headers, team_name='Alpha')
    register(client, event['id'], auth_headers(other_student), team_name='Beta')

    response = client.get(f"/events/{event['id']}/registrations", headers=admin_headers)

    assert response.status_code == 200
    rows = response.json()['data']
    assert [r['team_name'] for r in rows] == ['Alpha', 'Beta']
    assert rows[0]['user_name'] == student.name
    assert rows[0]['user_email'] == student.email

    assert client.get(f"/events/{event['id']}/registrations", headers=student_headers).status_code == 403


def test_cancel_registration_returns_slot(client, student_headers, event):
    registration_id = register(client, event['id'], student_headers).json()['data']['id']

    response = client.delete(f'/registrations/{registration_id}', headers=student_headers)

    assert response.status_code == 200
    assert response.json()['event']['available_slots'] == event['available_slots']

    # slot is free again, so the same user can register anew
    assert register(client, event['id'], student_headers).status_code == 201


def test_cannot_cancel_someone_elses_registration(client, student_headers, other_student, admin_headers, event):
    registration_id = register(client, event['id'], student_headers).json()['data']['id']

    response = client.delete(f'/registrations/{registration_id}', headers=auth_headers(other_student))
    assert response.status_code == 403

    assert client.delete(f'/registrations/{registration_id}', headers=admin_headers).status_code == 200
    assert client.delete(f'/registrations/{registration_id}', headers=admin_headers).status_code == 404
