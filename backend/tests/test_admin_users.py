import pytest

from lifepulse import db
from lifepulse.models import User
from lifepulse.services import get_matcher, get_workflow
from conftest import BASE_LAT, BASE_LON


@pytest.fixture
def admin(make_user):
    return make_user(role='REQUESTER', is_admin=True, name='Admin')


class TestListUsers:

    def test_filters_and_count(self, client, admin, make_user, auth_header):
        make_user(name='Asha Rao', blood_group='A+')
        make_user(name='Ravi Kumar', blood_group='B+')
        make_user(role='REQUESTER', name='Asha Menon')

        resp = client.get('/admin/users', headers=auth_header(admin),
                          query_string={'role': 'donor', 'search': 'asha'})

        body = resp.get_json()
        assert resp.status_code == 200
        assert body['total_count'] == 1
        assert body['users'][0]['name'] == 'Asha Rao'
        assert body['users'][0]['isActive'] is True

    def test_status_filter(self, client, admin, make_user, auth_header):
        make_user()
        inactive = make_user(is_active=False)

        resp = client.get('/admin/users', headers=auth_header(admin), query_string={'status': 'inactive'})

        assert [u['id'] for u in resp.get_json()['users']] == [inactive.id]

    def test_invalid_filters(self, client, admin, auth_header):
        assert client.get('/admin/users', headers=auth_header(admin),
                          query_string={'role': 'ADMIN'}).status_code == 400
        assert client.get('/admin/users', headers=auth_header(admin),
                          query_string={'status': 'banned'}).status_code == 400

    def test_needs_admin(self, client, make_user, auth_header):
        assert client.get('/admin/users', headers=auth_header(make_user())).status_code == 403


class TestUserDetail:

    def test_includes_created_and_accepted_requests(self, client, admin, make_user, make_request,
                                                     auth_header):
        donor = make_user()
        requester = make_user(role='REQUESTER')
        accepted = make_request(requester)
        make_request(requester)
        get_workflow().accept_donor(accepted.id, donor)

        donor_view = client.get(f'/admin/users/{donor.id}', headers=auth_header(admin)).get_json()
        requester_view = client.get(f'/admin/users/{requester.id}', headers=auth_header(admin)).get_json()

        assert donor_view['user']['id'] == donor.id
        assert [r['id'] for r in donor_view['requests']] == [accepted.id]
        assert len(requester_view['requests']) == 2

    def test_unknown_user(self, client, admin, auth_header):
        assert client.get('/admin/users/9999', headers=auth_header(admin)).status_code == 404


class TestUserStatus:

    def test_deactivated_user_is_locked_out_and_unmatched(self, client, admin, make_user, auth_header):
        donor = make_user()
        headers = auth_header(donor)

        resp = client.put(f'/admin/users/{donor.id}/status', json={'isActive': False},
                          headers=auth_header(admin))

        assert resp.status_code == 200
        assert resp.get_json()['user']['isActive'] is False
        assert client.get('/api/auth/me', headers=headers).status_code == 401
        assert get_matcher().find_nearby_donors(BASE_LON, BASE_LAT) == []

    def test_reactivate(self, client, admin, make_user, auth_header):
        donor = make_user(is_active=False)

        resp = client.put(f'/admin/users/{donor.id}/status', json={'isActive': True},
                          headers=auth_header(admin))

        assert resp.status_code == 200
        assert db.session.get(User, donor.id).is_active is True
        assert client.get('/api/auth/me', headers=auth_header(donor)).status_code == 200

    def test_admin_cannot_be_deactivated(self, client, admin, make_user, auth_header):
        other_admin = make_user(role='REQUESTER', is_admin=True)
        resp = client.put(f'/admin/users/{other_admin.id}/status', json={'isActive': False},
                          headers=auth_header(admin))
        assert resp.status_code == 403

    def test_is_active_must_be_boolean(self, client, admin, make_user, auth_header):
        donor = make_user()
        resp = client.put(f'/admin/users/{donor.id}/status', json={'isActive': 'no'},
                          headers=auth_header(admin))
        assert resp.status_code == 400

    def test_unknown_user(self, client, admin, auth_header):
        resp = client.put('/admin/users/9999/status', json={'isActive': False},
                          headers=auth_header(admin))
        assert resp.status_code == 404
