"""Superadmin user management and the last-superadmin guard."""
import pytest
from werkzeug.security import check_password_hash

from division_forms.errors import LastSuperadminProtected
from division_forms.models import db, User, Submission, AccessGrant, ROLE_SUPERADMIN, ROLE_ADMIN, ROLE_USER
from division_forms.services.access_service import AccessService
from division_forms.services.form_version_service import FormVersionService
from division_forms.services.user_service import UserService

from conftest import SALES_SCHEMA, VALID_SALE


def test_last_superadmin_cannot_be_demoted(client, headers_for, superadmin):
    resp = client.patch(f"/admin/users/{superadmin.id}/role", headers=headers_for(superadmin),
                        json={'role': ROLE_ADMIN})

    assert resp.status_code == 400
    assert resp.get_json()['error']['code'] == 'last_superadmin_protected'
    assert db.session.get(User, superadmin.id).role == ROLE_SUPERADMIN


def test_last_superadmin_cannot_be_deleted(client, headers_for, superadmin):
    resp = client.delete(f"/admin/users/{superadmin.id}", headers=headers_for(superadmin))

    assert resp.status_code == 400
    assert resp.get_json()['error']['code'] == 'last_superadmin_protected'
    assert db.session.get(User, superadmin.id) is not None


def test_one_of_two_superadmins_may_go(client, headers_for, superadmin, make_user):
    second = make_user(ROLE_SUPERADMIN)

    resp = client.patch(f"/admin/users/{second.id}/role", headers=headers_for(superadmin), json={'role': ROLE_USER})
    assert resp.status_code == 200
    assert resp.get_json()['data']['role'] == ROLE_USER

    # the survivor is now the last one
    with pytest.raises(LastSuperadminProtected):
        UserService.delete_user(superadmin.id)


def test_deleting_second_superadmin_is_allowed(headers_for, superadmin, make_user, client):
    second = make_user(ROLE_SUPERADMIN)
    resp = client.delete(f"/admin/users/{second.id}", headers=headers_for(superadmin))
    assert resp.status_code == 200
    assert resp.get_json()['data']['id'] == second.id
    assert User.query.filter_by(role=ROLE_SUPERADMIN).count() == 1


def test_promoting_to_superadmin_skips_guard(superadmin, admin):
    user = UserService.change_role(admin.id, ROLE_SUPERADMIN)
    assert user.role == ROLE_SUPERADMIN
    assert UserService.change_role(superadmin.id, ROLE_SUPERADMIN).role == ROLE_SUPERADMIN


def test_invalid_role_is_rejected(client, headers_for, superadmin, alice):
    resp = client.patch(f"/admin/users/{alice.id}/role", headers=headers_for(superadmin), json={'role': 'owner'})
    assert resp.status_code == 400
    assert resp.get_json()['error']['code'] == 'bad_request'


def test_create_user_and_duplicate_email(client, headers_for, superadmin):
    headers = headers_for(superadmin)
    body = {'full_name': 'Bob Builder', 'email': ' Bob@Example.com ', 'password': 'hunter22', 'role': ROLE_ADMIN}

    resp = client.post('/admin/users', headers=headers, json=body)
    assert resp.status_code == 201
    created = resp.get_json()['data']
    assert created['email'] == 'bob@example.com'
    assert created['role'] == ROLE_ADMIN
    assert 'password_hash' not in created

    dup = client.post('/admin/users', headers=headers, json=dict(body, email='bob@example.com'))
    assert dup.status_code == 409

    missing = client.post('/admin/users', headers=headers, json={'email': 'x@example.com'})
    assert missing.status_code == 400


def test_search_and_pagination(client, headers_for, superadmin, make_user):
    for name in ("Carol Diaz", "Carl Young", "Dana Scully"):
        make_user(full_name=name)
    headers = headers_for(superadmin)

    found = client.get('/admin/users?q=car', headers=headers).get_json()['data']
    assert [u['full_name'] for u in found['items']] == ["Carl Young", "Carol Diaz"]
    assert found['total'] == 2

    page = client.get('/admin/users?limit=2&page=2', headers=headers).get_json()['data']
    assert page['total'] == 4
    assert page['page'] == 2
    assert len(page['items']) == 2


def test_get_edit_and_reset_password(client, headers_for, superadmin, alice):
    headers = headers_for(superadmin)

    got = client.get(f"/admin/users/{alice.id}", headers=headers)
    assert got.get_json()['data']['full_name'] == 'Alice'
    assert client.get('/admin/users/9999', headers=headers).status_code == 404

    edited = client.patch(f"/admin/users/{alice.id}", headers=headers, json={'full_name': 'Alice Liddell'})
    assert edited.get_json()['data']['full_name'] == 'Alice Liddell'
    assert client.patch(f"/admin/users/{alice.id}", headers=headers, json={}).status_code == 400

    reset = client.patch(f"/admin/users/{alice.id}/password", headers=headers, json={'password': 'newpass1'})
    assert reset.status_code == 200
    assert check_password_hash(db.session.get(User, alice.id).password_hash, 'newpass1')


def test_deleted_user_leaves_submissions_behind(client, headers_for, superadmin, alice, division, screen):
    AccessService.replace_grant(alice.id, division.id, [screen.id])
    FormVersionService.publish(division.id, screen.id, SALES_SCHEMA)
    submitted = client.post(f"/forms/{division.id}/{screen.id}/submit", headers=headers_for(alice), json=VALID_SALE)
    assert submitted.status_code == 201
    alice_id = alice.id

    resp = client.delete(f"/admin/users/{alice_id}", headers=headers_for(superadmin))

    assert resp.status_code == 200
    assert db.session.get(User, alice_id) is None
    assert AccessGrant.query.filter_by(user_id=alice_id).count() == 0
    submission = Submission.query.one()
    assert submission.submitted_by_id is None
    assert submission.to_dict()['submitted_by'] is None
    assert submission.form_version == 1


def test_admin_routes_need_superadmin(client, headers_for, admin, alice):
    for user in (admin, alice):
        resp = client.get('/admin/users', headers=headers_for(user))
        assert resp.status_code == 403
    assert client.get('/admin/users').status_code == 401
