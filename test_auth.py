import pytest

from auth import ROLE_PERMISSIONS, check_password, has_permission, hash_password
from conftest import PASSWORD
from models import UserAccount, db


def test_password_hashing():
    hashed = hash_password('geheim123')

    assert hashed != 'geheim123'
    assert check_password('geheim123', hashed)
    assert not check_password('fout', hashed)
    assert not check_password('geheim123', 'geen-bcrypt-hash')
    assert not check_password('', hashed)


@pytest.mark.parametrize('role, resource, action, allowed', [
    ('admin', 'settings', 'update', True),
    ('secretariat', 'students', 'delete', True),
    ('secretariat', 'teachers', 'read', True),
    ('secretariat', 'teachers', 'update', False),
    ('teacher', 'grades', 'create', True),
    ('teacher', 'accounts', 'read', False),
    ('guardian', 'students', 'read', True),
    ('guardian', 'students', 'update', False),
    ('student', 'grades', 'read', True),
    ('student', 'students', 'read', False),
    ('unknown', 'students', 'read', False),
])
def test_has_permission(role, resource, action, allowed):
    assert has_permission(role, resource, action) is allowed


def test_every_role_can_see_the_dashboard():
    for role in UserAccount.ROLES:
        assert has_permission(role, 'dashboard', 'read')
    assert set(ROLE_PERMISSIONS) == set(UserAccount.ROLES)


def test_login_sets_session_and_returns_user(client, make_account):
    account = make_account('secretariat')

    response = client.post('/api/auth/login', json={'email': 'Secretariat@MyMadrassa.nl', 'password': PASSWORD})

    assert response.status_code == 200
    body = response.get_json()
    assert body['user']['id'] == account.id
    assert body['user']['role'] == 'secretariat'
    assert 'passwordHash' not in body['user']
    assert db.session.get(UserAccount, account.id).last_login is not None

    me = client.get('/api/auth/me')
    assert me.status_code == 200
    assert me.get_json()['user']['email'] == 'secretariat@mymadrassa.nl'


def test_login_with_wrong_password(client, make_account):
    make_account('admin')

    response = client.post('/api/auth/login', json={'email': 'admin@mymadrassa.nl', 'password': 'verkeerd'})

    assert response.status_code == 401
    assert response.get_json()['message'] == 'Ongeldige inloggegevens'
    assert client.get('/api/auth/me').status_code == 401


def test_login_requires_both_fields(client):
    response = client.post('/api/auth/login', json={'email': 'admin@mymadrassa.nl'})

    assert response.status_code == 400
    assert response.get_json()['errors'][0]['path'] == 'password'


def test_inactive_account_cannot_log_in(client, make_account):
    make_account('teacher', is_active=False)

    response = client.post('/api/auth/login', json={'email': 'teacher@mymadrassa.nl', 'password': PASSWORD})

    assert response.status_code == 403


def test_deactivated_account_loses_its_session(admin_client):
    account = admin_client.account
    account.is_active = False
    db.session.commit()

    assert admin_client.get('/api/auth/me').status_code == 401


def test_logout_clears_session(admin_client):
    assert admin_client.post('/api/auth/logout').status_code == 200
    assert admin_client.get('/api/students').status_code == 401


def test_csrf_token_endpoint(client):
    response = client.get('/api/auth/csrf-token')

    assert response.status_code == 200
    assert response.get_json()['csrfToken']


def test_csrf_is_enforced_when_enabled(app, make_account):
    app.config['WTF_CSRF_ENABLED'] = True
    make_account('admin')
    client = app.test_client()

    refused = client.post('/api/auth/login', json={'email': 'admin@mymadrassa.nl', 'password': PASSWORD})
    token = client.get('/api/auth/csrf-token').get_json()['csrfToken']
    accepted = client.post('/api/auth/login', json={'email': 'admin@mymadrassa.nl', 'password': PASSWORD},
                           headers={'X-CSRFToken': token})

    assert refused.status_code == 400
    assert accepted.status_code == 200
