import uuid

import pytest

from conftest import auth_headers, register

pytestmark = pytest.mark.asyncio


def _email():
    return f"user-{uuid.uuid4().hex[:8]}@example.com"


async def test_register_seeds_defaults_and_hides_hash(client):
    email = _email()
    u = await register(client, email)
    assert u['hasPassword'] is True and u['hasGoogleLogin'] is False
    assert u['isAccountLinked'] is False
    assert 'passwordHash' not in u and 'password_hash' not in u
    headers = await auth_headers(client, email)
    lists = (await client.get('/api/lists', headers=headers)).json()
    own = sorted(l['id'] for l in lists if l['userId'] == u['id'])
    assert own == sorted(f"{u['id']}-{s}" for s in ('personal', 'work', 'list1'))
    tags = (await client.get('/api/tags', headers=headers)).json()
    assert len([t for t in tags if t['userId'] == u['id']]) == 2


async def test_duplicate_email_rejected(client):
    email = _email()
    await register(client, email)
    r = await client.post('/api/users/register', json={'name': 'B', 'email': email.upper(), 'password': 'pw'})
    assert r.status_code == 400
    assert 'already exists' in r.json()['detail']


async def test_login(client):
    email = _email()
    await register(client, email, password='right')
    r = await client.post('/api/users/login', json={'email': email, 'password': 'right'})
    assert r.status_code == 200
    r = await client.post('/api/users/login', json={'email': email, 'password': 'wrong'})
    assert r.status_code == 401
    r = await client.post('/api/users/login', json={'email': 'nobody@example.com', 'password': 'x'})
    assert r.status_code == 401


async def test_account_linking(client):
    email = _email()
    u = await register(client, email, password='pw1')
    r = await client.post('/api/users/google-auth', json={
        'email': email, 'name': 'Ignored', 'googleId': 'g-123', 'profilePictureUrl': 'https://img/x.png',
    })
    assert r.status_code == 200, r.text
    linked = r.json()
    assert linked['id'] == u['id']
    assert linked['isAccountLinked'] is True
    assert linked['hasPassword'] is True and linked['hasGoogleLogin'] is True
    assert linked['profilePictureUrl'] == 'https://img/x.png'
    # password login still works after linking
    r = await client.post('/api/users/login', json={'email': email, 'password': 'pw1'})
    assert r.status_code == 200
    assert r.json()['isAccountLinked'] is True
    # and the external identity logs in to the same account
    r = await client.post('/api/users/google-auth', json={'email': email, 'name': 'x', 'googleId': 'g-123'})
    assert r.json()['id'] == u['id']


async def test_external_only_signup(client):
    email = _email()
    r = await client.post('/api/users/google-auth', json={'email': email, 'name': 'G', 'googleId': 'g-new'})
    assert r.status_code == 200
    u = r.json()
    assert u['hasPassword'] is False and u['hasGoogleLogin'] is True and u['isAccountLinked'] is False
    # no password to log in with
    r = await client.post('/api/users/login', json={'email': email, 'password': ''})
    assert r.status_code in (400, 401)
    # adding a password links the account
    r = await client.post(f"/api/users/{u['id']}/change-password", json={'newPassword': 'pw'})
    assert r.status_code == 200
    assert (await client.get(f"/api/users/{u['id']}")).json()['isAccountLinked'] is True


async def test_external_id_conflicts(client):
    a, b = _email(), _email()
    await client.post('/api/users/google-auth', json={'email': a, 'name': 'A', 'googleId': 'g-a'})
    await register(client, b)
    # g-a already belongs to a different user than b's email
    r = await client.post('/api/users/google-auth', json={'email': b, 'name': 'B', 'googleId': 'g-a'})
    assert r.status_code == 400
    got = (await client.post('/api/users/login', json={'email': b, 'password': 'secret-pw'})).json()
    assert got['hasGoogleLogin'] is False


async def test_change_and_reset_password(client):
    email = _email()
    u = await register(client, email, password='old')
    r = await client.post(f"/api/users/{u['id']}/change-password", json={'currentPassword': 'bad', 'newPassword': 'new'})
    assert r.status_code == 400
    r = await client.post(f"/api/users/{u['id']}/change-password", json={'currentPassword': 'old', 'newPassword': 'new'})
    assert r.status_code == 200
    assert (await client.post('/api/users/login', json={'email': email, 'password': 'new'})).status_code == 200
    r = await client.post('/api/users/reset-password', json={'email': email, 'newPassword': 'newer'})
    assert r.status_code == 200
    assert (await client.post('/api/users/login', json={'email': email, 'password': 'newer'})).status_code == 200
    # unknown emails get the same answer
    r = await client.post('/api/users/reset-password', json={'email': 'ghost@example.com', 'newPassword': 'x'})
    assert r.status_code == 200


async def test_update_user_email_uniqueness(client):
    a, b = _email(), _email()
    ua = await register(client, a)
    await register(client, b)
    r = await client.put(f"/api/users/{ua['id']}", json={'email': b})
    assert r.status_code == 400
    r = await client.put(f"/api/users/{ua['id']}", json={'name': 'Renamed'})
    assert r.status_code == 200 and r.json()['name'] == 'Renamed'
    assert (await client.get('/api/users/missing')).status_code == 404


async def test_delete_user_cascades(client):
    email = _email()
    u = await register(client, email)
    headers = await auth_headers(client, email)
    t = (await client.post('/api/tasks', json={'title': 'x', 'listId': f"{u['id']}-work"}, headers=headers)).json()
    await client.post('/api/notes', json={'title': 'n'}, headers=headers)
    r = await client.delete(f"/api/users/{u['id']}", headers=headers)
    assert r.status_code == 200
    assert (await client.get(f"/api/tasks/{t['id']}")).status_code == 404
    lists = (await client.get('/api/lists')).json()
    assert not [l for l in lists if l['userId'] == u['id']]
    assert (await client.get('/api/notes')).json() == []


async def test_ownership_scoping(client):
    a, b = _email(), _email()
    ua = await register(client, a)
    await register(client, b)
    ha = await auth_headers(client, a)
    hb = await auth_headers(client, b)
    t = (await client.post('/api/tasks', json={'title': 'secret'}, headers=ha)).json()
    assert t['userId'] == ua['id']
    assert [x['title'] for x in (await client.get('/api/tasks', headers=hb)).json()] == []
    assert (await client.get(f"/api/tasks/{t['id']}", headers=hb)).status_code == 403
    assert (await client.delete(f"/api/tasks/{t['id']}", headers=hb)).status_code == 403
    # b cannot file a task under a's list
    r = await client.post('/api/tasks', json={'title': 'x', 'listId': f"{ua['id']}-work"}, headers=hb)
    assert r.status_code == 400
    # templates are readable but not writable for signed-in users
    assert (await client.delete('/api/lists/work', headers=hb)).status_code == 403
    assert (await client.get(f"/api/users/{ua['id']}", headers=hb)).status_code == 403


async def test_bad_token_is_401(client):
    r = await client.get('/api/tasks', headers={'Authorization': 'Bearer not-a-jwt'})
    assert r.status_code == 401


async def test_seed_and_reset_endpoints(client):
    email = _email()
    u = await register(client, email)
    headers = await auth_headers(client, email)
    assert (await client.post(f"/api/users/{u['id']}/seed-defaults", headers=headers)).json() == {'created': []}
    await client.post('/api/tasks', json={'title': 'x'}, headers=headers)
    await client.post('/api/lists', json={'name': 'Custom'}, headers=headers)
    await client.post('/api/notes', json={'title': 'n'}, headers=headers)
    r = await client.post(f"/api/users/{u['id']}/reset-data", headers=headers)
    assert r.status_code == 200
    state = r.json()
    assert len(state['lists']) == 3 and len(state['tags']) == 2
    assert state['tasks'] == [] and state['notes'] == []
    assert (await client.get('/api/tasks', headers=headers)).json() == []
    own_lists = [l for l in (await client.get('/api/lists', headers=headers)).json() if l['userId'] == u['id']]
    assert len(own_lists) == 3
