import pytest

from splitbill.app import create_app


@pytest.fixture
def app(tmp_path):
    app = create_app({
        'TESTING': True,
        'DEBUG': False,
        'DATABASE_PATH': str(tmp_path / 'test.db'),
        'JWT_SECRET': 'test-secret',
        'LOG_LEVEL': 'WARNING'
    })
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def register(client):
    """Register a user and return (user, auth headers)"""
    def _register(name, phone_number, password='secret123'):
        resp = client.post('/api/v1/auth/register', json={
            'name': name,
            'phone_number': phone_number,
            'password': password,
            'password_confirmation': password
        })
        assert resp.status_code == 201, resp.get_json()
        data = resp.get_json()['data']
        headers = {'Authorization': f"Bearer {data['tokens']['access_token']}"}
        return data, headers

    return _register


@pytest.fixture
def alice(register):
    return register('Alice', '1000000001')


@pytest.fixture
def bob(register):
    return register('Bob', '1000000002')


@pytest.fixture
def carol(register):
    return register('Carol', '1000000003')


@pytest.fixture
def group(client, alice, bob):
    """Alice's group with Bob added as a member"""
    _, headers = alice
    resp = client.post('/api/v1/groups', json={'name': 'Trip', 'description': 'Test'}, headers=headers)
    group_id = resp.get_json()['data']['id']
    client.post(f'/api/v1/groups/{group_id}/members', json={'phone_number': bob[0]['phone_number']}, headers=headers)
    return group_id
