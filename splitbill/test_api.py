def create_bill(client, group_id, headers, **overrides):
    payload = {
        'description': 'Dinner',
        'amount': 100,
        'bill_date': '2025-11-26',
        'split_type': 'equal',
        'split_among': []
    }
    payload.update(overrides)
    return client.post(f'/api/v1/groups/{group_id}/bills', json=payload, headers=headers)


def assert_envelope(resp, status, status_code):
    body = resp.get_json()
    assert resp.status_code == status_code
    assert body['status'] is status
    assert body['statusCode'] == status_code
    assert body['request']['method']
    assert 'url' in body['request']
    assert 'ip' in body['request']
    return body


# Auth

def test_register_returns_user_and_tokens(client, alice):
    user, headers = alice
    assert user['name'] == 'Alice'
    assert user['tokens']['token_type'] == 'bearer'
    assert user['tokens']['access_token_expires_in'] == 3600

    resp = client.get('/api/v1/auth/me', headers=headers)
    body = assert_envelope(resp, True, 200)
    assert body['data']['phone_number'] == '1000000001'


def test_register_validation_errors(client, alice):
    resp = client.post('/api/v1/auth/register', json={
        'name': 'Again',
        'phone_number': '1000000001',
        'password': 'secret123',
        'password_confirmation': 'secret123'
    })
    body = assert_envelope(resp, False, 422)
    assert 'phone_number' in body['errors']

    resp = client.post('/api/v1/auth/register', json={
        'name': 'Short',
        'phone_number': '555',
        'password': 'abc',
        'password_confirmation': 'abc'
    })
    body = assert_envelope(resp, False, 422)
    assert 'password' in body['errors']


def test_login_and_bad_credentials(client, alice):
    resp = client.post('/api/v1/auth/login', json={'phone_number': '1000000001', 'password': 'secret123'})
    body = assert_envelope(resp, True, 200)
    assert body['data']['tokens']['access_token']

    resp = client.post('/api/v1/auth/login', json={'phone_number': '1000000001', 'password': 'wrong-pass'})
    assert_envelope(resp, False, 401)


def test_protected_routes_require_token(client):
    resp = client.get('/api/v1/groups')
    assert_envelope(resp, False, 401)

    resp = client.get('/api/v1/groups', headers={'Authorization': 'Bearer not-a-token'})
    assert_envelope(resp, False, 401)


def test_logout_revokes_token(client, alice):
    _, headers = alice
    resp = client.post('/api/v1/auth/logout', headers=headers)
    assert_envelope(resp, True, 200)

    resp = client.get('/api/v1/auth/me', headers=headers)
    assert_envelope(resp, False, 401)


def test_refresh_requires_refresh_token(client, alice):
    user, headers = alice
    resp = client.post('/api/v1/auth/refresh', headers=headers)
    assert_envelope(resp, False, 401)

    refresh_headers = {'Authorization': f"Bearer {user['tokens']['refresh_token']}"}
    resp = client.post('/api/v1/auth/refresh', headers=refresh_headers)
    body = assert_envelope(resp, True, 200)
    new_access = body['data']['tokens']['access_token']

    resp = client.get('/api/v1/auth/me', headers={'Authorization': f'Bearer {new_access}'})
    assert_envelope(resp, True, 200)

    # refresh tokens are single use
    resp = client.post('/api/v1/auth/refresh', headers=refresh_headers)
    assert_envelope(resp, False, 401)

    # and are not accepted as access tokens
    resp = client.get('/api/v1/auth/me', headers=refresh_headers)
    assert_envelope(resp, False, 401)


# System

def test_health(client):
    resp = client.get('/api/v1/health')
    body = assert_envelope(resp, True, 200)
    assert body['data']['database']['status'] == 'connected'
    assert body['data']['app']['name']


def test_unknown_route_and_wrong_method(client):
    resp = client.get('/api/v1/nothing-here')
    body = assert_envelope(resp, False, 404)
    assert body['message'].startswith('Endpoint not found')

    resp = client.patch('/api/v1/health')
    body = assert_envelope(resp, False, 405)
    assert 'GET' in body['message']


# Groups

def test_create_group_adds_creator_as_member(client, alice):
    user, headers = alice
    resp = client.post('/api/v1/groups', json={'name': 'Flat', 'description': 'Rent'}, headers=headers)
    body = assert_envelope(resp, True, 201)
    group = body['data']
    assert group['created_by'] == user['id']
    assert group['creator']['name'] == 'Alice'
    assert [m['id'] for m in group['members']] == [user['id']]
    assert group['members'][0]['joined_at']


def test_create_group_requires_name(client, alice):
    _, headers = alice
    resp = client.post('/api/v1/groups', json={'description': 'x'}, headers=headers)
    body = assert_envelope(resp, False, 422)
    assert 'name' in body['errors']


def test_group_listing(client, group, alice, bob, carol):
    _, alice_headers = alice
    _, bob_headers = bob
    _, carol_headers = carol

    resp = client.get('/api/v1/groups', headers=bob_headers)
    body = assert_envelope(resp, True, 200)
    assert body['data']['total'] == 1
    assert body['data']['groups'][0]['id'] == group

    resp = client.get('/api/v1/groups/my', headers=bob_headers)
    assert resp.get_json()['data']['total'] == 0

    resp = client.get('/api/v1/groups/my', headers=alice_headers)
    assert resp.get_json()['data']['total'] == 1

    resp = client.get('/api/v1/groups', headers=carol_headers)
    assert resp.get_json()['data']['groups'] == []


def test_show_group_access(client, group, bob, carol):
    resp = client.get(f'/api/v1/groups/{group}', headers=bob[1])
    body = assert_envelope(resp, True, 200)
    assert len(body['data']['members']) == 2

    resp = client.get(f'/api/v1/groups/{group}', headers=carol[1])
    assert_envelope(resp, False, 403)

    resp = client.get('/api/v1/groups/9999', headers=carol[1])
    assert_envelope(resp, False, 404)


def test_only_creator_updates_group(client, group, alice, bob):
    resp = client.put(f'/api/v1/groups/{group}', json={'name': 'Hijack'}, headers=bob[1])
    assert_envelope(resp, False, 403)

    resp = client.put(f'/api/v1/groups/{group}', json={'description': 'Road trip'}, headers=alice[1])
    body = assert_envelope(resp, True, 200)
    assert body['data']['name'] == 'Trip'
    assert body['data']['description'] == 'Road trip'


def test_add_member_rules(client, group, alice, bob, carol):
    resp = client.post(f'/api/v1/groups/{group}/members', json={'phone_number': carol[0]['phone_number']}, headers=bob[1])
    assert_envelope(resp, False, 403)

    resp = client.post(f'/api/v1/groups/{group}/members', json={'phone_number': bob[0]['phone_number']}, headers=alice[1])
    assert_envelope(resp, False, 422)

    resp = client.post(f'/api/v1/groups/{group}/members', json={'phone_number': alice[0]['phone_number']}, headers=alice[1])
    assert_envelope(resp, False, 422)

    resp = client.post(f'/api/v1/groups/{group}/members', json={'phone_number': '9999999999'}, headers=alice[1])
    assert_envelope(resp, False, 404)

    resp = client.post(f'/api/v1/groups/{group}/members', json={'phone_number': carol[0]['phone_number']}, headers=alice[1])
    body = assert_envelope(resp, True, 200)
    assert body['data']['id'] == carol[0]['id']

    resp = client.get(f'/api/v1/groups/{group}/members', headers=carol[1])
    assert len(resp.get_json()['data']) == 3


def test_remove_member_rules(client, group, alice, bob, carol):
    alice_id = alice[0]['id']

    # creator can never be removed, whoever asks
    resp = client.delete(f'/api/v1/groups/{group}/members/{alice_id}', headers=alice[1])
    assert_envelope(resp, False, 422)
    resp = client.delete(f'/api/v1/groups/{group}/members/{alice_id}', headers=bob[1])
    assert_envelope(resp, False, 422)

    client.post(f'/api/v1/groups/{group}/members', json={'phone_number': carol[0]['phone_number']}, headers=alice[1])

    # members cannot remove each other
    resp = client.delete(f"/api/v1/groups/{group}/members/{carol[0]['id']}", headers=bob[1])
    assert_envelope(resp, False, 403)

    resp = client.delete(f"/api/v1/groups/{group}/members/{bob[0]['id']}", headers=bob[1])
    body = assert_envelope(resp, True, 200)
    assert body['message'] == 'You have left the group successfully'

    resp = client.delete(f"/api/v1/groups/{group}/members/{carol[0]['id']}", headers=alice[1])
    body = assert_envelope(resp, True, 200)
    assert body['message'] == 'Member removed from group successfully'

    resp = client.delete(f"/api/v1/groups/{group}/members/{carol[0]['id']}", headers=alice[1])
    assert_envelope(resp, False, 422)


def test_delete_group_cascades(app, client, group, alice, bob):
    ids = [alice[0]['id'], bob[0]['id']]
    resp = create_bill(client, group, alice[1], split_among=ids)
    assert resp.status_code == 201
    bill_id = resp.get_json()['data']['id']

    resp = client.delete(f'/api/v1/groups/{group}', headers=bob[1])
    assert_envelope(resp, False, 403)

    resp = client.delete(f'/api/v1/groups/{group}', headers=alice[1])
    assert_envelope(resp, True, 200)

    resp = client.get(f'/api/v1/groups/{group}/bills/{bill_id}', headers=alice[1])
    assert_envelope(resp, False, 404)
    resp = client.get(f'/api/v1/groups/{group}/members', headers=alice[1])
    assert_envelope(resp, False, 404)

    resp = client.get('/api/v1/groups', headers=bob[1])
    assert resp.get_json()['data']['total'] == 0

    db = app.extensions['splitbill']['db']
    assert db.fetch_all('SELECT * FROM bills WHERE group_id = ?', (group,)) == []
    assert db.fetch_all('SELECT * FROM group_members WHERE group_id = ?', (group,)) == []


# Bills

def test_create_equal_bill(client, group, alice, bob):
    ids = [alice[0]['id'], bob[0]['id']]
    resp = create_bill(client, group, alice[1], split_among=ids)
    body = assert_envelope(resp, True, 201)
    bill = body['data']
    assert bill['paid_by'] == alice[0]['id']
    assert bill['amount'] == '100.00'
    assert bill['split_type'] == 'equal'
    assert bill['split_among'] == ids
    assert bill['custom_split'] is None
    assert bill['bill_date'] == '2025-11-26'


def test_create_bill_validation(client, group, alice):
    resp = client.post(f'/api/v1/groups/{group}/bills', json={}, headers=alice[1])
    body = assert_envelope(resp, False, 422)
    for field in ('description', 'amount', 'bill_date', 'split_type', 'split_among'):
        assert field in body['errors']

    resp = create_bill(client, group, alice[1], amount=0, split_among=[alice[0]['id']])
    assert 'amount' in assert_envelope(resp, False, 422)['errors']

    resp = create_bill(client, group, alice[1], split_type='custom', split_among=[alice[0]['id']])
    assert 'custom_split' in assert_envelope(resp, False, 422)['errors']


def test_create_bill_with_non_member_fails_before_writing(client, group, alice, bob, carol):
    ids = [alice[0]['id'], carol[0]['id']]
    resp = create_bill(client, group, alice[1], split_among=ids)
    body = assert_envelope(resp, False, 422)
    assert 'split_among' in body['errors']

    resp = create_bill(client, group, alice[1], split_among=[alice[0]['id'], 4242])
    assert_envelope(resp, False, 422)

    resp = client.get(f'/api/v1/groups/{group}/bills', headers=alice[1])
    assert resp.get_json()['data']['total'] == 0


def test_create_bill_requires_membership(client, group, carol):
    resp = create_bill(client, group, carol[1], split_among=[carol[0]['id']])
    assert_envelope(resp, False, 403)

    resp = create_bill(client, 9999, carol[1], split_among=[carol[0]['id']])
    assert_envelope(resp, False, 404)


def test_custom_split_sum_must_match(client, group, alice, bob):
    a, b = alice[0]['id'], bob[0]['id']
    resp = create_bill(client, group, alice[1], amount=90, split_type='custom',
                       split_among=[a, b], custom_split={str(a): 30, str(b): 50})
    body = assert_envelope(resp, False, 422)
    assert body['message'] == 'Custom split amounts must equal the total bill amount'

    resp = create_bill(client, group, alice[1], amount=90, split_type='custom',
                       split_among=[a, b], custom_split={str(a): 30, str(b): 60})
    body = assert_envelope(resp, True, 201)
    assert body['data']['custom_split'] == {str(a): '30.00', str(b): '60.00'}


def test_show_bill_requires_involvement(client, group, alice, bob, carol):
    a = alice[0]['id']
    resp = create_bill(client, group, alice[1], amount=30, split_among=[a])
    bill_id = resp.get_json()['data']['id']

    resp = client.get(f'/api/v1/groups/{group}/bills/{bill_id}', headers=alice[1])
    body = assert_envelope(resp, True, 200)
    assert body['data']['split_details'] == {str(a): '30.00'}

    resp = client.get(f'/api/v1/groups/{group}/bills/{bill_id}', headers=bob[1])
    assert_envelope(resp, False, 403)

    resp = client.get(f'/api/v1/groups/{group}/bills/9999', headers=alice[1])
    assert_envelope(resp, False, 404)


def test_list_bills(client, group, alice, bob, carol):
    ids = [alice[0]['id'], bob[0]['id']]
    create_bill(client, group, alice[1], description='First', split_among=ids)
    create_bill(client, group, bob[1], description='Second', split_among=ids)

    resp = client.get(f'/api/v1/groups/{group}/bills', headers=bob[1])
    body = assert_envelope(resp, True, 200)
    assert body['data']['total'] == 2
    assert [b['description'] for b in body['data']['bills']] == ['Second', 'First']
    assert body['data']['bills'][0]['payer']['name'] == 'Bob'

    resp = client.get(f'/api/v1/groups/{group}/bills', headers=carol[1])
    assert_envelope(resp, False, 403)


def test_only_payer_updates_and_deletes_bill(client, group, alice, bob):
    a, b = alice[0]['id'], bob[0]['id']
    resp = create_bill(client, group, alice[1], split_among=[a, b])
    bill_id = resp.get_json()['data']['id']
    url = f'/api/v1/groups/{group}/bills/{bill_id}'

    resp = client.put(url, json={'description': 'Mine now'}, headers=bob[1])
    assert_envelope(resp, False, 403)
    resp = client.delete(url, headers=bob[1])
    assert_envelope(resp, False, 403)

    resp = client.put(url, json={'amount': '80.50', 'description': 'Lunch'}, headers=alice[1])
    body = assert_envelope(resp, True, 200)
    assert body['data']['amount'] == '80.50'
    assert body['data']['description'] == 'Lunch'
    assert body['data']['split_among'] == [a, b]

    resp = client.delete(url, headers=alice[1])
    assert_envelope(resp, True, 200)
    resp = client.get(url, headers=alice[1])
    assert_envelope(resp, False, 404)


def test_update_bill_revalidates_custom_split(client, group, alice, bob):
    a, b = alice[0]['id'], bob[0]['id']
    resp = create_bill(client, group, alice[1], amount=90, split_type='custom',
                       split_among=[a, b], custom_split={str(a): 30, str(b): 60})
    url = f"/api/v1/groups/{group}/bills/{resp.get_json()['data']['id']}"

    resp = client.put(url, json={'amount': 100}, headers=alice[1])
    assert_envelope(resp, False, 422)

    resp = client.put(url, json={'split_type': 'equal'}, headers=alice[1])
    body = assert_envelope(resp, True, 200)
    assert body['data']['custom_split'] is None


# Balances

def test_group_balance_equal_split(client, group, alice, bob):
    a, b = alice[0]['id'], bob[0]['id']
    create_bill(client, group, alice[1], amount=100, split_among=[a, b])

    resp = client.get(f'/api/v1/groups/{group}/balance', headers=bob[1])
    body = assert_envelope(resp, True, 200)
    summary = body['data']
    assert summary['total_spent'] == '100.00'
    assert summary['total_spent_by_user'] == {str(a): '100.00', str(b): '0.00'}
    assert summary['total_owed_by_user'] == {str(a): '50.00', str(b): '50.00'}
    assert summary['net_balances'] == {str(a): '-50.00', str(b): '50.00'}
    members = {m['id']: m for m in summary['members']}
    assert members[b]['net_balance'] == '50.00'
    assert members[a]['name'] == 'Alice'


def test_group_balance_requires_membership(client, group, carol):
    resp = client.get(f'/api/v1/groups/{group}/balance', headers=carol[1])
    assert_envelope(resp, False, 403)
    resp = client.get('/api/v1/groups/9999/my-balance', headers=carol[1])
    assert_envelope(resp, False, 404)


def test_my_balance_uses_callers_sign(client, group, alice, bob, carol):
    client.post(f'/api/v1/groups/{group}/members', json={'phone_number': carol[0]['phone_number']}, headers=alice[1])
    a, b, c = alice[0]['id'], bob[0]['id'], carol[0]['id']
    create_bill(client, group, alice[1], amount=90, split_among=[a, b, c])

    resp = client.get(f'/api/v1/groups/{group}/my-balance', headers=alice[1])
    data = assert_envelope(resp, True, 200)['data']
    assert data['net_balance'] == '-60.00'
    assert data['owes_you'] == []
    assert sorted(entry['user_id'] for entry in data['you_owe']) == [b, c]
    assert all(entry['amount'] == '60.00' for entry in data['you_owe'])

    resp = client.get(f'/api/v1/groups/{group}/my-balance', headers=bob[1])
    data = resp.get_json()['data']
    assert data['net_balance'] == '30.00'
    assert data['you_owe'] == []
    assert {entry['user_id']: entry['amount'] for entry in data['owes_you']} == {a: '30.00', c: '30.00'}


def test_settlements(client, group, alice, bob, carol):
    client.post(f'/api/v1/groups/{group}/members', json={'phone_number': carol[0]['phone_number']}, headers=alice[1])
    a, b, c = alice[0]['id'], bob[0]['id'], carol[0]['id']
    create_bill(client, group, alice[1], amount=90, split_among=[a, b, c])

    resp = client.get(f'/api/v1/groups/{group}/balance/settlements', headers=carol[1])
    data = assert_envelope(resp, True, 200)['data']
    assert data['total'] == 2
    assert {(t['from_user_id'], t['to_user_id'], t['amount']) for t in data['settlements']} == {
        (b, a, '30.00'),
        (c, a, '30.00'),
    }


# Input edge cases

def test_non_object_body_is_validation_error(client, group, alice):
    resp = client.post('/api/v1/groups', json=['x'], headers=alice[1])
    body = assert_envelope(resp, False, 422)
    assert 'body' in body['errors']

    resp = client.post(f'/api/v1/groups/{group}/bills', json=[1, 2], headers=alice[1])
    assert_envelope(resp, False, 422)

    resp = client.put(f'/api/v1/groups/{group}', json='rename', headers=alice[1])
    assert_envelope(resp, False, 422)

    resp = client.post('/api/v1/auth/register', json=['Alice'])
    assert_envelope(resp, False, 422)


def test_oversized_amounts_are_rejected(client, group, alice, bob):
    a, b = alice[0]['id'], bob[0]['id']
    resp = create_bill(client, group, alice[1], amount=1e30, split_among=[a, b])
    body = assert_envelope(resp, False, 422)
    assert body['errors']['amount'] == ['The amount field is too large.']

    resp = create_bill(client, group, alice[1], amount=90, split_type='custom',
                       split_among=[a, b], custom_split={str(a): 1e30, str(b): 60})
    body = assert_envelope(resp, False, 422)
    assert f'custom_split.{a}' in body['errors']


def test_bill_date_must_be_a_whole_iso_date(client, group, alice):
    a = alice[0]['id']
    resp = create_bill(client, group, alice[1], bill_date='2024-01-01garbage', split_among=[a])
    body = assert_envelope(resp, False, 422)
    assert 'bill_date' in body['errors']

    resp = create_bill(client, group, alice[1], bill_date='2024-01-01T10:30:00', split_among=[a])
    body = assert_envelope(resp, True, 201)
    assert body['data']['bill_date'] == '2024-01-01'


def test_group_description_can_be_cleared(client, group, alice):
    resp = client.put(f'/api/v1/groups/{group}', json={'description': ''}, headers=alice[1])
    body = assert_envelope(resp, True, 200)
    assert body['data']['description'] is None
    assert body['data']['name'] == 'Trip'


def test_create_group_is_atomic(app, client, alice, monkeypatch):
    from splitbill.services import group_service

    def fail():
        raise RuntimeError('clock unavailable')

    monkeypatch.setattr(group_service, 'utc_now', fail)

    resp = client.post('/api/v1/groups', json={'name': 'Broken'}, headers=alice[1])
    assert_envelope(resp, False, 500)

    db = app.extensions['splitbill']['db']
    assert db.fetch_all('SELECT * FROM split_groups') == []
    assert db.fetch_all('SELECT * FROM group_members') == []
