from tests.conftest import auth_headers


def _list(client, user, **params):
    return client.get('/api/v1/proposals/', params=params, headers=auth_headers(user))


def _seed(world, submit):
    u = world.users
    ids = {
        'a1': submit(u.employee_a1, {'name': 'a1'}).json()['proposal']['_id'],
        'a2': submit(u.employee_a2, {'name': 'a2'}).json()['proposal']['_id'],
        'b1': submit(u.employee_b1, {'name': 'b1'}).json()['proposal']['_id'],
    }
    return ids


def test_listing_is_scoped_by_role(world, submit, client):
    ids = _seed(world, submit)
    u = world.users

    everything = _list(client, u.super_admin).json()
    assert {p['_id'] for p in everything['proposals']} == set(ids.values())

    company_a = _list(client, u.admin_a).json()
    assert {p['_id'] for p in company_a['proposals']} == {ids['a1'], ids['a2']}

    store_a1 = _list(client, u.manager_a1).json()
    assert [p['_id'] for p in store_a1['proposals']] == [ids['a1']]


def test_super_admin_can_narrow_to_a_company(world, submit, client):
    ids = _seed(world, submit)
    resp = _list(client, world.users.super_admin, company_id=str(world.company_b))
    assert [p['_id'] for p in resp.json()['proposals']] == [ids['b1']]


def test_company_admin_cannot_widen_to_other_company(world, submit, client):
    _seed(world, submit)
    resp = _list(client, world.users.admin_a, company_id=str(world.company_b))
    assert all(p['company_id'] == str(world.company_a) for p in resp.json()['proposals'])


def test_status_filter_and_pagination(world, submit, client):
    employee = world.users.employee_a1
    for i in range(5):
        submit(employee, {'name': f'p{i}'})

    page1 = _list(client, world.users.admin_a, status='pending', limit=2, page=1).json()
    assert page1['pagination'] == {'total': 5, 'page': 1, 'pages': 3, 'limit': 2}
    assert len(page1['proposals']) == 2

    page3 = _list(client, world.users.admin_a, status='pending', limit=2, page=3).json()
    assert len(page3['proposals']) == 1

    approved = _list(client, world.users.admin_a, status='approved').json()
    assert approved['pagination']['total'] == 0


def test_invalid_status_filter_is_400(world, client):
    assert _list(client, world.users.admin_a, status='archived').status_code == 400


def test_get_one_is_scope_checked(world, submit, client):
    ids = _seed(world, submit)
    u = world.users

    def get(user, pid):
        return client.get(f'/api/v1/proposals/{pid}', headers=auth_headers(user))

    resp = get(u.employee_a1, ids['a1'])
    assert resp.status_code == 200
    assert resp.json()['proposal']['proposed_changes'] == {'name': 'a1'}

    assert get(u.employee_a1, ids['a2']).status_code == 403
    assert get(u.admin_a, ids['a2']).status_code == 200
    assert get(u.admin_a, ids['b1']).status_code == 403
    assert get(u.super_admin, ids['b1']).status_code == 200
