import asyncio
import os
import sys
from types import SimpleNamespace

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

# Ensure project root is on path so 'retailhub' can be imported without install
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from retailhub.app import create_app
from retailhub.auth import CurrentUser, create_access_token
from retailhub.config import get_database
from retailhub.rbac import get_role_permissions


def run(coro):
    return asyncio.run(coro)


def make_user(role, company_id=None, store_id=None, permissions=None, user_id=None):
    return CurrentUser(
        id=user_id or str(ObjectId()),
        role=role,
        company_id=company_id,
        store_id=store_id,
        permissions=permissions if permissions is not None else get_role_permissions(role),
    )


def auth_headers(user, permissions=None):
    claims = {
        'sub': user.id,
        'role': user.role,
        'company_id': user.company_id,
        'store_id': user.store_id,
    }
    if permissions is not None:
        claims['permissions'] = permissions
    return {'Authorization': f'Bearer {create_access_token(claims)}'}


@pytest.fixture()
def db():
    return AsyncMongoMockClient()['retailhub_test']


@pytest.fixture()
def app_instance(db):
    app = create_app()

    async def _test_db():
        return db

    app.dependency_overrides[get_database] = _test_db
    yield app
    app.dependency_overrides.clear()


@pytest.fixture()
def client(app_instance):
    # No context manager: skips the lifespan hook that dials a real MongoDB.
    return TestClient(app_instance)


@pytest.fixture()
def world(db):
    """Two companies, three stores, one user per role, one product per store."""
    company_a, company_b = ObjectId(), ObjectId()
    store_a1, store_a2, store_b1 = ObjectId(), ObjectId(), ObjectId()

    run(db['stores'].insert_many([
        {'_id': store_a1, 'company_id': company_a, 'name': 'Boutique A1', 'code': 'A1'},
        {'_id': store_a2, 'company_id': company_a, 'name': 'Boutique A2', 'code': 'A2'},
        {'_id': store_b1, 'company_id': company_b, 'name': 'Boutique B1', 'code': 'B1'},
    ]))

    product_a1, product_a2, product_b1 = ObjectId(), ObjectId(), ObjectId()
    run(db['products'].insert_many([
        {
            '_id': product_a1, 'company_id': company_a, 'store_id': store_a1,
            'name': 'Savon', 'sku': 'SAV-1',
            'pricing': {'costPrice': 20, 'sellingPrice': 30},
            'inventory': {'currentStock': 12},
            'is_deleted': False,
        },
        {
            '_id': product_a2, 'company_id': company_a, 'store_id': store_a2,
            'name': 'Riz 5kg', 'sku': 'RIZ-5', 'pricing': {'costPrice': 5, 'sellingPrice': 8},
            'is_deleted': False,
        },
        {
            '_id': product_b1, 'company_id': company_b, 'store_id': store_b1,
            'name': 'Huile', 'sku': 'HUI-1', 'pricing': {'costPrice': 3, 'sellingPrice': 4},
            'is_deleted': False,
        },
    ]))

    a, b = str(company_a), str(company_b)
    users = SimpleNamespace(
        super_admin=make_user('super_admin'),
        admin_a=make_user('company_admin', company_id=a),
        admin_b=make_user('company_admin', company_id=b),
        manager_a1=make_user('store_manager', company_id=a, store_id=str(store_a1)),
        employee_a1=make_user('employee', company_id=a, store_id=str(store_a1)),
        employee_a2=make_user('employee', company_id=a, store_id=str(store_a2)),
        employee_b1=make_user('employee', company_id=b, store_id=str(store_b1)),
    )
    return SimpleNamespace(
        company_a=company_a, company_b=company_b,
        store_a1=store_a1, store_a2=store_a2, store_b1=store_b1,
        product_a1=product_a1, product_a2=product_a2, product_b1=product_b1,
        users=users,
    )


@pytest.fixture()
def submit(client):
    """POST a proposal as `user`; returns the response."""
    def _submit(user, proposed_changes, target_id=None, entity='product'):
        body = {'targetEntityType': entity, 'proposedChanges': proposed_changes}
        if target_id is not None:
            body['targetId'] = str(target_id)
        return client.post('/api/v1/proposals/', json=body, headers=auth_headers(user))
    return _submit


def count(db, collection, filters=None):
    return run(db[collection].count_documents(filters or {}))


def find_one(db, collection, filters):
    return run(db[collection].find_one(filters))
