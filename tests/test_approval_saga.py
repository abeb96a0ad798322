import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from retailhub.config import ensure_indexes
from retailhub.proposals.service import ProposalService, flatten_changes
from retailhub.utils.exceptions import ConflictError
from tests.conftest import count, find_one, run


def _submit(db, user, changes, target_id=None):
    svc = ProposalService(db)
    return run(svc.submit(user, 'product', changes, target_id=str(target_id) if target_id else None))


def _review_behind_our_back(db, proposal_id, status):
    """Patch _apply_to_product so another reviewer lands in between steps 2 and 3."""
    original = ProposalService._apply_to_product

    async def racing(self, user, proposal):
        write = await original(self, user, proposal)
        await db['proposals'].update_one({'_id': ObjectId(proposal_id)}, {'$set': {'status': status}})
        return write

    return racing


def _approved_behind_our_back(db, reviewer):
    """Patch _apply_to_product so a full competing approval runs between steps 2 and 3."""
    original = ProposalService._apply_to_product
    raced = []

    async def racing(self, user, proposal):
        write = await original(self, user, proposal)
        if not raced:
            raced.append(True)
            await ProposalService(db).approve(reviewer, str(proposal['_id']))
        return write

    return racing


class _MissesFirstRead:
    """Products collection whose first find_one misses, as if a concurrent insert had not landed yet."""

    def __init__(self, inner):
        self.inner = inner
        self.missed = False

    def __getattr__(self, name):
        return getattr(self.inner, name)

    async def find_one(self, *args, **kwargs):
        if not self.missed:
            self.missed = True
            return None
        return await self.inner.find_one(*args, **kwargs)


def test_flatten_changes():
    assert flatten_changes({'pricing': {'sellingPrice': 35, 'tax': {'rate': 18}}, 'name': 'x'}) == {
        'pricing.sellingPrice': 35,
        'pricing.tax.rate': 18,
        'name': 'x',
    }
    assert flatten_changes({'pricing': {}}) == {}


def test_losing_approval_keeps_product_the_winner_reused(world, db, monkeypatch):
    proposal = _submit(db, world.users.employee_a1, {'name': 'Produit Test'})
    monkeypatch.setattr(
        ProposalService, '_apply_to_product', _approved_behind_our_back(db, world.users.super_admin)
    )

    with pytest.raises(ConflictError):
        run(ProposalService(db).approve(world.users.admin_a, proposal['_id']))

    stored = find_one(db, 'proposals', {'_id': ObjectId(proposal['_id'])})
    product = find_one(db, 'products', {'name': 'Produit Test'})
    assert stored['status'] == 'approved'
    assert count(db, 'products', {'name': 'Produit Test'}) == 1
    assert stored['product_id'] == product['_id']
    assert count(db, 'audit_logs', {'action': 'proposal_approved'}) == 1
    assert count(db, 'audit_logs', {'action': 'proposal_approval_rolled_back'}) == 0
    assert count(db, 'notifications', {'severity': 'success'}) == 1


def test_losing_approval_removes_its_duplicate_product(world, db, monkeypatch):
    proposal = _submit(db, world.users.employee_a1, {'name': 'Produit Test'})
    winner = ObjectId()
    original = ProposalService._apply_to_product

    async def racing(self, user, proposal_doc):
        write = await original(self, user, proposal_doc)
        await db['products'].insert_one({
            '_id': winner,
            'name': 'Produit Test',
            'company_id': world.company_a,
            'source_proposal_id': proposal_doc['_id'],
        })
        await db['proposals'].update_one(
            {'_id': proposal_doc['_id']},
            {'$set': {'status': 'approved', 'product_id': winner}},
        )
        return write

    monkeypatch.setattr(ProposalService, '_apply_to_product', racing)

    with pytest.raises(ConflictError):
        run(ProposalService(db).approve(world.users.admin_a, proposal['_id']))

    assert count(db, 'products', {'name': 'Produit Test'}) == 1
    assert find_one(db, 'products', {'name': 'Produit Test'})['_id'] == winner
    assert count(db, 'audit_logs', {'action': 'proposal_approval_rolled_back'}) == 1


def test_creation_rolled_back_when_concurrently_rejected(world, db, monkeypatch):
    proposal = _submit(db, world.users.employee_a1, {'name': 'Produit Test'})
    monkeypatch.setattr(
        ProposalService, '_apply_to_product', _review_behind_our_back(db, proposal['_id'], 'rejected')
    )

    with pytest.raises(ConflictError):
        run(ProposalService(db).approve(world.users.admin_a, proposal['_id']))

    assert count(db, 'products', {'name': 'Produit Test'}) == 0
    assert count(db, 'audit_logs', {'action': 'proposal_approval_rolled_back'}) == 1
    assert count(db, 'audit_logs', {'action': 'proposal_approved'}) == 0
    assert count(db, 'notifications', {'severity': 'success'}) == 0


def test_approval_records_product_on_proposal(world, db):
    proposal = _submit(db, world.users.employee_a1, {'name': 'Produit Test'})
    updated, product = run(ProposalService(db).approve(world.users.admin_a, proposal['_id']))
    assert updated['product_id'] == product['_id']


def test_duplicate_insert_reuses_concurrent_product(world, db):
    run(ensure_indexes(db))
    proposal = _submit(db, world.users.employee_a1, {'name': 'Produit Test'})
    concurrent = ObjectId()
    run(db['products'].insert_one({
        '_id': concurrent,
        'name': 'Produit Test',
        'company_id': world.company_a,
        'source_proposal_id': ObjectId(proposal['_id']),
    }))

    svc = ProposalService(db)
    svc.products = _MissesFirstRead(svc.products)
    updated, product = run(svc.approve(world.users.admin_a, proposal['_id']))

    assert updated['status'] == 'approved'
    assert product['_id'] == str(concurrent)
    assert count(db, 'products', {'source_proposal_id': ObjectId(proposal['_id'])}) == 1


def test_source_proposal_index_is_unique_and_sparse(db):
    run(ensure_indexes(db))
    source = ObjectId()
    run(db['products'].insert_one({'name': 'a', 'source_proposal_id': source}))
    run(db['products'].insert_many([{'name': 'b'}, {'name': 'c'}]))

    with pytest.raises(DuplicateKeyError):
        run(db['products'].insert_one({'name': 'd', 'source_proposal_id': source}))


def test_update_rolled_back_when_concurrently_rejected(world, db, monkeypatch):
    proposal = _submit(
        db, world.users.employee_a1, {'pricing': {'sellingPrice': 35}, 'color': 'blue'},
        target_id=world.product_a1,
    )
    monkeypatch.setattr(
        ProposalService, '_apply_to_product', _review_behind_our_back(db, proposal['_id'], 'rejected')
    )

    with pytest.raises(ConflictError):
        run(ProposalService(db).approve(world.users.admin_a, proposal['_id']))

    product = find_one(db, 'products', {'_id': world.product_a1})
    assert product['pricing'] == {'costPrice': 20, 'sellingPrice': 30}
    assert 'color' not in product
    assert 'updated_by' not in product
    assert count(db, 'audit_logs', {'action': 'proposal_approval_rolled_back'}) == 1


def test_update_kept_when_concurrently_approved(world, db, monkeypatch):
    proposal = _submit(
        db, world.users.employee_a1, {'pricing': {'sellingPrice': 35}}, target_id=world.product_a1
    )
    monkeypatch.setattr(
        ProposalService, '_apply_to_product', _review_behind_our_back(db, proposal['_id'], 'approved')
    )

    with pytest.raises(ConflictError):
        run(ProposalService(db).approve(world.users.admin_a, proposal['_id']))

    product = find_one(db, 'products', {'_id': world.product_a1})
    assert product['pricing']['sellingPrice'] == 35
    assert count(db, 'audit_logs', {'action': 'proposal_approval_rolled_back'}) == 0


def test_failed_transition_rolls_back_and_reraises(world, db, monkeypatch):
    proposal = _submit(db, world.users.employee_a1, {'name': 'Produit Test'})

    async def broken_transition(self, proposal_id, fields):
        raise RuntimeError('primary down')

    monkeypatch.setattr(ProposalService, '_transition', broken_transition)

    with pytest.raises(RuntimeError):
        run(ProposalService(db).approve(world.users.admin_a, proposal['_id']))

    assert count(db, 'products', {'name': 'Produit Test'}) == 0
    assert find_one(db, 'proposals', {'_id': ObjectId(proposal['_id'])})['status'] == 'pending'


def test_orphaned_product_is_recorded_when_undo_fails(world, db, monkeypatch):
    proposal = _submit(db, world.users.employee_a1, {'name': 'Produit Test'})
    monkeypatch.setattr(
        ProposalService, '_apply_to_product', _review_behind_our_back(db, proposal['_id'], 'rejected')
    )

    async def broken_undo(self, write):
        raise RuntimeError('delete refused')

    monkeypatch.setattr(ProposalService, '_undo', broken_undo)

    with pytest.raises(ConflictError):
        run(ProposalService(db).approve(world.users.admin_a, proposal['_id']))

    orphan = find_one(db, 'audit_logs', {'action': 'proposal_product_orphaned'})
    assert orphan['entity_type'] == 'product'
    assert orphan['meta']['proposal_id'] == proposal['_id']
    assert orphan['meta']['cause'] == 'concurrent_review'
    assert count(db, 'products', {'name': 'Produit Test'}) == 1


def test_retry_reuses_product_from_earlier_attempt(world, db):
    proposal = _submit(db, world.users.employee_a1, {'name': 'Produit Test'})
    leftover = ObjectId()
    run(db['products'].insert_one({
        '_id': leftover,
        'name': 'Produit Test',
        'company_id': world.company_a,
        'source_proposal_id': ObjectId(proposal['_id']),
    }))

    updated, product = run(ProposalService(db).approve(world.users.admin_a, proposal['_id']))
    assert updated['status'] == 'approved'
    assert product['_id'] == str(leftover)
    assert count(db, 'products', {'name': 'Produit Test'}) == 1
