"""
Sequences of lifecycle calls, checking the properties that must hold after every step:
at most one open deletion request and one pending transfer per organization, never both,
and exactly one owner while the organization exists.
"""
import pytest

from steward.exceptions import StewardError
from steward.models import OrganizationStatus, Role

from helpers import World

STEPS = {
    'confirm_name': lambda w, o: w.deletion.confirm_name(o, 'alice', "Acme"),
    'confirm_phrase': lambda w, o: w.deletion.confirm_phrase(o, 'alice', "DELETE ORGANIZATION"),
    'finalize_soft': lambda w, o: w.deletion.finalize(o, 'alice', 'soft'),
    'restore': lambda w, o: w.deletion.restore(o, 'alice'),
    'cancel_deletion': lambda w, o: w.deletion.cancel(o, 'alice'),
    'propose': lambda w, o: w.transfers.propose(o, 'alice', 'bob'),
    'accept': lambda w, o: w.transfers.accept(o, 'bob'),
    'cancel_transfer': lambda w, o: w.transfers.cancel(o, 'alice'),
    'wait_a_week': lambda w, o: w.clock.advance(days=7),
    'sweep': lambda w, o: (w.deletion.purge_due(), w.transfers.expire_overdue()),
}

SEQUENCES = [
    ['confirm_name', 'propose', 'confirm_phrase', 'propose', 'finalize_soft', 'propose', 'restore', 'propose'],
    ['propose', 'confirm_name', 'wait_a_week', 'confirm_name', 'propose', 'cancel_deletion', 'propose'],
    ['propose', 'accept', 'confirm_name', 'cancel_transfer', 'propose'],
    ['confirm_name', 'confirm_phrase', 'confirm_name', 'confirm_name', 'confirm_phrase', 'finalize_soft',
     'cancel_deletion', 'restore', 'confirm_name'],
    ['propose', 'wait_a_week', 'sweep', 'propose', 'accept', 'cancel_transfer', 'confirm_name'],
    ['confirm_name', 'confirm_phrase', 'finalize_soft', 'wait_a_week', 'wait_a_week', 'wait_a_week',
     'wait_a_week', 'wait_a_week', 'sweep', 'restore', 'propose'],
]


def check_invariants(world: World, organization_id: str):
    now = world.clock()
    open_deletions = world.deletion_requests.count_open(organization_id)
    pending_transfers = [t for t in world.transfer_requests.get_many({'organization_id': organization_id})
                         if t.is_pending(now)]
    assert open_deletions <= 1
    assert len(pending_transfers) <= 1
    assert not (open_deletions and pending_transfers)

    organization = world.organizations.get_by_id(organization_id)
    owners = world.memberships.get_owners(organization_id)
    if organization.status == OrganizationStatus.purged:
        assert owners == []
    else:
        assert len(owners) == 1


@pytest.mark.parametrize('sequence', SEQUENCES)
def test_invariants_hold_after_every_step(sequence):
    world = World()
    organization = world.create_organization("Acme", owner_id='alice', members={'bob': Role.admin})
    for step in sequence:
        try:
            STEPS[step](world, organization.entity_id)
        except StewardError:
            pass
        check_invariants(world, organization.entity_id)
