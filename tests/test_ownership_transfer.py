"""
Tests for the ownership transfer coordinator.
"""
import unittest
from datetime import timedelta
from unittest.mock import patch

from steward.exceptions import (
    DeletionPendingError,
    InvalidTransferTargetError,
    NotPermittedError,
    StaleStateError,
    TransferAlreadyPendingError,
    TransferExpiredError,
    TransferNotFoundError,
)
from steward.models import Role, TransferStatus

from helpers import World, make_config


class TransferTestCase(unittest.TestCase):
    def setUp(self):
        self.world = World()
        self.organization = self.world.create_organization(
            "Acme", owner_id='alice',
            members={'bob': Role.admin, 'carol': Role.manager, 'dave': Role.member})
        self.org_id = self.organization.entity_id
        self.transfers = self.world.transfers

    def owners(self):
        return [m.user_id for m in self.world.memberships.get_owners(self.org_id)]


class TestPropose(TransferTestCase):

    def test_propose_to_admin(self):
        """
        Test that a proposal is stored with a seven day expiry and notifies the recipient.
        """
        transfer = self.transfers.propose(self.org_id, 'alice', 'bob', message="Over to you")
        self.assertEqual(transfer.status, TransferStatus.proposed)
        self.assertEqual(transfer.expires_at, transfer.created_at + timedelta(days=7))
        self.assertIsNotNone(transfer.transfer_token)
        self.assertEqual(self.transfers.get_pending(self.org_id).entity_id, transfer.entity_id)

        events = self.world.events('OwnershipTransferProposed')
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0]['recipient_ids'], ['bob'])
        self.assertEqual(events[0]['payload']['message'], "Over to you")
        self.assertIn('ownership_transfer_initiated', self.world.audit_types(self.org_id))

    def test_manager_is_eligible(self):
        """
        Test that managers can receive ownership.
        """
        self.assertEqual(self.transfers.propose(self.org_id, 'alice', 'carol').to_user_id, 'carol')

    def test_ineligible_targets(self):
        """
        Test that members, outsiders and the owner themselves are rejected.
        """
        for target in ('dave', 'stranger'):
            with self.assertRaises(InvalidTransferTargetError):
                self.transfers.propose(self.org_id, 'alice', target)
        with self.assertRaises(InvalidTransferTargetError) as ctx:
            self.transfers.propose(self.org_id, 'alice', 'alice')
        self.assertEqual(ctx.exception.message, "You already own this organization.")
        self.assertEqual(self.world.transfer_requests.count_open(self.org_id), 0)

    def test_only_owner_may_propose(self):
        """
        Test that an admin cannot propose a transfer.
        """
        with self.assertRaises(NotPermittedError):
            self.transfers.propose(self.org_id, 'bob', 'carol')

    def test_single_pending_transfer(self):
        """
        Test that a second proposal is refused while the first can still be accepted.
        """
        self.transfers.propose(self.org_id, 'alice', 'bob')
        with self.assertRaises(TransferAlreadyPendingError):
            self.transfers.propose(self.org_id, 'alice', 'carol')
        self.assertEqual(self.world.transfer_requests.count_open(self.org_id), 1)

    def test_lapsed_proposal_replaced(self):
        """
        Test that proposing after expiry records the old proposal as expired in the same step.
        """
        first = self.transfers.propose(self.org_id, 'alice', 'bob')
        self.world.clock.advance(days=7)
        second = self.transfers.propose(self.org_id, 'alice', 'carol')
        self.assertEqual(self.world.transfer_requests.get_by_id(first.entity_id).status, TransferStatus.expired)
        self.assertEqual(self.world.transfer_requests.count_open(self.org_id), 1)
        self.assertEqual(self.transfers.get_pending(self.org_id).entity_id, second.entity_id)

    def test_open_deletion_blocks_proposal(self):
        """
        Test that a deletion in its confirmation steps refuses a proposal.
        """
        self.world.deletion.confirm_name(self.org_id, 'alice', "Acme")
        with self.assertRaises(DeletionPendingError):
            self.transfers.propose(self.org_id, 'alice', 'bob')

    def test_soft_deleted_organization_refuses(self):
        """
        Test that a soft-deleted organization cannot change hands.
        """
        self.world.delete_softly(self.organization)
        with self.assertRaises(DeletionPendingError):
            self.transfers.propose(self.org_id, 'alice', 'bob')


class TestAccept(TransferTestCase):

    def test_atomic_swap(self):
        """
        Test that acceptance leaves exactly one owner and demotes the old owner to admin.
        """
        self.transfers.propose(self.org_id, 'alice', 'bob')
        transfer = self.transfers.accept(self.org_id, 'bob')

        self.assertEqual(transfer.status, TransferStatus.accepted)
        self.assertEqual(self.owners(), ['bob'])
        self.assertEqual(self.world.role_of(self.org_id, 'alice'), Role.admin)
        self.assertIsNone(self.transfers.get_pending(self.org_id))
        events = self.world.events('OwnershipTransferAccepted')
        self.assertEqual(sorted(events[0]['recipient_ids']), ['alice', 'bob'])

    def test_bob_too_late(self):
        """
        Test that eight days after proposal the transfer reads expired and cannot be accepted.
        """
        transfer = self.transfers.propose(self.org_id, 'alice', 'bob')
        self.world.clock.advance(days=8)
        self.assertEqual(self.transfers.status_of(transfer), TransferStatus.expired)
        self.assertIsNone(self.transfers.get_pending(self.org_id))
        self.assertEqual(self.transfers.pending_for_user('bob'), [])
        with self.assertRaises(TransferExpiredError):
            self.transfers.accept(self.org_id, 'bob')
        self.assertEqual(self.owners(), ['alice'])

    def test_only_recipient_may_accept(self):
        """
        Test that anyone other than the recipient is refused.
        """
        self.transfers.propose(self.org_id, 'alice', 'bob')
        for actor in ('carol', 'alice'):
            with self.assertRaises(NotPermittedError):
                self.transfers.accept(self.org_id, actor)
        self.assertEqual(self.owners(), ['alice'])

    def test_nothing_to_accept(self):
        """
        Test that accepting with no proposal fails with not found.
        """
        with self.assertRaises(TransferNotFoundError):
            self.transfers.accept(self.org_id, 'bob')

    def test_recipient_demoted_meanwhile(self):
        """
        Test that a recipient who is no longer admin or manager cannot accept.
        """
        self.transfers.propose(self.org_id, 'alice', 'bob')
        bob = self.world.memberships.get_membership(self.org_id, 'bob')
        bob.role = Role.member
        self.world.memberships.save(bob)
        with self.assertRaises(InvalidTransferTargetError):
            self.transfers.accept(self.org_id, 'bob')
        self.assertEqual(self.owners(), ['alice'])

    def test_accept_by_token(self):
        """
        Test that the signed token from the notification accepts the transfer.
        """
        self.transfers.propose(self.org_id, 'alice', 'bob')
        token = self.world.events('OwnershipTransferProposed')[0]['payload']['transfer_token']
        transfer = self.transfers.accept_by_token(token, 'bob')
        self.assertEqual(transfer.status, TransferStatus.accepted)
        self.assertEqual(self.owners(), ['bob'])

    def test_forged_token_rejected(self):
        """
        Test that a token with a bad signature names no transfer.
        """
        transfer = self.transfers.propose(self.org_id, 'alice', 'bob')
        forged = transfer.transfer_token[:-4] + "0000"
        for token in (forged, "garbage", ""):
            with self.assertRaises(TransferNotFoundError):
                self.transfers.accept_by_token(token, 'bob')

    def test_no_token_without_secret(self):
        """
        Test that no token is issued when no signing secret is configured.
        """
        world = World(config=make_config(STEWARD_TRANSFER_TOKEN_SECRET=''))
        organization = world.create_organization(members={'bob': Role.admin})
        transfer = world.transfers.propose(organization.entity_id, 'alice', 'bob')
        self.assertIsNone(transfer.transfer_token)
        with self.assertRaises(TransferNotFoundError):
            world.transfers.accept_by_token("anything", 'bob')

    def test_accept_on_outdated_view_rejected(self):
        """
        Test that an acceptance computed before a competing organization change loses.
        """
        self.transfers.propose(self.org_id, 'alice', 'bob')
        outdated = self.world.organizations.get_by_id(self.org_id)
        self.world.actions.update_organization_details('alice', self.org_id, {'description': "Renamed"})
        with patch.object(self.world.organizations, 'get_by_id', return_value=outdated):
            with self.assertRaises(StaleStateError):
                self.transfers.accept(self.org_id, 'bob')
        self.assertEqual(self.owners(), ['alice'])
        self.assertEqual(self.world.role_of(self.org_id, 'bob'), Role.admin)


class TestCancel(TransferTestCase):

    def test_proposer_cancels(self):
        """
        Test that the proposer can withdraw a pending proposal.
        """
        self.transfers.propose(self.org_id, 'alice', 'bob')
        transfer = self.transfers.cancel(self.org_id, 'alice')
        self.assertEqual(transfer.status, TransferStatus.cancelled)
        self.assertIsNone(self.transfers.get_pending(self.org_id))
        self.assertEqual(self.world.events('OwnershipTransferCancelled')[0]['recipient_ids'], ['bob'])
        # a new proposal is possible again
        self.transfers.propose(self.org_id, 'alice', 'carol')

    def test_cancel_after_accept_is_noop(self):
        """
        Test that cancelling an accepted transfer changes nothing.
        """
        self.transfers.propose(self.org_id, 'alice', 'bob')
        self.transfers.accept(self.org_id, 'bob')
        transfer = self.transfers.cancel(self.org_id, 'bob')
        self.assertEqual(transfer.status, TransferStatus.accepted)
        self.assertEqual(self.owners(), ['bob'])

    def test_proposer_cancel_after_accept_is_noop(self):
        """
        Test that the former owner cancelling an accepted transfer gets it back unchanged.
        """
        self.transfers.propose(self.org_id, 'alice', 'bob')
        accepted = self.transfers.accept(self.org_id, 'bob')
        transfer = self.transfers.cancel(self.org_id, 'alice')
        self.assertEqual(transfer.entity_id, accepted.entity_id)
        self.assertEqual(transfer.status, TransferStatus.accepted)
        self.assertEqual(self.owners(), ['bob'])
        self.assertEqual(self.world.role_of(self.org_id, 'alice'), Role.admin)

    def test_bystander_cancel_after_accept_is_denied(self):
        """
        Test that a member uninvolved in an accepted transfer cannot cancel anything.
        """
        self.transfers.propose(self.org_id, 'alice', 'bob')
        self.transfers.accept(self.org_id, 'bob')
        with self.assertRaises(NotPermittedError):
            self.transfers.cancel(self.org_id, 'carol')

    def test_cancel_expired(self):
        """
        Test that a lapsed proposal cannot be cancelled.
        """
        self.transfers.propose(self.org_id, 'alice', 'bob')
        self.world.clock.advance(days=7)
        with self.assertRaises(TransferExpiredError):
            self.transfers.cancel(self.org_id, 'alice')

    def test_cancel_nothing(self):
        with self.assertRaises(TransferNotFoundError):
            self.transfers.cancel(self.org_id, 'alice')

    def test_admin_cannot_cancel(self):
        self.transfers.propose(self.org_id, 'alice', 'bob')
        with self.assertRaises(NotPermittedError):
            self.transfers.cancel(self.org_id, 'bob')


class TestExpiry(TransferTestCase):

    def test_expire_overdue(self):
        """
        Test that the sweep records lapsed proposals and leaves live ones alone.
        """
        other = self.world.create_organization("Globex", owner_id='erin', members={'frank': Role.admin})
        stale = self.transfers.propose(self.org_id, 'alice', 'bob')
        self.world.clock.advance(days=5)
        live = self.transfers.propose(other.entity_id, 'erin', 'frank')
        self.world.clock.advance(days=3)

        self.assertEqual(self.transfers.expire_overdue(), [stale.entity_id])
        self.assertEqual(self.world.transfer_requests.get_by_id(stale.entity_id).status, TransferStatus.expired)
        self.assertEqual(self.world.transfer_requests.get_by_id(live.entity_id).status, TransferStatus.proposed)
        self.assertIn('ownership_transfer_expired', self.world.audit_types(self.org_id))
        # idempotent
        self.assertEqual(self.transfers.expire_overdue(), [])

    def test_recorded_expiry_leaves_nothing_to_accept(self):
        """
        Test that a recorded expiry reads the same as a lazily computed one.
        """
        self.transfers.propose(self.org_id, 'alice', 'bob')
        self.world.clock.advance(days=8)
        self.transfers.expire_overdue()
        with self.assertRaises(TransferNotFoundError):
            self.transfers.accept(self.org_id, 'bob')
        history = self.transfers.history(self.org_id)
        self.assertEqual([t.status for t in history], [TransferStatus.expired])

    def test_history_newest_first(self):
        first = self.transfers.propose(self.org_id, 'alice', 'bob')
        self.transfers.cancel(self.org_id, 'alice')
        self.world.clock.advance(minutes=5)
        second = self.transfers.propose(self.org_id, 'alice', 'carol')
        self.assertEqual([t.entity_id for t in self.transfers.history(self.org_id)],
                         [second.entity_id, first.entity_id])


if __name__ == '__main__':
    unittest.main()
