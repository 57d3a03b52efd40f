"""
Shared test helpers: an injectable clock and a fully wired in-memory setup.
"""
from datetime import datetime, timedelta, timezone

from steward.actions import OrganizationActions
from steward.audit import AuditLog
from steward.config import StewardConfig
from steward.data import InMemoryAdapter
from steward.export import RepositoryDataExportJob
from steward.lifecycle import DeletionLifecycleManager, MembershipService, OwnershipTransferCoordinator
from steward.messaging import EventPublisher, MessageAdapter
from steward.models import Membership, Organization, Role, Session
from steward.repositories import (
    AuditEventRepository,
    DeletionRequestRepository,
    InvitationRepository,
    MembershipRepository,
    OrganizationRepository,
    OwnershipTransferRepository,
)
from steward.sessions import InMemorySessionStore, SessionRegistry

TEST_SECRET = "test_transfer_secret"
TEST_QUEUE = "steward-events"
START = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """A wall clock that only moves when told to."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingMessageAdapter(MessageAdapter):
    """Keeps every sent message in memory."""

    def __init__(self):
        self.sent = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        pass

    def send_message(self, queue_name: str, message: dict):
        self.sent.append((queue_name, message))

    def consume_messages(self, queue_name: str, callback_function=None):
        for name, message in list(self.sent):
            if name == queue_name and callback_function is not None:
                callback_function(message)


def make_config(**overrides) -> StewardConfig:
    env_vars = {'STEWARD_TRANSFER_TOKEN_SECRET': TEST_SECRET}
    env_vars.update(overrides)
    return StewardConfig(env_vars=env_vars)


class World:
    """Every steward component wired over one InMemoryAdapter and one FakeClock."""

    def __init__(self, clock: FakeClock = None, export_job=None, config: StewardConfig = None):
        self.clock = clock or FakeClock()
        self.config = config or make_config()
        self.adapter = InMemoryAdapter()

        self.organizations = OrganizationRepository(self.adapter)
        self.memberships = MembershipRepository(self.adapter)
        self.invitations = InvitationRepository(self.adapter)
        self.deletion_requests = DeletionRequestRepository(self.adapter)
        self.transfer_requests = OwnershipTransferRepository(self.adapter)
        self.audit_events = AuditEventRepository(self.adapter)

        self.audit_log = AuditLog(self.audit_events, self.clock)
        self.messages = RecordingMessageAdapter()
        self.publisher = EventPublisher(self.messages, TEST_QUEUE, self.clock)
        self.export_job = export_job or RepositoryDataExportJob(
            self.organizations, self.memberships, self.invitations)

        self.deletion = DeletionLifecycleManager(
            self.organizations, self.memberships, self.invitations, self.deletion_requests,
            self.transfer_requests, self.audit_log, publisher=self.publisher,
            export_job=self.export_job, config=self.config, clock=self.clock,
        )
        self.transfers = OwnershipTransferCoordinator(
            self.organizations, self.memberships, self.deletion_requests, self.transfer_requests,
            self.audit_log, publisher=self.publisher, config=self.config, clock=self.clock,
        )
        self.membership_service = MembershipService(
            self.organizations, self.memberships, self.audit_log, deletion_manager=self.deletion)
        self.session_store = InMemorySessionStore(self.clock)
        self.sessions = SessionRegistry(self.session_store, self.memberships, self.audit_log, self.clock)
        self.actions = OrganizationActions(
            self.organizations, self.memberships, self.deletion, self.transfers, self.sessions,
            self.audit_log, export_job=self.export_job, config=self.config,
        )

    def create_organization(self, name: str = "Acme", owner_id: str = "alice", members: dict = None) -> Organization:
        organization = Organization(name=name, slug=name.lower())
        self.organizations.save(organization, changed_by_id=owner_id)
        self.add_member(organization.entity_id, owner_id, Role.owner)
        for user_id, role in (members or {}).items():
            self.add_member(organization.entity_id, user_id, role)
        return self.organizations.get_by_id(organization.entity_id)

    def add_member(self, organization_id: str, user_id: str, role: Role) -> Membership:
        membership = Membership(organization_id=organization_id, user_id=user_id, role=role,
                                joined_at=self.clock())
        return self.memberships.save(membership, changed_by_id=user_id)

    def add_session(self, session_id: str, user_id: str, **kwargs) -> Session:
        kwargs.setdefault('created_at', self.clock())
        kwargs.setdefault('last_active_at', self.clock())
        return self.session_store.add(Session(session_id=session_id, user_id=user_id, **kwargs))

    def role_of(self, organization_id: str, user_id: str):
        return self.memberships.get_role(organization_id, user_id)

    def events(self, name: str) -> list:
        return [message for _, message in self.messages.sent if message['event'] == name]

    def audit_types(self, organization_id: str) -> list:
        return [str(event.type) for event in self.audit_log.for_organization(organization_id)]

    def delete_softly(self, organization: Organization, actor_id: str = "alice", **kwargs):
        """Walk the three confirmation steps and finalize a soft deletion."""
        self.deletion.confirm_name(organization.entity_id, actor_id, organization.name)
        self.deletion.confirm_phrase(organization.entity_id, actor_id, "DELETE ORGANIZATION")
        return self.deletion.finalize(organization.entity_id, actor_id, "soft", **kwargs)
