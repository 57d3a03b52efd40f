from .store import SessionStore, InMemorySessionStore
from .registry import BulkRevocationResult, SessionRegistry
