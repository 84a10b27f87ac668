"""
Shared test doubles and builders
"""

import asyncio
from datetime import datetime, timezone
from typing import Dict, Optional

from tierguard.models.entitlement import Identity, OrgRole, SubscriptionRecord

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class ControlledFetcher:
    """
    Subscription fetcher whose results and timing the test controls.

    ``hold(user_id)`` returns an event the fetch waits on, so a test can
    change identity while a fetch is in flight. The record is read after
    the event fires.
    """

    def __init__(self):
        self.records: Dict[str, SubscriptionRecord] = {}
        self.errors: Dict[str, Exception] = {}
        self.gates: Dict[str, asyncio.Event] = {}
        self.calls = []

    def hold(self, user_id: str) -> asyncio.Event:
        event = asyncio.Event()
        self.gates[user_id] = event
        return event

    async def fetch(self, user_id: str) -> SubscriptionRecord:
        self.calls.append(user_id)
        gate = self.gates.get(user_id)
        if gate is not None:
            await gate.wait()
        if user_id in self.errors:
            raise self.errors[user_id]
        return self.records.get(user_id, SubscriptionRecord(subscribed=False))


class StaticIdentityService:
    """Identity service backed by a token -> identity table"""

    def __init__(self):
        self.identities: Dict[str, Identity] = {}
        self.authenticate_error: Optional[Exception] = None
        self.authenticate_calls = 0

    def add(self, token: str, identity: Identity):
        self.identities[token] = identity

    async def authenticate(self, token: Optional[str]) -> Optional[dict]:
        self.authenticate_calls += 1
        if self.authenticate_error is not None:
            raise self.authenticate_error
        identity = self.identities.get(token) if token else None
        if identity is None:
            return None
        return {'uid': identity.user_id, 'email': identity.email}

    async def load_identity(self, claims: dict, organization_id: Optional[str] = None) -> Identity:
        for identity in self.identities.values():
            if identity.user_id == claims['uid']:
                return identity
        return Identity.anonymous()


def member(user_id: str, role: Optional[OrgRole] = OrgRole.MEMBER, super_admin: bool = False) -> Identity:
    return Identity(
        is_authenticated=True,
        user_id=user_id,
        org_role=role,
        is_super_admin=super_admin,
        email=f"{user_id}@example.com",
    )
