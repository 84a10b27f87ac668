import asyncio
import logging
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tierguard.core.database import SessionLocal
from tierguard.core.exceptions import AuthResolutionError
from tierguard.core.firebase import verify_firebase_token
from tierguard.models.entitlement import Identity, OrgRole
from tierguard.models.organization import Membership
from tierguard.models.user import User

logger = logging.getLogger(__name__)


class IdentityService:
    """
    Identity provider adapter.

    Resolution happens in two steps so the caller can start the subscription
    fetch as soon as the user id is known: ``authenticate`` verifies the token,
    ``load_identity`` reads the super-admin flag and the organization role.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory
        self.logger = logging.getLogger(__name__)

    async def authenticate(self, token: Optional[str]) -> Optional[dict]:
        """Decoded claims for a valid token, None otherwise."""
        if not token:
            return None
        return await asyncio.to_thread(verify_firebase_token, token)

    async def load_identity(self, claims: dict, organization_id: Optional[str] = None) -> Identity:
        return await asyncio.to_thread(self._load_identity_sync, claims, organization_id)

    def _load_identity_sync(self, claims: dict, organization_id: Optional[str]) -> Identity:
        user_id = claims.get('uid')
        self.logger.info(f"load_identity: Entry - user: {user_id}, organization: {organization_id}")

        if not user_id:
            return Identity.anonymous()

        db = self.session_factory()
        try:
            user = db.query(User).filter(User.id == user_id).first()
            if user is not None and not user.is_active:
                self.logger.info(f"load_identity: Inactive account - user: {user_id}")
                return Identity.anonymous()

            query = db.query(Membership).filter(Membership.user_id == user_id)
            if organization_id:
                query = query.filter(Membership.organization_id == organization_id)
            membership = query.order_by(Membership.created_at).first()
        except SQLAlchemyError as e:
            self.logger.error(f"load_identity: Failure - {e}")
            raise AuthResolutionError(details={'reason': 'role_lookup'}) from e
        finally:
            db.close()

        org_role = None
        if membership is not None:
            try:
                org_role = OrgRole(membership.role)
            except ValueError:
                self.logger.warning(f"load_identity: Unknown role '{membership.role}' - user: {user_id}")

        identity = Identity(
            is_authenticated=True,
            user_id=user_id,
            org_role=org_role,
            is_super_admin=bool(user.is_super_admin) if user is not None else False,
            email=claims.get('email') or (user.email if user is not None else None),
            organization_id=membership.organization_id if membership is not None else organization_id,
        )
        self.logger.info(
            f"load_identity: Success - user: {user_id}, role: {org_role.value if org_role else None}, "
            f"super_admin: {identity.is_super_admin}")
        return identity
