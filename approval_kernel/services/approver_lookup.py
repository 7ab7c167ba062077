"""
Approver lookup and role guard.

Responsibility:
    Resolves the active users who can act at an approval level, and checks
    that an actor holds the permission role a level (or an administrative
    operation) requires.

Architecture position:
    Kernel > Services.  Reads the identity source through the
    ``UserDirectory`` protocol; ``SqlUserDirectory`` is the bundled
    implementation over the ``users`` table.

Invariants enforced:
    - ``get_approvers`` never returns an empty list; zero matches raise
      NoApproversAvailableError so callers fail before their write.
    - Flow roles are translated to permission roles through the entity
      type's ``role_permissions`` map before matching.
    - Authorization failures never name the role that would have sufficed.

Failure modes:
    - NoApproversAvailableError: no active user holds the role.
    - UserNotFoundError: actor id unknown to the directory.
    - UnauthorizedActorError: actor inactive or lacking the role.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from approval_kernel.domain.directory import DirectoryUser, UserDirectory, UserStatus
from approval_kernel.domain.entity_type import EntityTypeConfig
from approval_kernel.exceptions import (
    NoApproversAvailableError,
    UnauthorizedActorError,
    UserNotFoundError,
)
from approval_kernel.logging_config import get_logger
from approval_kernel.models.user import UserModel

logger = get_logger("services.approver_lookup")


class SqlUserDirectory:
    """``UserDirectory`` over the ``users`` table."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def find_by_id(self, user_id: UUID) -> DirectoryUser | None:
        model = self._session.get(UserModel, user_id)
        return model.to_dto() if model is not None else None

    def find(
        self,
        *,
        role: str,
        status: UserStatus = UserStatus.ACTIVE,
        department: str | None = None,
    ) -> list[DirectoryUser]:
        stmt = select(UserModel).where(UserModel.status == status.value)
        if department is not None:
            stmt = stmt.where(UserModel.department == department)
        stmt = stmt.order_by(UserModel.created_at, UserModel.id)
        # Role membership is matched in Python: JSON containment is not portable.
        return [
            m.to_dto()
            for m in self._session.execute(stmt).scalars()
            if role in (m.roles or ())
        ]


class ApproverLookup:
    """Approver resolution and role checks against a user directory."""

    def __init__(self, directory: UserDirectory) -> None:
        self._directory = directory

    @property
    def directory(self) -> UserDirectory:
        return self._directory

    def get_approvers(
        self,
        role: str,
        department: str | None = None,
        config: EntityTypeConfig | None = None,
    ) -> list[DirectoryUser]:
        """Active users holding the permission role mapped from ``role``.

        Raises:
            NoApproversAvailableError: Nobody can act at this level.
        """
        permission_role = config.permission_role(role) if config else role
        approvers = self._directory.find(
            role=permission_role,
            status=UserStatus.ACTIVE,
            department=department,
        )
        if not approvers:
            logger.warning(
                "no_approvers_available",
                extra={
                    "role": role,
                    "permission_role": permission_role,
                    "department": department,
                },
            )
            raise NoApproversAvailableError(role, department)
        return approvers

    def get_user(self, user_id: UUID) -> DirectoryUser:
        user = self._directory.find_by_id(user_id)
        if user is None:
            raise UserNotFoundError(str(user_id))
        return user

    def find_user(self, user_id: UUID | None) -> DirectoryUser | None:
        if user_id is None:
            return None
        return self._directory.find_by_id(user_id)

    def require_role(
        self,
        actor_id: UUID,
        role: str,
        operation: str,
        config: EntityTypeConfig | None = None,
    ) -> DirectoryUser:
        """Return the actor if they hold the permission role for ``role``.

        Raises:
            UserNotFoundError: Unknown actor.
            UnauthorizedActorError: Actor inactive or lacking the role.
        """
        actor = self.get_user(actor_id)
        permission_role = config.permission_role(role) if config else role
        if not actor.is_active or not actor.has_role(permission_role):
            logger.info(
                "actor_role_check_failed",
                extra={"actor_id": str(actor_id), "operation": operation},
            )
            raise UnauthorizedActorError(str(actor_id), operation)
        return actor

    def require_any_role(
        self,
        actor_id: UUID,
        roles: Iterable[str],
        operation: str,
    ) -> DirectoryUser:
        actor = self.get_user(actor_id)
        if not actor.is_active or not actor.has_any_role(set(roles)):
            raise UnauthorizedActorError(str(actor_id), operation)
        return actor

    def holds_role(
        self,
        actor: DirectoryUser,
        role: str,
        config: EntityTypeConfig | None = None,
    ) -> bool:
        permission_role = config.permission_role(role) if config else role
        return actor.is_active and actor.has_role(permission_role)
