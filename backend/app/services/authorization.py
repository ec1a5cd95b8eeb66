"""
Team authorization.

Membership and roles are owned by the accounts side of the product; this
module is the narrow check the dispatch core consumes.
"""

from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.enums import TeamRole
from backend.app.models.team import TeamMember


class TeamAuthorizer(Protocol):

    async def has_role(self, actor_id: int, team_id: int, role: Optional[TeamRole] = None) -> bool:
        ...


class SqlTeamAuthorizer:
    """
    Answers membership questions from the team_members table.

    With ``role`` None any membership passes; otherwise the member must hold
    that role or a stronger one (OWNER > ADMIN > MEMBER).
    """

    _RANK = {TeamRole.MEMBER: 0, TeamRole.ADMIN: 1, TeamRole.OWNER: 2}

    def __init__(self, db: AsyncSession):
        self.db = db

    async def has_role(self, actor_id: int, team_id: int, role: Optional[TeamRole] = None) -> bool:
        result = await self.db.execute(
            select(TeamMember.role).where(
                TeamMember.team_id == team_id,
                TeamMember.user_id == actor_id,
            )
        )
        member_role = result.scalar_one_or_none()
        if member_role is None:
            return False
        if role is None:
            return True
        return self._RANK[member_role] >= self._RANK[role]
