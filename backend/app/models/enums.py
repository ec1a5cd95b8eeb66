"""
Team role enumeration.
"""

import enum


class TeamRole(str, enum.Enum):
    """
    Role of a user inside a team.

    Roles:
        OWNER: Created the team, full control
        ADMIN: Manages fleet, trips and invoices
        MEMBER: Operates trips
    """
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"
