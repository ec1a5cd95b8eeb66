"""
Model registry.

Import this module (rather than session.Base directly) wherever the full
metadata is needed: table creation, relationship configuration, the cron
entrypoint and the test suite.
"""

from backend.app.db.session import Base  # noqa: F401

from backend.app.models.team import Team, TeamMember, TeamFiscalProfile  # noqa: F401
from backend.app.models.client import Client  # noqa: F401
from backend.app.models.route import Route  # noqa: F401
from backend.app.models.driver import Driver  # noqa: F401
from backend.app.models.vehicle import Vehicle  # noqa: F401
from backend.app.models.trip import Trip  # noqa: F401
from backend.app.models.cargo import Cargo  # noqa: F401
from backend.app.models.invoice import Invoice  # noqa: F401
from backend.app.models.audit_log import AuditLog  # noqa: F401
