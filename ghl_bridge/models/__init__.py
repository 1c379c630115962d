"""SQLAlchemy models for the bridge."""

from .base import Base
from .tenant import DashboardUser, ManagerTeamAssignment, PermissionOverride, Tenant, UserLocationAssignment
from .location import Location
from .oauth import OAuthCredential
from .sync import InitialSyncRun, SyncLogEntry, SyncStatus, WebhookEventRecord
from .contact import Contact
from .opportunity import Opportunity
from .pipeline import Pipeline, PipelineStage
from .calendar import Appointment, Calendar
from .conversation import Conversation, Message
from .invoice import Invoice
from .user import GHLUser
from .catalog import Product, Workflow

__all__ = [
    "Base",
    "Tenant",
    "DashboardUser",
    "UserLocationAssignment",
    "ManagerTeamAssignment",
    "PermissionOverride",
    "Location",
    "OAuthCredential",
    "SyncStatus",
    "SyncLogEntry",
    "WebhookEventRecord",
    "InitialSyncRun",
    "Contact",
    "Opportunity",
    "Pipeline",
    "PipelineStage",
    "Calendar",
    "Appointment",
    "Conversation",
    "Message",
    "Invoice",
    "GHLUser",
    "Product",
    "Workflow",
]
