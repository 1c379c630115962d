"""Initial bridge schema.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-17

"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _upstream(table: str, *columns: sa.Column) -> None:
    """Create a table mirrored from upstream, keyed by the upstream id."""
    op.create_table(
        table,
        sa.Column("id", sa.String(length=100), nullable=False),
        sa.Column("location_id", sa.String(length=100), nullable=False),
        *columns,
        sa.Column("extra", sa.JSON(), nullable=False),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(f"ix_{table}_location_id", table, ["location_id"])


def upgrade() -> None:
    # Tenants and dashboard access
    op.create_table(
        "tenant",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=100), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("subscription_tier", sa.String(length=50), nullable=False, server_default="free"),
        sa.Column("settings", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tenant_slug", "tenant", ["slug"], unique=True)

    op.create_table(
        "dashboard_user",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenant.id", ondelete="CASCADE"), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="agent"),
        sa.Column("ghl_user_id", sa.String(length=100), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_dashboard_user_tenant_id", "dashboard_user", ["tenant_id"])
    op.create_index("ix_dashboard_user_email", "dashboard_user", ["email"])
    op.create_index("ix_dashboard_user_ghl_user_id", "dashboard_user", ["ghl_user_id"])

    op.create_table(
        "user_location_assignment",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("dashboard_user.id", ondelete="CASCADE"), nullable=False),
        sa.Column("location_id", sa.String(length=100), nullable=False),
        sa.Column("can_view", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("can_edit", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_delete", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("assigned_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("assigned_by", sa.Uuid(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "location_id", name="uq_user_location"),
    )
    op.create_index("ix_user_location_assignment_user_id", "user_location_assignment", ["user_id"])
    op.create_index("ix_user_location_assignment_location_id", "user_location_assignment", ["location_id"])

    op.create_table(
        "manager_team_assignment",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("manager_id", sa.Uuid(), sa.ForeignKey("dashboard_user.id", ondelete="CASCADE"), nullable=False),
        sa.Column("agent_id", sa.Uuid(), sa.ForeignKey("dashboard_user.id", ondelete="CASCADE"), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("assigned_by", sa.Uuid(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("manager_id", "agent_id", name="uq_manager_agent"),
    )
    op.create_index("ix_manager_team_assignment_manager_id", "manager_team_assignment", ["manager_id"])
    op.create_index("ix_manager_team_assignment_agent_id", "manager_team_assignment", ["agent_id"])

    op.create_table(
        "permission_override",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("dashboard_user.id", ondelete="CASCADE"), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.String(length=100), nullable=True),
        sa.Column("action", sa.String(length=20), nullable=False),
        sa.Column("is_allowed", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("reason", sa.String(length=500), nullable=True),
        sa.Column("granted_by", sa.Uuid(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_permission_override_user_id", "permission_override", ["user_id"])

    # Locations and credentials
    op.create_table(
        "ghl_location",
        sa.Column("id", sa.String(length=100), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenant.id", ondelete="CASCADE"), nullable=False),
        sa.Column("company_id", sa.String(length=100), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("website", sa.String(length=500), nullable=True),
        sa.Column("timezone", sa.String(length=50), nullable=False, server_default="UTC"),
        sa.Column("logo_url", sa.String(length=500), nullable=True),
        sa.Column("address_data", sa.JSON(), nullable=False),
        sa.Column("settings", sa.JSON(), nullable=False),
        sa.Column("extra", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_sync_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ghl_location_tenant_id", "ghl_location", ["tenant_id"])

    op.create_table(
        "ghl_oauth_credential",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenant.id", ondelete="CASCADE"), nullable=False),
        sa.Column("location_id", sa.String(length=100), nullable=True),
        sa.Column("company_id", sa.String(length=100), nullable=True),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=False),
        sa.Column("token_type", sa.String(length=20), nullable=False, server_default="Bearer"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("scopes", sa.JSON(), nullable=False),
        sa.Column("user_type", sa.String(length=20), nullable=True),
        sa.Column("is_valid", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_refreshed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ghl_oauth_credential_tenant_id", "ghl_oauth_credential", ["tenant_id"])
    op.create_index(
        "ix_oauth_credential_lookup", "ghl_oauth_credential", ["tenant_id", "location_id", "is_valid"]
    )

    # Sync bookkeeping
    op.create_table(
        "sync_status",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), nullable=False),
        sa.Column("location_id", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="idle"),
        sa.Column("last_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("records_synced", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "location_id", "entity_type", name="uq_sync_status_target"),
    )
    op.create_index("ix_sync_status_tenant_id", "sync_status", ["tenant_id"])
    op.create_index("ix_sync_status_location_id", "sync_status", ["location_id"])
    op.create_index("ix_sync_status_status", "sync_status", ["status"])
    op.create_index("ix_sync_status_next_sync_at", "sync_status", ["next_sync_at"])

    op.create_table(
        "ghl_sync_log",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("location_id", sa.String(length=100), nullable=True),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.String(length=100), nullable=False),
        sa.Column("action", sa.String(length=20), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("source", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ghl_sync_log_location_id", "ghl_sync_log", ["location_id"])
    op.create_index("ix_ghl_sync_log_created_at", "ghl_sync_log", ["created_at"])

    op.create_table(
        "webhook_event",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("event_id", sa.String(length=100), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), nullable=True),
        sa.Column("location_id", sa.String(length=100), nullable=False),
        sa.Column("event_type", sa.String(length=100), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("processed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("event_id", "location_id", name="uq_webhook_event_location"),
    )
    op.create_index("ix_webhook_event_location_id", "webhook_event", ["location_id"])

    op.create_table(
        "initial_sync_run",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), nullable=False),
        sa.Column("location_id", sa.String(length=100), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="in_progress"),
        sa.Column("current_step", sa.String(length=50), nullable=True),
        sa.Column("percent_complete", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("steps", sa.JSON(), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("heartbeat_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_initial_sync_run_tenant_id", "initial_sync_run", ["tenant_id"])
    op.create_index("ix_initial_sync_run_location_id", "initial_sync_run", ["location_id"])

    # Entities mirrored from upstream
    _upstream(
        "ghl_contact",
        sa.Column("first_name", sa.String(length=100), nullable=True),
        sa.Column("last_name", sa.String(length=100), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("secondary_email", sa.String(length=255), nullable=True),
        sa.Column("company_name", sa.String(length=255), nullable=True),
        sa.Column("date_of_birth", sa.String(length=20), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False, server_default="lead"),
        sa.Column("dnd", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("dnd_settings", sa.JSON(), nullable=False),
        sa.Column("assigned_to", sa.String(length=100), nullable=True),
        sa.Column("source", sa.String(length=255), nullable=True),
        sa.Column("address_data", sa.JSON(), nullable=False),
        sa.Column("custom_fields", sa.JSON(), nullable=False),
        sa.Column("date_added", sa.DateTime(timezone=True), nullable=True),
        sa.Column("date_updated", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_ghl_contact_email", "ghl_contact", ["email"])
    op.create_index("ix_ghl_contact_assigned_to", "ghl_contact", ["assigned_to"])
    op.create_index("ix_ghl_contact_is_deleted", "ghl_contact", ["is_deleted"])

    _upstream(
        "ghl_opportunity",
        sa.Column("contact_id", sa.String(length=100), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="open"),
        sa.Column("pipeline_id", sa.String(length=100), nullable=True),
        sa.Column("pipeline_stage_id", sa.String(length=100), nullable=True),
        sa.Column("monetary_value", sa.Float(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=10), nullable=False, server_default="USD"),
        sa.Column("assigned_to", sa.String(length=100), nullable=True),
        sa.Column("source", sa.String(length=255), nullable=True),
        sa.Column("loss_reason", sa.Text(), nullable=True),
        sa.Column("custom_fields", sa.JSON(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("date_added", sa.DateTime(timezone=True), nullable=True),
        sa.Column("date_updated", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_ghl_opportunity_contact_id", "ghl_opportunity", ["contact_id"])
    op.create_index("ix_ghl_opportunity_assigned_to", "ghl_opportunity", ["assigned_to"])

    _upstream(
        "ghl_pipeline",
        sa.Column("name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("show_in_funnel", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("show_in_pie_chart", sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    _upstream(
        "ghl_pipeline_stage",
        sa.Column("pipeline_id", sa.String(length=100), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("probability", sa.Float(), nullable=False, server_default="0"),
    )
    op.create_index("ix_ghl_pipeline_stage_pipeline_id", "ghl_pipeline_stage", ["pipeline_id"])

    _upstream(
        "ghl_calendar",
        sa.Column("name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("calendar_type", sa.String(length=50), nullable=False, server_default="round_robin"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    _upstream(
        "ghl_appointment",
        sa.Column("contact_id", sa.String(length=100), nullable=True),
        sa.Column("calendar_id", sa.String(length=100), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False, server_default="Appointment"),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="confirmed"),
        sa.Column("appointment_status", sa.String(length=30), nullable=True),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("timezone", sa.String(length=50), nullable=False, server_default="UTC"),
        sa.Column("assigned_user_id", sa.String(length=100), nullable=True),
        sa.Column("appointment_type", sa.String(length=50), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("address", sa.String(length=500), nullable=True),
    )
    op.create_index("ix_ghl_appointment_contact_id", "ghl_appointment", ["contact_id"])
    op.create_index("ix_ghl_appointment_assigned_user_id", "ghl_appointment", ["assigned_user_id"])

    _upstream(
        "ghl_conversation",
        sa.Column("contact_id", sa.String(length=100), nullable=True),
        sa.Column("type", sa.String(length=30), nullable=False, server_default="sms"),
        sa.Column("channel", sa.String(length=30), nullable=True),
        sa.Column("unread_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_message_body", sa.Text(), nullable=True),
        sa.Column("last_message_type", sa.String(length=50), nullable=True),
        sa.Column("last_message_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("assigned_to", sa.String(length=100), nullable=True),
        sa.Column("starred", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("inbox_status", sa.String(length=20), nullable=False, server_default="open"),
    )
    op.create_index("ix_ghl_conversation_contact_id", "ghl_conversation", ["contact_id"])
    op.create_index("ix_ghl_conversation_assigned_to", "ghl_conversation", ["assigned_to"])

    _upstream(
        "ghl_message",
        sa.Column("conversation_id", sa.String(length=100), nullable=False),
        sa.Column("contact_id", sa.String(length=100), nullable=True),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("message_type", sa.String(length=50), nullable=True),
        sa.Column("direction", sa.String(length=20), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="delivered"),
        sa.Column("content_type", sa.String(length=100), nullable=False, server_default="text/plain"),
        sa.Column("attachments", sa.JSON(), nullable=False),
        sa.Column("meta_data", sa.JSON(), nullable=False),
        sa.Column("source", sa.String(length=100), nullable=True),
        sa.Column("user_id", sa.String(length=100), nullable=True),
        sa.Column("date_added", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_ghl_message_conversation_id", "ghl_message", ["conversation_id"])

    _upstream(
        "ghl_invoice",
        sa.Column("contact_id", sa.String(length=100), nullable=True),
        sa.Column("invoice_number", sa.String(length=100), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="draft"),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("issue_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("amount_due", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("discount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=10), nullable=False, server_default="USD"),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("business_details", sa.JSON(), nullable=False),
        sa.Column("payment_terms", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("sent_to", sa.JSON(), nullable=False),
    )
    op.create_index("ix_ghl_invoice_contact_id", "ghl_invoice", ["contact_id"])

    _upstream(
        "ghl_user",
        sa.Column("name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("role", sa.String(length=50), nullable=False, server_default="user"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_ghl_user_email", "ghl_user", ["email"])

    _upstream(
        "ghl_product",
        sa.Column("name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("product_type", sa.String(length=50), nullable=True),
        sa.Column("image_url", sa.String(length=500), nullable=True),
    )

    _upstream(
        "ghl_workflow",
        sa.Column("name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="draft"),
        sa.Column("version", sa.Integer(), nullable=True),
    )


UPSTREAM_TABLES = (
    "ghl_workflow",
    "ghl_product",
    "ghl_user",
    "ghl_invoice",
    "ghl_message",
    "ghl_conversation",
    "ghl_appointment",
    "ghl_calendar",
    "ghl_pipeline_stage",
    "ghl_pipeline",
    "ghl_opportunity",
    "ghl_contact",
)


def downgrade() -> None:
    for table in UPSTREAM_TABLES:
        op.drop_table(table)
    for table in (
        "initial_sync_run",
        "webhook_event",
        "ghl_sync_log",
        "sync_status",
        "ghl_oauth_credential",
        "ghl_location",
        "permission_override",
        "manager_team_assignment",
        "user_location_assignment",
        "dashboard_user",
        "tenant",
    ):
        op.drop_table(table)
