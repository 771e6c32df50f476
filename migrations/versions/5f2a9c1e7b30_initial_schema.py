"""initial_schema

Create the event plan, conflict, revision, credential, billing mirror,
invite log and audit tables.

Revision ID: 5f2a9c1e7b30
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5f2a9c1e7b30"
down_revision = None
branch_labels = None
depends_on = None


def _ts(name, nullable=True):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("billing_status", sa.String(length=20), nullable=False, server_default="FREE"),
            _ts("created_at", nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )
        op.create_index("ix_users_email", "users", ["email"])

    if "people" not in existing_tables:
        op.create_table(
            "people",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=150), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("phone_number", sa.String(length=40), nullable=True),
            sa.Column("sms_opted_out", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("user_id", sa.Integer(), nullable=True),
            _ts("invite_anchor_at"),
            _ts("nudge_24h_sent_at"),
            _ts("nudge_48h_sent_at"),
            _ts("created_at", nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_people_email", "people", ["email"])

    if "events" not in existing_tables:
        op.create_table(
            "events",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("occasion_type", sa.String(length=30), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="DRAFT"),
            sa.Column("host_id", sa.Integer(), nullable=True),
            sa.Column("is_legacy", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column("guest_count", sa.Integer(), nullable=True),
            sa.Column("dietary_vegetarian", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("dietary_gluten_free", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("venue_oven_count", sa.Integer(), nullable=False, server_default="1"),
            _ts("invite_send_confirmed_at"),
            sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.false()),
            _ts("archived_at"),
            _ts("created_at", nullable=False),
            _ts("updated_at", nullable=False),
            sa.ForeignKeyConstraint(["host_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_events_host_id", "events", ["host_id"])
        op.create_index("ix_events_archived", "events", ["archived"])
        op.create_index("ix_events_host_archived", "events", ["host_id", "archived"])

    if "days" not in existing_tables:
        op.create_table(
            "days",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("event_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("date", sa.Date(), nullable=False),
            sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_days_event_id", "days", ["event_id"])

    if "teams" not in existing_tables:
        op.create_table(
            "teams",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("event_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("scope", sa.Text(), nullable=True),
            sa.Column("domain", sa.String(length=30), nullable=True),
            sa.Column("coordinator_id", sa.Integer(), nullable=True),
            _ts("created_at", nullable=False),
            sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["coordinator_id"], ["people.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_teams_event_id", "teams", ["event_id"])
        op.create_index("ix_teams_event_name", "teams", ["event_id", "name"])

    if "items" not in existing_tables:
        op.create_table(
            "items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("team_id", sa.Integer(), nullable=False),
            sa.Column("day_id", sa.Integer(), nullable=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("quantity_text", sa.String(length=100), nullable=True),
            sa.Column("quantity_state", sa.String(length=20), nullable=False, server_default="SPECIFIED"),
            sa.Column("placeholder_acknowledged", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("critical", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("critical_reason", sa.String(length=300), nullable=True),
            sa.Column("serve_time", sa.String(length=20), nullable=True),
            sa.Column("needs_oven", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("vegetarian", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("gluten_free", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("ai_generated", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("user_confirmed", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("previously_assigned_to", sa.Text(), nullable=True),
            _ts("created_at", nullable=False),
            _ts("updated_at", nullable=False),
            sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["day_id"], ["days.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_items_team_id", "items", ["team_id"])
        op.create_index("ix_items_day_id", "items", ["day_id"])
        op.create_index("ix_items_team_critical", "items", ["team_id", "critical"])

    if "assignments" not in existing_tables:
        op.create_table(
            "assignments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("item_id", sa.Integer(), nullable=False),
            sa.Column("person_id", sa.Integer(), nullable=False),
            sa.Column("response", sa.String(length=20), nullable=False, server_default="PENDING"),
            _ts("responded_at"),
            _ts("created_at", nullable=False),
            sa.ForeignKeyConstraint(["item_id"], ["items.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["person_id"], ["people.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("item_id", name="uq_assignments_item"),
        )
        op.create_index("ix_assignments_person_response", "assignments", ["person_id", "response"])

    if "person_events" not in existing_tables:
        op.create_table(
            "person_events",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("event_id", sa.Integer(), nullable=False),
            sa.Column("person_id", sa.Integer(), nullable=False),
            sa.Column("team_id", sa.Integer(), nullable=True),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="PARTICIPANT"),
            _ts("created_at", nullable=False),
            sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["person_id"], ["people.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("person_id", "event_id", name="uq_person_events_person_event"),
        )
        op.create_index("ix_person_events_event_id", "person_events", ["event_id"])

    if "sessions" not in existing_tables:
        op.create_table(
            "sessions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("token", sa.String(length=64), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            _ts("expires_at", nullable=False),
            _ts("created_at", nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_sessions_token", "sessions", ["token"], unique=True)

    if "magic_links" not in existing_tables:
        op.create_table(
            "magic_links",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("token", sa.String(length=64), nullable=False),
            _ts("expires_at", nullable=False),
            _ts("used_at"),
            _ts("created_at", nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_magic_links_token", "magic_links", ["token"], unique=True)
        op.create_index("ix_magic_links_email_created", "magic_links", ["email", "created_at"])

    if "access_tokens" not in existing_tables:
        op.create_table(
            "access_tokens",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("token", sa.String(length=64), nullable=False),
            sa.Column("scope", sa.String(length=20), nullable=False),
            sa.Column("event_id", sa.Integer(), nullable=False),
            sa.Column("person_id", sa.Integer(), nullable=True),
            sa.Column("team_id", sa.Integer(), nullable=True),
            _ts("expires_at"),
            _ts("opened_at"),
            _ts("created_at", nullable=False),
            sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["person_id"], ["people.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_access_tokens_token", "access_tokens", ["token"], unique=True)
        op.create_index("ix_access_tokens_event_scope", "access_tokens", ["event_id", "scope"])

    if "event_roles" not in existing_tables:
        op.create_table(
            "event_roles",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("event_id", sa.Integer(), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="HOST"),
            sa.Column("team_id", sa.Integer(), nullable=True),
            _ts("created_at", nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "event_id", name="uq_event_roles_user_event"),
        )

    if "subscriptions" not in existing_tables:
        op.create_table(
            "subscriptions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("provider_customer_id", sa.String(length=100), nullable=True),
            sa.Column("provider_subscription_id", sa.String(length=100), nullable=True),
            sa.Column("provider_price_id", sa.String(length=100), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="FREE"),
            sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False, server_default=sa.false()),
            _ts("current_period_start"),
            _ts("current_period_end"),
            _ts("trial_start"),
            _ts("trial_end"),
            _ts("status_changed_at"),
            _ts("updated_at", nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id"),
            sa.UniqueConstraint("provider_customer_id"),
            sa.UniqueConstraint("provider_subscription_id"),
        )

    if "conflicts" not in existing_tables:
        op.create_table(
            "conflicts",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("event_id", sa.Integer(), nullable=False),
            sa.Column("fingerprint", sa.String(length=200), nullable=False),
            sa.Column("type", sa.String(length=40), nullable=False),
            sa.Column("severity", sa.String(length=20), nullable=False, server_default="WARNING"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="OPEN"),
            sa.Column("resolution_class", sa.String(length=30), nullable=False, server_default="FIX_IN_PLAN"),
            sa.Column("can_delegate", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("affected_items", sa.JSON(), nullable=True),
            sa.Column("affected_parties", sa.JSON(), nullable=True),
            sa.Column("suggestion", sa.JSON(), nullable=True),
            sa.Column("inputs_referenced", sa.JSON(), nullable=True),
            sa.Column("delegated_to", sa.String(length=30), nullable=True),
            _ts("delegated_at"),
            sa.Column("resolved_by", sa.String(length=150), nullable=True),
            _ts("resolved_at"),
            _ts("dismissed_at"),
            _ts("reopened_at"),
            _ts("created_at", nullable=False),
            _ts("updated_at", nullable=False),
            sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("event_id", "fingerprint", name="uq_conflicts_event_fingerprint"),
        )
        op.create_index("ix_conflicts_event_id", "conflicts", ["event_id"])
        op.create_index("ix_conflicts_event_status", "conflicts", ["event_id", "status"])

    if "acknowledgements" not in existing_tables:
        op.create_table(
            "acknowledgements",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("conflict_id", sa.Integer(), nullable=False),
            sa.Column("event_id", sa.Integer(), nullable=False),
            sa.Column("acknowledged_by", sa.String(length=150), nullable=False),
            sa.Column("impact_statement", sa.Text(), nullable=False),
            sa.Column("impact_understood", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("mitigation_plan_type", sa.String(length=30), nullable=False),
            sa.Column("mitigation_note", sa.Text(), nullable=True),
            sa.Column("supersedes_id", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="ACTIVE"),
            _ts("superseded_at"),
            _ts("created_at", nullable=False),
            sa.ForeignKeyConstraint(["conflict_id"], ["conflicts.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["supersedes_id"], ["acknowledgements.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_acknowledgements_conflict_status", "acknowledgements", ["conflict_id", "status"],
        )

    if "plan_revisions" not in existing_tables:
        op.create_table(
            "plan_revisions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("event_id", sa.Integer(), nullable=False),
            sa.Column("revision_number", sa.Integer(), nullable=False),
            sa.Column("created_by", sa.String(length=150), nullable=False),
            sa.Column("reason", sa.String(length=300), nullable=True),
            sa.Column("event_status", sa.String(length=20), nullable=True),
            sa.Column("teams", sa.JSON(), nullable=False),
            sa.Column("items", sa.JSON(), nullable=False),
            sa.Column("days", sa.JSON(), nullable=False),
            sa.Column("conflicts", sa.JSON(), nullable=False),
            sa.Column("acknowledgements", sa.JSON(), nullable=False),
            _ts("created_at", nullable=False),
            sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("event_id", "revision_number", name="uq_plan_revisions_event_number"),
        )
        op.create_index("ix_plan_revisions_event_id", "plan_revisions", ["event_id"])

    if "invite_events" not in existing_tables:
        op.create_table(
            "invite_events",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("event_id", sa.Integer(), nullable=False),
            sa.Column("person_id", sa.Integer(), nullable=True),
            sa.Column("type", sa.String(length=40), nullable=False),
            sa.Column("metadata", sa.JSON(), nullable=True),
            _ts("created_at", nullable=False),
            sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["person_id"], ["people.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_invite_events_event_id", "invite_events", ["event_id"])
        op.create_index("ix_invite_events_event_created", "invite_events", ["event_id", "created_at"])

    if "audit_entries" not in existing_tables:
        op.create_table(
            "audit_entries",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("event_id", sa.Integer(), nullable=False),
            sa.Column("actor_id", sa.String(length=150), nullable=False, server_default="system"),
            sa.Column("action_type", sa.String(length=60), nullable=False),
            sa.Column("target_type", sa.String(length=30), nullable=False),
            sa.Column("target_id", sa.String(length=36), nullable=False),
            sa.Column("details", sa.Text(), nullable=True),
            _ts("created_at", nullable=False),
            sa.ForeignKeyConstraint(["event_id"], ["events.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_audit_entries_event_ts", "audit_entries", ["event_id", "created_at"])
        op.create_index("ix_audit_entries_target", "audit_entries", ["target_type", "target_id"])


def downgrade():
    for table in (
        "audit_entries",
        "invite_events",
        "plan_revisions",
        "acknowledgements",
        "conflicts",
        "subscriptions",
        "event_roles",
        "access_tokens",
        "magic_links",
        "sessions",
        "person_events",
        "assignments",
        "items",
        "teams",
        "days",
        "events",
        "people",
        "users",
    ):
        op.drop_table(table)
