"""project_invites_and_templates

Add single-use project invites and project templates.

Persisted layout guarantees:
  - project_invites.token UNIQUE
  - template_workflow_transitions.from_state_id NOT NULL, 0 = any state, no FK

Revision ID: 0002b3c4d5e6
Revises: 0001a2b3c4d5
Create Date: 2026-10-19 14:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "0002b3c4d5e6"
down_revision = "0001a2b3c4d5"
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "project_invites" not in existing_tables:
        op.create_table(
            "project_invites",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("token", sa.String(length=64), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="member"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("invited_by", sa.Integer(), nullable=False),
            sa.Column("accepted_by", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["invited_by"], ["users.id"]),
            sa.ForeignKeyConstraint(["accepted_by"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("token"),
        )
        op.create_index("ix_project_invites_project_email", "project_invites", ["project_id", "email"])

    if "project_templates" not in existing_tables:
        op.create_table(
            "project_templates",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("icon", sa.String(length=50), nullable=True),
            sa.Column("created_by", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )

    if "template_states" not in existing_tables:
        op.create_table(
            "template_states",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("template_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.ForeignKeyConstraint(["template_id"], ["project_templates.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_template_states_template_id", "template_states", ["template_id"])

    if "template_workflows" not in existing_tables:
        op.create_table(
            "template_workflows",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("template_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.ForeignKeyConstraint(["template_id"], ["project_templates.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_template_workflows_template_id", "template_workflows", ["template_id"])

    if "template_workflow_steps" not in existing_tables:
        op.create_table(
            "template_workflow_steps",
            sa.Column("workflow_id", sa.Integer(), nullable=False),
            sa.Column("state_id", sa.Integer(), nullable=False),
            sa.Column("step_order", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["workflow_id"], ["template_workflows.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["state_id"], ["template_states.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("workflow_id", "state_id"),
        )

    if "template_workflow_transitions" not in existing_tables:
        op.create_table(
            "template_workflow_transitions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("workflow_id", sa.Integer(), nullable=False),
            sa.Column("from_state_id", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("to_state_id", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["workflow_id"], ["template_workflows.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["to_state_id"], ["template_states.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "workflow_id", "from_state_id", "to_state_id", name="uq_template_workflow_transition"
            ),
        )

    if "template_task_types" not in existing_tables:
        op.create_table(
            "template_task_types",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("template_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("workflow_id", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["template_id"], ["project_templates.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["workflow_id"], ["template_workflows.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_template_task_types_template_id", "template_task_types", ["template_id"])

    if "template_fields" not in existing_tables:
        op.create_table(
            "template_fields",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("template_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("input_type", sa.String(length=20), nullable=False, server_default="text"),
            sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("options", sa.JSON(), nullable=True),
            sa.Column("default_value", sa.String(length=500), nullable=True),
            sa.ForeignKeyConstraint(["template_id"], ["project_templates.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_template_fields_template_id", "template_fields", ["template_id"])

    if "template_task_type_fields" not in existing_tables:
        op.create_table(
            "template_task_type_fields",
            sa.Column("task_type_id", sa.Integer(), nullable=False),
            sa.Column("field_id", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["task_type_id"], ["template_task_types.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["field_id"], ["template_fields.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("task_type_id", "field_id"),
        )


def downgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    for table in (
        "template_task_type_fields",
        "template_fields",
        "template_task_types",
        "template_workflow_transitions",
        "template_workflow_steps",
        "template_workflows",
        "template_states",
        "project_templates",
        "project_invites",
    ):
        if table in existing_tables:
            op.drop_table(table)
