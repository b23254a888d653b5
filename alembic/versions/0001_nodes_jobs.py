"""nodes_and_jobs

Revision ID: 0001_nodes_jobs
Revises:
Create Date: 2026-10-18

Add nodes (worker identities) and jobs (durable task queue) tables.
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_nodes_jobs"
down_revision = None
branch_labels = None
depends_on = None

node_status = sa.Enum("online", "offline", name="nodestatus")
job_status = sa.Enum("queued", "processing", "completed", "failed", name="jobstatus")


def upgrade():
    op.create_table(
        "nodes",
        sa.Column("machine_id", sa.String(length=255), nullable=False),
        sa.Column("secret_key", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("status", node_status, nullable=False),
        sa.Column("last_seen", sa.DateTime(), nullable=False),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("total_success", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_failed", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("machine_id"),
    )
    op.create_index("ix_nodes_status", "nodes", ["status"])

    op.create_table(
        "jobs",
        sa.Column("request_id", sa.String(length=64), nullable=False),
        sa.Column("task_type", sa.String(length=100), nullable=False),
        sa.Column("status", job_status, nullable=False),
        sa.Column("worker_name", sa.String(length=255), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("progress", sa.JSON(), nullable=False),
        sa.Column("result", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("request_id"),
    )
    op.create_index("ix_jobs_task_type", "jobs", ["task_type"])
    op.create_index("ix_jobs_status", "jobs", ["status"])
    op.create_index("ix_jobs_worker_name", "jobs", ["worker_name"])
    op.create_index("ix_jobs_created_at", "jobs", ["created_at"])
    op.create_index("ix_jobs_status_created", "jobs", ["status", "created_at"])


def downgrade():
    op.drop_index("ix_jobs_status_created", table_name="jobs")
    op.drop_index("ix_jobs_created_at", table_name="jobs")
    op.drop_index("ix_jobs_worker_name", table_name="jobs")
    op.drop_index("ix_jobs_status", table_name="jobs")
    op.drop_index("ix_jobs_task_type", table_name="jobs")
    op.drop_table("jobs")

    op.drop_index("ix_nodes_status", table_name="nodes")
    op.drop_table("nodes")
    job_status.drop(op.get_bind(), checkfirst=True)
    node_status.drop(op.get_bind(), checkfirst=True)
