"""job_machine_id

Revision ID: 0002_job_machine_id
Revises: 0001_nodes_jobs
Create Date: 2026-10-18

Bind jobs to the authenticated node that claimed them. worker_name stays as
the display name reported by the worker.
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0002_job_machine_id"
down_revision = "0001_nodes_jobs"
branch_labels = None
depends_on = None


def upgrade():
    op.add_column("jobs", sa.Column("machine_id", sa.String(length=255), nullable=True))
    op.create_index("ix_jobs_machine_id", "jobs", ["machine_id"])


def downgrade():
    op.drop_index("ix_jobs_machine_id", table_name="jobs")
    op.drop_column("jobs", "machine_id")
