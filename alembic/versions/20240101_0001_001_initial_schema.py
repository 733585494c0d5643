"""Initial schema for the DORA metrics database.

Revision ID: 001
Revises:
Create Date: 2024-01-01 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "repositories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("owner", sa.String(length=255), nullable=False),
        sa.Column("repo", sa.String(length=255), nullable=False),
        sa.Column("user", sa.String(length=255), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("fetched_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("owner", "repo", name="uq_repositories_owner_repo"),
    )
    op.create_index("ix_repositories_owner", "repositories", ["owner"])

    op.create_table(
        "releases",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("github_release_id", sa.BigInteger(), nullable=False),
        sa.Column("org", sa.String(length=255), nullable=False),
        sa.Column("repo", sa.String(length=255), nullable=False),
        sa.Column("user", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=500), nullable=False),
        sa.Column("tag_name", sa.String(length=255), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("fetched_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("github_release_id"),
    )
    op.create_index("ix_releases_github_release_id", "releases", ["github_release_id"])
    op.create_index("idx_releases_org_repo_timestamp", "releases", ["org", "repo", "timestamp"])

    op.create_table(
        "pull_requests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("github_pr_id", sa.BigInteger(), nullable=False),
        sa.Column("org", sa.String(length=255), nullable=False),
        sa.Column("repo", sa.String(length=255), nullable=False),
        sa.Column("user", sa.String(length=255), nullable=False),
        sa.Column("number", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("merged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("first_commit_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("fetched_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("github_pr_id"),
    )
    op.create_index("ix_pull_requests_github_pr_id", "pull_requests", ["github_pr_id"])
    op.create_index("idx_pull_requests_org_repo_timestamp", "pull_requests", ["org", "repo", "timestamp"])

    op.create_table(
        "issues",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("github_issue_id", sa.BigInteger(), nullable=False),
        sa.Column("org", sa.String(length=255), nullable=False),
        sa.Column("repo", sa.String(length=255), nullable=False),
        sa.Column("user", sa.String(length=255), nullable=False),
        sa.Column("number", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("labels", sa.JSON(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("fetched_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("github_issue_id"),
    )
    op.create_index("ix_issues_github_issue_id", "issues", ["github_issue_id"])
    op.create_index("idx_issues_org_repo_timestamp", "issues", ["org", "repo", "timestamp"])

    op.create_table(
        "dora_scores",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("scope", sa.String(length=20), nullable=False),
        sa.Column("org", sa.String(length=255), nullable=False),
        sa.Column("repo", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("user", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("granularity", sa.String(length=10), nullable=False),
        sa.Column("window_start", sa.Date(), nullable=False),
        sa.Column("window_end", sa.Date(), nullable=False),
        sa.Column("deployment_frequency", sa.Float(), nullable=False),
        sa.Column("lead_time_for_changes", sa.Float(), nullable=False),
        sa.Column("change_failure_rate", sa.Float(), nullable=False),
        sa.Column("time_to_restore_service", sa.Float(), nullable=False),
        sa.Column("computed_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "scope", "org", "repo", "user", "window_start", "granularity",
            name="uq_dora_scores_key",
        ),
    )
    op.create_index("idx_dora_scores_lookup", "dora_scores", ["org", "granularity", "window_start"])


def downgrade() -> None:
    op.drop_table("dora_scores")
    op.drop_table("issues")
    op.drop_table("pull_requests")
    op.drop_table("releases")
    op.drop_table("repositories")
