"""SQLAlchemy ORM models for the DORA metrics database."""

from datetime import date, datetime, timezone

from sqlalchemy import JSON, BigInteger, Date, DateTime, Float, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from dora_metrics.models import UNKNOWN_USER


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class RepositoryRow(Base):
    """Repository known to have been ingested for an organization."""

    __tablename__ = "repositories"

    id: Mapped[int] = mapped_column(primary_key=True)
    owner: Mapped[str] = mapped_column(String(255), index=True)
    repo: Mapped[str] = mapped_column(String(255))
    user: Mapped[str] = mapped_column(String(255), default=UNKNOWN_USER)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        UniqueConstraint("owner", "repo", name="uq_repositories_owner_repo"),
    )


class ReleaseRow(Base):
    """GitHub release stored in database."""

    __tablename__ = "releases"

    id: Mapped[int] = mapped_column(primary_key=True)
    github_release_id: Mapped[int] = mapped_column(BigInteger, unique=True, index=True)
    org: Mapped[str] = mapped_column(String(255))
    repo: Mapped[str] = mapped_column(String(255))
    user: Mapped[str] = mapped_column(String(255), default=UNKNOWN_USER)
    name: Mapped[str] = mapped_column(String(500), default="")
    tag_name: Mapped[str] = mapped_column(String(255), default="")
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True))  # created_at
    fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("idx_releases_org_repo_timestamp", "org", "repo", "timestamp"),
    )


class PullRequestRow(Base):
    """GitHub pull request stored in database."""

    __tablename__ = "pull_requests"

    id: Mapped[int] = mapped_column(primary_key=True)
    github_pr_id: Mapped[int] = mapped_column(BigInteger, unique=True, index=True)
    org: Mapped[str] = mapped_column(String(255))
    repo: Mapped[str] = mapped_column(String(255))
    user: Mapped[str] = mapped_column(String(255), default=UNKNOWN_USER)
    number: Mapped[int] = mapped_column(Integer)
    title: Mapped[str] = mapped_column(String(500), default="")
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True))  # created_at
    merged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    first_commit_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("idx_pull_requests_org_repo_timestamp", "org", "repo", "timestamp"),
    )


class IssueRow(Base):
    """GitHub issue stored in database."""

    __tablename__ = "issues"

    id: Mapped[int] = mapped_column(primary_key=True)
    github_issue_id: Mapped[int] = mapped_column(BigInteger, unique=True, index=True)
    org: Mapped[str] = mapped_column(String(255))
    repo: Mapped[str] = mapped_column(String(255))
    user: Mapped[str] = mapped_column(String(255), default=UNKNOWN_USER)
    number: Mapped[int] = mapped_column(Integer)
    title: Mapped[str] = mapped_column(String(500), default="")
    labels: Mapped[list[str]] = mapped_column(JSON, default=list)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True))  # created_at
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("idx_issues_org_repo_timestamp", "org", "repo", "timestamp"),
    )


class DoraScoreRow(Base):
    """Cached DORA metrics for one subject in one window.

    An absent repository or user is stored as "" so the unique key holds.
    """

    __tablename__ = "dora_scores"

    id: Mapped[int] = mapped_column(primary_key=True)
    scope: Mapped[str] = mapped_column(String(20))  # organization, repository, user
    org: Mapped[str] = mapped_column(String(255))
    repo: Mapped[str] = mapped_column(String(255), default="")
    user: Mapped[str] = mapped_column(String(255), default="")
    granularity: Mapped[str] = mapped_column(String(10))  # day, week, month
    window_start: Mapped[date] = mapped_column(Date)
    window_end: Mapped[date] = mapped_column(Date)

    deployment_frequency: Mapped[float] = mapped_column(Float)
    lead_time_for_changes: Mapped[float] = mapped_column(Float)
    change_failure_rate: Mapped[float] = mapped_column(Float)
    time_to_restore_service: Mapped[float] = mapped_column(Float)

    computed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        UniqueConstraint(
            "scope", "org", "repo", "user", "window_start", "granularity",
            name="uq_dora_scores_key",
        ),
        Index("idx_dora_scores_lookup", "org", "granularity", "window_start"),
    )
