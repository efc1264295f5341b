"""Database models using SQLModel."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel


def utcnow() -> datetime:
    """Naive UTC timestamp (all stored instants are UTC without tzinfo)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Team(SQLModel, table=True):
    """Canonical team, shared across providers."""

    __tablename__ = "teams"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=255, index=True, description="Display name from first sighting")
    normalized_name: str = Field(
        max_length=255, unique=True, index=True, description="normalize_team_name(name)"
    )
    short_name: Optional[str] = Field(default=None, max_length=100)
    code: Optional[str] = Field(default=None, max_length=10, description="e.g. 'BAR'")
    country: Optional[str] = Field(default=None, max_length=100)
    logo_url: Optional[str] = Field(default=None, max_length=500, description="Team crest URL")

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class TeamExternalRef(SQLModel, table=True):
    """Provider-scoped team id (one team may carry several)."""

    __tablename__ = "team_external_refs"
    __table_args__ = (
        UniqueConstraint("source", "external_id", name="uq_team_ref_source_external"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    source: str = Field(max_length=50, description="goalserve, football_data, api_football")
    external_id: str = Field(max_length=64)
    team_id: int = Field(foreign_key="teams.id", index=True)


class Match(SQLModel, table=True):
    """Canonical fixture."""

    __tablename__ = "matches"

    id: Optional[int] = Field(default=None, primary_key=True)
    fixture_key: str = Field(
        max_length=400, unique=True, index=True,
        description="'{source}:{external_id}' or 'derived:{league}|{date}|{home}|{away}'",
    )
    source: str = Field(max_length=50, index=True)
    external_id: Optional[str] = Field(default=None, max_length=64, index=True)
    static_id: Optional[int] = Field(default=None, description="Provider's permanent numeric id")

    league: Optional[str] = Field(default=None, max_length=255, index=True)
    country: Optional[str] = Field(default=None, max_length=100)
    season: Optional[str] = Field(default=None, max_length=20)
    stage: Optional[str] = Field(default=None, max_length=255)

    match_date_utc: datetime = Field(index=True, description="Kickoff (UTC), immutable")
    status: str = Field(max_length=20, default="scheduled", index=True)

    home_team_id: int = Field(foreign_key="teams.id", index=True)
    away_team_id: int = Field(foreign_key="teams.id", index=True)

    home_goals: Optional[int] = Field(default=None, description="NULL if not played")
    away_goals: Optional[int] = Field(default=None, description="NULL if not played")
    home_et_goals: Optional[int] = Field(default=None, description="Extra-time score")
    away_et_goals: Optional[int] = Field(default=None)
    home_pen_goals: Optional[int] = Field(default=None, description="Penalty shootout score")
    away_pen_goals: Optional[int] = Field(default=None)

    payload: Optional[dict] = Field(
        default=None, sa_column=Column(JSON), description="Provider-specific extras (lineups, goals, odds)"
    )

    finished_at: Optional[datetime] = Field(default=None, description="When finished status was first seen")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    # Relationships (eager: sessions are closed before callers read them)
    home_team: Optional[Team] = Relationship(
        sa_relationship_kwargs={"foreign_keys": "[Match.home_team_id]", "lazy": "selectin"},
    )
    away_team: Optional[Team] = Relationship(
        sa_relationship_kwargs={"foreign_keys": "[Match.away_team_id]", "lazy": "selectin"},
    )


class History(SQLModel, table=True):
    """Finished fixture imported from a dedicated history feed."""

    __tablename__ = "history"

    id: Optional[int] = Field(default=None, primary_key=True)
    fixture_key: str = Field(max_length=400, unique=True, index=True)
    source: str = Field(max_length=50)
    external_id: Optional[str] = Field(default=None, max_length=64)
    league: Optional[str] = Field(default=None, max_length=255)
    match_date_utc: datetime = Field(index=True)
    status: str = Field(max_length=20, default="finished")

    home_team_id: int = Field(foreign_key="teams.id", index=True)
    away_team_id: int = Field(foreign_key="teams.id", index=True)
    home_goals: int
    away_goals: int

    odds: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow)

    home_team: Optional[Team] = Relationship(
        sa_relationship_kwargs={"foreign_keys": "[History.home_team_id]", "lazy": "selectin"},
    )
    away_team: Optional[Team] = Relationship(
        sa_relationship_kwargs={"foreign_keys": "[History.away_team_id]", "lazy": "selectin"},
    )


class Prediction(SQLModel, table=True):
    """Oracle forecast for one fixture and bucket."""

    __tablename__ = "predictions"
    __table_args__ = (
        UniqueConstraint("match_id", "bucket", name="uq_prediction_match_bucket"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    match_id: int = Field(foreign_key="matches.id", index=True)
    bucket: str = Field(max_length=20, description="vip, daily2, value5, big10")
    version: str = Field(max_length=50, default="ai-2x")
    model_id: Optional[str] = Field(default=None, max_length=100, description="Oracle model that answered")

    outcomes: dict = Field(
        default_factory=dict, sa_column=Column(JSON),
        description="oneXTwo, doubleChance, over05/15/25, bttsYes/No",
    )
    confidence: float = Field(description="0-100")
    status: str = Field(max_length=10, default="pending", index=True, description="pending, won, lost")
    analysis: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    graded_at: Optional[datetime] = Field(default=None)

    @property
    def one_x_two(self) -> Optional[dict]:
        return (self.outcomes or {}).get("oneXTwo")


class JobRun(SQLModel, table=True):
    """Triggered job execution record."""

    __tablename__ = "job_runs"

    id: Optional[int] = Field(default=None, primary_key=True)
    job_name: str = Field(max_length=50, index=True)
    status: str = Field(max_length=20, description="ok, error, failed")
    started_at: datetime
    finished_at: datetime
    duration_ms: int
    error_message: Optional[str] = Field(default=None)
    metrics: Optional[dict] = Field(default=None, sa_column=Column(JSON))
