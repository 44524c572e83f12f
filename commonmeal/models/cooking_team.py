"""
Cooking team roster models.
"""
from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import relationship

from commonmeal.db.base import Base
from commonmeal.models.enums import TeamRole, enum_column_type


class CookingTeam(Base):
    """A recurring group responsible for cooking during a stretch of a season."""
    __tablename__ = "cooking_teams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    season_id = Column(Integer, ForeignKey("seasons.id", ondelete="RESTRICT"), nullable=False)
    name = Column(String(100), nullable=False)
    affinity = Column(JSON, nullable=True)  # preferred weekdays, e.g. ["monday", "tuesday"]
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    season = relationship("Season", back_populates="cooking_teams")
    assignments = relationship("CookingTeamAssignment", back_populates="cooking_team")
    dinner_events = relationship("DinnerEvent", back_populates="cooking_team")

    __table_args__ = (
        UniqueConstraint("season_id", "name", name="uq_cooking_teams_season_name"),
    )


class CookingTeamAssignment(Base):
    """
    Membership of an inhabitant in a team.

    allocation_percentage is a fairness signal, not a constraint: the sum
    across a team is never enforced.
    """
    __tablename__ = "cooking_team_assignments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    cooking_team_id = Column(Integer, ForeignKey("cooking_teams.id", ondelete="RESTRICT"), nullable=False)
    inhabitant_id = Column(Integer, ForeignKey("inhabitants.id", ondelete="CASCADE"), nullable=False)
    role = Column(enum_column_type(TeamRole), nullable=False)
    allocation_percentage = Column(Integer, nullable=False, default=100)
    affinity = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    cooking_team = relationship("CookingTeam", back_populates="assignments")
    inhabitant = relationship("Inhabitant")

    __table_args__ = (
        UniqueConstraint("cooking_team_id", "inhabitant_id", name="uq_team_assignments_team_inhabitant"),
    )
