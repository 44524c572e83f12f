"""
Dinner event and menu allergen models.
"""
from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import relationship

from commonmeal.db.base import Base
from commonmeal.models.enums import DinnerState, enum_column_type


class DinnerEvent(Base):
    """
    One scheduled communal meal.

    total_cost is authoritative only once the dinner has been announced.
    """
    __tablename__ = "dinner_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(Date, nullable=False)
    menu_title = Column(String(255), nullable=False, default="TBD")
    menu_description = Column(Text, nullable=True)
    menu_picture_url = Column(String(500), nullable=True)
    state = Column(enum_column_type(DinnerState), nullable=False, default=DinnerState.SCHEDULED)
    total_cost = Column(Integer, nullable=False, default=0)
    chef_id = Column(Integer, ForeignKey("inhabitants.id", ondelete="SET NULL"), nullable=True)
    cooking_team_id = Column(Integer, ForeignKey("cooking_teams.id", ondelete="SET NULL"), nullable=True)
    season_id = Column(Integer, ForeignKey("seasons.id", ondelete="SET NULL"), nullable=True)
    heynabo_event_id = Column(Integer, nullable=True, unique=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    chef = relationship("Inhabitant")
    cooking_team = relationship("CookingTeam", back_populates="dinner_events")
    season = relationship("Season", back_populates="dinner_events")
    orders = relationship("Order", back_populates="dinner_event")
    allergens = relationship("DinnerEventAllergen", back_populates="dinner_event", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_dinner_events_date", "date"),
        Index("idx_dinner_events_season_date", "season_id", "date"),
    )


class DinnerEventAllergen(Base):
    """Menu hazard disclosure: an allergy type present in a dinner's menu."""
    __tablename__ = "dinner_event_allergens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    dinner_event_id = Column(Integer, ForeignKey("dinner_events.id", ondelete="CASCADE"), nullable=False)
    allergy_type_id = Column(Integer, ForeignKey("allergy_types.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    dinner_event = relationship("DinnerEvent", back_populates="allergens")
    allergy_type = relationship("AllergyType")

    __table_args__ = (
        UniqueConstraint("dinner_event_id", "allergy_type_id", name="uq_dinner_event_allergens_event_type"),
    )
