"""
Season calendar and ticket price models.

Season: the active time window, cooking weekdays, holidays and deadline rules.
TicketPrice: per-season price per ticket type, read once at booking time.
"""
from sqlalchemy import JSON, Boolean, Column, Date, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import relationship

from commonmeal.db.base import Base
from commonmeal.models.enums import TicketType, enum_column_type


class Season(Base):
    """
    One community season.

    cooking_days: ["monday", "tuesday", ...]
    holidays: [{"start": "2024-10-14", "end": "2024-10-20"}, ...]
    """
    __tablename__ = "seasons"

    id = Column(Integer, primary_key=True, autoincrement=True)
    short_name = Column(String(50), nullable=False, unique=True)
    season_start = Column(Date, nullable=False)
    season_end = Column(Date, nullable=False)
    is_active = Column(Boolean, nullable=False, default=False)
    cooking_days = Column(JSON, nullable=False, default=list)
    holidays = Column(JSON, nullable=False, default=list)
    ticket_is_cancellable_days_before = Column(Integer, nullable=False, default=8)
    dining_mode_is_editable_minutes_before = Column(Integer, nullable=False, default=90)
    consecutive_cooking_days = Column(Integer, nullable=False, default=2)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    ticket_prices = relationship("TicketPrice", back_populates="season", cascade="all, delete-orphan")
    cooking_teams = relationship("CookingTeam", back_populates="season")
    dinner_events = relationship("DinnerEvent", back_populates="season")


class TicketPrice(Base):
    __tablename__ = "ticket_prices"

    id = Column(Integer, primary_key=True, autoincrement=True)
    season_id = Column(Integer, ForeignKey("seasons.id", ondelete="CASCADE"), nullable=False)
    ticket_type = Column(enum_column_type(TicketType), nullable=False)
    description = Column(String(255), nullable=True)
    price = Column(Integer, nullable=False)  # minor currency units
    maximum_age_limit = Column(Integer, nullable=True)  # exclusive upper age bound
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    season = relationship("Season", back_populates="ticket_prices")
