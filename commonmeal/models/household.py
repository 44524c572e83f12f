"""
Reference data: households, inhabitants, login users and allergies.

These rows are maintained by the membership import and consumed, never
mutated, by the booking and billing engine.
"""
from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import relationship

from commonmeal.db.base import Base


class User(Base):
    """Login identity. An inhabitant may or may not have one."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    phone = Column(String(50), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    inhabitant = relationship("Inhabitant", back_populates="user", uselist=False)


class Household(Base):
    __tablename__ = "households"

    id = Column(Integer, primary_key=True, autoincrement=True)
    heynabo_id = Column(Integer, nullable=False, unique=True)
    pbs_id = Column(Integer, nullable=False, unique=True)  # payment system customer number
    name = Column(String(255), nullable=False)
    address = Column(String(255), nullable=False)
    moved_in_date = Column(Date, nullable=True)
    move_out_date = Column(Date, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    inhabitants = relationship("Inhabitant", back_populates="household", cascade="all, delete-orphan")


class Inhabitant(Base):
    __tablename__ = "inhabitants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    heynabo_id = Column(Integer, nullable=False, unique=True)
    household_id = Column(Integer, ForeignKey("households.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    birth_date = Column(Date, nullable=True)
    picture_url = Column(String(500), nullable=True)
    # weekday -> DinnerMode value; NULL until first fitted to a season
    dinner_preferences = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    household = relationship("Household", back_populates="inhabitants")
    user = relationship("User", back_populates="inhabitant")
    allergies = relationship("Allergy", back_populates="inhabitant", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return f"{self.name} {self.last_name}"


class AllergyType(Base):
    __tablename__ = "allergy_types"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    icon = Column(String(50), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class Allergy(Base):
    """An inhabitant's allergy with an optional free-text comment."""
    __tablename__ = "allergies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    inhabitant_id = Column(Integer, ForeignKey("inhabitants.id", ondelete="CASCADE"), nullable=False)
    allergy_type_id = Column(Integer, ForeignKey("allergy_types.id", ondelete="CASCADE"), nullable=False)
    inhabitant_comment = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    inhabitant = relationship("Inhabitant", back_populates="allergies")
    allergy_type = relationship("AllergyType")

    __table_args__ = (
        UniqueConstraint("inhabitant_id", "allergy_type_id", name="uq_allergies_inhabitant_type"),
    )
