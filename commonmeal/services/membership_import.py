"""
Membership import: upserts households, inhabitants and users from a
normalized membership source.

The external membership system is reached through a MembershipSource; this
module never speaks its protocol. Households and inhabitants are matched on
their external heynabo_id, users on email.
"""
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List

from sqlalchemy import select
from sqlalchemy.orm import Session

from commonmeal.models.household import Household, Inhabitant, User
from commonmeal.schemas.imports import HouseholdRecord, InhabitantRecord

logger = logging.getLogger(__name__)


class MembershipSource(ABC):
    """Supplies normalized household records."""

    @abstractmethod
    def fetch_households(self) -> List[HouseholdRecord]:
        ...


class StaticMembershipSource(MembershipSource):
    def __init__(self, records: Iterable[HouseholdRecord]):
        self.records = list(records)

    def fetch_households(self) -> List[HouseholdRecord]:
        return list(self.records)


class JsonFileMembershipSource(MembershipSource):
    """Reads a JSON export: a list of household objects with nested inhabitants."""

    def __init__(self, path):
        self.path = Path(path)

    def fetch_households(self) -> List[HouseholdRecord]:
        with self.path.open(encoding="utf-8") as f:
            raw = json.load(f)
        return [HouseholdRecord.model_validate(item) for item in raw]


class MembershipImporter:
    def __init__(self, db: Session):
        self.db = db

    def upsert_household(self, record: HouseholdRecord) -> Household:
        """Create or update one household with its inhabitants. Commits."""
        household = self.db.scalar(select(Household).where(Household.heynabo_id == record.heynabo_id))
        created = household is None
        if created:
            household = Household(heynabo_id=record.heynabo_id)
            self.db.add(household)
        household.pbs_id = record.pbs_id
        household.name = record.name
        household.address = record.address
        household.moved_in_date = record.moved_in_date
        household.move_out_date = record.move_out_date
        self.db.flush()

        for inhabitant_record in record.inhabitants:
            self._upsert_inhabitant(household, inhabitant_record)

        self.db.commit()
        self.db.refresh(household)
        logger.info(
            f"{'Created' if created else 'Updated'} household {household.name} "
            f"with {len(record.inhabitants)} inhabitant(s)"
        )
        return household

    def _upsert_inhabitant(self, household: Household, record: InhabitantRecord) -> Inhabitant:
        inhabitant = self.db.scalar(select(Inhabitant).where(Inhabitant.heynabo_id == record.heynabo_id))
        if inhabitant is None:
            inhabitant = Inhabitant(heynabo_id=record.heynabo_id)
            self.db.add(inhabitant)
        inhabitant.household_id = household.id
        inhabitant.name = record.name
        inhabitant.last_name = record.last_name
        inhabitant.birth_date = record.birth_date
        inhabitant.picture_url = record.picture_url
        if record.email:
            inhabitant.user_id = self._upsert_user(record).id
        self.db.flush()
        return inhabitant

    def _upsert_user(self, record: InhabitantRecord) -> User:
        user = self.db.scalar(select(User).where(User.email == record.email))
        if user is None:
            user = User(email=record.email)
            self.db.add(user)
        if record.phone:
            user.phone = record.phone
        self.db.flush()
        return user
