"""
SQLAlchemy models for the common meal service.
"""
# Reference data
from commonmeal.models.household import User, Household, Inhabitant, AllergyType, Allergy

# Season calendar
from commonmeal.models.season import Season, TicketPrice

# Rotation
from commonmeal.models.cooking_team import CookingTeam, CookingTeamAssignment

# Dinners & orders
from commonmeal.models.dinner_event import DinnerEvent, DinnerEventAllergen
from commonmeal.models.order import Order, OrderHistory

# Billing
from commonmeal.models.billing import Transaction, Invoice, BillingPeriodSummary

# Jobs
from commonmeal.models.job_run import JobRun


__all__ = [
    "User",
    "Household",
    "Inhabitant",
    "AllergyType",
    "Allergy",
    "Season",
    "TicketPrice",
    "CookingTeam",
    "CookingTeamAssignment",
    "DinnerEvent",
    "DinnerEventAllergen",
    "Order",
    "OrderHistory",
    "Transaction",
    "Invoice",
    "BillingPeriodSummary",
    "JobRun",
]
