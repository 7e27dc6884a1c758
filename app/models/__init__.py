from app.models.billing import BillingCycle, Contract
from app.models.jobs import JobRun
from app.models.members import Member

__all__ = [
    "BillingCycle",
    "Contract",
    "JobRun",
    "Member",
]
