"""ORM models; importing the package registers every table on Base.metadata."""

from .auth_handoffs import AuthHandoff
from .jobs import Job
from .quotas import ALLOWED_PACK_SIZES, PLAN_LIMITS, IterationPack, PackStatus, PlanType, Subscription, UsageRecord

__all__ = ["ALLOWED_PACK_SIZES", "AuthHandoff", "IterationPack", "Job", "PLAN_LIMITS", "PackStatus", "PlanType", "Subscription", "UsageRecord"]
