from .incidents import Incident
from .companies import Company, CompanyMember
from .trucks import Truck
from .claims import Claim
from .notifications import NotificationRecord, InAppAlert

__all__ = [
    "Incident",
    "Company",
    "CompanyMember",
    "Truck",
    "Claim",
    "NotificationRecord",
    "InAppAlert",
]
