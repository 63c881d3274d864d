from crm.db.repositories.analytics import AnalyticsRepository
from crm.db.repositories.campaigns import CampaignsRepository
from crm.db.repositories.segments import SegmentsRepository
from crm.db.repositories.users import CustomersRepository, UsersRepository

__all__ = [
    "AnalyticsRepository",
    "CampaignsRepository",
    "CustomersRepository",
    "SegmentsRepository",
    "UsersRepository",
]
