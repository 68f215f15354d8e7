"""
asyncpg-backed repositories for the eSawitKu API.
"""

from .audit import AuditRepository
from .billing import BillingRepository
from .plantations import PlantationRepository
from .postgres import Database
from .reports import ReportRepository
from .users import UserRepository, hash_api_key

__all__ = [
    "AuditRepository",
    "BillingRepository",
    "Database",
    "PlantationRepository",
    "ReportRepository",
    "UserRepository",
    "hash_api_key",
]
