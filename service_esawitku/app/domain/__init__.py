"""
Domain logic for the eSawitKu API: caller identity, permissions, the request
gate and the business services behind each endpoint.
"""

from .accounts import AccountService
from .billing import BillingService
from .gate import EndpointPolicy, HandlerResult, RequestGate, parse_body, parse_id
from .identity import Credentials, Identity, Role
from .permissions import MANAGE_USERS, READ, VERIFY_PAYMENTS, PermissionChecker, permissions_for
from .plantations import PlantationService, harvest_revenue

__all__ = [
    "AccountService",
    "BillingService",
    "Credentials",
    "EndpointPolicy",
    "HandlerResult",
    "Identity",
    "MANAGE_USERS",
    "PermissionChecker",
    "PlantationService",
    "READ",
    "RequestGate",
    "Role",
    "VERIFY_PAYMENTS",
    "harvest_revenue",
    "parse_body",
    "parse_id",
    "permissions_for",
]
