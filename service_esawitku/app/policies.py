"""
Gate policy for each eSawitKu endpoint.

Policy names are the rate limit endpoint keys (and override file keys) and
the audit actions.
"""

from .domain.gate import EndpointPolicy
from .domain.permissions import MANAGE_USERS, READ, VERIFY_PAYMENTS
from .ratelimit.fixed_window import RateLimitRule

_READ = frozenset({READ})

PAKET_LIST = EndpointPolicy("paket.list", "paket", frozenset(), public=True)
PAKET_UPGRADE = EndpointPolicy("paket.upgrade", "paket", _READ)

KEBUN_CREATE = EndpointPolicy("kebun.create", "kebun", _READ, rate_limit=RateLimitRule(limit=10, window_seconds=60))
KEBUN_LIST = EndpointPolicy("kebun.list", "kebun", _READ)
KEBUN_GET = EndpointPolicy("kebun.get", "kebun", _READ)
KEBUN_UPDATE = EndpointPolicy("kebun.update", "kebun", _READ)
KEBUN_DELETE = EndpointPolicy("kebun.delete", "kebun", _READ)

PANEN_CREATE = EndpointPolicy("panen.create", "panen", _READ)
PANEN_LIST = EndpointPolicy("panen.list", "panen", _READ)
PANEN_GET = EndpointPolicy("panen.get", "panen", _READ)
PANEN_DELETE = EndpointPolicy("panen.delete", "panen", _READ)

PUPUK_CREATE = EndpointPolicy("pupuk.create", "pupuk", _READ)
PUPUK_LIST = EndpointPolicy("pupuk.list", "pupuk", _READ)
PUPUK_GET = EndpointPolicy("pupuk.get", "pupuk", _READ)
PUPUK_DELETE = EndpointPolicy("pupuk.delete", "pupuk", _READ)

PAYMENT_METHODS = EndpointPolicy("payment.methods", "payment", _READ)
PAYMENT_SUBMIT = EndpointPolicy("payment.submit", "payment", _READ)
PAYMENT_LIST = EndpointPolicy("payment.list", "payment", _READ)
PAYMENT_VERIFY = EndpointPolicy("payment.verify", "payment", frozenset({VERIFY_PAYMENTS}))

USER_PROFILE_GET = EndpointPolicy("user.profile.get", "user", _READ)
USER_PROFILE_UPDATE = EndpointPolicy("user.profile.update", "user", _READ)
ADMIN_USERS_LIST = EndpointPolicy("admin.users.list", "user", frozenset({MANAGE_USERS}))
ADMIN_USER_ROLE_UPDATE = EndpointPolicy("admin.users.role", "user", frozenset({MANAGE_USERS}))

LAPORAN_DASHBOARD = EndpointPolicy("laporan.dashboard", "laporan", _READ)
LAPORAN_MONTHLY = EndpointPolicy("laporan.monthly", "laporan", _READ)
