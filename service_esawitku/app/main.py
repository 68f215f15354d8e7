"""
eSawitKu API service.

Run with ``python -m service_esawitku.app.main`` or point an ASGI server at
``service_esawitku.app.main:create_app``.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Query, Request

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config

from . import policies
from .audit.recorder import AuditRecorder
from .auth.directory_client import UserDirectoryClient
from .auth.jwks import JWKSTokenVerifier
from .auth.resolver import IdentityResolver
from .domain.accounts import AccountService
from .domain.billing import BillingService
from .domain.gate import HandlerResult, RequestGate, parse_body, parse_id
from .domain.permissions import PermissionChecker
from .domain.plantations import PlantationService
from .models import (
    CreateKebunRequest,
    CreatePanenRequest,
    CreatePupukRequest,
    SubmitPaymentRequest,
    UpdateKebunRequest,
    UpdateProfileRequest,
    UpdateUserRoleRequest,
    UpgradePaketRequest,
    VerifyPaymentRequest,
)
from .persistence import (
    AuditRepository,
    BillingRepository,
    Database,
    PlantationRepository,
    ReportRepository,
    UserRepository,
)
from .ratelimit.fixed_window import FixedWindowRateLimiter, RateLimitRule, load_rate_limit_overrides


@dataclass
class ServiceComponents:
    """Collaborators owned by the service.

    ``build`` wires the production stack; tests pass their own.
    """
    limiter: Any
    token_verifier: Any
    directory: Any
    users: Any
    plantations: Any
    billing: Any
    reports: Any
    audit_repository: Any
    database: Optional[Database] = None

    @classmethod
    def build(cls, config: ServiceConfig, metrics) -> "ServiceComponents":
        database = Database(
            config.postgres_dsn,
            min_size=config.postgres_min_pool_size,
            max_size=config.postgres_max_pool_size,
        )
        return cls(
            limiter=FixedWindowRateLimiter(
                config.redis_url,
                timeout_seconds=config.gate_step_timeout_seconds,
                metrics=metrics,
            ),
            token_verifier=JWKSTokenVerifier(
                config.jwks_url,
                audience=config.token_audience,
                issuer=config.token_issuer,
                authorized_parties=config.authorized_parties,
                http_timeout=config.gate_step_timeout_seconds,
            ),
            directory=UserDirectoryClient(
                config.user_directory_url,
                config.user_directory_api_key,
                http_timeout=config.gate_step_timeout_seconds,
            ),
            users=UserRepository(database),
            plantations=PlantationRepository(database),
            billing=BillingRepository(database),
            reports=ReportRepository(database),
            audit_repository=AuditRepository(database),
            database=database,
        )


class EsawitkuService(BaseService):
    """eSawitKu API service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None, components: Optional[ServiceComponents] = None):
        super().__init__("esawitku", 8000, config or get_config("esawitku", 8000))
        self.components = components or ServiceComponents.build(self.config, self.metrics)

        self.limiter = self.components.limiter
        self.token_verifier = self.components.token_verifier
        self.directory = self.components.directory
        self.database = self.components.database

        self.resolver = IdentityResolver(
            self.token_verifier,
            self.directory,
            self.components.users,
            super_admin_emails=self.config.super_admin_emails,
            scheme_order=self.config.auth_scheme_order,
        )
        self.audit = AuditRecorder(
            self.components.audit_repository,
            queue_size=self.config.audit_queue_size,
            metrics=self.metrics,
        )
        self.gate = RequestGate(
            self.limiter,
            self.resolver,
            PermissionChecker(),
            self.audit,
            default_rule=RateLimitRule(
                limit=self.config.rate_limit_default,
                window_seconds=self.config.rate_limit_window_seconds,
            ),
            overrides=load_rate_limit_overrides(self.config.rate_limits_file),
            step_timeout_seconds=self.config.gate_step_timeout_seconds,
            trusted_proxies=self.config.trusted_proxies,
            metrics=self.metrics,
        )

        self.plantation_service = PlantationService(self.components.plantations)
        self.billing_service = BillingService(self.components.billing)
        self.account_service = AccountService(self.components.users)
        self.reports = self.components.reports

        self._setup_paket_routes()
        self._setup_kebun_routes()
        self._setup_panen_routes()
        self._setup_pupuk_routes()
        self._setup_payment_routes()
        self._setup_account_routes()
        self._setup_laporan_routes()

    async def startup(self) -> None:
        if self.database is not None:
            await self.database.start()
        await self.token_verifier.warmup()
        await self.audit.start()

    async def shutdown(self) -> None:
        await self.audit.stop()
        await self.limiter.close()
        await self.token_verifier.close()
        await self.directory.close()
        if self.database is not None:
            await self.database.stop()

    async def _check_dependencies(self) -> Dict[str, str]:
        dependencies = {
            "redis": "ok" if await self.limiter.ping() else "error",
            "jwks": await self.token_verifier.check_health(),
        }
        if self.database is not None:
            dependencies["postgres"] = "ok" if await self.database.health_check() else "error"
        return dependencies

    # ------------------------------------------------------------ paket

    def _setup_paket_routes(self):
        """Package catalogue and upgrade quotes."""

        @self.app.get("/paket")
        async def list_paket(request: Request):
            async def handler(identity):
                return HandlerResult(data=await self.billing_service.list_packages())

            return await self.gate.run(request, policies.PAKET_LIST, handler)

        @self.app.post("/paket/upgrade")
        async def upgrade_paket(request: Request):
            async def handler(identity):
                payload = await parse_body(request, UpgradePaketRequest)
                quote = await self.billing_service.quote_upgrade(identity, payload)
                return HandlerResult(
                    data=quote,
                    message=f"Please complete payment to upgrade to {quote['paketNama']}",
                    resource_id=payload.paket_id,
                )

            return await self.gate.run(request, policies.PAKET_UPGRADE, handler)

    # ------------------------------------------------------------ kebun

    def _setup_kebun_routes(self):
        """Plantation CRUD."""

        @self.app.post("/kebun")
        async def create_kebun(request: Request):
            async def handler(identity):
                payload = await parse_body(request, CreateKebunRequest)
                kebun = await self.plantation_service.create_kebun(identity, payload)
                self.metrics.record_business_event("kebun_created")
                return HandlerResult(
                    data=kebun,
                    message="Kebun created",
                    status_code=201,
                    resource_id=kebun.id,
                    new_values=kebun.to_json(),
                )

            return await self.gate.run(request, policies.KEBUN_CREATE, handler)

        @self.app.get("/kebun")
        async def list_kebun(request: Request):
            async def handler(identity):
                return HandlerResult(data=await self.plantation_service.list_kebun(identity))

            return await self.gate.run(request, policies.KEBUN_LIST, handler)

        @self.app.get("/kebun/{kebun_id}")
        async def get_kebun(kebun_id: str, request: Request):
            async def handler(identity):
                kebun = await self.plantation_service.get_kebun(identity, parse_id(kebun_id, "id"))
                return HandlerResult(data=kebun, resource_id=kebun.id)

            return await self.gate.run(request, policies.KEBUN_GET, handler)

        @self.app.put("/kebun/{kebun_id}")
        async def update_kebun(kebun_id: str, request: Request):
            async def handler(identity):
                parsed_id = parse_id(kebun_id, "id")
                payload = await parse_body(request, UpdateKebunRequest)
                before, after = await self.plantation_service.update_kebun(identity, parsed_id, payload)
                return HandlerResult(
                    data=after,
                    message="Kebun updated",
                    resource_id=after.id,
                    old_values=before.to_json(),
                    new_values=after.to_json(),
                )

            return await self.gate.run(request, policies.KEBUN_UPDATE, handler)

        @self.app.delete("/kebun/{kebun_id}")
        async def delete_kebun(kebun_id: str, request: Request):
            async def handler(identity):
                before = await self.plantation_service.delete_kebun(identity, parse_id(kebun_id, "id"))
                return HandlerResult(
                    data={"id": before.id},
                    message="Kebun deleted",
                    resource_id=before.id,
                    old_values=before.to_json(),
                )

            return await self.gate.run(request, policies.KEBUN_DELETE, handler)

    # ------------------------------------------------------------ panen

    def _setup_panen_routes(self):
        """Harvest records."""

        @self.app.post("/panen")
        async def create_panen(request: Request):
            async def handler(identity):
                payload = await parse_body(request, CreatePanenRequest)
                panen = await self.plantation_service.create_panen(identity, payload)
                self.metrics.record_business_event("panen_recorded")
                return HandlerResult(
                    data=panen,
                    message="Panen recorded",
                    status_code=201,
                    resource_id=panen.id,
                    new_values=panen.to_json(),
                )

            return await self.gate.run(request, policies.PANEN_CREATE, handler)

        @self.app.get("/panen")
        async def list_panen(request: Request, kebun_id: Optional[str] = Query(None, alias="kebunId")):
            async def handler(identity):
                records = await self.plantation_service.list_panen(identity, parse_id(kebun_id, "kebunId"))
                return HandlerResult(data=records)

            return await self.gate.run(request, policies.PANEN_LIST, handler)

        @self.app.get("/panen/{panen_id}")
        async def get_panen(panen_id: str, request: Request):
            async def handler(identity):
                panen = await self.plantation_service.get_panen(identity, parse_id(panen_id, "id"))
                return HandlerResult(data=panen, resource_id=panen.id)

            return await self.gate.run(request, policies.PANEN_GET, handler)

        @self.app.delete("/panen/{panen_id}")
        async def delete_panen(panen_id: str, request: Request):
            async def handler(identity):
                before = await self.plantation_service.delete_panen(identity, parse_id(panen_id, "id"))
                return HandlerResult(
                    data={"id": before.id},
                    message="Panen deleted",
                    resource_id=before.id,
                    old_values=before.to_json(),
                )

            return await self.gate.run(request, policies.PANEN_DELETE, handler)

    # ------------------------------------------------------------ pupuk

    def _setup_pupuk_routes(self):
        """Fertilizer records."""

        @self.app.post("/pupuk")
        async def create_pupuk(request: Request):
            async def handler(identity):
                payload = await parse_body(request, CreatePupukRequest)
                pupuk = await self.plantation_service.create_pupuk(identity, payload)
                return HandlerResult(
                    data=pupuk,
                    message="Pupuk recorded",
                    status_code=201,
                    resource_id=pupuk.id,
                    new_values=pupuk.to_json(),
                )

            return await self.gate.run(request, policies.PUPUK_CREATE, handler)

        @self.app.get("/pupuk")
        async def list_pupuk(request: Request, kebun_id: Optional[str] = Query(None, alias="kebunId")):
            async def handler(identity):
                records = await self.plantation_service.list_pupuk(identity, parse_id(kebun_id, "kebunId"))
                return HandlerResult(data=records)

            return await self.gate.run(request, policies.PUPUK_LIST, handler)

        @self.app.get("/pupuk/{pupuk_id}")
        async def get_pupuk(pupuk_id: str, request: Request):
            async def handler(identity):
                pupuk = await self.plantation_service.get_pupuk(identity, parse_id(pupuk_id, "id"))
                return HandlerResult(data=pupuk, resource_id=pupuk.id)

            return await self.gate.run(request, policies.PUPUK_GET, handler)

        @self.app.delete("/pupuk/{pupuk_id}")
        async def delete_pupuk(pupuk_id: str, request: Request):
            async def handler(identity):
                before = await self.plantation_service.delete_pupuk(identity, parse_id(pupuk_id, "id"))
                return HandlerResult(
                    data={"id": before.id},
                    message="Pupuk deleted",
                    resource_id=before.id,
                    old_values=before.to_json(),
                )

            return await self.gate.run(request, policies.PUPUK_DELETE, handler)

    # ------------------------------------------------------------ payment

    def _setup_payment_routes(self):
        """Manual bank transfer payments."""

        @self.app.get("/payment/methods")
        async def payment_methods(request: Request):
            async def handler(identity):
                return HandlerResult(data=await self.billing_service.list_payment_methods())

            return await self.gate.run(request, policies.PAYMENT_METHODS, handler)

        @self.app.post("/payment/submit")
        async def submit_payment(request: Request):
            async def handler(identity):
                payload = await parse_body(request, SubmitPaymentRequest)
                payment = await self.billing_service.submit_payment(identity, payload)
                self.metrics.record_business_event("payment_submitted")
                return HandlerResult(
                    data=payment,
                    message="Payment submitted and awaiting verification",
                    status_code=201,
                    resource_id=payment.id,
                    new_values=payment.to_json(),
                )

            return await self.gate.run(request, policies.PAYMENT_SUBMIT, handler)

        @self.app.get("/payment/list")
        async def list_payments(request: Request):
            async def handler(identity):
                return HandlerResult(data=await self.billing_service.list_payments(identity))

            return await self.gate.run(request, policies.PAYMENT_LIST, handler)

        @self.app.post("/payment/verify")
        async def verify_payment(request: Request):
            async def handler(identity):
                payload = await parse_body(request, VerifyPaymentRequest)
                before, after = await self.billing_service.verify_payment(identity, payload)
                self.metrics.record_business_event(f"payment_{payload.status}")
                message = (
                    "Payment verified and package activated"
                    if payload.status == "verified"
                    else "Payment rejected"
                )
                return HandlerResult(
                    data=after,
                    message=message,
                    resource_id=after.id,
                    old_values={"paymentStatus": before.payment_status.value},
                    new_values={"paymentStatus": after.payment_status.value, "adminNotes": after.admin_notes},
                )

            return await self.gate.run(request, policies.PAYMENT_VERIFY, handler)

    # ------------------------------------------------------------ accounts

    def _setup_account_routes(self):
        """Own profile and user administration."""

        @self.app.get("/user/profile")
        async def get_profile(request: Request):
            async def handler(identity):
                profile = await self.account_service.get_profile(identity)
                return HandlerResult(data=profile, resource_id=profile.id)

            return await self.gate.run(request, policies.USER_PROFILE_GET, handler)

        @self.app.put("/user/profile")
        async def update_profile(request: Request):
            async def handler(identity):
                payload = await parse_body(request, UpdateProfileRequest)
                before, after = await self.account_service.update_profile(identity, payload)
                return HandlerResult(
                    data=after,
                    message="Profile updated",
                    resource_id=after.id,
                    old_values={"name": before.name},
                    new_values={"name": after.name},
                )

            return await self.gate.run(request, policies.USER_PROFILE_UPDATE, handler)

        @self.app.get("/admin/users")
        async def list_users(request: Request):
            async def handler(identity):
                return HandlerResult(data=await self.account_service.list_users())

            return await self.gate.run(request, policies.ADMIN_USERS_LIST, handler)

        @self.app.put("/admin/users/{user_id}/role")
        async def update_user_role(user_id: str, request: Request):
            async def handler(identity):
                payload = await parse_body(request, UpdateUserRoleRequest)
                old_role, new_role = await self.account_service.change_role(identity, user_id, payload)
                return HandlerResult(
                    data={"userId": user_id, "role": new_role},
                    message="Role updated",
                    resource_id=user_id,
                    old_values={"role": old_role},
                    new_values={"role": new_role},
                )

            return await self.gate.run(request, policies.ADMIN_USER_ROLE_UPDATE, handler)

    # ------------------------------------------------------------ laporan

    def _setup_laporan_routes(self):
        """Reports."""

        @self.app.get("/laporan/dashboard")
        async def dashboard(request: Request):
            async def handler(identity):
                return HandlerResult(data=await self.reports.dashboard(identity.id))

            return await self.gate.run(request, policies.LAPORAN_DASHBOARD, handler)

        @self.app.get("/laporan/monthly")
        async def monthly(request: Request):
            async def handler(identity):
                return HandlerResult(data={"reports": await self.reports.monthly(identity.id)})

            return await self.gate.run(request, policies.LAPORAN_MONTHLY, handler)


def create_app():
    """Create FastAPI application."""
    service = EsawitkuService()
    return service.app


if __name__ == "__main__":
    service = EsawitkuService()
    service.run()
