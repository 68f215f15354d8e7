"""
Request gate wrapping every eSawitKu API endpoint.

Each request passes through a fixed, short-circuiting sequence:

    rate limit -> authenticate -> authorize -> handler -> audit -> respond

Public endpoints skip authentication, authorization and audit. Any step may
raise an EsawitException; the service's exception handlers render it as the
error envelope. Steps already taken are not undone, so a rejected request
still consumes its rate limit slot.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, Optional, Type, TypeVar

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from shared.errors import (
    EsawitException,
    ExternalServiceError,
    RateLimitError,
    SuccessResponse,
    ValidationError,
)
from shared.logging import get_logger, set_user_context
from shared.metrics import MetricsCollector

from ..audit.recorder import AuditEntry, AuditRecorder
from ..ratelimit.fixed_window import FixedWindowRateLimiter, RateLimitRule, client_identifier
from .identity import Credentials, Identity
from .permissions import READ, PermissionChecker

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class EndpointPolicy:
    """What the gate enforces for one endpoint.

    ``name`` doubles as the rate limit endpoint key and the audit action.
    """
    name: str
    resource: str
    required_permissions: FrozenSet[str] = frozenset({READ})
    rate_limit: Optional[RateLimitRule] = None
    public: bool = False


@dataclass
class HandlerResult:
    """Handler outcome: the response payload plus what to audit."""
    data: Any = None
    message: Optional[str] = None
    status_code: int = 200
    resource_id: Optional[Any] = None
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None


Handler = Callable[[Optional[Identity]], Awaitable[HandlerResult]]


class RequestGate:
    """Run a handler behind rate limiting, authentication, authorization and audit."""

    def __init__(
        self,
        limiter: FixedWindowRateLimiter,
        resolver,
        checker: PermissionChecker,
        audit: AuditRecorder,
        *,
        default_rule: RateLimitRule,
        overrides: Optional[Dict[str, RateLimitRule]] = None,
        step_timeout_seconds: Optional[float] = None,
        trusted_proxies: Iterable[str] = (),
        metrics: Optional[MetricsCollector] = None,
    ):
        self.limiter = limiter
        self.resolver = resolver
        self.checker = checker
        self.audit = audit
        self.default_rule = default_rule
        self.overrides = dict(overrides or {})
        self.step_timeout_seconds = step_timeout_seconds
        self.trusted_proxies = frozenset(trusted_proxies)
        self.metrics = metrics
        self.logger = get_logger("esawitku.gate")

    def rule_for(self, policy: EndpointPolicy) -> RateLimitRule:
        """Configured override, then the policy's own rule, then the default."""
        return self.overrides.get(policy.name) or policy.rate_limit or self.default_rule

    async def run(self, request: Request, policy: EndpointPolicy, handler: Handler) -> JSONResponse:
        try:
            return await self._run(request, policy, handler)
        except EsawitException as e:
            if self.metrics:
                self.metrics.record_gate_rejection(policy.name, e.code)
            raise

    async def _run(self, request: Request, policy: EndpointPolicy, handler: Handler) -> JSONResponse:
        ip_address = client_identifier(request, self.trusted_proxies)

        rule = self.rule_for(policy)
        decision = await self.limiter.check(ip_address, policy.name, rule.limit, rule.window_seconds)
        if not decision.allowed:
            raise RateLimitError(
                "Too many requests, please try again later",
                details={"limit": rule.limit, "window_seconds": rule.window_seconds},
                retry_after=decision.reset_in_seconds,
                headers=decision.headers(),
            )

        identity: Optional[Identity] = None
        if not policy.public:
            identity = await self._bounded(
                self.resolver.resolve(Credentials.from_request(request)),
                "identity_provider",
            )
            set_user_context(identity.id)
            self.checker.authorize(identity, policy.required_permissions)

        result = await handler(identity)

        if identity is not None:
            self.audit.record(
                AuditEntry(
                    user_id=identity.id,
                    action=policy.name,
                    resource=policy.resource,
                    resource_id=str(result.resource_id) if result.resource_id is not None else None,
                    old_values=_jsonable_or_none(result.old_values),
                    new_values=_jsonable_or_none(result.new_values),
                    ip_address=ip_address,
                    user_agent=request.headers.get("User-Agent"),
                )
            )

        body = SuccessResponse(data=jsonable_encoder(result.data), message=result.message)
        return JSONResponse(
            status_code=result.status_code,
            content=body.model_dump(exclude_none=True),
            headers=decision.headers(),
        )

    async def _bounded(self, awaitable: Awaitable[Any], service: str) -> Any:
        if not self.step_timeout_seconds:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=self.step_timeout_seconds)
        except asyncio.TimeoutError:
            self.logger.error("Gate step timed out", service=service, timeout=self.step_timeout_seconds)
            raise ExternalServiceError(service, "timed out")


def _jsonable_or_none(values: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    return jsonable_encoder(values) if values is not None else None


async def parse_body(request: Request, model: Type[ModelT]) -> ModelT:
    """Validate the JSON body against model, raising ValidationError with field details."""
    try:
        payload = await request.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON")

    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        fields = {
            ".".join(str(part) for part in error["loc"]) or "body": error["msg"]
            for error in e.errors()
        }
        raise ValidationError(details={"fields": fields})


def parse_id(value: Optional[str], field_name: str) -> Optional[int]:
    """Parse a path or query identifier; None passes through."""
    if value is None:
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(details={"fields": {field_name: "must be an integer"}})
    if parsed < 1:
        raise ValidationError(details={"fields": {field_name: "must be positive"}})
    return parsed
