"""
eSawitKu API service package.

Every API endpoint is wrapped by the request gate, which enforces, in order:
- Rate limiting: fixed-window counters in Redis, failing open
- Authentication: provider-issued JWTs (bearer or session cookie) or API keys
- Authorization: coarse role-derived permissions
- Auditing: best-effort background writes after the handler succeeds

Structure:
- app.main: FastAPI app, routes, and lifecycle wiring.
- app.auth: Token verification, user directory client, identity resolution.
- app.ratelimit: Fixed-window rate limiter.
- app.domain: Identity model, permissions, the gate, and business services.
- app.audit: Asynchronous audit recorder.
- app.persistence: asyncpg-backed repositories.
"""
