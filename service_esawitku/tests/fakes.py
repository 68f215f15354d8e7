"""
In-memory stand-ins for the asyncpg repositories and provider clients.

They follow the repositories' contracts: every plantation query is filtered
by owner, user creation reports a conflict by returning None, and payment
settlement only matches pending rows.
"""

import itertools
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from service_esawitku.app.auth.directory_client import DirectoryUser
from service_esawitku.app.auth.jwks import JWKSTokenVerifier
from service_esawitku.app.main import ServiceComponents
from service_esawitku.app.models import (
    DashboardStats,
    Kebun,
    KebunListItem,
    KebunQuota,
    MonthlyReport,
    Paket,
    Panen,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Pupuk,
    RecentPanenItem,
    UserListItem,
    UserProfile,
    UserRecord,
)
from service_esawitku.app.persistence.users import hash_api_key
from service_esawitku.app.ratelimit.fixed_window import FixedWindowRateLimiter
from shared.errors import ExternalServiceError
from shared.test_helpers import FakeRedis, MockTokenGenerator


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryStore:
    """Tables shared by the in-memory repositories."""

    def __init__(self):
        self.paket: Dict[int, Paket] = {
            1: Paket(id=1, nama="Free", harga=0, max_kebun=1, fitur_ekspor=False),
            2: Paket(id=2, nama="Premium", harga=299000, max_kebun=5, fitur_ekspor=True),
            3: Paket(id=3, nama="Enterprise", harga=599000, max_kebun=50, fitur_ekspor=True),
        }
        self.users: Dict[str, UserRecord] = {}
        self.super_admin_emails: set = set()
        self.api_keys: Dict[str, str] = {}
        self.subscriptions: List[Dict[str, Any]] = []
        self.kebun: Dict[int, Kebun] = {}
        self.panen: Dict[int, Panen] = {}
        self.pupuk: Dict[int, Pupuk] = {}
        self.payments: Dict[int, Payment] = {}
        self.payment_methods: List[PaymentMethod] = [
            PaymentMethod(id=1, bank_name="Mandiri", account_number="1234567890", account_holder="PT eSawitKu"),
            PaymentMethod(id=2, bank_name="BRI", account_number="0987654321", account_holder="PT eSawitKu"),
        ]
        self.audit_logs: List[Any] = []
        self.user_inserts = 0
        self._ids = itertools.count(1)

    def next_id(self) -> int:
        return next(self._ids)

    def add_user(self, user_id: str, email: str, role: str = "user", *, paket_id: int = 1,
                 name: Optional[str] = None, is_active: bool = True) -> UserRecord:
        user = UserRecord(
            id=user_id,
            name=name or email,
            email=email,
            role=role,
            is_active=is_active,
            paket_id=paket_id,
            created_at=_now(),
        )
        self.users[user_id] = user
        return user

    def add_api_key(self, user_id: str, api_key: str) -> None:
        self.api_keys[hash_api_key(api_key)] = user_id


class InMemoryUserRepository:

    def __init__(self, store: InMemoryStore):
        self.store = store

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        return self.store.users.get(user_id)

    async def is_super_admin_email(self, email: str) -> bool:
        return email.lower() in self.store.super_admin_emails

    async def create_user(self, user_id: str, name: str, email: str, role: str) -> Optional[UserRecord]:
        if user_id in self.store.users:
            return None
        self.store.user_inserts += 1
        user = self.store.add_user(user_id, email, role, name=name)
        self.store.subscriptions.append({"user_id": user_id, "paket_id": 1, "is_active": True})
        return user

    async def get_user_by_api_key(self, api_key: str) -> Optional[UserRecord]:
        user_id = self.store.api_keys.get(hash_api_key(api_key))
        return self.store.users.get(user_id) if user_id else None

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        user = self.store.users.get(user_id)
        if user is None:
            return None
        paket = self.store.paket.get(user.paket_id)
        return UserProfile(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            paket_name=paket.nama if paket else None,
            paket_harga=paket.harga if paket else None,
            max_kebun=paket.max_kebun if paket else None,
            fitur_ekspor=paket.fitur_ekspor if paket else None,
            kebun_count=sum(1 for k in self.store.kebun.values() if k.user_id == user_id),
            created_at=user.created_at,
        )

    async def update_name(self, user_id: str, name: str) -> bool:
        user = self.store.users.get(user_id)
        if user is None:
            return False
        self.store.users[user_id] = user.model_copy(update={"name": name})
        return True

    async def list_users(self) -> List[UserListItem]:
        items = []
        for user in self.store.users.values():
            paket = self.store.paket.get(user.paket_id)
            items.append(UserListItem(
                id=user.id, name=user.name, email=user.email, role=user.role,
                is_active=user.is_active, paket_name=paket.nama if paket else None,
                created_at=user.created_at,
            ))
        return items

    async def update_role(self, user_id: str, role: str) -> bool:
        user = self.store.users.get(user_id)
        if user is None:
            return False
        self.store.users[user_id] = user.model_copy(update={"role": role})
        return True


class InMemoryPlantationRepository:

    def __init__(self, store: InMemoryStore):
        self.store = store

    def _owned_kebun(self, user_id: str, kebun_id: int) -> Optional[Kebun]:
        kebun = self.store.kebun.get(kebun_id)
        return kebun if kebun and kebun.user_id == user_id else None

    async def get_kebun_quota(self, user_id: str) -> Optional[KebunQuota]:
        user = self.store.users.get(user_id)
        if user is None:
            return None
        paket = self.store.paket.get(user.paket_id)
        return KebunQuota(
            max_kebun=paket.max_kebun if paket else 0,
            current_count=sum(1 for k in self.store.kebun.values() if k.user_id == user_id),
        )

    async def create_kebun(self, user_id, nama, luas_ha, jumlah_pohon, lokasi) -> Kebun:
        kebun = Kebun(
            id=self.store.next_id(), user_id=user_id, nama=nama, luas_ha=luas_ha,
            jumlah_pohon=jumlah_pohon, lokasi=lokasi, created_at=_now(),
        )
        self.store.kebun[kebun.id] = kebun
        return kebun

    async def get_kebun(self, user_id: str, kebun_id: int) -> Optional[Kebun]:
        return self._owned_kebun(user_id, kebun_id)

    async def list_kebun(self, user_id: str) -> List[KebunListItem]:
        items = []
        for kebun in self.store.kebun.values():
            if kebun.user_id != user_id:
                continue
            harvests = [p for p in self.store.panen.values() if p.kebun_id == kebun.id]
            items.append(KebunListItem(
                id=kebun.id, nama=kebun.nama, luas_ha=kebun.luas_ha, jumlah_pohon=kebun.jumlah_pohon,
                lokasi=kebun.lokasi, total_panen=len(harvests),
                total_pendapatan=sum(p.total_pendapatan for p in harvests), created_at=kebun.created_at,
            ))
        return items

    async def update_kebun(self, user_id, kebun_id, nama, luas_ha, jumlah_pohon, lokasi) -> Optional[Kebun]:
        kebun = self._owned_kebun(user_id, kebun_id)
        if kebun is None:
            return None
        updated = kebun.model_copy(update={
            "nama": nama, "luas_ha": luas_ha, "jumlah_pohon": jumlah_pohon, "lokasi": lokasi,
        })
        self.store.kebun[kebun_id] = updated
        return updated

    async def delete_kebun(self, user_id: str, kebun_id: int) -> bool:
        if self._owned_kebun(user_id, kebun_id) is None:
            return False
        del self.store.kebun[kebun_id]
        for table in (self.store.panen, self.store.pupuk):
            for record_id in [r.id for r in table.values() if r.kebun_id == kebun_id]:
                del table[record_id]
        return True

    async def create_panen(self, user_id, kebun_id, tanggal: date, berat_kg, harga_per_kg,
                           total_pendapatan) -> Optional[Panen]:
        kebun = self._owned_kebun(user_id, kebun_id)
        if kebun is None:
            return None
        panen = Panen(
            id=self.store.next_id(), kebun_id=kebun_id, kebun_nama=kebun.nama, tanggal=tanggal,
            berat_kg=berat_kg, harga_per_kg=harga_per_kg, total_pendapatan=total_pendapatan,
            created_at=_now(),
        )
        self.store.panen[panen.id] = panen
        return panen

    async def get_panen(self, user_id: str, panen_id: int) -> Optional[Panen]:
        panen = self.store.panen.get(panen_id)
        if panen is None or self._owned_kebun(user_id, panen.kebun_id) is None:
            return None
        return panen

    async def list_panen(self, user_id: str, kebun_id: Optional[int] = None) -> List[Panen]:
        return [
            p for p in self.store.panen.values()
            if self._owned_kebun(user_id, p.kebun_id) and (kebun_id is None or p.kebun_id == kebun_id)
        ]

    async def delete_panen(self, user_id: str, panen_id: int) -> bool:
        if await self.get_panen(user_id, panen_id) is None:
            return False
        del self.store.panen[panen_id]
        return True

    async def create_pupuk(self, user_id, kebun_id, tanggal: date, jenis_pupuk, biaya) -> Optional[Pupuk]:
        kebun = self._owned_kebun(user_id, kebun_id)
        if kebun is None:
            return None
        pupuk = Pupuk(
            id=self.store.next_id(), kebun_id=kebun_id, kebun_nama=kebun.nama, tanggal=tanggal,
            jenis_pupuk=jenis_pupuk, biaya=biaya, created_at=_now(),
        )
        self.store.pupuk[pupuk.id] = pupuk
        return pupuk

    async def get_pupuk(self, user_id: str, pupuk_id: int) -> Optional[Pupuk]:
        pupuk = self.store.pupuk.get(pupuk_id)
        if pupuk is None or self._owned_kebun(user_id, pupuk.kebun_id) is None:
            return None
        return pupuk

    async def list_pupuk(self, user_id: str, kebun_id: Optional[int] = None) -> List[Pupuk]:
        return [
            p for p in self.store.pupuk.values()
            if self._owned_kebun(user_id, p.kebun_id) and (kebun_id is None or p.kebun_id == kebun_id)
        ]

    async def delete_pupuk(self, user_id: str, pupuk_id: int) -> bool:
        if await self.get_pupuk(user_id, pupuk_id) is None:
            return False
        del self.store.pupuk[pupuk_id]
        return True


class InMemoryBillingRepository:

    def __init__(self, store: InMemoryStore):
        self.store = store

    async def list_packages(self) -> List[Paket]:
        return sorted(self.store.paket.values(), key=lambda p: (p.harga, p.id))

    async def get_package(self, paket_id: int) -> Optional[Paket]:
        return self.store.paket.get(paket_id)

    async def get_user_package(self, user_id: str) -> Optional[Paket]:
        user = self.store.users.get(user_id)
        return self.store.paket.get(user.paket_id) if user and user.paket_id else None

    async def list_payment_methods(self) -> List[PaymentMethod]:
        return [m for m in self.store.payment_methods if m.is_active]

    async def create_payment(self, user_id, paket_id, amount, payment_method, payment_proof_url) -> Payment:
        payment = Payment(
            id=self.store.next_id(), user_id=user_id, user_name=self.store.users[user_id].name,
            paket_id=paket_id, paket_nama=self.store.paket[paket_id].nama, amount=amount,
            payment_method=payment_method, payment_status=PaymentStatus.PENDING,
            payment_proof_url=payment_proof_url, created_at=_now(),
        )
        self.store.payments[payment.id] = payment
        return payment

    async def get_payment(self, payment_id: int) -> Optional[Payment]:
        return self.store.payments.get(payment_id)

    async def list_payments(self, user_id: Optional[str] = None) -> List[Payment]:
        return [p for p in self.store.payments.values() if user_id is None or p.user_id == user_id]

    async def settle_payment(self, payment_id, status: PaymentStatus, admin_notes, verified_by) -> Optional[Payment]:
        payment = self.store.payments.get(payment_id)
        if payment is None or payment.payment_status is not PaymentStatus.PENDING:
            return None
        settled = payment.model_copy(update={
            "payment_status": status, "admin_notes": admin_notes,
            "verified_by": verified_by, "verified_at": _now(),
        })
        self.store.payments[payment_id] = settled
        if status is PaymentStatus.VERIFIED:
            for subscription in self.store.subscriptions:
                if subscription["user_id"] == payment.user_id:
                    subscription["is_active"] = False
            self.store.subscriptions.append(
                {"user_id": payment.user_id, "paket_id": payment.paket_id, "is_active": True}
            )
            user = self.store.users[payment.user_id]
            self.store.users[payment.user_id] = user.model_copy(update={"paket_id": payment.paket_id})
        return settled


class InMemoryReportRepository:

    def __init__(self, store: InMemoryStore):
        self.store = store

    async def dashboard(self, user_id: str) -> DashboardStats:
        kebun = [k for k in self.store.kebun.values() if k.user_id == user_id]
        owned = {k.id for k in kebun}
        panen = [p for p in self.store.panen.values() if p.kebun_id in owned]
        pupuk = [p for p in self.store.pupuk.values() if p.kebun_id in owned]
        recent = sorted(panen, key=lambda p: (p.tanggal, p.id), reverse=True)[:5]
        return DashboardStats(
            total_kebun=len(kebun),
            total_luas_ha=sum(k.luas_ha for k in kebun),
            total_pohon=sum(k.jumlah_pohon for k in kebun),
            total_panen=len(panen),
            total_pendapatan=sum(p.total_pendapatan for p in panen),
            total_biaya_pupuk=sum(p.biaya for p in pupuk),
            recent_panen=[
                RecentPanenItem(id=p.id, kebun_nama=p.kebun_nama, tanggal=p.tanggal,
                                berat_kg=p.berat_kg, total_pendapatan=p.total_pendapatan)
                for p in recent
            ],
        )

    async def monthly(self, user_id: str) -> List[MonthlyReport]:
        owned = {k.id for k in self.store.kebun.values() if k.user_id == user_id}
        months: Dict[str, Dict[str, float]] = {}
        for p in self.store.panen.values():
            if p.kebun_id in owned:
                row = months.setdefault(p.tanggal.strftime("%Y-%m"), {"n": 0, "kg": 0, "rev": 0, "cost": 0})
                row["n"] += 1
                row["kg"] += p.berat_kg
                row["rev"] += p.total_pendapatan
        for p in self.store.pupuk.values():
            if p.kebun_id in owned:
                row = months.setdefault(p.tanggal.strftime("%Y-%m"), {"n": 0, "kg": 0, "rev": 0, "cost": 0})
                row["cost"] += p.biaya
        return [
            MonthlyReport(month=month, total_panen=int(row["n"]), total_berat_kg=row["kg"],
                          total_pendapatan=row["rev"], total_biaya_pupuk=row["cost"],
                          net_income=row["rev"] - row["cost"])
            for month, row in sorted(months.items(), reverse=True)[:12]
        ]


class InMemoryAuditRepository:

    def __init__(self, store: InMemoryStore, fail: bool = False):
        self.store = store
        self.fail = fail

    async def append(self, entry) -> None:
        if self.fail:
            raise ConnectionError("audit store unavailable")
        self.store.audit_logs.append(entry)


class FakeDirectory:
    """User directory returning canned users."""

    def __init__(self, users: Optional[Dict[str, DirectoryUser]] = None):
        self.users = dict(users or {})
        self.calls: List[str] = []

    async def get_user(self, subject: str) -> DirectoryUser:
        self.calls.append(subject)
        if subject not in self.users:
            raise ExternalServiceError("user_directory", "lookup failed")
        return self.users[subject]

    async def close(self) -> None:
        pass


def build_components(
    store: InMemoryStore,
    tokens: MockTokenGenerator,
    *,
    redis: Optional[FakeRedis] = None,
    directory: Optional[FakeDirectory] = None,
    audit_fail: bool = False,
    jwks_transport: Optional[httpx.MockTransport] = None,
) -> ServiceComponents:
    """Service components over in-memory storage and a JWKS served from memory."""
    verifier = JWKSTokenVerifier(
        "https://clerk.esawitku.test/.well-known/jwks.json",
        issuer=tokens.issuer,
        authorized_parties=["https://app.esawitku.test", "http://localhost:*"],
        http_client=httpx.AsyncClient(transport=jwks_transport or tokens.jwks_transport()),
    )
    return ServiceComponents(
        limiter=FixedWindowRateLimiter("redis://unused", client=redis or FakeRedis()),
        token_verifier=verifier,
        directory=directory or FakeDirectory(),
        users=InMemoryUserRepository(store),
        plantations=InMemoryPlantationRepository(store),
        billing=InMemoryBillingRepository(store),
        reports=InMemoryReportRepository(store),
        audit_repository=InMemoryAuditRepository(store, fail=audit_fail),
        database=None,
    )
