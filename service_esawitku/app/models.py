"""
API and record models for the eSawitKu service.

Records use snake_case attributes and serialize with camelCase aliases,
matching the JSON the web client consumes.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel


def sanitize_text(value: str) -> str:
    """Trim and strip angle brackets from free text."""
    return value.strip().replace("<", "").replace(">", "")


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class PaymentStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


# ---------------------------------------------------------------- records

class UserRecord(ApiModel):
    id: str
    name: str
    email: str
    role: str
    is_active: bool = True
    paket_id: Optional[int] = None
    created_at: Optional[datetime] = None


class UserProfile(ApiModel):
    id: str
    name: str
    email: str
    role: str
    paket_name: Optional[str] = None
    paket_harga: Optional[float] = None
    max_kebun: Optional[int] = None
    fitur_ekspor: Optional[bool] = None
    kebun_count: int = 0
    created_at: Optional[datetime] = None


class UserListItem(ApiModel):
    id: str
    name: str
    email: str
    role: str
    is_active: bool = True
    paket_name: Optional[str] = None
    created_at: Optional[datetime] = None


class Kebun(ApiModel):
    id: int
    user_id: str
    nama: str
    luas_ha: float
    jumlah_pohon: int
    lokasi: Optional[str] = None
    created_at: datetime


class KebunListItem(ApiModel):
    id: int
    nama: str
    luas_ha: float
    jumlah_pohon: int
    lokasi: Optional[str] = None
    total_panen: int = 0
    total_pendapatan: float = 0
    created_at: datetime


class KebunQuota(ApiModel):
    max_kebun: int
    current_count: int


class Panen(ApiModel):
    id: int
    kebun_id: int
    kebun_nama: Optional[str] = None
    tanggal: date
    berat_kg: float
    harga_per_kg: float
    total_pendapatan: float
    created_at: datetime


class Pupuk(ApiModel):
    id: int
    kebun_id: int
    kebun_nama: Optional[str] = None
    tanggal: date
    jenis_pupuk: str
    biaya: float
    created_at: datetime


class Paket(ApiModel):
    id: int
    nama: str
    harga: float
    max_kebun: int
    fitur_ekspor: bool = False
    created_at: Optional[datetime] = None


class PaymentMethod(ApiModel):
    id: int
    bank_name: str
    account_number: str
    account_holder: str
    qr_code_url: Optional[str] = None
    is_active: bool = True


class Payment(ApiModel):
    id: int
    user_id: str
    user_name: Optional[str] = None
    paket_id: int
    paket_nama: Optional[str] = None
    amount: float
    payment_method: str
    payment_status: PaymentStatus
    payment_proof_url: Optional[str] = None
    admin_notes: Optional[str] = None
    verified_by: Optional[str] = None
    created_at: datetime
    verified_at: Optional[datetime] = None


class RecentPanenItem(ApiModel):
    id: int
    kebun_nama: str
    tanggal: date
    berat_kg: float
    total_pendapatan: float


class DashboardStats(ApiModel):
    total_kebun: int = 0
    total_luas_ha: float = 0
    total_pohon: int = 0
    total_panen: int = 0
    total_pendapatan: float = 0
    total_biaya_pupuk: float = 0
    recent_panen: List[RecentPanenItem] = Field(default_factory=list)


class MonthlyReport(ApiModel):
    month: str
    total_panen: int = 0
    total_berat_kg: float = 0
    total_pendapatan: float = 0
    total_biaya_pupuk: float = 0
    net_income: float = 0


# --------------------------------------------------------------- requests

class CreateKebunRequest(ApiModel):
    nama: str = Field(..., min_length=3, max_length=100)
    luas_ha: float = Field(..., ge=0.01)
    jumlah_pohon: int = Field(..., ge=1)
    lokasi: Optional[str] = Field(None, min_length=3, max_length=255)

    @field_validator("nama", "lokasi", mode="before")
    @classmethod
    def _sanitize(cls, value: Any, info: ValidationInfo) -> Any:
        # Length limits apply to the stored, sanitized text.
        if not isinstance(value, str):
            return value
        value = sanitize_text(value)
        if info.field_name == "lokasi" and not value:
            return None
        return value


class UpdateKebunRequest(CreateKebunRequest):
    pass


class CreatePanenRequest(ApiModel):
    kebun_id: int
    tanggal: date
    berat_kg: float = Field(..., gt=0)
    harga_per_kg: float = Field(..., gt=0)


class CreatePupukRequest(ApiModel):
    kebun_id: int
    tanggal: date
    jenis_pupuk: str = Field(..., min_length=1, max_length=100)
    biaya: float = Field(..., gt=0)

    @field_validator("jenis_pupuk")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = sanitize_text(value)
        if not value:
            raise ValueError("jenisPupuk cannot be empty")
        return value


class UpgradePaketRequest(ApiModel):
    paket_id: int


class SubmitPaymentRequest(ApiModel):
    paket_id: int
    payment_method: Literal["mandiri", "bri", "qris"]
    payment_proof_url: Optional[str] = Field(None, max_length=500)


class VerifyPaymentRequest(ApiModel):
    payment_id: int
    status: Literal["verified", "rejected"]
    admin_notes: Optional[str] = Field(None, max_length=500)


class UpdateProfileRequest(ApiModel):
    name: str = Field(..., min_length=1, max_length=100)

    @field_validator("name")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = sanitize_text(value)
        if not value:
            raise ValueError("name cannot be empty")
        return value


class UpdateUserRoleRequest(ApiModel):
    role: Literal["user", "admin"]
