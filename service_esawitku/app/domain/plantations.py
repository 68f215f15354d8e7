"""
Plantation, harvest and fertilizer operations.
"""

from typing import List, Optional

from shared.errors import BusinessRuleError, NotFoundError
from shared.logging import get_logger

from ..models import (
    CreateKebunRequest,
    CreatePanenRequest,
    CreatePupukRequest,
    Kebun,
    KebunListItem,
    Panen,
    Pupuk,
    UpdateKebunRequest,
)
from .identity import Identity


def harvest_revenue(berat_kg: float, harga_per_kg: float) -> float:
    """Revenue of a harvest, rounded to cents to avoid float noise."""
    return round(berat_kg * harga_per_kg, 2)


class PlantationService:
    """Owner-scoped kebun, panen and pupuk management."""

    def __init__(self, repository):
        self.repository = repository
        self.logger = get_logger("esawitku.plantations")

    # ------------------------------------------------------------ kebun

    async def create_kebun(self, identity: Identity, request: CreateKebunRequest) -> Kebun:
        quota = await self.repository.get_kebun_quota(identity.id)
        if quota is None:
            raise NotFoundError("User not found")
        if quota.current_count >= quota.max_kebun:
            raise BusinessRuleError(
                f"Your package allows at most {quota.max_kebun} plantation(s); upgrade to add more",
                details={"max_kebun": quota.max_kebun, "current_count": quota.current_count},
            )

        kebun = await self.repository.create_kebun(
            identity.id, request.nama, request.luas_ha, request.jumlah_pohon, request.lokasi
        )
        self.logger.info("Kebun created", kebun_id=kebun.id, user_id=identity.id)
        return kebun

    async def list_kebun(self, identity: Identity) -> List[KebunListItem]:
        return await self.repository.list_kebun(identity.id)

    async def get_kebun(self, identity: Identity, kebun_id: int) -> Kebun:
        kebun = await self.repository.get_kebun(identity.id, kebun_id)
        if kebun is None:
            raise NotFoundError("Kebun not found")
        return kebun

    async def update_kebun(self, identity: Identity, kebun_id: int, request: UpdateKebunRequest):
        """Returns (before, after)."""
        before = await self.get_kebun(identity, kebun_id)
        after = await self.repository.update_kebun(
            identity.id, kebun_id, request.nama, request.luas_ha, request.jumlah_pohon, request.lokasi
        )
        if after is None:
            raise NotFoundError("Kebun not found")
        return before, after

    async def delete_kebun(self, identity: Identity, kebun_id: int) -> Kebun:
        before = await self.get_kebun(identity, kebun_id)
        if not await self.repository.delete_kebun(identity.id, kebun_id):
            raise NotFoundError("Kebun not found")
        self.logger.info("Kebun deleted", kebun_id=kebun_id, user_id=identity.id)
        return before

    # ------------------------------------------------------------ panen

    async def create_panen(self, identity: Identity, request: CreatePanenRequest) -> Panen:
        total = harvest_revenue(request.berat_kg, request.harga_per_kg)
        panen = await self.repository.create_panen(
            identity.id, request.kebun_id, request.tanggal, request.berat_kg, request.harga_per_kg, total
        )
        if panen is None:
            raise NotFoundError("Kebun not found")
        return panen

    async def list_panen(self, identity: Identity, kebun_id: Optional[int] = None) -> List[Panen]:
        return await self.repository.list_panen(identity.id, kebun_id)

    async def get_panen(self, identity: Identity, panen_id: int) -> Panen:
        panen = await self.repository.get_panen(identity.id, panen_id)
        if panen is None:
            raise NotFoundError("Panen not found")
        return panen

    async def delete_panen(self, identity: Identity, panen_id: int) -> Panen:
        before = await self.get_panen(identity, panen_id)
        if not await self.repository.delete_panen(identity.id, panen_id):
            raise NotFoundError("Panen not found")
        return before

    # ------------------------------------------------------------ pupuk

    async def create_pupuk(self, identity: Identity, request: CreatePupukRequest) -> Pupuk:
        pupuk = await self.repository.create_pupuk(
            identity.id, request.kebun_id, request.tanggal, request.jenis_pupuk, request.biaya
        )
        if pupuk is None:
            raise NotFoundError("Kebun not found")
        return pupuk

    async def list_pupuk(self, identity: Identity, kebun_id: Optional[int] = None) -> List[Pupuk]:
        return await self.repository.list_pupuk(identity.id, kebun_id)

    async def get_pupuk(self, identity: Identity, pupuk_id: int) -> Pupuk:
        pupuk = await self.repository.get_pupuk(identity.id, pupuk_id)
        if pupuk is None:
            raise NotFoundError("Pupuk not found")
        return pupuk

    async def delete_pupuk(self, identity: Identity, pupuk_id: int) -> Pupuk:
        before = await self.get_pupuk(identity, pupuk_id)
        if not await self.repository.delete_pupuk(identity.id, pupuk_id):
            raise NotFoundError("Pupuk not found")
        return before
