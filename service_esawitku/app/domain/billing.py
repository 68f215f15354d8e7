"""
Package upgrades and manually verified payments.
"""

from typing import Any, Dict, List

from shared.errors import BusinessRuleError, ConflictError, NotFoundError
from shared.logging import get_logger

from ..models import (
    Paket,
    Payment,
    PaymentMethod,
    PaymentStatus,
    SubmitPaymentRequest,
    UpgradePaketRequest,
    VerifyPaymentRequest,
)
from .identity import Identity


class BillingService:

    def __init__(self, repository):
        self.repository = repository
        self.logger = get_logger("esawitku.billing")

    async def list_packages(self) -> List[Paket]:
        return await self.repository.list_packages()

    async def quote_upgrade(self, identity: Identity, request: UpgradePaketRequest) -> Dict[str, Any]:
        """Check an upgrade is allowed and return what has to be paid.

        Only moves to a strictly more expensive package are accepted.
        """
        target = await self.repository.get_package(request.paket_id)
        if target is None:
            raise NotFoundError("Paket not found")

        current = await self.repository.get_user_package(identity.id)
        if current is not None:
            if current.id == target.id:
                raise BusinessRuleError("You are already on this package")
            if target.harga <= current.harga:
                raise BusinessRuleError("You can only upgrade to a higher package")

        return {
            "requiresPayment": True,
            "paketId": target.id,
            "paketNama": target.nama,
            "paketHarga": target.harga,
        }

    async def list_payment_methods(self) -> List[PaymentMethod]:
        return await self.repository.list_payment_methods()

    async def submit_payment(self, identity: Identity, request: SubmitPaymentRequest) -> Payment:
        paket = await self.repository.get_package(request.paket_id)
        if paket is None:
            raise NotFoundError("Paket not found")
        if paket.harga <= 0:
            raise BusinessRuleError("The free package does not require payment")

        payment = await self.repository.create_payment(
            identity.id, paket.id, paket.harga, request.payment_method, request.payment_proof_url
        )
        self.logger.info(
            "Payment submitted",
            payment_id=payment.id,
            user_id=identity.id,
            paket_id=paket.id,
            amount=paket.harga,
        )
        return payment

    async def list_payments(self, identity: Identity) -> List[Payment]:
        """Admins see every payment; users see their own."""
        return await self.repository.list_payments(None if identity.is_admin else identity.id)

    async def verify_payment(self, identity: Identity, request: VerifyPaymentRequest):
        """Settle a pending payment. Returns (before, after)."""
        before = await self.repository.get_payment(request.payment_id)
        if before is None:
            raise NotFoundError("Payment not found")
        if before.payment_status is not PaymentStatus.PENDING:
            raise ConflictError(
                "Payment has already been processed",
                details={"payment_status": before.payment_status.value},
            )

        after = await self.repository.settle_payment(
            request.payment_id, PaymentStatus(request.status), request.admin_notes, identity.id
        )
        if after is None:
            # Settled by someone else between the read and the update.
            raise ConflictError("Payment has already been processed")
        return before, after
