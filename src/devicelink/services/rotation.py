"""Secret rotation on authentication rejection.

A cycle attempts delivery with the current secret. When the receiver
rejects the token as unauthorised and the credential carries a previous
secret, that previous secret is exchanged for a new one and delivery is
retried exactly once with freshly encoded and signed data. The renewed
secret lives only in the returned :class:`CycleOutcome`; it is never written
back to the store.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Protocol

from devicelink.errors import AuthRejectedError, DeviceLinkError, RenewalRejectedError

from .envelope.models import DeviceCredential, SignedToken
from .transport.results import DeliveryResult

__all__ = [
    "CycleState",
    "FailureReason",
    "CycleOutcome",
    "SecretRenewer",
    "SecretRotationClient",
]

_log = logging.getLogger(__name__)

TokenBuilder = Callable[[DeviceCredential], SignedToken]
Deliver = Callable[[SignedToken], Awaitable[DeliveryResult]]


class CycleState(str, Enum):
    DONE = "done"
    FAILED = "failed"


class FailureReason(str, Enum):
    NO_RENEWAL_POSSIBLE = "no_renewal_possible"
    RENEWAL_REJECTED = "renewal_rejected"
    DELIVERY_FAILED = "delivery_failed"


@dataclass(frozen=True, slots=True)
class CycleOutcome:
    state: CycleState
    result: DeliveryResult | None
    credential: DeviceCredential
    reason: FailureReason | None = None
    attempts: int = 1
    renewed: bool = False
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.state is CycleState.DONE

    def raise_for_failure(self) -> None:
        if self.ok:
            return
        if self.reason is FailureReason.RENEWAL_REJECTED and isinstance(self.error, RenewalRejectedError):
            raise self.error
        if self.result is not None and self.result.auth_rejected:
            raise AuthRejectedError(
                self.result.describe(),
                status_code=self.result.status_code or 0,
                body=self.result.body,
            )
        raise DeviceLinkError(self.result.describe() if self.result else "delivery failed")


class SecretRenewer(Protocol):
    async def renew_secret(self, device_id: str, old_secret: str) -> str:
        ...


class SecretRotationClient:
    def __init__(self, renewer: SecretRenewer) -> None:
        self._renewer = renewer

    async def deliver(
        self,
        credential: DeviceCredential,
        *,
        build_token: TokenBuilder,
        deliver: Deliver,
    ) -> CycleOutcome:
        """Run one delivery cycle with at most one renewal and one retry.

        ``build_token`` must encode and sign from scratch for the credential
        it receives, so the retry carries a fresh IV and ``iat``.
        """
        result = await deliver(build_token(credential))
        if result.ok:
            return CycleOutcome(CycleState.DONE, result, credential)
        if not result.auth_rejected:
            return CycleOutcome(CycleState.FAILED, result, credential, reason=FailureReason.DELIVERY_FAILED)
        if not credential.previous_secret:
            _log.warning("device %s rejected and no previous secret is stored", credential.device_id)
            return CycleOutcome(CycleState.FAILED, result, credential, reason=FailureReason.NO_RENEWAL_POSSIBLE)

        _log.info("device %s rejected with %s, renewing secret", credential.device_id, result.status_code)
        try:
            new_secret = await self._renewer.renew_secret(credential.device_id, credential.previous_secret)
        except RenewalRejectedError as exc:
            _log.warning("secret renewal for %s rejected: %s", credential.device_id, exc)
            return CycleOutcome(
                CycleState.FAILED,
                result,
                credential,
                reason=FailureReason.RENEWAL_REJECTED,
                error=exc,
            )

        renewed = credential.rotated(new_secret)
        retry = await deliver(build_token(renewed))
        if retry.ok:
            _log.info("device %s delivered after secret renewal", credential.device_id)
            return CycleOutcome(CycleState.DONE, retry, renewed, attempts=2, renewed=True)
        reason = FailureReason.RENEWAL_REJECTED if retry.auth_rejected else FailureReason.DELIVERY_FAILED
        return CycleOutcome(CycleState.FAILED, retry, renewed, reason=reason, attempts=2, renewed=True)
