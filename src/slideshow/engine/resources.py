"""Exclusive device resources held for the lifetime of a session."""

from __future__ import annotations

import logging

from ..backends.base import PresentationBackend
from ..domain.models import ResourceKind, ResourceLease
from ..exceptions import ResourceAcquisitionError
from .cancellation import CancellationToken

logger = logging.getLogger(__name__)


class ResourceGuard:
    """Acquire presentation and wake-lock leases and release each exactly once."""

    def __init__(
        self,
        backend: PresentationBackend,
        *,
        token: CancellationToken | None = None,
    ) -> None:
        self._backend = backend
        self._token = token
        self.leases: dict[ResourceKind, ResourceLease] = {
            kind: ResourceLease(kind=kind) for kind in ResourceKind
        }

    def held(self) -> list[ResourceKind]:
        return [kind for kind, lease in self.leases.items() if lease.held]

    async def acquire_all(self) -> list[ResourceKind]:
        """Try every resource kind; failures degrade instead of aborting."""

        for kind in ResourceKind:
            await self.reacquire(kind)
        return self.held()

    async def reacquire(self, kind: ResourceKind) -> bool:
        """Request ``kind`` unless it is already held; return whether it is held."""

        lease = self.leases[kind]
        if lease.held:
            return True
        if self._cancelled():
            return False
        try:
            handle = await self._request(kind)
        except (ResourceAcquisitionError, NotImplementedError) as exc:
            logger.warning(
                "resources.acquire.denied",
                extra={"resource": kind.value, "error": str(exc) or exc.__class__.__name__},
            )
            return False
        if self._cancelled():
            logger.info("resources.acquire.discarded", extra={"resource": kind.value})
            await self._release_handle(kind, handle)
            return False
        self.leases[kind] = ResourceLease(kind=kind, acquired=True, handle=handle)
        logger.info("resources.acquired", extra={"resource": kind.value})
        return True

    async def refresh(self, kind: ResourceKind) -> bool:
        """Swap a lease the platform may have dropped for a fresh one."""

        if self._cancelled():
            return False
        lease = self.leases[kind]
        if lease.held:
            lease.released = True
            handle, lease.handle = lease.handle, None
            await self._release_handle(kind, handle)
        return await self.reacquire(kind)

    async def release_all(self) -> list[ResourceKind]:
        """Release held leases; a second call releases nothing."""

        released: list[ResourceKind] = []
        for kind, lease in self.leases.items():
            if not lease.held:
                continue
            lease.released = True
            handle, lease.handle = lease.handle, None
            await self._release_handle(kind, handle)
            released.append(kind)
        return released

    async def _request(self, kind: ResourceKind):
        if kind is ResourceKind.PRESENTATION:
            return await self._backend.request_exclusive_display()
        return await self._backend.request_wake_lock()

    async def _release_handle(self, kind: ResourceKind, handle) -> None:
        try:
            await handle.release()
        except Exception:
            logger.exception("resources.release.failed", extra={"resource": kind.value})
        else:
            logger.info("resources.released", extra={"resource": kind.value})

    def _cancelled(self) -> bool:
        return self._token is not None and self._token.cancelled


__all__ = ["ResourceGuard"]
