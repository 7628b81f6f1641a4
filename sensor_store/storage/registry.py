"""
Process-wide shared access to one initialized StorageService.

Concurrent first callers must not each run initialize(): that would open
several handles on the same database file and race the schema statements.
The registry keeps one lazily-populated cell, an in-flight flag and a list
of waiters that are all settled when the single initialization finishes.

Services that can take the StorageService through their constructor should
do so; the registry exists for callers that need the shared instance.
"""

import asyncio
from typing import Callable, Dict, List, Optional

from sensor_store.config import AppConfig, StorageSettings
from sensor_store.storage.service import StorageService
from sensor_store.utils import get_logger

logger = get_logger(__name__)

ServiceFactory = Callable[[], StorageService]


class StorageRegistry:
    """Lazily builds, caches and hands out a single StorageService."""

    def __init__(self, factory: ServiceFactory):
        """
        Args:
            factory: Builds an uninitialized StorageService
        """
        self._factory = factory
        self._instance: Optional[StorageService] = None
        self._initializing = False
        self._waiters: List[asyncio.Future] = []

    @property
    def instance(self) -> Optional[StorageService]:
        return self._instance

    @property
    def initializing(self) -> bool:
        return self._initializing

    async def get_instance(self) -> StorageService:
        """
        Return the shared service, initializing it on first use.

        A cached instance is returned without suspending. Callers arriving
        while an initialization is in flight wait for that one to finish.
        """
        if self._instance is not None:
            return self._instance

        if self._initializing:
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            return await waiter

        self._initializing = True
        try:
            logger.info("Initializing shared storage service...")
            service = self._factory()
            result = await service.initialize()
            logger.info(f"Shared storage service initialized in {result.backend.value} mode")
        except BaseException as e:
            logger.error(f"Shared storage service failed to initialize: {e}")
            self._settle_waiters(error=e)
            raise
        else:
            self._instance = service
            self._settle_waiters(service=service)
            return service
        finally:
            self._initializing = False

    def _settle_waiters(
        self,
        service: Optional[StorageService] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if waiter.done():
                continue
            if service is not None:
                waiter.set_result(service)
            elif isinstance(error, Exception):
                waiter.set_exception(error)
            else:
                waiter.cancel()

    async def close(self) -> None:
        """
        Close and forget the cached service so the next get_instance() builds a fresh one.

        An initialization still in flight is awaited first and its service is
        closed, so no open instance outlives close(). The caller that started
        that initialization receives the service already closed.
        """
        if self._initializing:
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            # A failed initialization leaves nothing to close; its caller gets the error
            await asyncio.gather(waiter, return_exceptions=True)

        instance, self._instance = self._instance, None
        if instance is not None:
            await instance.close()
            logger.info("Shared storage service closed")


_registries: Dict[Optional[str], StorageRegistry] = {}


def _resolve_settings(settings: Optional[StorageSettings]) -> StorageSettings:
    if settings is None:
        return AppConfig.load().storage
    return settings


def get_registry(settings: Optional[StorageSettings] = None) -> StorageRegistry:
    """
    Get the registry for a configuration scope.

    Each ``test_id`` gets its own registry (and so its own backing files);
    ``None`` is the process-wide default scope.
    """
    settings = _resolve_settings(settings)
    key = settings.test_id
    registry = _registries.get(key)
    if registry is None:
        registry = StorageRegistry(lambda: StorageService(settings))
        _registries[key] = registry
    return registry


async def get_storage_service(settings: Optional[StorageSettings] = None) -> StorageService:
    """Shared StorageService for the given scope."""
    return await get_registry(settings).get_instance()


async def close_storage_service(settings: Optional[StorageSettings] = None) -> None:
    settings = _resolve_settings(settings)
    registry = _registries.pop(settings.test_id, None)
    if registry is not None:
        await registry.close()


async def close_all() -> None:
    """Close every scope's shared service."""
    registries = list(_registries.values())
    _registries.clear()
    for registry in registries:
        await registry.close()
