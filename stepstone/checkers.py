"""
stepstone/checkers.py — One checker per deployment role.

A checker owns a frozen config snapshot, runs its verifiers in a fixed order
and reduces their details to a single CheckResult. It never raises for a
failed check; only construction with the wrong config type is an error.

Usage:
    checker = build_checker("datanode", config, include_performance=True)
    result = asyncio.run(checker.check())
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from stepstone.config.roles import DatanodeConfig, FrontendConfig, MetasrvConfig, Role, RoleConfig
from stepstone.config.settings import Settings
from stepstone.health import CheckDetail, CheckResult
from stepstone.health import metadata as health_metadata
from stepstone.health import object_storage as health_storage
from stepstone.health import server as health_server
from stepstone.health.connectivity import TcpDialer, probe_endpoints
from stepstone.log import get_logger

logger = get_logger(__name__)


class ComponentChecker(ABC):
    component_name: str = ""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or Settings()

    @abstractmethod
    async def check(self) -> CheckResult: ...

    async def _metasrv_connectivity(
        self, addresses: Sequence[str], dialer: TcpDialer | None
    ) -> list[CheckDetail]:
        return await probe_endpoints(
            addresses,
            target="Metasrv",
            config_key="metasrv_addrs",
            dialer=dialer,
            timeout=self.settings.CONNECT_TIMEOUT_SECONDS,
        )


class FrontendChecker(ComponentChecker):
    component_name = "Frontend"

    def __init__(
        self,
        config: FrontendConfig,
        *,
        settings: Settings | None = None,
        dialer: TcpDialer | None = None,
    ) -> None:
        super().__init__(settings)
        self.config = config
        self.dialer = dialer

    async def check(self) -> CheckResult:
        logger.debug("frontend: metasrv connectivity (%d addrs)", len(self.config.metasrv_addrs))
        details = await self._metasrv_connectivity(self.config.metasrv_addrs, self.dialer)
        logger.debug("frontend: server address validation")
        details.extend(health_server.run_checks(self.config.server))
        return CheckResult.from_details(details)


class DatanodeChecker(ComponentChecker):
    component_name = "Datanode"

    def __init__(
        self,
        config: DatanodeConfig,
        include_performance: bool = False,
        *,
        settings: Settings | None = None,
        dialer: TcpDialer | None = None,
        store_factory: health_storage.StoreFactory | None = None,
    ) -> None:
        super().__init__(settings)
        self.config = config
        self.include_performance = include_performance
        self.dialer = dialer
        self.store_factory = store_factory

    async def check(self) -> CheckResult:
        logger.debug("datanode: metasrv connectivity (%d addrs)", len(self.config.metasrv_addrs))
        details = await self._metasrv_connectivity(self.config.metasrv_addrs, self.dialer)
        logger.debug("datanode: %s storage checks", self.config.storage.type)
        details.extend(
            await health_storage.run_checks(
                self.config.storage,
                self.settings,
                include_performance=self.include_performance,
                store_factory=self.store_factory,
            )
        )
        return CheckResult.from_details(details)


class MetasrvChecker(ComponentChecker):
    component_name = "Metasrv"

    def __init__(
        self,
        config: MetasrvConfig,
        *,
        settings: Settings | None = None,
        kv_factory: health_metadata.KvFactory | None = None,
        sql_factory: health_metadata.SqlFactory | None = None,
    ) -> None:
        super().__init__(settings)
        self.config = config
        self.kv_factory = kv_factory
        self.sql_factory = sql_factory

    async def check(self) -> CheckResult:
        logger.debug("metasrv: %s checks", self.config.backend)
        return await health_metadata.run_checks(
            self.config,
            self.settings,
            kv_factory=self.kv_factory,
            sql_factory=self.sql_factory,
        )


_CHECKERS: dict[Role, tuple[type[ComponentChecker], type]] = {
    Role.FRONTEND: (FrontendChecker, FrontendConfig),
    Role.DATANODE: (DatanodeChecker, DatanodeConfig),
    Role.METASRV: (MetasrvChecker, MetasrvConfig),
}


def build_checker(
    role: Role | str,
    config: RoleConfig,
    *,
    settings: Settings | None = None,
    include_performance: bool = False,
) -> ComponentChecker:
    """Pick the checker for ``role``.

    Raises:
        TypeError: ``config`` is not the snapshot type of ``role``.
    """
    role = Role(role)
    checker_cls, config_cls = _CHECKERS[role]
    if not isinstance(config, config_cls):
        raise TypeError(f"{role.value} checker needs {config_cls.__name__}, got {type(config).__name__}")
    if role is Role.DATANODE:
        return DatanodeChecker(config, include_performance, settings=settings)
    return checker_cls(config, settings=settings)
