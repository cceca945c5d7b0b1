"""
Wallet capabilities for the Counter SDK.

Backends are selected through a CapabilityRegistry keyed by BackendKind,
normally driven by ClientConfig.wallet_backend.
"""
import logging
from typing import Any, Callable, Dict, List, Optional

from ..config import ClientConfig
from ..models import BackendKind
from .base import ACCOUNTS_CHANGED, DISCONNECT, NETWORK_CHANGED, WalletCapability
from .injected import LocalInjectedCapability, Signer
from .mock import DeterministicTestCapability, derive_identity
from .relay import RelayPairingCapability

__all__ = [
    "WalletCapability",
    "LocalInjectedCapability",
    "RelayPairingCapability",
    "DeterministicTestCapability",
    "CapabilityRegistry",
    "Signer",
    "derive_identity",
    "default_registry",
    "ACCOUNTS_CHANGED",
    "NETWORK_CHANGED",
    "DISCONNECT",
]

logger = logging.getLogger(__name__)

CapabilityFactory = Callable[..., WalletCapability]


class CapabilityRegistry:
    """
    Maps backend kinds to capability factories.

    Factories receive the ClientConfig plus any keyword arguments passed to
    create(); created capabilities are cached per kind.
    """

    def __init__(self):
        self._factories: Dict[BackendKind, CapabilityFactory] = {}
        self._instances: Dict[BackendKind, WalletCapability] = {}

    def register(self, kind: BackendKind, factory: CapabilityFactory) -> None:
        self._factories[BackendKind(kind)] = factory
        self._instances.pop(BackendKind(kind), None)

    def add(self, capability: WalletCapability) -> WalletCapability:
        """Register an already constructed capability"""
        self._instances[capability.kind] = capability
        self._factories.setdefault(capability.kind, lambda config, **kw: capability)
        return capability

    def kinds(self) -> List[BackendKind]:
        return list(self._factories)

    def get(self, kind: BackendKind, config: Optional[ClientConfig] = None, **kwargs: Any) -> WalletCapability:
        """
        Get (or create) the capability for a backend kind.

        Raises:
            ValueError: If no factory is registered for the kind
        """
        kind = BackendKind(kind)
        if kind in self._instances:
            return self._instances[kind]
        try:
            factory = self._factories[kind]
        except KeyError:
            raise ValueError(f"No wallet capability registered for '{kind.value}'")
        capability = factory(config or ClientConfig(), **kwargs)
        logger.info(f"Using {kind.value} wallet capability")
        self._instances[kind] = capability
        return capability

    def available(self, config: Optional[ClientConfig] = None) -> List[BackendKind]:
        """Kinds whose capability reports is_available()"""
        return [kind for kind in self._factories if self.get(kind, config).is_available()]


def _injected(config: ClientConfig, **kwargs: Any) -> WalletCapability:
    return LocalInjectedCapability(
        rpc_url=kwargs.pop("rpc_url", config.effective_rpc_url),
        network=config.network,
        contract_address=config.contract_address,
        **kwargs,
    )


def _relay(config: ClientConfig, **kwargs: Any) -> WalletCapability:
    return RelayPairingCapability(
        relay_url=kwargs.pop("relay_url", config.relay_url),
        network=config.network,
        contract_address=config.contract_address,
        handshake_timeout=kwargs.pop("handshake_timeout", config.handshake_timeout),
        **kwargs,
    )


def _mock(config: ClientConfig, **kwargs: Any) -> WalletCapability:
    return DeterministicTestCapability(
        network=config.network,
        contract_address=config.contract_address,
        **kwargs,
    )


def default_registry() -> CapabilityRegistry:
    """A registry with the three built-in capability variants"""
    registry = CapabilityRegistry()
    registry.register(BackendKind.INJECTED, _injected)
    registry.register(BackendKind.RELAY, _relay)
    registry.register(BackendKind.MOCK, _mock)
    return registry
