"""
Keyhost Flights - Flight Hub Integrations
Hub client and one adapter per flight inventory source
"""

from typing import Dict, Iterable, List, Optional, Type

from integrations.flight_hub.client import (
    flight_hub,
    FlightHubClient,
)
from integrations.flight_hub.base import (
    AdapterReport,
    OfferParseResult,
    ProviderAdapter,
    RecordSkipped,
)
from integrations.flight_hub.amadeus import AmadeusAdapter
from integrations.flight_hub.sabre import SabreAdapter


ADAPTER_CLASSES: Dict[str, Type[ProviderAdapter]] = {
    AmadeusAdapter.name: AmadeusAdapter,
    SabreAdapter.name: SabreAdapter,
}


def build_adapters(
    names: Iterable[str],
    hub: Optional[FlightHubClient] = None,
    timeout_seconds: Optional[float] = None,
) -> List[ProviderAdapter]:
    """Instantiate adapters for the enabled provider names, in order"""
    adapters: List[ProviderAdapter] = []
    for name in names:
        adapter_class = ADAPTER_CLASSES.get(name.lower())
        if adapter_class is None:
            raise ValueError(f"Unknown flight provider: {name}")
        adapters.append(adapter_class(hub=hub, timeout_seconds=timeout_seconds))
    return adapters


__all__ = [
    # Hub
    "flight_hub",
    "FlightHubClient",
    # Adapter contract
    "AdapterReport",
    "OfferParseResult",
    "ProviderAdapter",
    "RecordSkipped",
    # Amadeus
    "AmadeusAdapter",
    # Sabre
    "SabreAdapter",
    # Registry
    "ADAPTER_CLASSES",
    "build_adapters",
]
