from dataclasses import dataclass, field
from typing import Any, Callable, Dict

from ..client import Client, ClientConfig


@dataclass(frozen=True)
class ProviderDefinition:
    """
    Named default configuration for a provider.

    ``build`` returns ClientConfig fields. Overrides (usually from the runtime
    config file) are applied on top of them.
    """
    provider_name: str
    build: Callable[[], Dict[str, Any]] = field(default=dict)
    description: str = ""

    def config(self, **overrides) -> ClientConfig:
        values = {**self.build(), "provider": self.provider_name, **overrides}
        return ClientConfig.model_validate(values)

    def client(self, **overrides) -> Client:
        return Client(self.config(**overrides))
