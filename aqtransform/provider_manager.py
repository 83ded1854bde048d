from pathlib import Path
import importlib
import pkgutil
import inspect
from typing import Any, Dict, Optional
import logging

from .client import Client, ClientConfig
from .providers.base import ProviderDefinition

logger = logging.getLogger(__name__)


class ProviderManager:
    """
    Registry of provider configurations.

    Provider modules in the ``providers`` package are scanned for
    ProviderDefinition objects. The providers section of the runtime config
    overrides their defaults, and may also declare providers that exist only
    in the config file.
    """

    def __init__(
        self,
        provider_config: Dict[str, Dict] | None = None,
        defaults: Dict[str, Any] | None = None,
        ignore_modules: list[str] | None = None,
    ):
        """
        Args:
            provider_config: Provider name -> ClientConfig overrides
            defaults: Overrides applied to every configured provider before its own
            ignore_modules: List of module names to ignore during discovery
        """
        if ignore_modules is None:
            ignore_modules = ['base', '__pycache__']

        self.defaults = defaults or {}
        self.registry: Dict[str, ProviderDefinition] = {}
        self.providers: Dict[str, ClientConfig] = {}

        self._discover_providers(ignore_modules)
        self._initialize_providers(provider_config or {})

    def _discover_providers(self, ignore_modules: list[str]):
        providers_dir = Path(__file__).parent / 'providers'

        if not providers_dir.exists():
            raise ImportError(f"Providers directory not found at {providers_dir}")

        for _, module_name, _ in pkgutil.iter_modules([str(providers_dir)]):
            if module_name in ignore_modules:
                continue
            try:
                module = importlib.import_module(f'aqtransform.providers.{module_name}')
            except ImportError as e:
                logger.warning(f"Could not import provider module {module_name}: {e}")
                continue
            self._register_providers_from_module(module)

    def _register_providers_from_module(self, module):
        for _, obj in inspect.getmembers(module, lambda o: isinstance(o, ProviderDefinition)):
            self.register(obj)

    def register(self, definition: ProviderDefinition) -> None:
        self.registry[definition.provider_name.lower()] = definition
        logger.debug(f"Registered provider '{definition.provider_name}'")

    def _initialize_providers(self, provider_config: Dict[str, Dict]) -> None:
        for provider_name, overrides in provider_config.items():
            name = provider_name.lower()
            overrides = {**self.defaults, **(overrides or {})}
            definition = self.registry.get(name)

            if definition is None:
                if 'resource' not in overrides:
                    raise ValueError(
                        f"Provider '{provider_name}' not found in registry and declares no resource."
                    )
                definition = ProviderDefinition(provider_name=name)
                self.register(definition)

            self.providers[name] = definition.config(**overrides)
            logger.info(f"Initialized provider '{provider_name}'")

    def get_provider(self, provider_name: str) -> Optional[Client]:
        """
        Get a fresh client for a provider.

        Configured providers use their config file overrides, registered
        providers that were not configured use their defaults.

        Returns:
            A Client if the provider is known, None otherwise
        """
        name = provider_name.lower()
        config = self.providers.get(name)
        if config is not None:
            return Client(config)
        if name in self.registry:
            return self.create_provider(name, **self.defaults)
        return None

    def list_providers(self) -> list[str]:
        """Names of all configured and registered providers."""
        return sorted(set(self.providers) | set(self.registry))

    def create_provider(self, provider_name: str, **kwargs) -> Client:
        """
        Create a client for a registered provider with explicit overrides.

        Raises:
            ValueError: If the provider is not found
        """
        definition = self.registry.get(provider_name.lower())
        if definition is None:
            raise ValueError(f"Provider '{provider_name}' not found. Available providers: {self.list_providers()}")

        return definition.client(**kwargs)
