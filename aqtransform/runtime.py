from pathlib import Path
from dataclasses import dataclass
import json
import yaml

import logging

from .client import Client
from .datetimes import Datetime
from .provider_manager import ProviderManager

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_DIR = 'output'


def load_config_file(config_file: str | Path) -> dict:
    """Load configuration from YAML file."""
    try:
        with open(config_file, 'r') as file:
            config = yaml.safe_load(file) or {}
            logger.info(f"Loaded config file from {config_file}")
    except FileNotFoundError:
        logger.error(f"Configuration file {config_file} not found")
        raise
    except yaml.YAMLError as e:
        logger.error(f"Error parsing configuration file: {e}")
        raise

    # log file handlers need their directory
    for handler in config.get('logging', {}).get('handlers', {}).values():
        if "filename" in handler:
            Path(handler['filename']).parent.mkdir(parents=True, exist_ok=True)

    return config


@dataclass
class RuntimeContext:
    config: dict
    config_file: str | Path | None = None

    @classmethod
    def from_config_file(cls, config_file: str | Path):
        config = load_config_file(config_file)
        return cls(config=config, config_file=config_file)

    def __post_init__(self):
        if self.config is None:
            raise ValueError("RuntimeContext requires a config dictionary")
        self.initialize_runtime(self.config)

    def initialize_runtime(self, config: dict):

        logger.info("Initializing Runtime Context")

        ## Output
        self.output_dir = Path(config.get('output', {}).get('directory', DEFAULT_OUTPUT_DIR))
        self.indent = config.get('output', {}).get('indent')

        ## Providers
        self.provider_manager = ProviderManager(
            config.get('providers') or {},
            defaults=config.get('defaults') or {},
        )

    def update_runtime(self, config_file: str | Path):
        self.config_file = Path(config_file)
        self.config = load_config_file(self.config_file)
        self.initialize_runtime(self.config)

    def get_client(self, provider_name: str, **overrides) -> Client:
        client = self.provider_manager.get_provider(provider_name)
        if client is None:
            raise ValueError(
                f"Unknown provider '{provider_name}'. Available providers: {self.provider_manager.list_providers()}"
            )
        if overrides:
            client.configure(**overrides)
        return client

    async def run_provider(self, provider_name: str, **overrides) -> tuple[dict, Client]:
        """Load, process and serialize one provider. Returns the document and the client."""
        client = self.get_client(provider_name, **overrides)
        document = await client.load()
        summary = document['meta']['fetchSummary']
        logger.info(
            f"{provider_name}: {summary['locations']} locations, {summary['sensors']} sensors, "
            f"{summary['measurements']} measurements, errors {summary['errors']}"
        )
        return document, client

    def write_output(self, provider_name: str, document: dict, output_file: str | Path | None = None) -> Path:
        if output_file is None:
            stamp = Datetime.now().to_utc('%Y%m%dT%H%M%SZ')
            output_file = self.output_dir / f"{provider_name}-{stamp}.json"
        output_file = Path(output_file)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        with open(output_file, 'w') as f:
            json.dump(document, f, indent=self.indent)
        logger.info(f"Wrote {provider_name} output to {output_file}")
        return output_file
