import argparse
import asyncio
import logging
import sys

from aqtransform.errors import AQTransformError
from aqtransform.log_handler import LogHandler
from aqtransform.runtime import RuntimeContext, load_config_file

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Fetch a provider feed and write it as a normalized document")
    parser.add_argument("provider", nargs="?", help="Name of the provider to run")
    parser.add_argument("-c", "--config", default="config/config.yaml", help="Path to the runtime config file")
    parser.add_argument("-o", "--output", default=None, help="Output file. Defaults to the configured output directory")
    strictness = parser.add_mutually_exclusive_group()
    strictness.add_argument("--strict", dest="strict", action="store_true", default=None,
                            help="Abort on the first bad row")
    strictness.add_argument("--lenient", dest="strict", action="store_false",
                            help="Log bad rows and continue")
    parser.add_argument("--list-providers", action="store_true", help="List available providers and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    config = load_config_file(args.config)
    LogHandler(config.get("logging")).start_logger(verbose=args.verbose)
    runtime = RuntimeContext(config=config, config_file=args.config)

    if args.list_providers:
        for name in runtime.provider_manager.list_providers():
            print(name)
        return 0

    if not args.provider:
        logger.error("No provider given. Use --list-providers to see what is available")
        return 2

    overrides = {}
    if args.strict is not None:
        overrides["strict"] = args.strict

    try:
        document, _ = asyncio.run(runtime.run_provider(args.provider, **overrides))
    except AQTransformError as e:
        logger.error(f"{args.provider} failed with {type(e).__name__}: {e}")
        return 1

    runtime.write_output(args.provider, document, args.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
