import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict

import httpx

from .resource import Resource, Target

logger = logging.getLogger(__name__)

Parser = Callable[[Any], Any]
Reader = Callable[[Resource, Parser, Any], Awaitable[Any]]

# parser exceptions that are recorded as parse failures
PARSE_EXCEPTIONS = (ValueError, TypeError, KeyError, UnicodeDecodeError)


class _Failed:
    pass


FAILED = _Failed()


def _parse(resource: Resource, parser: Parser, url: str, content: Any) -> Any:
    try:
        return parser(content)
    except PARSE_EXCEPTIONS as e:
        resource.record_failure(url, e, "parse")
        return FAILED


def _collect(resource: Resource, results: list) -> Any:
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return resource.merge([r for r in results if r is not FAILED])


async def api_reader(resource: Resource, parser: Parser, data: Any = None) -> Any:
    """
    Fetch every target of a url resource concurrently and merge the parsed results.

    Requests are bounded by ``max_concurrent_requests``. Results are merged in
    parameter order regardless of which request finishes first.
    """
    targets = resource.targets(data)
    semaphore = asyncio.Semaphore(resource.max_concurrent_requests)
    logger.info(f"Fetching {len(targets)} target(s) from {resource.url}")

    async with httpx.AsyncClient(
        timeout=resource.timeout,
        headers=resource.headers,
        transport=resource.transport,
        follow_redirects=True,
    ) as client:

        async def fetch(target: Target) -> Any:
            kwargs = {}
            if isinstance(target.body, dict):
                kwargs["json"] = target.body
            elif target.body is not None:
                kwargs["content"] = target.body

            async with semaphore:
                try:
                    response = await client.request(resource.method, target.location, **kwargs)
                    response.raise_for_status()
                except httpx.HTTPStatusError as e:
                    resource.record_failure(target.location, e, "fetch", e.response.status_code)
                    return FAILED
                except httpx.HTTPError as e:
                    resource.record_failure(target.location, e, "fetch")
                    return FAILED

            logger.debug(f"Fetched {target.location} ({response.status_code})")
            return _parse(resource, parser, target.location, response.text)

        results = await asyncio.gather(*[fetch(t) for t in targets], return_exceptions=True)

    return _collect(resource, results)


async def file_reader(resource: Resource, parser: Parser, data: Any = None) -> Any:
    """Read every target of a file resource and merge the parsed results."""
    results = []
    for target in resource.targets(data):
        path = Path(target.location)
        try:
            content = await asyncio.to_thread(path.read_text, encoding=resource.encoding)
        except OSError as e:
            resource.record_failure(str(path), e, "fetch")
            results.append(FAILED)
            continue
        logger.debug(f"Read {path}")
        results.append(_parse(resource, parser, str(path), content))
    return _collect(resource, results)


async def text_reader(resource: Resource, parser: Parser, data: Any = None) -> Any:
    """Parse in-memory content."""
    return _collect(resource, [_parse(resource, parser, "<text>", resource.text)])


READERS: Dict[str, Reader] = {
    "api": api_reader,
    "file": file_reader,
    "text": text_reader,
}

DEFAULT_READERS = {
    "url": "api",
    "file": "file",
    "text": "text",
}


def default_reader(resource: Resource) -> str:
    return DEFAULT_READERS[resource.kind]
