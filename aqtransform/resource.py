import re
import logging
from typing import Any, Callable, Dict, List, Literal, Mapping, NamedTuple
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .errors import FetchError, ParseError, ResourceConfigError
from .utils import PathExpression

logger = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r":([A-Za-z_]\w*)")


class Target(NamedTuple):
    location: str
    body: Any = None


class ResourceFailure(BaseModel):
    url: str
    error: str
    type: Literal["fetch", "parse"]
    status_code: int | None = None


class Resource(BaseModel):
    """
    Where to read raw data from.

    A resource is backed by a url template, a file path template or
    in-memory text. Templates use ``:name`` placeholders that are filled from
    ``parameters``, producing one target per parameter set.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, validate_assignment=False)

    url: str | None = Field(None, description="URL template, e.g. 'https://example.com/stations/:station'")
    path: str | None = Field(None, description="File path template")
    text: Any = Field(None, description="In-memory content")
    parameters: Any = Field(
        None, description="List of parameter mappings, a function of the fetched data, or a PathExpression"
    )
    body: str | Dict[str, Any] | None = Field(None, description="Request body template")
    method: Literal["GET", "POST"] = Field("GET", description="HTTP method for url resources")
    headers: Dict[str, str] = Field(default_factory=dict)
    encoding: str = Field("utf-8", description="Encoding for file resources")
    output: Literal["array", "object"] | None = Field(
        None, description="How results from several targets are merged"
    )
    strict: bool = Field(False, description="Raise on the first failing target instead of recording it")
    timeout: float = Field(20, gt=0, description="Per request timeout in seconds")
    max_concurrent_requests: int = Field(5, ge=1)
    transport: Any = Field(None, exclude=True, description="Optional httpx transport")
    errors: List[ResourceFailure] = Field(default_factory=list)

    @field_validator("parameters", mode="before")
    @classmethod
    def validate_parameters(cls, v):
        if v is None or isinstance(v, PathExpression) or callable(v):
            return v
        if isinstance(v, Mapping):
            if "expression" in v:
                return PathExpression(**v)
            return [dict(v)]
        if isinstance(v, (list, tuple)):
            return list(v)
        raise ValueError(f"parameters must be a list, a callable or a PathExpression. Got {type(v).__name__}")

    @model_validator(mode="after")
    def check_source(self):
        sources = [name for name in ("url", "path", "text") if getattr(self, name) is not None]
        if len(sources) != 1:
            raise ValueError(f"A resource needs exactly one of url, path or text. Got {sources or 'none'}")
        return self

    @property
    def kind(self) -> str:
        if self.url is not None:
            return "url"
        if self.path is not None:
            return "file"
        return "text"

    @property
    def template(self) -> str | None:
        return self.url if self.url is not None else self.path

    @property
    def placeholders(self) -> List[str]:
        return PLACEHOLDER.findall(self.template or "")

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def _parameter_sets(self, data: Any) -> List[Dict[str, Any]]:
        params = self.parameters
        if params is None:
            return [{}]
        if isinstance(params, PathExpression):
            params = params.search(data if data is not None else {})
        elif callable(params):
            params = params(data if data is not None else {})

        if params is None:
            return []
        if not isinstance(params, (list, tuple)):
            params = [params]
        return [self._bind(p) for p in params]

    def _bind(self, value: Any) -> Dict[str, Any]:
        if isinstance(value, Mapping):
            return dict(value)
        names = self.placeholders
        if len(names) != 1:
            raise ResourceConfigError(
                f"Scalar parameter values need a template with exactly one placeholder. Found {names}", value
            )
        return {names[0]: value}

    def _render(self, template: str, values: Mapping[str, Any], escape: bool) -> str:
        def replace(match):
            name = match.group(1)
            if name not in values:
                raise ResourceConfigError(f"No value for placeholder ':{name}' in {template}", dict(values))
            value = str(values[name])
            return quote(value, safe="") if escape else value

        return PLACEHOLDER.sub(replace, template)

    @staticmethod
    def render_secrets(value: str, secrets: Mapping[str, Any]) -> str:
        """Substitute ``:name`` placeholders found in ``secrets``. Unknown placeholders are left alone."""
        def replace(match):
            name = match.group(1)
            return str(secrets[name]) if name in secrets else match.group(0)

        return PLACEHOLDER.sub(replace, value)

    def _render_body(self, body: Any, values: Mapping[str, Any]) -> Any:
        if isinstance(body, str):
            return self._render(body, values, escape=False)
        if isinstance(body, Mapping):
            return {k: self._render_body(v, values) for k, v in body.items()}
        return body

    def targets(self, data: Any = None) -> List[Target]:
        """Expand the template into concrete targets, in parameter order."""
        if self.kind == "text":
            return [Target("<text>")]
        escape = self.kind == "url"
        targets = []
        for values in self._parameter_sets(data):
            location = self._render(self.template, values, escape=escape)
            targets.append(Target(location, self._render_body(self.body, values)))
        return targets

    def record_failure(self, url: str, error: Any, type: str = "fetch", status_code: int | None = None) -> None:
        """Record a failing target, or raise when the resource is strict."""
        failure = ResourceFailure(url=url, error=str(error), type=type, status_code=status_code)
        self.errors.append(failure)
        logger.warning(f"Failed to {type} {url}: {error}")
        if self.strict:
            exc = FetchError if type == "fetch" else ParseError
            raise exc(url, error, status_code)

    def merge(self, results: List[Any]) -> Any:
        """
        Merge per target results according to ``output``.

        None returns a single result as is and several results as a list.
        'array' concatenates list results. 'object' merges mappings key by
        key, concatenating list fields and overwriting everything else.
        """
        if self.output is None:
            if len(results) == 1:
                return results[0]
            return list(results)

        if self.output == "array":
            merged = []
            for result in results:
                if isinstance(result, list):
                    merged.extend(result)
                else:
                    merged.append(result)
            return merged

        merged = {}
        for result in results:
            if not isinstance(result, Mapping):
                logger.warning(f"Skipping non-object result of type {type(result).__name__} while merging")
                continue
            for key, value in result.items():
                current = merged.get(key)
                if isinstance(current, list) and isinstance(value, list):
                    merged[key] = current + value
                else:
                    merged[key] = value
        return merged
