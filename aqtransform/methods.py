from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from .errors import ResourceConfigError

RESOURCE_KEYS = ("locations", "sensors", "measurements", "flags")


@dataclass(frozen=True)
class Named:
    """A reader or parser looked up by name in a registry."""
    name: str


@dataclass(frozen=True)
class Custom:
    """A caller supplied reader or parser."""
    func: Callable


@dataclass(frozen=True)
class Indexed:
    """One method per resource key, with an optional fallback."""
    methods: Mapping[str, "MethodSpec"] = field(default_factory=dict)
    default: "MethodSpec | None" = None


MethodSpec = Named | Custom | Indexed


def method_spec(value: Any) -> MethodSpec | None:
    """Build a MethodSpec from a config value (name, callable or mapping)."""
    if value is None or isinstance(value, (Named, Custom, Indexed)):
        return value
    if isinstance(value, str):
        return Named(value)
    if callable(value):
        return Custom(value)
    if isinstance(value, Mapping):
        methods = dict(value)
        default = method_spec(methods.pop("default", None))
        unknown = [k for k in methods if k not in RESOURCE_KEYS]
        if unknown:
            raise ResourceConfigError(f"{unknown} are not valid resource keys. Use one of {RESOURCE_KEYS}", unknown)
        return Indexed({k: method_spec(v) for k, v in methods.items()}, default)
    raise ResourceConfigError(f"Invalid method {value!r}. Expected a name, a callable or a mapping", value)


def resolve(spec: MethodSpec | None, key: str | None, registry: Mapping[str, Callable]) -> Callable:
    """
    Turn a method spec into a callable.

    Args:
        spec: The configured method.
        key: The resource key being loaded, None for a single resource.
        registry: Named methods available for lookup.

    Raises:
        ResourceConfigError: If the spec cannot be resolved.
    """
    if isinstance(spec, Named):
        method = registry.get(spec.name)
        if method is None:
            raise ResourceConfigError(
                f"Could not find a method named '{spec.name}' in available methods: {list(registry)}", spec.name
            )
        return method

    if isinstance(spec, Custom):
        return spec.func

    if isinstance(spec, Indexed):
        if key is not None and key in spec.methods:
            return resolve(spec.methods[key], key, registry)
        if spec.default is not None:
            return resolve(spec.default, key, registry)
        if key is None and "measurements" in spec.methods:
            return resolve(spec.methods["measurements"], key, registry)
        raise ResourceConfigError(f"No method configured for resource '{key}'", key)

    raise ResourceConfigError(f"Invalid method spec {spec!r}", spec)
