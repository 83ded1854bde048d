import enum
import logging
from typing import Any, Callable, Dict, List, Literal, Mapping, NamedTuple

import pytz
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .coordinates import BBox, Coordinates, union_bounds, validate_coordinates
from .datetimes import Datetime
from .errors import (
    AQTransformError,
    Disposition,
    DocumentFormatError,
    FetchError,
    MissingAttributeError,
    NoResourceError,
    ParseError,
    ParserOutputError,
    ResourceConfigError,
    UnsupportedParameterError,
)
from .location import Location, Locations
from .measurement import Measurement, Measurements
from .methods import RESOURCE_KEYS, MethodSpec, Named, method_spec, resolve
from .metric import Metric
from .parsers import PARSERS
from .readers import READERS, default_reader
from .resource import Resource
from .sensor import Sensor
from .utils import (
    UNDEFINED,
    Constant,
    PathExpression,
    clean_key,
    describe_key,
    get_value_from_key,
    is_missing,
    strip_nulls,
    truthy,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "v0.1"
DOCUMENT_KEYS = RESOURCE_KEYS

DEFAULT_PARAMETERS = {
    "pm25": {"parameter": "pm25", "unit": "ug/m3"},
    "o3": {"parameter": "o3", "unit": "ppm"},
}

FIELD_KEYS = (
    "location_id_key",
    "location_label_key",
    "parameter_name_key",
    "parameter_value_key",
    "x_geometry_key",
    "y_geometry_key",
    "geometry_projection_key",
    "manufacturer_key",
    "model_key",
    "owner_key",
    "datetime_key",
    "license_key",
    "is_mobile_key",
    "logging_interval_key",
    "averaging_interval_key",
    "sensor_status_key",
    "version_date_key",
    "instance_key",
)


def coerce_field_key(value: Any) -> Any:
    """Accept a field name, a PathExpression, a Constant, a callable or their mapping forms."""
    if value is None or isinstance(value, (str, PathExpression, Constant)) or callable(value):
        return value
    if isinstance(value, Mapping):
        if "jmespath" in value:
            return PathExpression(value["jmespath"])
        if "expression" in value:
            return PathExpression(**value)
        if "constant" in value:
            return Constant(value["constant"])
    raise ValueError(f"Invalid field key {value!r}. Expected a field name, PathExpression, Constant or callable")


def coerce_resource(value: Any) -> Resource:
    if isinstance(value, Resource):
        return value
    if isinstance(value, str):
        if value.startswith(("http://", "https://")):
            return Resource(url=value)
        return Resource(path=value)
    return Resource.model_validate(value)


class ParameterUnit(BaseModel):
    parameter: str = Field(..., description="Canonical parameter name, e.g. 'pm25'")
    unit: str = Field(..., description="Unit the provider reports in, e.g. 'ug/m3'")


class ClientConfig(BaseModel):
    """Everything a provider needs to declare to be ingested."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    provider: str = Field("default", description="Provider name, used as prefix for location keys")
    resource: Any = Field(None, description="A Resource or a mapping of resource key to Resource")
    reader: Any = Field(None, description="Reader name, callable or mapping per resource key. Inferred when empty")
    parser: Any = Field("json", validate_default=True, description="Parser name, callable or mapping per resource key")
    timezone: str | None = Field(None, description="Timezone of naive datetimes in the source (e.g. 'Asia/Bangkok')")
    datetime_format: str | None = Field(None, description="strptime pattern of the source datetimes. ISO-8601 when empty")
    source_projection: str = Field("EPSG:4326", description="Projection used when a row does not declare one")
    long_format: bool = Field(False, description="One row per (timestamp, parameter) instead of one column per parameter")
    strict: bool = Field(True, description="Abort on the first recoverable error instead of logging it")
    allow_future: bool = Field(False, description="Accept timestamps after now")
    coordinate_precision: int | None = Field(None, ge=0, description="Minimum decimal places required for coordinates")
    ingest_matching_method: Literal["ingest-id", "source-spatial"] = Field("ingest-id")
    parameters: Dict[str, ParameterUnit] = Field(
        default_factory=lambda: dict(DEFAULT_PARAMETERS),
        validate_default=True,
        description="Provider parameter key -> canonical parameter and unit",
    )
    secrets: Dict[str, Any] = Field(default_factory=dict, description="Values substituted into resource headers")

    location_id_key: Any = "location"
    location_label_key: Any = "label"
    parameter_name_key: Any = "parameter"
    parameter_value_key: Any = "value"
    x_geometry_key: Any = "x"
    y_geometry_key: Any = "y"
    geometry_projection_key: Any = "projection"
    manufacturer_key: Any = "manufacturer_name"
    model_key: Any = "model_name"
    owner_key: Any = "owner_name"
    datetime_key: Any = "datetime"
    license_key: Any = "license"
    is_mobile_key: Any = "is_mobile"
    logging_interval_key: Any = "logging_interval_seconds"
    averaging_interval_key: Any = "averaging_interval_seconds"
    sensor_status_key: Any = "status"
    version_date_key: Any = "version_date"
    instance_key: Any = "instance"

    @field_validator(*FIELD_KEYS, mode="before")
    @classmethod
    def validate_field_key(cls, v):
        return coerce_field_key(v)

    @field_validator("reader", "parser", mode="before")
    @classmethod
    def validate_method(cls, v):
        try:
            return method_spec(v)
        except ResourceConfigError as e:
            raise ValueError(str(e))

    @field_validator("resource", mode="before")
    @classmethod
    def validate_resource(cls, v):
        if v is None:
            return v
        if isinstance(v, Mapping) and v and all(k in RESOURCE_KEYS for k in v):
            return {k: coerce_resource(r) for k, r in v.items()}
        return coerce_resource(v)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v):
        """Validate timezone string."""
        if v is not None:
            try:
                pytz.timezone(v)
            except pytz.exceptions.UnknownTimeZoneError:
                raise ValueError(f"Unknown timezone: {v}")
        return v


class ClientState(enum.Enum):
    CONFIGURED = "configured"
    LOADED = "loaded"
    PROCESSED = "processed"


class LogEntry(NamedTuple):
    message: str
    error: BaseException


class Client:
    """
    Transforms a provider dataset into locations, systems, sensors and measurements.

    Providers differ only in their ClientConfig. A run goes through
    ``load_resources`` (fetch + parse), ``process`` (build the entity graph)
    and ``data`` (serialize). ``load`` does all three.

    Args:
        config: A ClientConfig or a mapping of its fields.
        **overrides: Field values applied on top of ``config``.
    """

    def __init__(self, config: ClientConfig | Mapping[str, Any] | None = None, **overrides):
        base = dict(config) if config is not None else {}
        config, self.metrics = self._build({**base, **overrides})
        # failures are recorded on the resource, so every client gets its own copy
        self.config = config.model_copy(update={"resource": self._fresh(config.resource)})
        self.locations = Locations()
        self.sensors: Dict[str, Sensor] = {}
        self.measurements = Measurements()
        self.log: Dict[str, List[LogEntry]] = {}
        self.started_on: Datetime | None = None
        self.finished_on: Datetime | None = None
        self.state = ClientState.CONFIGURED

    @staticmethod
    def _fresh(resource: Any) -> Any:
        if isinstance(resource, Resource):
            return resource.model_copy(update={"errors": []})
        if isinstance(resource, Mapping):
            return {k: r.model_copy(update={"errors": []}) for k, r in resource.items()}
        return resource

    @staticmethod
    def _build(values: Mapping[str, Any]) -> tuple[ClientConfig, Dict[str, Metric]]:
        config = ClientConfig.model_validate(dict(values))
        metrics = {key: Metric(p.parameter, p.unit) for key, p in config.parameters.items()}
        return config, metrics

    def configure(self, **overrides) -> "Client":
        """Replace configuration values. Nothing changes if validation fails."""
        self.config, self.metrics = self._build({**dict(self.config), **overrides})
        logger.debug(f"Configured client for {self.provider}: {sorted(overrides)}")
        return self

    @property
    def provider(self) -> str:
        return self.config.provider

    @property
    def strict(self) -> bool:
        return self.config.strict

    @property
    def resources(self) -> List[Resource]:
        resource = self.config.resource
        if resource is None:
            return []
        if isinstance(resource, Resource):
            return [resource]
        return list(resource.values())

    def _get(self, row: Any, name: str, as_number: bool = False) -> Any:
        value = get_value_from_key(row, getattr(self.config, name), as_number=as_number)
        return None if is_missing(value) else value

    def metric_for(self, provider_key: Any) -> Metric | None:
        if is_missing(provider_key):
            return None
        return self.metrics.get(str(provider_key))

    ## Errors

    def record_error(self, error: BaseException | str) -> BaseException:
        if isinstance(error, str):
            error = AQTransformError(error)
        type_name = type(error).__name__
        message = str(error)
        self.log.setdefault(type_name, []).append(LogEntry(message, error))
        logger.error(f"** ERROR ({type_name}): {message}")
        return error

    def handle_error(self, error: BaseException | str) -> None:
        """
        Log a row error by type and act on its disposition.

        FATAL errors always propagate. Everything else is skipped unless the
        client is strict. Errors without a disposition count as SKIP.
        """
        error = self.record_error(error)
        disposition = getattr(error, "disposition", Disposition.SKIP)
        if disposition is Disposition.FATAL or self.strict:
            raise error

    ## Loading

    def _reader(self, key: str | None, resource: Resource) -> Callable:
        spec: MethodSpec | None = self.config.reader
        if spec is None:
            spec = Named(default_reader(resource))
        return resolve(spec, key, READERS)

    def _parser(self, key: str | None) -> Callable:
        return resolve(self.config.parser, key, PARSERS)

    def _prepare(self, resource: Resource) -> Resource:
        if not self.config.secrets or not resource.headers:
            return resource
        headers = {k: resource.render_secrets(v, self.config.secrets) for k, v in resource.headers.items()}
        return resource.model_copy(update={"headers": headers})

    def _record_resource_errors(self, resource: Resource, seen: int) -> None:
        for failure in resource.errors[seen:]:
            exc = FetchError if failure.type == "fetch" else ParseError
            error = exc(failure.url, failure.error, failure.status_code)
            self.log.setdefault(type(error).__name__, []).append(LogEntry(str(error), error))

    async def _read(self, key: str | None, resource: Resource, data: Any) -> Any:
        reader = self._reader(key, resource)
        parser = self._parser(key)
        seen = len(resource.errors)
        content = await reader(self._prepare(resource), parser, data)
        self._record_resource_errors(resource, seen)
        if not isinstance(content, (Mapping, list)):
            raise ParserOutputError(content)
        return content

    async def load_resources(self) -> Dict[str, Any]:
        """
        Read and parse the configured resource(s) into one document.

        Indexed resources are read in declaration order and each reader
        receives the document built so far. A single resource whose top
        level keys are not locations/sensors/measurements/flags is wrapped
        as ``{"measurements": ...}``.
        """
        resource = self.config.resource
        if resource is None:
            raise NoResourceError()

        if self.started_on is None:
            self.started_on = Datetime.now()

        if isinstance(resource, Mapping):
            document: Dict[str, Any] = {}
            for key, res in resource.items():
                logger.info(f"Loading {key} for {self.provider}")
                content = await self._read(key, res, document)
                if isinstance(content, Mapping) and content and all(k in DOCUMENT_KEYS for k in content):
                    document.update(content)
                else:
                    document[key] = content
        else:
            logger.info(f"Loading resource for {self.provider}")
            content = await self._read(None, resource, None)
            if isinstance(content, Mapping) and all(k in DOCUMENT_KEYS for k in content):
                document = dict(content)
            else:
                document = {"measurements": content}

        self.state = ClientState.LOADED
        return document

    async def load(self) -> Dict[str, Any]:
        """Load, process and serialize in one go."""
        self.started_on = Datetime.now()
        document = await self.load_resources()
        self.process(document)
        return self.data()

    ## Processing

    def process(self, document: Mapping[str, Any]) -> "Client":
        if not document:
            raise DocumentFormatError("No data was returned from the resource")
        if not isinstance(document, Mapping) or not any(k in document for k in DOCUMENT_KEYS):
            keys = list(document.keys()) if isinstance(document, Mapping) else type(document).__name__
            raise DocumentFormatError(
                f"Data is not in the correct format to be processed. Expected one of {DOCUMENT_KEYS}, got {keys}"
            )

        if self.started_on is None:
            self.started_on = Datetime.now()

        logger.info(f"Processing {[k for k in DOCUMENT_KEYS if k in document]} for {self.provider}")
        if document.get("locations"):
            self.process_locations(document["locations"])
        if document.get("sensors"):
            self.process_sensors(document["sensors"])
        if document.get("measurements"):
            self.process_measurements(document["measurements"])
        if document.get("flags"):
            self.process_flags(document["flags"])

        self.finished_on = Datetime.now()
        self.state = ClientState.PROCESSED
        return self

    @staticmethod
    def _rows(rows: Any) -> List[Any]:
        if isinstance(rows, Mapping):
            return [rows]
        return list(rows)

    def process_locations(self, rows: Any) -> None:
        rows = self._rows(rows)
        logger.debug(f"Processing {len(rows)} location(s)")
        for row in rows:
            try:
                self.get_location(row)
            except (AQTransformError, ValueError) as e:
                logger.warning(f"Error adding location: {e}")
                self.record_error(e)
                if getattr(e, "disposition", None) is Disposition.FATAL:
                    raise

    def process_sensors(self, rows: Any) -> None:
        rows = self._rows(rows)
        logger.debug(f"Processing {len(rows)} sensor(s)")
        for row in rows:
            self.add_sensor(row)

    def process_measurements(self, rows: Any) -> None:
        rows = self._rows(rows)
        logger.debug(f"Processing {len(rows)} measurement row(s)")
        for row in rows:
            try:
                timestamp = self.get_datetime(row)
                values = self.row_values(row)
            except AQTransformError as e:
                self.handle_error(e)
                continue

            for provider_key, value in values:
                try:
                    self.add_measurement(row, provider_key, value, timestamp)
                except AQTransformError as e:
                    self.handle_error(e)

    def process_flags(self, rows: Any) -> None:
        rows = self._rows(rows)
        logger.debug(f"Processing {len(rows)} flag(s)")
        for row in rows:
            try:
                sensor = self.add_sensor(row, Disposition.SKIP)
                sensor.add_flag(row)
            except AQTransformError as e:
                self.handle_error(e)

    def row_values(self, row: Any) -> List[tuple[Any, Any]]:
        """(provider parameter key, raw value) pairs of a measurement row."""
        if self.config.long_format:
            name = self._get(row, "parameter_name_key")
            if name is None:
                raise MissingAttributeError(describe_key(self.config.parameter_name_key), row)
            return [(name, get_value_from_key(row, self.config.parameter_value_key))]

        values = []
        for key in self.metrics:
            value = get_value_from_key(row, key)
            if value is not UNDEFINED:
                values.append((key, value))
        return values

    ## Entities

    def get_datetime(self, row: Any) -> Datetime:
        value = self._get(row, "datetime_key")
        if value is None:
            raise MissingAttributeError(describe_key(self.config.datetime_key), row)
        return Datetime(
            value,
            format=self.config.datetime_format,
            timezone=self.config.timezone,
            allow_future=self.config.allow_future,
        )

    def get_coordinates(self, row: Any) -> Coordinates | None:
        x = self._get(row, "x_geometry_key")
        y = self._get(row, "y_geometry_key")
        if x is None and y is None:
            return None
        projection = self._get(row, "geometry_projection_key") or self.config.source_projection
        coordinates = Coordinates(x, y, projection)
        if self.config.coordinate_precision is not None:
            validate_coordinates(coordinates.latitude, coordinates.longitude, self.config.coordinate_precision)
        return coordinates

    def location_key(self, row: Any) -> str:
        site_id = self._get(row, "location_id_key")
        if site_id is None:
            raise MissingAttributeError(describe_key(self.config.location_id_key), row)
        return Location.create_key(self.provider, site_id)

    def get_location(self, row: Any) -> Location:
        """Resolve the location of a row, creating it the first time it is seen."""
        location = self.locations.get(self.location_key(row))
        if location is None:
            location = self.add_location(row)
        return location

    def add_location(self, row: Any) -> Location:
        key = self.location_key(row)
        if key in self.locations:
            return self.locations.get(key)

        label = self._get(row, "location_label_key")
        location = Location(
            provider=self.provider,
            site_id=self._get(row, "location_id_key"),
            site_name=label,
            label=label,
            owner=self._get(row, "owner_key"),
            license=self._get(row, "license_key"),
            ismobile=truthy(self._get(row, "is_mobile_key")),
            coordinates=self.get_coordinates(row),
            averaging_interval_secs=self._get(row, "averaging_interval_key", as_number=True),
            logging_interval_secs=self._get(row, "logging_interval_key", as_number=True),
            sensor_status=self._get(row, "sensor_status_key"),
        )
        return self.locations.add(location)

    def add_sensor(self, row: Any, disposition: Disposition = Disposition.FATAL) -> Sensor:
        name = self._get(row, "parameter_name_key")
        metric = self.metric_for(name)
        if metric is None:
            raise UnsupportedParameterError(name, list(self.metrics), disposition)
        return self.get_sensor(row, metric)

    def get_sensor(self, row: Any, metric: Metric) -> Sensor:
        """Resolve the sensor for a row and metric, creating location, system and sensor as needed."""
        location = self.get_location(row)
        system = location.get_system(
            clean_key(self._get(row, "manufacturer_key")),
            clean_key(self._get(row, "model_key")),
        )
        instance = clean_key(self._get(row, "instance_key"))
        version_date = clean_key(self._get(row, "version_date_key"))

        key = Sensor.create_key(system.key, metric, instance, version_date)
        sensor = self.sensors.get(key)
        if sensor is not None:
            return sensor

        averaging = self._get(row, "averaging_interval_key", as_number=True)
        logging_interval = self._get(row, "logging_interval_key", as_number=True)
        status = self._get(row, "sensor_status_key")
        sensor = Sensor(
            system_key=system.key,
            metric=metric,
            averaging_interval_secs=averaging if averaging is not None else location.averaging_interval_secs,
            logging_interval_secs=logging_interval if logging_interval is not None else location.logging_interval_secs,
            status=status if status is not None else location.sensor_status,
            version_date=version_date,
            instance=instance,
        )
        system.add(sensor)
        self.sensors[key] = sensor
        return sensor

    def add_measurement(self, row: Any, provider_key: Any, value: Any, timestamp: Datetime) -> Measurement:
        metric = self.metric_for(provider_key)
        if metric is None:
            raise UnsupportedParameterError(provider_key, list(self.metrics), Disposition.SKIP)
        sensor = self.get_sensor(row, metric)
        location = self.get_location(row)
        coordinates = self.get_coordinates(row) if location.ismobile else None
        return self.measurements.add(Measurement(sensor, timestamp, value, coordinates))

    ## Output

    @property
    def bounds(self) -> BBox | None:
        return union_bounds(self.locations.bounds, self.measurements.bounds)

    def summary(self) -> Dict[str, Any]:
        datetime_from = self.measurements.datetime_from
        datetime_to = self.measurements.datetime_to
        return {
            "sourceName": self.provider,
            "locations": len(self.locations),
            "systems": self.locations.systems_count,
            "sensors": self.locations.sensors_count,
            "flags": sum(len(s.flags) for s in self.sensors.values()),
            "measurements": len(self.measurements),
            "bounds": self.bounds,
            "datetimeFrom": str(datetime_from) if datetime_from else None,
            "datetimeTo": str(datetime_to) if datetime_to else None,
            "errors": {k: len(v) for k, v in self.log.items()},
        }

    def data(self) -> Dict[str, Any]:
        """Serialize the processed graph."""
        return {
            "meta": strip_nulls({
                "schema": SCHEMA_VERSION,
                "provider": self.provider,
                "ingestMatchingMethod": self.config.ingest_matching_method,
                "startedOn": self.started_on.to_utc() if self.started_on else None,
                "finishedOn": self.finished_on.to_utc() if self.finished_on else None,
                "exportedOn": Datetime.now().to_utc(),
                "fetchSummary": self.summary(),
            }),
            "locations": self.locations.json(),
            "measurements": self.measurements.json(),
        }
