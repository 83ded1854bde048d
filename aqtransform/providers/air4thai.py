from typing import Any, Dict, List
import logging

from ..methods import Custom
from ..parsers import json_parser
from ..resource import Resource
from .base import ProviderDefinition

logger = logging.getLogger(__name__)

AIR4THAI_URL = "http://air4thai.pcd.go.th/services/getNewAQI_JSON.php"

AIR4THAI_PARAMETERS = {
    "PM25": {"parameter": "pm25", "unit": "ug/m3"},
    "PM10": {"parameter": "pm10", "unit": "ug/m3"},
    "O3": {"parameter": "o3", "unit": "ppb"},
    "CO": {"parameter": "co", "unit": "ppm"},
    "NO2": {"parameter": "no2", "unit": "ppb"},
    "SO2": {"parameter": "so2", "unit": "ppb"},
}


def flatten_stations(content: Any) -> Dict[str, List[dict]]:
    """
    Turn the Air4Thai station payload into long format rows.

    Each station carries its latest readings under ``AQILast`` as
    ``{date, time, PM25: {value}, ...}``. Every configured parameter becomes
    one measurement row carrying the station attributes. Stations without
    readings are still returned as locations.
    """
    data = json_parser(content)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a station object, got {type(data).__name__}")
    locations, measurements = [], []

    for station in data.get("stations", []):
        attributes = {k: v for k, v in station.items() if k not in ("AQILast", "forecast")}
        locations.append(attributes)

        latest = station.get("AQILast")
        if not latest:
            logger.debug(f"No readings for station {attributes.get('stationID')}")
            continue

        for parameter in AIR4THAI_PARAMETERS:
            reading = latest.get(parameter)
            if not isinstance(reading, dict):
                continue
            measurements.append({
                **attributes,
                "datetime": f"{latest.get('date')} {latest.get('time')}",
                "parameter": parameter,
                "value": reading.get("value"),
            })

    return {"locations": locations, "measurements": measurements}


def build() -> Dict[str, Any]:
    return {
        "resource": Resource(url=AIR4THAI_URL),
        "parser": Custom(flatten_stations),
        "long_format": True,
        "strict": False,
        "timezone": "Asia/Bangkok",
        "datetime_format": "%Y-%m-%d %H:%M",
        "location_id_key": "stationID",
        "location_label_key": "nameEN",
        "x_geometry_key": "long",
        "y_geometry_key": "lat",
        "parameter_name_key": "parameter",
        "parameter_value_key": "value",
        "parameters": AIR4THAI_PARAMETERS,
    }


AIR4THAI = ProviderDefinition(
    provider_name="air4thai",
    build=build,
    description="Thailand Pollution Control Department, latest hourly readings",
)
