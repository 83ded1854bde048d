from typing import Any, Dict

from ..utils import Constant
from .base import ProviderDefinition

# EEA exports carry web mercator coordinates and compact timestamps in UTC
EEA_PARAMETERS = {
    "NO2": {"parameter": "no2", "unit": "ug/m3"},
    "O3": {"parameter": "o3", "unit": "ug/m3"},
    "SO2": {"parameter": "so2", "unit": "ug/m3"},
    "PM10": {"parameter": "pm10", "unit": "ug/m3"},
    "PM2.5": {"parameter": "pm25", "unit": "ug/m3"},
}


def build() -> Dict[str, Any]:
    # resource is set per deployment in the providers section of the config file
    return {
        "parser": "csv",
        "long_format": True,
        "strict": False,
        "timezone": "UTC",
        "datetime_format": "%Y%m%d%H%M%S",
        "location_id_key": "STATIONCODE",
        "location_label_key": "STATIONNAME",
        "x_geometry_key": "LONGITUDE",
        "y_geometry_key": "LATITUDE",
        "geometry_projection_key": Constant("EPSG:3857"),
        "parameter_name_key": "PROPERTY",
        "parameter_value_key": "VALUE_NUMERIC",
        "datetime_key": "DATETIME_END",
        "parameters": EEA_PARAMETERS,
    }


EEA = ProviderDefinition(
    provider_name="eea",
    build=build,
    description="European Environment Agency up-to-date CSV exports",
)
