import json

import httpx
import pytest

from aqtransform.client import Client
from aqtransform.provider_manager import ProviderManager
from aqtransform.providers.air4thai import AIR4THAI, flatten_stations
from aqtransform.providers.base import ProviderDefinition
from aqtransform.providers.eea import EEA
from aqtransform.resource import Resource

AIR4THAI_PAYLOAD = {
    "stations": [
        {
            "stationID": "02t",
            "nameTH": "มหาวิทยาลัยราชภัฏบ้านสมเด็จเจ้าพระยา",
            "nameEN": "Bansomdejchaopraya Rajabhat University",
            "areaEN": "Khet Thon Buri, Bangkok",
            "stationType": "GROUND",
            "lat": "13.732846",
            "long": "100.487662",
            "forecast": [],
            "AQILast": {
                "date": "2025-05-08",
                "time": "12:00",
                "PM25": {"color_id": "2", "aqi": "30", "value": "17.5"},
                "PM10": {"color_id": "1", "aqi": "20", "value": "31"},
                "O3": {"color_id": "1", "aqi": "15", "value": "21"},
                "CO": {"color_id": "1", "aqi": "4", "value": "0.38"},
                "NO2": {"color_id": "1", "aqi": "8", "value": "12"},
                "SO2": {"color_id": "0", "aqi": "-1", "value": "N/A"},
                "AQI": {"color_id": "2", "aqi": "30", "param": "PM25"},
            },
        },
        {
            "stationID": "03t",
            "nameEN": "Kheha Community Bang Phli",
            "lat": "13.603947",
            "long": "100.757353",
            "forecast": [],
        },
    ]
}

EEA_CSV = (
    "STATIONCODE,STATIONNAME,LONGITUDE,LATITUDE,PROPERTY,VALUE_NUMERIC,DATETIME_END\n"
    "AT90AKC,Wien AKH,1822585.0,6141584.0,NO2,23.4,20250508120000\n"
    "AT90AKC,Wien AKH,1822585.0,6141584.0,PM2.5,8.1,20250508120000\n"
    "AT90AKC,Wien AKH,1822585.0,6141584.0,O3,,20250508120000\n"
)


def air4thai_transport():
    return httpx.MockTransport(lambda request: httpx.Response(200, json=AIR4THAI_PAYLOAD))


def test_flatten_stations_returns_long_format_rows():
    document = flatten_stations(json.dumps(AIR4THAI_PAYLOAD))

    assert [l["stationID"] for l in document["locations"]] == ["02t", "03t"]
    assert "AQILast" not in document["locations"][0]
    assert [m["parameter"] for m in document["measurements"]] == ["PM25", "PM10", "O3", "CO", "NO2", "SO2"]
    first = document["measurements"][0]
    assert first["datetime"] == "2025-05-08 12:00"
    assert first["value"] == "17.5"
    assert first["stationID"] == "02t"


@pytest.mark.asyncio
async def test_air4thai_client():
    client = AIR4THAI.client(resource=Resource(url="https://example.com/air4thai", transport=air4thai_transport()))
    data = await client.load()

    summary = data["meta"]["fetchSummary"]
    assert summary["sourceName"] == "air4thai"
    assert summary["locations"] == 2
    assert summary["measurements"] == 6
    assert summary["datetimeFrom"] == "2025-05-08T12:00:00+07:00"

    measurements = {m["key"]: m for m in data["measurements"]}
    assert measurements["air4thai-02t-pm25:mass"]["value"] == 17.5
    assert measurements["air4thai-02t-o3:parts"]["value"] == pytest.approx(0.021)
    assert measurements["air4thai-02t-so2:parts"]["flags"] == ["N/A"]
    assert measurements["air4thai-02t-so2:parts"]["value"] is None

    location = data["locations"][0]
    assert location["site_name"] == "Bansomdejchaopraya Rajabhat University"
    assert location["coordinates"]["latitude"] == 13.732846


@pytest.mark.asyncio
async def test_eea_client_reprojects_and_reads_csv():
    client = EEA.client(resource=Resource(text=EEA_CSV))
    data = await client.load()

    assert len(data["measurements"]) == 3
    values = {m["key"]: m["value"] for m in data["measurements"]}
    assert values == {
        "eea-AT90AKC-no2:mass": 23.4,
        "eea-AT90AKC-pm25:mass": 8.1,
        "eea-AT90AKC-o3:mass": None,
    }
    assert data["measurements"][0]["timestamp"] == "2025-05-08T12:00:00Z"

    coordinates = data["locations"][0]["coordinates"]
    assert 16 < coordinates["longitude"] < 16.5
    assert 48 < coordinates["latitude"] < 48.5


def test_eea_has_no_default_resource():
    assert EEA.config().resource is None


def test_provider_definition_overrides_defaults():
    config = AIR4THAI.config(strict=True, timezone="UTC")
    assert config.provider == "air4thai"
    assert config.strict is True
    assert config.timezone == "UTC"
    assert config.location_id_key == "stationID"


def test_manager_discovers_provider_modules():
    manager = ProviderManager()
    assert manager.list_providers() == ["air4thai", "eea"]


def test_manager_returns_fresh_clients():
    manager = ProviderManager()
    first = manager.get_provider("AIR4THAI")
    second = manager.get_provider("air4thai")
    assert isinstance(first, Client)
    assert first is not second
    assert first.provider == "air4thai"
    assert manager.get_provider("nowhere") is None


def test_manager_applies_defaults_then_provider_config():
    manager = ProviderManager(
        {"eea": {"resource": "https://example.com/eea.csv", "timezone": "Europe/Vienna"}},
        defaults={"strict": True, "timezone": "UTC"},
    )
    client = manager.get_provider("eea")
    assert client.strict is True
    assert client.config.timezone == "Europe/Vienna"
    assert client.config.resource.url == "https://example.com/eea.csv"


def test_manager_accepts_config_only_providers():
    manager = ProviderManager({"sample": {"resource": {"path": "data/sample.csv"}, "parser": "csv"}})
    assert "sample" in manager.list_providers()
    client = manager.get_provider("sample")
    assert client.provider == "sample"
    assert client.config.resource.path == "data/sample.csv"


def test_config_only_provider_needs_a_resource():
    with pytest.raises(ValueError):
        ProviderManager({"sample": {"parser": "csv"}})


def test_create_provider():
    manager = ProviderManager()
    manager.register(ProviderDefinition("custom", build=lambda: {"long_format": True}))
    client = manager.create_provider("custom", strict=False)
    assert client.config.long_format is True
    assert client.strict is False

    with pytest.raises(ValueError):
        manager.create_provider("nowhere")


def test_flatten_stations_rejects_non_object_payloads():
    with pytest.raises(ValueError):
        flatten_stations("[1, 2]")


@pytest.mark.asyncio
async def test_non_object_payload_is_recorded_as_parse_failure():
    client = Client(resource=Resource(text="[1,2]"), parser=flatten_stations, strict=False)
    data = await client.load()

    assert data["measurements"] == []
    assert data["meta"]["fetchSummary"]["errors"] == {"ParseError": 1}
    assert client.config.resource.errors[0].type == "parse"
