import asyncio
import json

import httpx
import pytest
from pydantic import ValidationError

from aqtransform.errors import FetchError, ParseError, ResourceConfigError
from aqtransform.parsers import csv_parser, json_parser
from aqtransform.readers import api_reader, default_reader, file_reader, text_reader
from aqtransform.resource import Resource
from aqtransform.utils import PathExpression


def test_resource_needs_exactly_one_source():
    with pytest.raises(ValidationError):
        Resource()
    with pytest.raises(ValidationError):
        Resource(url="https://example.com", path="data.csv")


def test_resource_kind_selects_default_reader():
    assert default_reader(Resource(url="https://example.com")) == "api"
    assert default_reader(Resource(path="data.csv")) == "file"
    assert default_reader(Resource(text="a,b")) == "text"


def test_template_without_parameters_is_a_single_target():
    resource = Resource(url="https://example.com:8080/latest.json")
    assert [t.location for t in resource.targets()] == ["https://example.com:8080/latest.json"]


def test_mapping_parameters_fill_named_placeholders():
    resource = Resource(
        url="https://example.com/eea/:country/:pollutant.csv",
        parameters=[{"country": "AT", "pollutant": "NO2"}, {"country": "DE", "pollutant": "O3"}],
    )
    assert resource.placeholders == ["country", "pollutant"]
    assert [t.location for t in resource.targets()] == [
        "https://example.com/eea/AT/NO2.csv",
        "https://example.com/eea/DE/O3.csv",
    ]


def test_single_mapping_is_wrapped():
    resource = Resource(url="https://example.com/:station", parameters={"station": "ts1"})
    assert [t.location for t in resource.targets()] == ["https://example.com/ts1"]


def test_scalar_parameters_bind_to_the_only_placeholder_and_are_escaped():
    resource = Resource(url="https://example.com/stations/:station", parameters=["a b", "c/d"])
    assert [t.location for t in resource.targets()] == [
        "https://example.com/stations/a%20b",
        "https://example.com/stations/c%2Fd",
    ]


def test_file_paths_are_not_escaped():
    resource = Resource(path="data/:name.csv", parameters=["a b"])
    assert [t.location for t in resource.targets()] == ["data/a b.csv"]


def test_scalar_parameters_need_a_single_placeholder():
    resource = Resource(url="https://example.com/:country/:pollutant", parameters=["AT"])
    with pytest.raises(ResourceConfigError):
        resource.targets()


def test_missing_placeholder_value_raises():
    resource = Resource(url="https://example.com/:country/:pollutant", parameters=[{"country": "AT"}])
    with pytest.raises(ResourceConfigError):
        resource.targets()


def test_parameters_from_path_expression():
    resource = Resource(
        url="https://example.com/stations/:station",
        parameters={"expression": "locations[].site_id"},
    )
    assert isinstance(resource.parameters, PathExpression)
    data = {"locations": [{"site_id": "a"}, {"site_id": "b"}]}
    assert [t.location for t in resource.targets(data)] == [
        "https://example.com/stations/a",
        "https://example.com/stations/b",
    ]
    assert resource.targets({}) == []


def test_parameters_from_function():
    resource = Resource(
        url="https://example.com/stations/:station",
        parameters=lambda data: [row["id"] for row in data.get("locations", [])],
    )
    targets = resource.targets({"locations": [{"id": 1}, {"id": 2}]})
    assert [t.location for t in targets] == ["https://example.com/stations/1", "https://example.com/stations/2"]


def test_body_is_rendered_per_target():
    resource = Resource(
        url="https://example.com/query",
        method="POST",
        body={"station": ":station", "fields": ["pm25"]},
        parameters=[{"station": "ts1"}],
    )
    target = resource.targets()[0]
    assert target.location == "https://example.com/query"
    assert target.body == {"station": "ts1", "fields": ["pm25"]}


def test_text_resource_has_one_target():
    assert [t.location for t in Resource(text="a,b").targets()] == ["<text>"]


def test_render_secrets_leaves_unknown_placeholders():
    rendered = Resource.render_secrets("https://example.com/?key=:apikey&station=:station", {"apikey": "abc"})
    assert rendered == "https://example.com/?key=abc&station=:station"


def test_merge_without_output():
    resource = Resource(text="")
    assert resource.merge([{"a": 1}]) == {"a": 1}
    assert resource.merge([{"a": 1}, {"b": 2}]) == [{"a": 1}, {"b": 2}]


def test_merge_array_flattens():
    resource = Resource(text="", output="array")
    assert resource.merge([[1, 2], [3], 4]) == [1, 2, 3, 4]


def test_merge_object_concatenates_lists_and_overwrites_scalars():
    resource = Resource(text="", output="object")
    merged = resource.merge([
        {"locations": [1], "meta": "first"},
        {"locations": [2], "meta": "second", "measurements": [3]},
        "not an object",
    ])
    assert merged == {"locations": [1, 2], "meta": "second", "measurements": [3]}


def test_record_failure_keeps_going_when_not_strict():
    resource = Resource(url="https://example.com")
    resource.record_failure("https://example.com/a", "boom", "fetch", 500)
    assert resource.has_errors
    assert resource.errors[0].status_code == 500
    assert resource.errors[0].type == "fetch"


def test_record_failure_raises_when_strict():
    resource = Resource(url="https://example.com", strict=True)
    with pytest.raises(ParseError):
        resource.record_failure("https://example.com/a", "bad json", "parse")
    assert len(resource.errors) == 1


def stations_transport():
    async def handler(request: httpx.Request) -> httpx.Response:
        station = request.url.path.rsplit("/", 1)[-1]
        if station == "missing":
            return httpx.Response(404, text="not found")
        if station == "garbled":
            return httpx.Response(200, text="{not json")
        # answer the first station last to check ordering
        if station == "a":
            await asyncio.sleep(0.05)
        return httpx.Response(200, json=[{"station": station}])

    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_api_reader_merges_in_parameter_order():
    resource = Resource(
        url="https://example.com/stations/:station",
        parameters=["a", "b", "c"],
        output="array",
        transport=stations_transport(),
    )
    result = await api_reader(resource, json_parser)
    assert result == [{"station": "a"}, {"station": "b"}, {"station": "c"}]
    assert not resource.has_errors


@pytest.mark.asyncio
async def test_api_reader_records_failures_and_keeps_the_rest():
    resource = Resource(
        url="https://example.com/stations/:station",
        parameters=["a", "missing", "garbled"],
        output="array",
        transport=stations_transport(),
    )
    result = await api_reader(resource, json_parser)
    assert result == [{"station": "a"}]

    failures = {f.url: f for f in resource.errors}
    assert failures["https://example.com/stations/missing"].status_code == 404
    assert failures["https://example.com/stations/missing"].type == "fetch"
    assert failures["https://example.com/stations/garbled"].type == "parse"


@pytest.mark.asyncio
async def test_api_reader_strict_raises():
    resource = Resource(
        url="https://example.com/stations/:station",
        parameters=["a", "missing"],
        strict=True,
        transport=stations_transport(),
    )
    with pytest.raises(FetchError) as exc:
        await api_reader(resource, json_parser)
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_api_reader_sends_json_body_and_headers():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["body"] = json.loads(request.content)
        seen["auth"] = request.headers.get("x-api-key")
        return httpx.Response(200, json={"ok": True})

    resource = Resource(
        url="https://example.com/query",
        method="POST",
        body={"station": ":station"},
        parameters=[{"station": "ts1"}],
        headers={"x-api-key": "secret"},
        transport=httpx.MockTransport(handler),
    )
    assert await api_reader(resource, json_parser) == {"ok": True}
    assert seen == {"method": "POST", "body": {"station": "ts1"}, "auth": "secret"}


@pytest.mark.asyncio
async def test_file_reader(tmp_path):
    (tmp_path / "a.csv").write_text("station,value\na,1\n")
    (tmp_path / "b.csv").write_text("station,value\nb,2\n")
    resource = Resource(
        path=str(tmp_path / ":name.csv"),
        parameters=["a", "b", "c"],
        output="array",
    )
    result = await file_reader(resource, csv_parser)
    assert result == [{"station": "a", "value": "1"}, {"station": "b", "value": "2"}]
    assert len(resource.errors) == 1
    assert resource.errors[0].url.endswith("c.csv")


@pytest.mark.asyncio
async def test_text_reader():
    resource = Resource(text="station,value\na,1\n")
    assert await text_reader(resource, csv_parser) == [{"station": "a", "value": "1"}]
