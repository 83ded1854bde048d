from aqtransform.parsers import csv_parser, json_parser, tsv_parser


def test_json_parser_decodes_text_and_bytes():
    assert json_parser('{"a": 1}') == {"a": 1}
    assert json_parser(b'[{"a": 1}]') == [{"a": 1}]


def test_json_parser_passes_objects_through():
    data = {"measurements": []}
    assert json_parser(data) is data


def test_csv_parser_keeps_values_as_strings():
    content = "station,value,flag\nts1,-99,\nts2,12.50,TOO_HIGH\n"
    assert csv_parser(content) == [
        {"station": "ts1", "value": "-99", "flag": ""},
        {"station": "ts2", "value": "12.50", "flag": "TOO_HIGH"},
    ]


def test_csv_parser_handles_quotes_and_leading_spaces():
    content = 'station, site_name, value\nts1, "Main St, North", 4\n\nts2, Park, 5\n'
    rows = csv_parser(content)
    assert rows == [
        {"station": "ts1", "site_name": "Main St, North", "value": "4"},
        {"station": "ts2", "site_name": "Park", "value": "5"},
    ]


def test_csv_parser_blank_input():
    assert csv_parser("") == []
    assert csv_parser("   \n") == []


def test_csv_parser_strips_byte_order_mark():
    rows = csv_parser("\ufeffstation,value\nts1,1\n".encode("utf-8"))
    assert rows == [{"station": "ts1", "value": "1"}]


def test_tsv_parser():
    assert tsv_parser("station\tvalue\nts1\t3\n") == [{"station": "ts1", "value": "3"}]


def test_non_text_content_is_returned_unchanged():
    rows = [{"station": "ts1"}]
    assert csv_parser(rows) is rows
