import io
import json
from typing import Any, Callable, Dict

import pandas as pd


def _is_text(content: Any) -> bool:
    return isinstance(content, (str, bytes, bytearray))


def _decode(content: str | bytes | bytearray) -> str:
    if isinstance(content, (bytes, bytearray)):
        return content.decode("utf-8-sig")
    return content


def json_parser(content: Any) -> Any:
    """Parse JSON text. Anything that is not text is returned unchanged."""
    if not _is_text(content):
        return content
    return json.loads(_decode(content))


def csv_parser(content: Any, delimiter: str = ",") -> Any:
    """
    Parse delimited text into a list of row dicts.

    Every cell is read as a string so that provider codes such as '-99' or
    'TOO_HIGH' survive untouched. Blank lines are skipped and whitespace after
    a delimiter is dropped.
    """
    if not _is_text(content):
        return content

    text = _decode(content)
    if not text.strip():
        return []

    frame = pd.read_csv(
        io.StringIO(text),
        sep=delimiter,
        dtype=str,
        keep_default_na=False,
        skipinitialspace=True,
        skip_blank_lines=True,
    )
    frame.columns = [str(c).strip() for c in frame.columns]
    return frame.to_dict(orient="records")


def tsv_parser(content: Any) -> Any:
    return csv_parser(content, delimiter="\t")


PARSERS: Dict[str, Callable[[Any], Any]] = {
    "json": json_parser,
    "csv": csv_parser,
    "tsv": tsv_parser,
}
