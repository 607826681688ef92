"""
Delimited-text ingestion into a Dataframe.

Decoding (compression, quoting, field splitting) is delegated to pyarrow;
this module only enforces the column contract and converts cells according
to each column's declared ColumnType.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any, List, Mapping, Optional

import pyarrow as pa
from pyarrow import csv as pa_csv

from stageml.data.dataframe import ColumnType, Dataframe, Record
from stageml.errors import ParseError

if TYPE_CHECKING:
    from stageml.config import Configuration

logger = logging.getLogger(__name__)

_TRUE = {"true", "t", "yes", "y", "1"}
_FALSE = {"false", "f", "no", "n", "0"}


def _to_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _to_number(value: str) -> float:
    number = float(value)
    if math.isnan(number):
        raise ValueError("NaN is not a valid value")
    return number


def convert_value(value: Optional[str], kind: ColumnType) -> Any:
    """
    Convert a raw cell into the Python value used for ``kind``.

    Empty cells become None (missing).
    """
    if value is None or value.strip() == "":
        return None
    if kind is ColumnType.NUMERICAL:
        return _to_number(value)
    if kind is ColumnType.BOOLEAN:
        return _to_bool(value)
    if kind is ColumnType.ORDINAL:
        try:
            number = _to_number(value)
        except ValueError:
            return value
        return int(number) if number.is_integer() else number
    return value


def _read_source(source: str | Path | IO[bytes], compression: Optional[str]) -> bytes:
    try:
        if isinstance(source, (str, Path)):
            with pa.input_stream(str(source), compression=compression or "detect") as stream:
                return stream.read()
        if compression and compression != "detect":
            with pa.CompressedInputStream(pa.PythonFile(source, mode="r"), compression) as stream:
                return stream.read()
        data = source.read()
        return data.encode("utf-8") if isinstance(data, str) else data
    except (OSError, pa.ArrowException) as e:
        raise ParseError(f"Cannot read tabular source {source!r}: {e}") from e


def _split_records(text: str, terminator: str, quote_char: str) -> List[str]:
    """Split ``text`` on ``terminator`` outside quoted fields."""
    records = []
    start = 0
    i = 0
    quoted = False
    while i < len(text):
        if text[i] == quote_char:
            quoted = not quoted
        elif not quoted and text.startswith(terminator, i):
            records.append(text[start:i])
            i += len(terminator)
            start = i
            continue
        i += 1
    if quoted:
        raise ParseError("Unterminated quoted field")
    if start < len(text):
        records.append(text[start:])
    return records


def parse_csv(
    source: str | Path | IO[bytes],
    label_column: Optional[str],
    column_types: Mapping[str, ColumnType | str],
    *,
    delimiter: str = ",",
    quote_char: str = '"',
    record_terminator: str = "\r\n",
    compression: Optional[str] = "detect",
    encoding: str = "utf-8",
    configuration: Optional["Configuration"] = None,
) -> Dataframe:
    """
    Parse delimited text into a Dataframe.

    Args:
        source: Path (``.gz``/``.bz2`` detected by suffix) or binary file object.
        label_column: Column stored as ``Record.y`` (None for unlabeled data).
        column_types: Ordered column name -> ColumnType for every column,
            including the label column.
        delimiter: Field delimiter.
        quote_char: Quote character.
        record_terminator: Row separator; ``\\n``, ``\\r\\n`` and ``\\r`` are
            recognised natively, anything else is split outside quoted fields first.
        compression: Compression codec for file objects, or ``"detect"``.
        encoding: Text encoding of the source.
        configuration: Attached to the resulting Dataframe.

    Returns:
        Dataframe with record ids assigned in file order.

    Raises:
        ParseError: Header or row width does not match the declared columns,
            or a cell cannot be converted to its declared type.
    """
    column_types = {str(k): ColumnType(v) for k, v in column_types.items()}
    if label_column is not None and label_column not in column_types:
        raise ParseError(f"Label column '{label_column}' is not among the declared columns")
    if len(delimiter) != 1 or len(quote_char) != 1:
        raise ParseError("delimiter and quote_char must be single characters")
    if not record_terminator:
        raise ParseError("record_terminator must not be empty")

    raw = _read_source(source, compression)
    try:
        text = raw.decode(encoding)
    except UnicodeDecodeError as e:
        raise ParseError(f"Source is not valid {encoding}: {e}") from e
    if record_terminator not in ("\n", "\r\n", "\r"):
        text = "\n".join(_split_records(text, record_terminator, quote_char))

    try:
        table = pa_csv.read_csv(
            pa.BufferReader(text.encode("utf-8")),
            read_options=pa_csv.ReadOptions(encoding="utf8"),
            parse_options=pa_csv.ParseOptions(
                delimiter=delimiter,
                quote_char=quote_char,
                newlines_in_values=True,
            ),
            convert_options=pa_csv.ConvertOptions(
                column_types={name: pa.string() for name in column_types},
                strings_can_be_null=False,
            ),
        )
    except pa.ArrowInvalid as e:
        raise ParseError(f"Malformed tabular input: {e}") from e

    header = table.column_names
    if len(header) != len(column_types) or set(header) != set(column_types):
        raise ParseError(
            f"Header {header} does not match the declared columns {list(column_types)}"
        )

    feature_schema = {name: kind for name, kind in column_types.items() if name != label_column}
    label_type = column_types[label_column] if label_column is not None else None
    df = Dataframe(feature_schema, label_type, configuration=configuration)

    columns = {name: table.column(name).to_pylist() for name in header}
    for row in range(table.num_rows):
        x = {}
        for name, kind in feature_schema.items():
            try:
                x[name] = convert_value(columns[name][row], kind)
            except ValueError as e:
                raise ParseError(f"Row {row + 1}, column '{name}': {e}") from e
        y = None
        if label_column is not None:
            try:
                y = convert_value(columns[label_column][row], label_type)
            except ValueError as e:
                raise ParseError(f"Row {row + 1}, label '{label_column}': {e}") from e
        df.add(Record(x=x, y=y))

    logger.info(f"Parsed {len(df)} records with {len(feature_schema)} feature columns")
    return df
