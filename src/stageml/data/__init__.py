"""
Tabular data: containers, ingestion and splitting.
"""

from stageml.data.dataframe import ColumnType, Dataframe, Record
from stageml.data.ingestion import convert_value, parse_csv
from stageml.data.splitter import Split, Splitter, shuffled_ids, split

__all__ = [
    "ColumnType",
    "Dataframe",
    "Record",
    "parse_csv",
    "convert_value",
    "Split",
    "Splitter",
    "split",
    "shuffled_ids",
]
