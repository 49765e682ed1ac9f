"""Delimited text to records."""

import csv
import io

from statsloader.models.record import Record

EXTRA_FIELD_PREFIX = "_extra_"


def parse_delimited(text: str, delimiter: str = ",") -> tuple[list[str], list[Record]]:
    """Tokenize delimited text.

    The first non-empty line is the header. Cells beyond the header width are
    kept under ``_extra_<n>`` keys and short rows simply lack the trailing
    columns, so the validator can report field-count mismatches.

    Args:
        text: File contents
        delimiter: Field delimiter

    Returns:
        Header and records (record index is the zero-based data row)
    """
    rows = [row for row in csv.reader(io.StringIO(text), delimiter=delimiter) if row]
    if not rows:
        return [], []

    header = [column.strip() for column in rows[0]]
    records = []
    for index, row in enumerate(rows[1:]):
        fields = {}
        for position, value in enumerate(row):
            if position < len(header):
                fields[header[position]] = value
            else:
                fields[f"{EXTRA_FIELD_PREFIX}{position - len(header)}"] = value
        records.append(Record(raw_fields=fields, index=index))
    return header, records
