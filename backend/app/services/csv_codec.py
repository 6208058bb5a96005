import csv
import io
from typing import Dict, Iterable, List, Sequence

import pandas as pd


def encode(header: Sequence[str], rows: Iterable[Sequence]) -> str:
    """
    Serialize *rows* under *header* to CSV text.

    Args:
        header (Sequence[str]): Ordered column names, written as the first row
        rows (Iterable[Sequence]): Ordered field-value tuples

    Returns:
        str: Comma separated text with a trailing newline after every row
    """
    frame = pd.DataFrame([list(r) for r in rows], columns=list(header))
    return frame.to_csv(index=False, lineterminator="\n")


def decode(text: str) -> List[Dict[str, str]]:
    """
    Parse CSV text into a list of ``{column: value}`` mappings.

    The first non-empty record is the header. Blank lines are skipped and a
    record whose column count does not match the header is dropped without
    error, so a truncated last line never aborts the parse.

    Args:
        text (str): CSV content

    Returns:
        List[Dict[str, str]]: One mapping per data record, values as strings
    """
    if isinstance(text, bytes):
        text = text.decode("utf-8-sig")

    header: List[str] = []
    rows: List[Dict[str, str]] = []
    for record in csv.reader(io.StringIO(text)):
        if not record or all(not field.strip() for field in record):
            continue
        if not header:
            header = [field.strip() for field in record]
            continue
        if len(record) != len(header):
            continue
        rows.append(dict(zip(header, record)))
    return rows
