"""Read order codes from the purchases CSV."""

import csv
import re
from typing import Dict, Iterable, List

from pipeline.config import ConfigurationError

CODE_PATTERN = re.compile(r'^\d+-\d+-[A-Z]{2}\d{2}$')


def is_valid_code(code: str) -> bool:
    """Check the structural shape of an order code (e.g. 3506-434-SE25)."""
    return bool(code) and CODE_PATTERN.match(code) is not None


def parse_csv(file_path: str) -> List[Dict[str, str]]:
    """
    Parse a CSV file and return the rows as dicts keyed by header.

    Rows with fewer columns than the header get empty strings for the
    missing trailing columns.

    Args:
        file_path: Path to the CSV file

    Returns:
        List of row dicts

    Raises:
        ConfigurationError: If the file cannot be read
    """
    try:
        with open(file_path, 'r', encoding='utf-8-sig', newline='') as f:
            reader = csv.DictReader(f, restval='')
            return [dict(row) for row in reader]
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise ConfigurationError(f"Cannot read input file {file_path}: {e}")


def extract_unique_codes(rows: Iterable[Dict[str, str]], column: str = 'chilecompra_code') -> List[str]:
    """
    Extract valid, unique codes in first-seen order.

    Invalid codes are dropped silently.

    Args:
        rows: Row dicts from parse_csv
        column: Identifier column name

    Returns:
        List of codes
    """
    seen = set()
    codes = []

    for row in rows:
        code = (row.get(column) or '').strip()
        if is_valid_code(code) and code not in seen:
            seen.add(code)
            codes.append(code)

    return codes


def load_codes(file_path: str, column: str = 'chilecompra_code') -> List[str]:
    """Read the CSV and return its valid unique codes."""
    rows = parse_csv(file_path)
    if rows and column not in rows[0]:
        raise ConfigurationError(f"Input file {file_path} has no '{column}' column")
    return extract_unique_codes(rows, column)
