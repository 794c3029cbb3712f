"""Dataset loading utilities."""

from pathlib import Path

import pandas as pd


def read_table(path: Path) -> pd.DataFrame:
    """
    Read tabular data file (Excel or CSV) based on file extension.

    Supported formats:
    - Excel: .xlsx, .xls
    - CSV: .csv

    Args:
        path: Path to data file

    Returns:
        pandas DataFrame

    Raises:
        ValueError: If file format is not supported
        FileNotFoundError: If file does not exist
        Exception: If file cannot be read (pandas exceptions)
    """
    if not path.exists():
        raise FileNotFoundError(f"Data file not found: {path}")

    suffix = path.suffix.lower()

    if suffix in [".xlsx", ".xls"]:
        return pd.read_excel(path)
    elif suffix == ".csv":
        return pd.read_csv(path)
    else:
        raise ValueError(f"Unsupported file format: {suffix}. Supported formats: .xlsx, .xls, .csv")


def load_record_ids(path: Path, column: str = "id") -> list[str]:
    """
    Read record ids from a table, or from a plain text file with one id per line.

    Args:
        path: Path to .csv/.xlsx/.xls table or .txt file
        column: Column holding the ids (tables only)

    Returns:
        Record ids in file order, blanks and duplicates removed

    Raises:
        ValueError: If the id column is missing
        FileNotFoundError: If file does not exist
    """
    if path.suffix.lower() == ".txt":
        if not path.exists():
            raise FileNotFoundError(f"Data file not found: {path}")
        raw = path.read_text(encoding="utf-8").splitlines()
    else:
        df = read_table(path)
        if column not in df.columns:
            raise ValueError(f"Column '{column}' not found in {path}. Available: {list(df.columns)}")
        raw = df[column].dropna().astype(str).tolist()

    ids: list[str] = []
    for value in raw:
        value = value.strip()
        if value and value not in ids:
            ids.append(value)
    return ids
