"""Import source readers.

This module contains readers that implement the RowReaderPort interface for
reading tabular import sources (CSV, Excel, JSON).
"""

from pathlib import Path

from medrecords.adapters.ingesters.tabular_reader import (
    CSVRowReader,
    ExcelRowReader,
    JSONRowReader,
    TabularRowReader,
)
from medrecords.domain.ports import RowReaderPort, SourceNotFoundError, UnsupportedSourceError

__all__ = ["CSVRowReader", "ExcelRowReader", "JSONRowReader", "TabularRowReader", "get_row_reader"]


def get_row_reader(source: str, **kwargs) -> RowReaderPort:
    """Factory function to get the reader for a source by file extension.

    Parameters:
        source: Path of the import file
        **kwargs: Passed to the reader constructor (e.g. ``delimiter``, ``sheet_name``)

    Returns:
        RowReaderPort: Reader instance

    Raises:
        SourceNotFoundError: If the file does not exist
        UnsupportedSourceError: If no reader handles the file extension

    Example Usage:
        ```python
        reader = get_row_reader("services.xlsx")
        rows = list(reader.read_rows("services.xlsx"))
        ```
    """
    if not Path(source).exists():
        raise SourceNotFoundError(f"Source file not found: {source}", source=source)

    extension = Path(source).suffix.lower()
    for reader_class in (CSVRowReader, ExcelRowReader, JSONRowReader):
        if extension in reader_class.extensions:
            return reader_class(**kwargs)

    raise UnsupportedSourceError(
        f"No reader found for source: {source}. Supported: .csv, .xlsx, .xls, .json",
        source=source,
    )
