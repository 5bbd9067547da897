"""Tabular Import Source Readers.

These readers implement the RowReaderPort contract for spreadsheet exports
(CSV, Excel, JSON record arrays) using pandas.

Security Impact:
    - Every cell is read as text; nothing is evaluated or type-coerced
    - A missing or unreadable source is fatal and reported before any row
      is processed

Architecture:
    - Implements RowReaderPort (Hexagonal Architecture)
    - Headers are kept verbatim; binding to fields happens in the import pipeline
    - Blank cells (empty, whitespace, NaN) become None
"""

import logging
import zipfile
from abc import abstractmethod
from pathlib import Path
from typing import Any, Iterator, Optional

import pandas as pd

from medrecords.domain.ports import RowReaderPort, SourceNotFoundError, UnsupportedSourceError
from medrecords.domain.utils import is_blank

logger = logging.getLogger(__name__)


def _cell_text(value: Any) -> Optional[str]:
    if is_blank(value):
        return None
    return value if isinstance(value, str) else str(value)


class TabularRowReader(RowReaderPort):
    """Base class for pandas-backed readers; subclasses load the DataFrame."""

    extensions: tuple[str, ...] = ()

    def can_read(self, source: str) -> bool:
        return Path(source).suffix.lower() in self.extensions

    @abstractmethod
    def _load_frame(self, path: Path) -> pd.DataFrame:
        pass

    def read_rows(self, source: str) -> Iterator[dict[str, Optional[str]]]:
        path = Path(source)
        if not path.exists():
            raise SourceNotFoundError(f"Source file not found: {source}", source=source)
        if not self.can_read(source):
            raise UnsupportedSourceError(
                f"{type(self).__name__} cannot read {path.suffix or 'extensionless'} files",
                source=source,
                reader=type(self).__name__,
            )

        try:
            frame = self._load_frame(path)
        except (ValueError, ImportError, OSError, zipfile.BadZipFile, pd.errors.ParserError) as e:
            raise UnsupportedSourceError(
                f"Failed to parse {source}: {str(e)}",
                source=source,
                reader=type(self).__name__,
            ) from e

        logger.info(f"Read {len(frame)} rows from {path.name}")
        columns = [str(column) for column in frame.columns]
        for values in frame.itertuples(index=False, name=None):
            yield {column: _cell_text(value) for column, value in zip(columns, values)}


class CSVRowReader(TabularRowReader):
    """CSV reader; UTF-8 with or without a byte order mark."""

    extensions = (".csv",)

    def __init__(self, delimiter: str = ","):
        self.delimiter = delimiter

    def _load_frame(self, path: Path) -> pd.DataFrame:
        return pd.read_csv(
            path,
            dtype=str,
            keep_default_na=False,
            sep=self.delimiter,
            encoding="utf-8-sig",
        )


class ExcelRowReader(TabularRowReader):
    """Excel reader (first sheet unless ``sheet_name`` is given)."""

    extensions = (".xlsx", ".xls")

    def __init__(self, sheet_name: Any = 0):
        self.sheet_name = sheet_name

    def _load_frame(self, path: Path) -> pd.DataFrame:
        engine = "openpyxl" if path.suffix.lower() == ".xlsx" else None
        return pd.read_excel(
            path,
            sheet_name=self.sheet_name,
            dtype=str,
            keep_default_na=False,
            engine=engine,
        )


class JSONRowReader(TabularRowReader):
    """Reader for a JSON array of row objects."""

    extensions = (".json",)

    def _load_frame(self, path: Path) -> pd.DataFrame:
        return pd.read_json(path, orient="records", dtype=False, encoding="utf-8")
