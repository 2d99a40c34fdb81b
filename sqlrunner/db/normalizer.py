"""Map raw driver results onto one uniform row-set shape."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pandas as pd

from sqlrunner.db.base import BaseAdapter, RawResult

NULL_DISPLAY = "NULL"


@dataclass(frozen=True)
class ResultColumn:
    """Result column with its readable type name (None when unknown)."""
    name: str
    type_name: Optional[str] = None

    @property
    def header(self) -> str:
        return f"{self.name}\n({self.type_name})" if self.type_name else self.name


@dataclass
class QueryResult:
    """Rows keyed by column name; null and absent values are ``None``."""
    rows: List[Dict[str, Any]] = field(default_factory=list)
    columns: List[ResultColumn] = field(default_factory=list)

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]

    @property
    def headers(self) -> List[str]:
        return [column.header for column in self.columns]

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def is_empty(self) -> bool:
        return not self.rows

    def to_dataframe(self, columns: Optional[List[str]] = None) -> pd.DataFrame:
        # object dtype keeps integers from being widened to floats around nulls
        names = columns or self.column_names
        return pd.DataFrame(
            [[row.get(name) for name in names] for row in self.rows],
            columns=names,
            dtype=object,
        )

    def display_rows(self) -> List[List[str]]:
        return [
            [NULL_DISPLAY if row.get(name) is None else str(row.get(name)) for name in self.column_names]
            for row in self.rows
        ]


def normalize(raw: RawResult, adapter: BaseAdapter) -> QueryResult:
    """Build a ``QueryResult`` from a tabular raw result."""
    columns = [ResultColumn(column.name, adapter.type_name(column.type_code)) for column in raw.columns]
    rows = [{column.name: row.get(column.name) for column in columns} for row in raw.rows]
    return QueryResult(rows=rows, columns=columns)
