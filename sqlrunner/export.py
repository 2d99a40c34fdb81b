"""CSV and JSON export of query results."""

import csv
import json
import logging
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from sqlrunner.db.normalizer import QueryResult
from sqlrunner.exceptions import ExportError

logger = logging.getLogger(__name__)

NO_RESULT_MESSAGE = "No query result to export."


class ExportFormat(str, Enum):
    """Supported export formats."""
    CSV = "csv"
    JSON = "json"


class ResultExporter:
    """Serializes a ``QueryResult`` to CSV or JSON.

    CSV writes a header of column names, nulls as empty fields and quotes
    only where needed. JSON writes a list of row objects and keeps nulls.
    """

    def _select_columns(self, result: Optional[QueryResult], columns: Optional[List[str]]) -> List[str]:
        if result is None or result.is_empty:
            raise ExportError(NO_RESULT_MESSAGE)
        if not columns:
            return result.column_names

        unknown = [name for name in columns if name not in result.column_names]
        if unknown:
            raise ExportError(
                f"Unknown column(s): {', '.join(unknown)}",
                details={'available': result.column_names},
            )
        return list(columns)

    def to_csv(self, result: Optional[QueryResult], columns: Optional[List[str]] = None) -> str:
        names = self._select_columns(result, columns)
        frame = result.to_dataframe(names)
        return frame.to_csv(index=False, na_rep='', quoting=csv.QUOTE_MINIMAL, lineterminator='\n')

    def to_json(self, result: Optional[QueryResult], columns: Optional[List[str]] = None) -> str:
        names = self._select_columns(result, columns)
        records = [{name: row.get(name) for name in names} for row in result.rows]
        return json.dumps(records, indent=2, ensure_ascii=False, default=str)

    def export(
        self,
        result: Optional[QueryResult],
        path: Union[str, Path],
        fmt: Union[str, ExportFormat],
        columns: Optional[List[str]] = None,
    ) -> Path:
        """Write a result to ``path`` in the given format.

        Args:
            result: Result to export; usually the executor's last result.
            path: Destination file. Parent directories are created.
            fmt: ``csv`` or ``json``.
            columns: Optional subset of columns, in output order.

        Returns:
            The path written.

        Raises:
            ExportError: If there is nothing to export, a column is unknown,
                the format is unsupported or the file cannot be written.
        """
        try:
            export_format = fmt if isinstance(fmt, ExportFormat) else ExportFormat(str(fmt).lower())
        except ValueError:
            raise ExportError(f"Unsupported export format: {fmt}. Use 'csv' or 'json'.")

        if export_format == ExportFormat.CSV:
            content = self.to_csv(result, columns)
        else:
            content = self.to_json(result, columns)

        output_path = Path(path)
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with open(output_path, 'w', newline='', encoding='utf-8') as f:
                f.write(content)
        except OSError as e:
            raise ExportError(f"Failed to write {output_path}: {e}") from e

        logger.info("Exported %d rows to %s", result.row_count, output_path)
        return output_path
