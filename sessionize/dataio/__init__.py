"""Row sources and sinks for the sessionizer (CSV, Parquet, JSON-lines)."""
from .tables import ensure_datetime, read_table, table_format, write_table

__all__ = ["ensure_datetime", "read_table", "table_format", "write_table"]
