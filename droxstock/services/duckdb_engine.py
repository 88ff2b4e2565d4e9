"""DuckDB profiling engine — ephemeral per-call instances."""

import duckdb
from typing import Dict, Any


class DuckDBEngine:
    """Profiles uploaded CSV files column by column.

    Each method creates an ephemeral DuckDB connection to ensure isolation.
    """

    @staticmethod
    def _get_connection(memory_limit: str = "512MB") -> duckdb.DuckDBPyConnection:
        """Create a new in-memory DuckDB connection with safety limits."""
        conn = duckdb.connect(":memory:")
        conn.execute(f"SET memory_limit='{memory_limit}'")
        conn.execute("SET threads=2")
        return conn

    @staticmethod
    def profile_csv(file_path: str, delimiter: str = ";") -> Dict[str, Any]:
        """Compute per-column fill and uniqueness for a delimited file.

        All columns are read as text so the profile reflects the raw upload,
        not DuckDB's type sniffing.

        Returns:
            {"score": float, "total_rows": int, "columns": {name: {...}}}
        """
        conn = DuckDBEngine._get_connection()
        try:
            read_fn = DuckDBEngine._read_function(file_path, delimiter)
            conn.execute(f"CREATE VIEW _data AS SELECT * FROM {read_fn}")

            cols = conn.execute("SELECT * FROM _data LIMIT 0").description
            total_rows = conn.execute("SELECT COUNT(*) FROM _data").fetchone()[0]

            if total_rows == 0:
                return {"score": 0.0, "total_rows": 0, "columns": {}}

            column_scores = {}
            for col in cols:
                col_name = col[0].lstrip("\ufeff")
                quoted = '"' + col[0].replace('"', '""') + '"'
                null_count, distinct_count = conn.execute(
                    f"SELECT COUNT(*) - COUNT(NULLIF(TRIM({quoted}), '')), "
                    f"COUNT(DISTINCT {quoted}) FROM _data"
                ).fetchone()

                null_rate = null_count / total_rows
                column_scores[col_name] = {
                    "null_rate": round(null_rate, 4),
                    "unique_ratio": round(distinct_count / total_rows, 4),
                    "score": round(max(0, (1 - null_rate) * 100), 1),
                }

            avg_score = sum(c["score"] for c in column_scores.values()) / len(column_scores)

            return {
                "score": round(avg_score, 1),
                "total_rows": total_rows,
                "columns": column_scores,
            }
        finally:
            conn.close()

    @staticmethod
    def _read_function(file_path: str, delimiter: str) -> str:
        escaped_path = file_path.replace("'", "''")
        escaped_delim = delimiter.replace("'", "''")
        return (
            f"read_csv('{escaped_path}', delim='{escaped_delim}', header=true, "
            f"all_varchar=true, ignore_errors=true)"
        )
