import argparse
from pathlib import Path

import duckdb
import pandas as pd

STORE_COLUMNS = ['user_id', 'id', 'amount', 'date', 'category', 'category_name', 'type']


def save_to_duckdb(df: pd.DataFrame, db_path: str, table: str = "transactions") -> int:
    """
    (Re)create the store table from a DataFrame.

    amount and date are written as VARCHAR so malformed values survive the
    load and reach the detectors untouched.

    Returns:
        Number of rows in the table
    """
    missing = set(STORE_COLUMNS) - set(df.columns)
    if missing:
        raise ValueError(f"Missing required columns: {missing}")

    frame = df.copy()
    frame['amount'] = frame['amount'].astype(str)
    frame['date'] = frame['date'].astype(str)

    con = duckdb.connect(str(db_path))
    try:
        con.register("incoming", frame)
        con.execute(f"DROP TABLE IF EXISTS {table}")
        con.execute(f"""
            CREATE TABLE {table} AS
            SELECT
                CAST(user_id AS VARCHAR)       AS user_id,
                CAST(id AS VARCHAR)            AS id,
                CAST(amount AS VARCHAR)        AS amount,
                CAST(date AS VARCHAR)          AS date,
                CAST(category AS VARCHAR)      AS category,
                CAST(category_name AS VARCHAR) AS category_name,
                CAST(type AS VARCHAR)          AS type
            FROM incoming
        """)
        con.unregister("incoming")
        count = con.execute(f"SELECT count(*) FROM {table}").fetchone()[0]
    finally:
        con.close()
    return count


def main():
    project_root = Path(__file__).parent.parent
    parser = argparse.ArgumentParser(description="Load an expense CSV into DuckDB")
    parser.add_argument("--csv", default=str(project_root / "data" / "processed" / "expenses.csv"))
    parser.add_argument("--db", default=str(project_root / "data" / "processed" / "transactions.duckdb"))
    args = parser.parse_args()

    print("🚀 Converting to DuckDB...")
    print(f"Input:  {args.csv}")
    print(f"Output: {args.db}")

    # Keep raw text: malformed amounts/dates must not be coerced by the CSV reader
    df = pd.read_csv(args.csv, dtype=str, keep_default_na=False)
    df['category_name'] = df['category_name'].where(df['category_name'] != '', None)

    count = save_to_duckdb(df, args.db)
    print(f"✅ Success! Saved {count} rows into 'transactions' table.")


if __name__ == "__main__":
    main()
