"""Inner joins between observation records and reference tables.

Joins run as SQL in an in-memory DuckDB connection over pandas frames.
Rows without a match are dropped silently; callers compare row counts
with :func:`check_join` to surface data-quality problems.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Union

import duckdb
import pandas as pd

from dhis2_seed.exceptions import JoinMismatchError, ValidationError
from dhis2_seed.logging_config import create_logger

logger = create_logger(__name__)

FrameLike = Union[pd.DataFrame, Sequence[Dict[str, Any]]]

_LEFT_ROW = "__left_row__"
_RIGHT_ROW = "__right_row__"


@dataclass
class JoinReport:
    """Row counts around one join."""

    label: str
    rows_before: int
    rows_after: int

    @property
    def dropped(self) -> int:
        return max(self.rows_before - self.rows_after, 0)


def _quote(identifier: str) -> str:
    return '"' + str(identifier).replace('"', '""') + '"'


def _as_frame(records: FrameLike) -> pd.DataFrame:
    if isinstance(records, pd.DataFrame):
        return records
    return pd.DataFrame(list(records))


def _output_columns(left: pd.DataFrame, right: pd.DataFrame) -> List[str]:
    return list(left.columns) + [c for c in right.columns if c not in left.columns]


def inner_join(
    left: FrameLike, right: FrameLike, left_key: str, right_key: str
) -> pd.DataFrame:
    """Equality inner join of two tables.

    Duplicate keys on either side produce every matching pair. Null
    keys never match. Keys are compared by their text form, so a
    string key never errors against an integer key.

    Args:
        left: Left table (frame or list of row dicts)
        right: Right table (frame or list of row dicts)
        left_key: Join column on the left
        right_key: Join column on the right

    Returns:
        DataFrame with all left columns followed by the right columns
        not already present on the left

    Raises:
        ValidationError: If a key column is missing from a non-empty table
    """
    left_frame = _as_frame(left)
    right_frame = _as_frame(right)

    columns = _output_columns(left_frame, right_frame)
    if len(left_frame) == 0 or len(right_frame) == 0:
        return pd.DataFrame(columns=columns)

    if left_key not in left_frame.columns:
        raise ValidationError(f"Join key '{left_key}' missing from left table")
    if right_key not in right_frame.columns:
        raise ValidationError(f"Join key '{right_key}' missing from right table")

    right_only = [c for c in right_frame.columns if c not in left_frame.columns]
    select = ["l.*"] + [f"r.{_quote(c)}" for c in right_only]
    # keys compare as text; output follows left row order, then right row order
    query = (
        f"SELECT {', '.join(select)} "
        f"FROM left_table AS l "
        f"INNER JOIN right_table AS r "
        f"ON CAST(l.{_quote(left_key)} AS VARCHAR) "
        f"= CAST(r.{_quote(right_key)} AS VARCHAR) "
        f"ORDER BY l.{_quote(_LEFT_ROW)}, r.{_quote(_RIGHT_ROW)}"
    )

    con = duckdb.connect()
    try:
        con.register("left_table", left_frame.assign(**{_LEFT_ROW: range(len(left_frame))}))
        con.register("right_table", right_frame.assign(**{_RIGHT_ROW: range(len(right_frame))}))
        joined = con.execute(query).fetchdf()
    finally:
        con.close()

    logger.debug(
        f"Joined {len(left_frame)} x {len(right_frame)} rows on "
        f"{left_key} = {right_key}: {len(joined)} rows"
    )
    return joined[columns]


def check_join(before: int, after: int, label: str, strict: bool = False) -> JoinReport:
    """
    Compare row counts across a join and report dropped rows.

    :param before: Row count entering the join
    :param after: Row count leaving the join
    :param label: Name of the join used in log messages
    :param strict: Raise instead of warning when rows were dropped
    :return: JoinReport with the counts
    :raises JoinMismatchError: If rows were dropped and ``strict`` is set
    """
    report = JoinReport(label=label, rows_before=before, rows_after=after)
    if report.dropped:
        message = f"{label}: {report.dropped} of {before} rows had no match and were dropped"
        if strict:
            raise JoinMismatchError(message)
        logger.warning(f"⚠️ {message}")
    else:
        logger.info(f"{label}: all {before} rows matched")
    return report
