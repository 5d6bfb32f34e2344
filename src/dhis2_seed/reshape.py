"""Wide-to-long reshaping of observation tables.

Source tables arrive with a set of identifying columns and one column
per variable or period. Reshaping emits one record per non-missing
cell, in source row order and then source column order.
"""

from typing import Any, Dict, Iterator, List, Sequence, Union

import pandas as pd

from dhis2_seed.exceptions import ValidationError
from dhis2_seed.logging_config import create_logger

logger = create_logger(__name__)

TableLike = Union[pd.DataFrame, Sequence[Dict[str, Any]]]


def _as_frame(table: TableLike) -> pd.DataFrame:
    if isinstance(table, pd.DataFrame):
        return table
    # object dtype keeps ints as ints next to nulls
    return pd.DataFrame(list(table), dtype=object)


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _plain(value: Any) -> Any:
    # numpy scalars -> python scalars
    return value.item() if hasattr(value, "item") else value


def value_columns(
    table: pd.DataFrame, id_columns: Sequence[str], exclude_columns: Sequence[str] = ()
) -> List[str]:
    """Return the columns that reshaping turns into variables."""
    skipped = set(id_columns) | set(exclude_columns)
    return [column for column in table.columns if column not in skipped]


def reshape(
    table: TableLike,
    id_columns: Sequence[str],
    exclude_columns: Sequence[str] = (),
    variable_name: str = "variable",
    value_name: str = "value",
) -> Iterator[Dict[str, Any]]:
    """Lazily convert a wide table into long records.

    :param table: DataFrame or list of row dicts in wide form
    :param id_columns: Columns copied onto every output record
    :param exclude_columns: Columns neither kept nor reshaped
    :param variable_name: Key holding the source column name
    :param value_name: Key holding the cell value
    :return: Generator of ``{id columns..., variable, value}`` dicts
    :raises ValidationError: If an id column is absent from a non-empty table
    """
    frame = _as_frame(table)
    if len(frame) == 0:
        return
    missing = [column for column in id_columns if column not in frame.columns]
    if missing:
        raise ValidationError(f"Id columns missing from table: {missing}")

    columns = list(frame.columns)
    variables = value_columns(frame, id_columns, exclude_columns)
    id_positions = [columns.index(column) for column in id_columns]
    variable_positions = [(column, columns.index(column)) for column in variables]

    for row in frame.itertuples(index=False, name=None):
        ids = {column: _plain(row[position]) for column, position in zip(id_columns, id_positions)}
        for variable, position in variable_positions:
            value = row[position]
            if _is_missing(value):
                continue
            record = dict(ids)
            record[variable_name] = variable
            record[value_name] = _plain(value)
            yield record


def reshape_frame(
    table: TableLike,
    id_columns: Sequence[str],
    exclude_columns: Sequence[str] = (),
    variable_name: str = "variable",
    value_name: str = "value",
) -> pd.DataFrame:
    """Materialize :func:`reshape` into a DataFrame."""
    records = list(
        reshape(
            table,
            id_columns,
            exclude_columns=exclude_columns,
            variable_name=variable_name,
            value_name=value_name,
        )
    )
    columns = list(id_columns) + [variable_name, value_name]
    long_frame = pd.DataFrame(records, columns=columns)
    logger.info(f"Reshaped {len(_as_frame(table))} wide rows into {len(long_frame)} long records")
    return long_frame
