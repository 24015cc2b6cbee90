"""
Ranking helpers for grouped counts.

Both helpers expect `frame` in fact-id order and rank by descending count.
Ties keep first-appearance order: groups are formed without sorting and
every sort is stable, so repeated runs on unchanged data agree exactly.
"""

import pandas as pd

COUNT_COLUMN = "count"


def group_counts(frame: pd.DataFrame, keys: list[str]) -> pd.DataFrame:
    """
    Count rows per distinct key, in first-appearance order.

    Null keys form their own group rather than being dropped. Key values
    are taken from the first row of each group, so a null key does not turn
    the integer keys of other groups into floats.
    """
    group_ids = frame.groupby(keys, sort=False, dropna=False).ngroup()
    first_rows = ~group_ids.duplicated()

    counts = frame.loc[first_rows, keys].reset_index(drop=True)
    sizes = group_ids.value_counts().reindex(group_ids[first_rows])
    counts[COUNT_COLUMN] = sizes.to_numpy(dtype="int64")
    return counts


def count_top_n(frame: pd.DataFrame, keys: list[str], top_n: int) -> pd.DataFrame:
    """
    Group by `keys`, count, sort by count descending and keep `top_n` groups.

    Returns a frame with the key columns followed by COUNT_COLUMN.
    """
    counts = group_counts(frame, keys)
    ranked = counts.sort_values(COUNT_COLUMN, ascending=False, kind="stable")
    return ranked.head(top_n).reset_index(drop=True)


def top_k_per_partition(
    frame: pd.DataFrame,
    partition: str,
    keys: list[str],
    k: int,
) -> pd.DataFrame:
    """
    Keep the `k` highest-count groups within each partition.

    Within a partition, groups are ranked by count descending; ties are
    broken by first appearance, and exactly min(k, groups) rows survive.
    The result is ordered by partition descending, then count descending.
    """
    counts = group_counts(frame, [partition, *keys])
    by_count = counts.sort_values(COUNT_COLUMN, ascending=False, kind="stable")
    kept = by_count.groupby(partition, sort=False, dropna=False).head(k)

    # Stable sort on the partition keeps the count order inside each one
    ordered = kept.sort_values(partition, ascending=False, kind="stable")
    return ordered.reset_index(drop=True)
