"""WIQL text selecting the items that belong to a workspace."""

from __future__ import annotations


def _quote(value: str) -> str:
    return value.replace("'", "''")


def build_root_query(area_path: str, deleted: bool = False) -> str:
    """Select ids under area_path, most recently changed first.

    The ordering is load-bearing: incremental sync stops paging at the
    first already-synced item.
    """
    return f"""
SELECT
    [System.Id]
FROM workitems
WHERE
    [System.TeamProject] = @project
    AND [System.IsDeleted] = {"true" if deleted else "false"}
    AND [System.AreaPath] UNDER '{_quote(area_path)}'
ORDER BY [System.ChangedDate] DESC""".strip()
