"""Request bodies for datamodel, dataset, table, relation and build resources."""

from __future__ import annotations

import time
from typing import Any

from dmlib.models import UploadResult

# Column type codes used by the datamodel schema API.
COLUMN_TYPE_INT = 8
COLUMN_TYPE_TEXT = 18

CUSTOMER_COLUMNS: list[tuple[str, int]] = [
    ("id", COLUMN_TYPE_INT),
    ("first name", COLUMN_TYPE_TEXT),
    ("last name", COLUMN_TYPE_TEXT),
    ("country", COLUMN_TYPE_TEXT),
]

COUNTRY_CODES_EXPRESSION = (
    "select 'UK' as Country, 'UK' as Code UNION\n"
    "select 'Canada' as Country, 'CA' as Code UNION\n"
    "select 'Iceland' as Country, 'IC' as Code UNION\n"
    "select 'USA' as Country, 'US' as Code"
)

FULL_NAME_EXPRESSION = "select [first name] + ' ' + [last name]"


def unique_name(prefix: str = "test") -> str:
    """``<prefix>-<epoch millis>``, unique enough for throwaway resources."""
    return f"{prefix}-{int(time.time() * 1000)}"


def datamodel(title: str) -> dict[str, Any]:
    return {"title": title}


def csv_connection(upload: UploadResult) -> dict[str, Any]:
    """Connection block pointing a CSV dataset at an uploaded file."""
    return {
        "provider": "CSV",
        "schema": upload.storage_path,
        "fileName": upload.file_name,
        "parameters": {
            "ApiVersion": "2",
            "files": [upload.storage_path],
        },
    }


def csv_dataset(upload: UploadResult, name: str) -> dict[str, Any]:
    return {
        "name": name,
        "type": "extract",
        "connection": csv_connection(upload),
    }


def custom_dataset(name: str) -> dict[str, Any]:
    return {"name": name, "type": "custom"}


def csv_table(
    upload: UploadResult,
    name: str,
    columns: list[tuple[str, int]],
    description: str = "",
) -> dict[str, Any]:
    """Table over an uploaded CSV; its id must be the stored file's name."""
    return {
        "id": upload.storage_name,
        "name": name,
        "description": description,
        "hidden": False,
        "columns": [
            {"id": col, "name": col, "indexed": True, "type": col_type}
            for col, col_type in columns
        ],
        "buildBehavior": {"type": "sync"},
        "configOptions": {
            "culture": "en-US",
            "delimiter": ",",
            "hasHeader": True,
            "stringQuote": '"',
        },
    }


def custom_table(name: str, expression: str, description: str = "") -> dict[str, Any]:
    return {
        "id": unique_name("custom"),
        "name": name,
        "type": "custom",
        "description": description,
        "expression": expression,
    }


def custom_column(name: str, expression: str, col_type: int = COLUMN_TYPE_TEXT) -> dict[str, Any]:
    return {
        "id": name,
        "name": name,
        "expression": expression,
        "indexed": True,
        "isCustom": True,
        "type": col_type,
    }


def relation(*ends: tuple[str, str, str]) -> dict[str, Any]:
    """Relation joining ``(dataset_oid, table_oid, column_oid)`` ends."""
    return {
        "columns": [
            {"dataset": dataset, "table": table, "column": column}
            for dataset, table, column in ends
        ]
    }


def build_request(datamodel_oid: str, build_type: str = "full", row_limit: int = 0) -> dict[str, Any]:
    return {"datamodelId": datamodel_oid, "buildType": build_type, "rowLimit": row_limit}


def find_column_oid(
    table: dict[str, Any],
    column_id: str | None = None,
    column_name: str | None = None,
) -> str:
    """Return the oid of the column matching *column_id* or *column_name*.

    Raises:
        KeyError: No such column in the table body.
    """
    for col in table.get("columns", []):
        if (column_id is not None and col.get("id") == column_id) or (
            column_name is not None and col.get("name") == column_name
        ):
            return col["oid"]
    raise KeyError(
        f"column {column_id or column_name!r} not found in table {table.get('oid')!r}"
    )
