"""Target compatibility check for a restore.

An artifact records, per table, every column the source had when it was
exported (exported and excluded alike).  Before restoring, those columns
must all exist on the target.  Pure set logic, no database access.

Usage:
    async with SchemaIntrospector(database_url) as introspector:
        actual = await introspector.get_column_names(manifest.schema_name)

    expected = {t.name: set(t.all_columns) for t in manifest.tables}
    result = validate_schema(actual, expected)
    if not result.valid:
        print(result.format_report())
"""

from db_snapshot.schema.models import ColumnDiff, SchemaValidationResult


def _diffs(table: str, columns: set[str], message: str) -> list[ColumnDiff]:
    return [
        ColumnDiff(table=table, column=column, message=message.format(table=table, column=column))
        for column in sorted(columns)
    ]


def validate_schema(
    actual_columns: dict[str, set[str]],
    expected_columns: dict[str, set[str]],
) -> SchemaValidationResult:
    """Compare the target's columns with the columns a snapshot expects.

    Tables on the target that the snapshot does not cover are ignored.
    Extra columns on a covered table are warnings: ``COPY`` with an
    explicit column list leaves them at their schema default.

    Args:
        actual_columns: ``{table: columns}`` from
            ``introspector.get_column_names()``.
        expected_columns: ``{table: columns}`` from the artifact.

    Returns:
        ``SchemaValidationResult``; invalid if a table or column is missing.

    Examples:
        >>> validate_schema({"users": {"id"}}, {"users": {"id", "login"}}).missing_columns[0].column
        'login'
    """
    result = SchemaValidationResult(
        valid=True,
        missing_tables=sorted(set(expected_columns) - set(actual_columns)),
    )

    for table in sorted(set(expected_columns) & set(actual_columns)):
        expected = expected_columns[table]
        actual = actual_columns[table]
        result.missing_columns += _diffs(
            table, expected - actual, "Column '{column}' missing from table '{table}'"
        )
        result.extra_columns += _diffs(
            table, actual - expected, "Column '{column}' not in snapshot of '{table}'"
        )

    result.valid = result.error_count == 0
    return result
