import pytest

from schemashift.statements import migration_statements

_MULTI_LINE = """CREATE TABLE table_name (
\tid STRING(255) NOT NULL,
) PRIMARY KEY (id)"""

_MULTI_TABLE = """CREATE TABLE table_name (
\tid STRING(255) NOT NULL,
) PRIMARY KEY(id)"""


@pytest.mark.parametrize(
    ("multi_statement", "expected"),
    [
        (
            "CREATE TABLE table_name (id STRING(255) NOT NULL) PRIMARY KEY (id)",
            ["CREATE TABLE table_name (id STRING(255) NOT NULL) PRIMARY KEY (id)"],
        ),
        (_MULTI_LINE, [_MULTI_LINE]),
        (
            "CREATE TABLE table_name (id STRING(255) NOT NULL) PRIMARY KEY (id);",
            ["CREATE TABLE table_name (id STRING(255) NOT NULL) PRIMARY KEY (id)"],
        ),
        (_MULTI_LINE + ";", [_MULTI_LINE]),
        (
            _MULTI_TABLE + ";\n\nCREATE INDEX table_name_id_idx ON table_name (id);",
            [_MULTI_TABLE, "\n\nCREATE INDEX table_name_id_idx ON table_name (id)"],
        ),
        (
            _MULTI_TABLE + ";\n\nCREATE INDEX table_name_id_idx ON table_name (id)",
            [_MULTI_TABLE, "\n\nCREATE INDEX table_name_id_idx ON table_name (id)"],
        ),
    ],
    ids=[
        "single statement, single line, no semicolon",
        "single statement, multi line, no semicolon",
        "single statement, single line, with semicolon",
        "single statement, multi line, with semicolon",
        "multi statement, with trailing semicolon",
        "multi statement, no trailing semicolon",
    ],
)
def test_multistatement_split(multi_statement, expected):
    assert migration_statements(multi_statement.encode()) == expected
    assert migration_statements(multi_statement) == expected


def test_blank_migration_has_no_statements():
    assert migration_statements(b"  \n\t ") == []