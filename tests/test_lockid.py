import pytest

from schemashift.lockid import generate_advisory_lock_id


@pytest.mark.parametrize(
    ("dbname", "additional", "expected"),
    [
        ("database_name", (), "1764327054"),
        ("database_name", ("schema_name_1",), "2453313553"),
        ("database_name", ("schema_name_2",), "235207038"),
        ("database_name", ("schema_name_1", "schema_name_2"), "3743845847"),
    ],
)
def test_generate_advisory_lock_id(dbname, additional, expected):
    assert generate_advisory_lock_id(dbname, *additional) == expected


def test_lock_id_is_stable_and_fits_32_bits():
    first = generate_advisory_lock_id("some_db", "public")
    second = generate_advisory_lock_id("some_db", "public")
    assert first == second
    assert 0 <= int(first) < 2**32


def test_additional_names_change_the_id():
    assert generate_advisory_lock_id("database_name") != generate_advisory_lock_id(
        "database_name", "schema_name_1"
    )