import pytest

from schemashift.migrate import (
    LockedError,
    Migrate,
    NilVersionError,
    SourceDriver,
)
from schemashift.stub import DROP, StubDatabase


class _MemorySource(SourceDriver):
    def __init__(self, migrations):
        self._migrations = migrations

    def first(self):
        if not self._migrations:
            raise FileNotFoundError("no migrations")
        return min(self._migrations)

    def prev(self, version):
        lower = [v for v in self._migrations if v < version]
        if version not in self._migrations or not lower:
            raise FileNotFoundError(version)
        return max(lower)

    def next(self, version):
        higher = [v for v in self._migrations if v > version]
        if version not in self._migrations or not higher:
            raise FileNotFoundError(version)
        return min(higher)

    def _read(self, version, direction):
        try:
            identifier = self._migrations[version][direction]
        except KeyError:
            raise FileNotFoundError(version) from None
        return identifier.encode(), identifier

    def read_up(self, version):
        return self._read(version, "up")

    def read_down(self, version):
        return self._read(version, "down")

    def close(self):
        pass


def test_new_stub_has_nil_version():
    db = StubDatabase("stub://")
    assert db.url == "stub://"
    assert db.version() == (-1, False)
    assert db.migration_sequence == []


def test_lock_twice_raises():
    db = StubDatabase()
    db.lock()
    with pytest.raises(LockedError):
        db.lock()
    db.unlock()
    assert db.is_locked is False
    db.lock()
    assert db.is_locked is True


def test_run_records_body():
    db = StubDatabase()
    db.run(b"/* foobar migration */")
    assert db.last_run_migration == b"/* foobar migration */"
    assert db.equal_sequence(["/* foobar migration */"])
    assert not db.equal_sequence([])


def test_set_version_and_version():
    db = StubDatabase()
    db.set_version(4, True)
    assert db.version() == (4, True)
    db.set_version(5, False)
    assert db.version() == (5, False)


def test_drop_resets_version_and_records_drop():
    db = StubDatabase()
    db.run(b"CREATE 1")
    db.set_version(1, False)
    db.drop()
    assert db.version() == (-1, False)
    assert db.last_run_migration is None
    assert db.migration_sequence == ["CREATE 1", DROP]


def test_migrate_up_and_down_with_stub():
    source = _MemorySource({1: {"up": "CREATE 1", "down": "DROP 1"}})
    db = StubDatabase()
    m = Migrate(source, db, "stub", "")

    m.up()
    assert db.equal_sequence(["CREATE 1"])
    assert m.version() == (1, False)

    m.down()
    assert db.equal_sequence(["CREATE 1", "DROP 1"])
    with pytest.raises(NilVersionError):
        m.version()

    m.drop()
    assert db.migration_sequence[-1] == DROP