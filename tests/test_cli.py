import io
import os
import re

from schemashift.cli import CliLog, main


def test_log_printf_plain():
    stream = io.StringIO()
    log = CliLog(False, stream)
    log.printf("no newline")
    assert stream.getvalue() == "no newline"
    assert log.verbose() is False


def test_log_println_joins_arguments():
    stream = io.StringIO()
    log = CliLog(False, stream)
    log.println("error:", 3, "x")
    assert stream.getvalue() == "error: 3 x\n"


def test_log_verbose_adds_timestamp_and_newline():
    stream = io.StringIO()
    log = CliLog(True, stream)
    log.printf("hello")
    assert log.verbose() is True
    assert re.fullmatch(r"\d{4}/\d{2}/\d{2} \d{2}:\d{2}:\d{2} hello\n", stream.getvalue())


def test_help_prints_usage(capsys):
    assert main(["-help"]) == 0
    assert "Usage: migrate OPTIONS COMMAND [arg...]" in capsys.readouterr().err


def test_no_command_prints_usage(capsys):
    assert main([]) == 0
    assert "Usage: migrate" in capsys.readouterr().err


def test_unknown_command_prints_usage(capsys):
    assert main(["bogus"]) == 0
    assert "Usage: migrate" in capsys.readouterr().err


def test_undefined_flag_exits_with_two(capsys):
    assert main(["-nonexistent"]) == 2
    assert "Usage: migrate" in capsys.readouterr().err


def test_version_flag(capsys):
    assert main(["-version"]) == 0
    err = capsys.readouterr().err
    assert "Usage" not in err
    assert err.endswith("\n") and len(err.strip()) > 0


def test_create_sequential(tmp_path, capsys):
    directory = str(tmp_path)
    assert main(["create", "-ext", "sql", "-dir", directory, "-seq", "add_users"]) == 0
    assert sorted(os.listdir(directory)) == [
        "000001_add_users.down.sql",
        "000001_add_users.up.sql",
    ]


def test_create_leading_dot_in_ext_is_not_doubled(tmp_path):
    directory = str(tmp_path)
    assert main(["create", "-ext=.sql", "-dir", directory, "-seq", "-digits", "2", "a"]) == 0
    assert main(["create", "-ext=sql", "-dir", directory, "-seq", "-digits", "2", "b"]) == 0
    names = sorted(os.listdir(directory))
    assert len(names) == 4
    assert all(name.endswith(".sql") and "..sql" not in name for name in names)
    assert {name.split("_", 1)[0] for name in names} == {"01", "02"}


def test_create_unix_format(tmp_path):
    directory = str(tmp_path)
    assert main(["create", "-ext", "sql", "-dir", directory, "-format", "unix", "n"]) == 0
    names = os.listdir(directory)
    assert len(names) == 2
    assert all(re.fullmatch(r"\d{10,}_n\.(up|down)\.sql", name) for name in names)


def test_create_needs_name(tmp_path, capsys):
    assert main(["create", "-ext", "sql", "-dir", str(tmp_path)]) == 1
    assert "error: please specify name" in capsys.readouterr().err
    assert os.listdir(tmp_path) == []


def test_create_needs_ext(tmp_path, capsys):
    assert main(["create", "-dir", str(tmp_path), "name"]) == 1
    assert "error: -ext flag must be specified" in capsys.readouterr().err


def test_create_seq_with_format_fails(tmp_path, capsys):
    code = main(["create", "-ext", "sql", "-dir", str(tmp_path), "-seq", "-format", "unix", "n"])
    assert code == 1
    assert "The seq and format options are mutually exclusive" in capsys.readouterr().err


def test_goto_without_urls_fails(capsys):
    assert main(["goto", "1"]) == 1
    assert capsys.readouterr().err.startswith("error:")


def test_version_with_unavailable_source_fails(tmp_path, capsys):
    database_url = f"sqlite3://{tmp_path / 'db.sqlite'}"
    code = main(["-path", str(tmp_path), "-database", database_url, "version"])
    assert code == 1
    assert capsys.readouterr().err.startswith("error:")


def test_bad_prefetch_value(capsys):
    assert main(["-prefetch", "-3", "up"]) == 2
    assert "Usage: migrate" in capsys.readouterr().err