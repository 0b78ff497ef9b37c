import pandas as pd
import pytest

from sessionize.errors import DestinationExistsError, NullTimestampError, SchemaError, ValidationError
from sessionize.runner import sessionize_table, usage
from sessionize.tools.run_sessionize import main

EVENTS = (
    "name,ts,page\n"
    "Max,2024-01-01 04:57:02.15,/home\n"
    "Tori,2024-01-01 04:59:17.83,/home\n"
    "Max,2024-01-01 05:03:01.42,/cart\n"
    "Max,2024-01-01 17:32:37.08,/home\n"
)


@pytest.fixture()
def events_csv(tmp_path):
    path = tmp_path / "events.csv"
    path.write_text(EVENTS, encoding="utf-8")
    return path


def test_sessionize_table_end_to_end(events_csv, tmp_path):
    dst = tmp_path / "out" / "sessions.csv"
    summary = tmp_path / "out" / "summary.csv"
    sessionize_table(events_csv, dst, "name", "ts", "10min", summary_path=summary, check=True)

    out = pd.read_csv(dst)
    assert len(out) == 4
    assert list(out.columns) == ["name", "ts", "page", "is_session_start", "session_no"]
    assert out["is_session_start"].tolist() == [True, False, True, True]
    assert list(zip(out["name"], out["session_no"])) == [("Max", 0), ("Max", 0), ("Max", 1), ("Tori", 0)]
    assert pd.read_csv(summary)["n_events"].tolist() == [2, 1, 1]


def test_sessionize_table_with_workers_matches(events_csv, tmp_path):
    sessionize_table(events_csv, tmp_path / "a.csv", "name", "ts", "10min")
    sessionize_table(events_csv, tmp_path / "b.csv", "name", "ts", "10min", workers=3)
    pd.testing.assert_frame_equal(pd.read_csv(tmp_path / "a.csv"), pd.read_csv(tmp_path / "b.csv"))


def test_existing_destination_is_not_overwritten(events_csv, tmp_path):
    dst = tmp_path / "sessions.csv"
    dst.write_text("old", encoding="utf-8")
    with pytest.raises(DestinationExistsError):
        sessionize_table(events_csv, dst, "name", "ts", "10min")
    assert dst.read_text(encoding="utf-8") == "old"


def test_errors_leave_no_output(tmp_path):
    src = tmp_path / "events.csv"
    src.write_text("name,ts\nMax,2024-01-01 04:57\nMax,\n", encoding="utf-8")
    dst = tmp_path / "sessions.parquet"
    with pytest.raises(NullTimestampError):
        sessionize_table(src, dst, "name", "ts", "10min")
    with pytest.raises(SchemaError):
        sessionize_table(src, dst, "user", "ts", "10min", workers=2)
    assert not dst.exists()


def test_usage_text():
    text = usage()
    assert "session_no" in text
    assert "gap" in text.lower()


def test_cli_usage(capsys):
    assert main(["--usage"]) == 0
    assert "is_session_start" in capsys.readouterr().out


def test_cli_run(events_csv, tmp_path):
    dst = tmp_path / "sessions.jsonl"
    rc = main(
        ["--source", str(events_csv), "--destination", str(dst), "--id-col", "name", "--ts-col", "ts", "--gap", "10min", "--check"]
    )
    assert rc == 0
    out = pd.read_json(dst, lines=True)
    assert out["session_no"].tolist() == [0, 0, 1, 0]


def test_cli_reports_sessionize_errors(events_csv, tmp_path):
    dst = tmp_path / "sessions.csv"
    assert main(["--source", str(events_csv), "--destination", str(dst), "--id-col", "name", "--gap=-5min"]) == 2
    assert main(["--source", str(events_csv), "--destination", str(dst), "--id-col", "user"]) == 2
    assert not dst.exists()


def test_cli_requires_source_and_destination():
    with pytest.raises(SystemExit):
        main(["--id-col", "name"])


def test_sessionize_table_tie_break_as_single_column(tmp_path):
    src = tmp_path / "ticks.csv"
    src.write_text("user_id,ts,seq\na,5,2\na,5,1\na,4,3\n", encoding="utf-8")
    dst = tmp_path / "out.csv"
    sessionize_table(src, dst, "user_id", "ts", 0, tie_break="seq", parse_dates=False)
    out = pd.read_csv(dst)
    assert out["seq"].tolist() == [3, 1, 2]
    assert out["session_no"].tolist() == [0, 1, 1]


@pytest.mark.parametrize("workers", [1, 2])
def test_gap_type_mismatch_does_not_depend_on_workers(tmp_path, workers):
    src = tmp_path / "single.csv"
    src.write_text("user_id,ts\na,1\nb,2\n", encoding="utf-8")
    dst = tmp_path / "out.csv"
    with pytest.raises(ValidationError):
        sessionize_table(src, dst, "user_id", "ts", "10min", parse_dates=False, workers=workers)
    assert not dst.exists()


def test_cli_numeric_looking_column_name(tmp_path):
    src = tmp_path / "events.csv"
    src.write_text("2024,ts\nx,0\nx,100\ny,5\n", encoding="utf-8")
    dst = tmp_path / "sessions.csv"
    rc = main(["--source", str(src), "--destination", str(dst), "--id-col", "2024", "--gap", "10", "--no-parse-dates"])
    assert rc == 0
    assert pd.read_csv(dst)["session_no"].tolist() == [0, 1, 0]


def test_cli_invalid_config_exit_code(events_csv, tmp_path):
    dst = tmp_path / "sessions.csv"
    assert main(["--source", str(events_csv), "--destination", str(dst), "--id-col", "name", "--workers", "0"]) == 2
    assert not dst.exists()
