# tests/test_import_csv.py
from datetime import datetime

import scripts.import_csv as imp

HEADER = "Name,Location,Start date,End date,Type,Format,Rounds,URL,Special,Continent,Players\n"


def test_parse_date_forms():
    assert imp.parse_date("January 17", 2025) == datetime(2025, 1, 17)
    assert imp.parse_date("sept 3", 2025) is None
    assert imp.parse_date("February 30", 2025) is None
    assert imp.parse_date("2025-05-26", 2024) == datetime(2025, 5, 26)
    assert imp.parse_date("May 26, 2026", 2024) == datetime(2026, 5, 26)
    assert imp.parse_date("", 2025) is None
    assert imp.parse_date("TBD", 2025) is None


def test_row_to_fields_maps_headers_and_drops_blanks():
    row = {
        "Name": "Tata Steel Masters", "Location": "Wijk aan Zee", "Start date": "January 17",
        "End date": "February 2", "Rounds": "13", "URL": "https://tatasteelchess.com",
        "Special": "yes", "Prize Fund": "", "Format": "Classical",
    }
    fields = imp.row_to_fields(row, 2025)
    assert fields == {
        "title": "Tata Steel Masters",
        "location": "Wijk aan Zee",
        "start_datetime": datetime(2025, 1, 17),
        "end_datetime": datetime(2025, 2, 2),
        "rounds": 13,
        "url": "https://tatasteelchess.com",
        "special": "yes",
        "format": "Classical",
    }

    # field-name headers work too; unparseable rounds are dropped
    assert imp.row_to_fields({"title": "X", "rounds": "nine"}, 2025) == {"title": "X"}


def test_year_end_rollover():
    fields = imp.row_to_fields({"Name": "Rilton Cup", "Start date": "December 27", "End date": "January 5"}, 2025)
    assert fields["end_datetime"] == datetime(2026, 1, 5)


def test_import_rows_counts(service, queries, tmp_path):
    csv_path = tmp_path / "calendar.csv"
    csv_path.write_text(
        HEADER
        + "Tata Steel Masters,Wijk aan Zee,January 17,February 2,Round Robin,Classical,13,https://tatasteelchess.com,yes,Europe,\"Gukesh, Praggnanandhaa\"\n"
        + "Tata Steel Masters,Wijk aan Zee,January 17,February 2,Round Robin,Classical,13,https://tatasteelchess.com,yes,Europe,\n"
        + "Mystery Open,Somewhere,,,Swiss,Rapid,9,https://example.org,,Europe,\n"
        + "Broken Link Open,Paris,March 3,March 9,Swiss,Classical,9,not-a-url,,Europe,\n",
        encoding="utf-8-sig",
    )
    rows = imp.load_rows(csv_path)
    assert len(rows) == 4

    inserted, skipped, failed = imp.import_rows(service, queries, rows, 2025)
    assert (inserted, skipped, failed) == (1, 2, 1)

    e = queries.list().records[0]
    assert e.players == "Gukesh, Praggnanandhaa"
    assert e.is_special

    # rerun is idempotent
    assert imp.import_rows(service, queries, rows, 2025) == (0, 3, 1)


def test_rerun_skips_non_ascii_titles(service, queries, tmp_path):
    csv_path = tmp_path / "calendar.csv"
    csv_path.write_text(
        HEADER
        + "İstanbul Open,İstanbul,June 1,June 8,Swiss,Classical,9,https://example.org/istanbul,,Europe,\n"
        + "Šamorín Open,Šamorín,July 5,July 12,Swiss,Classical,9,https://example.org/samorin,,Europe,\n",
        encoding="utf-8-sig",
    )
    rows = imp.load_rows(csv_path)

    assert imp.import_rows(service, queries, rows, 2025) == (2, 0, 0)
    assert imp.import_rows(service, queries, rows, 2025) == (0, 2, 0)
    assert queries.list().total_matching == 2


def test_load_rows_missing_file(tmp_path):
    assert imp.load_rows(tmp_path / "nope.csv") == []


def test_main_imports_and_exports(tmp_path, monkeypatch, capsys):
    db_file = tmp_path / "app.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_file}")
    monkeypatch.setenv("EXPORT_DIR", str(tmp_path / "exports"))

    csv_path = tmp_path / "calendar.csv"
    csv_path.write_text(
        HEADER + "Norway Chess,Stavanger,May 26,June 6,Round Robin,Classical,10,https://norwaychess.no,yes,Europe,\n",
        encoding="utf-8",
    )
    assert imp.main([str(csv_path), "--year", "2025"]) == 0
    assert "Imported 1 events" in capsys.readouterr().out
    assert (tmp_path / "exports" / "special-events.json").is_file()

    assert imp.main([str(tmp_path / "empty.csv")]) == 1
