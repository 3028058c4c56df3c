import json
from pathlib import Path

from cruisescore.cli import main

CATALOG = str(Path(__file__).resolve().parents[1] / "data" / "catalogs" / "sailings.json")


def test_weights_command_prints_normalized_shares(capsys):
    assert main(["weights", "--weight", "price=0.7", "--json"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["weights"]["price"] == 0.7
    assert abs(sum(data["shares"].values()) - 1.0) < 1e-9


def test_decide_command_reads_catalog(capsys):
    code = main(
        ["decide", "--start", "2026-11-01", "--end", "2027-06-30", "--max", "900", "--limit", "3", "--catalog", CATALOG, "--json"]
    )
    assert code == 0
    data = json.loads(capsys.readouterr().out)
    assert 1 <= len(data["results"]) <= 3
    # The catalog disables MA-20261205 with an override.
    assert "MA-20261205" not in [r["sailingId"] for r in data["results"]]


def test_decide_command_rejects_bad_dates(capsys):
    assert main(["decide", "--start", "next week", "--end", "2027-01-01", "--catalog", CATALOG]) == 2
    assert "--start" in capsys.readouterr().err


def test_calendar_command_lists_entries(capsys):
    code = main(["calendar", "--start", "2026-11-01", "--end", "2026-11-30", "--catalog", CATALOG, "--json"])
    assert code == 0
    entries = json.loads(capsys.readouterr().out)["entries"]
    assert [e["sailingId"] for e in entries] == ["CJ-20261107", "CD-20261112", "AL-20261129"]
    assert entries[0]["durationLabel"] == "8-Day"
