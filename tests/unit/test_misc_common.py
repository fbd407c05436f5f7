import json
from pathlib import Path

from civic_alerts.common.fs import read_json, write_json
from civic_alerts.common.ids import generate_run_id, match_id_for, message_id_for
from civic_alerts.common.logging import build_logger, log_event
from civic_alerts.common.models import ExtractedData, Pin, StreetSection, failed_status, is_failed_status
from civic_alerts.common.text import (
    has_house_number,
    normalise_address,
    normalise_street_name,
    split_intersection,
    with_locality,
)


def test_generate_run_id_prefix():
    assert generate_run_id().startswith("run-")


def test_message_id_is_stable_per_source_and_external_id():
    assert message_id_for("toplo-bg", "123") == message_id_for("toplo-bg", "123")
    assert message_id_for("toplo-bg", "123") != message_id_for("sofiyska-voda", "123")
    assert match_id_for("msg-1", "user-1") == "msg-1:user-1"


def test_failed_status_helpers():
    assert failed_status("geocode") == "failed-at-geocode"
    assert is_failed_status("failed-at-geocode")
    assert not is_failed_status("complete")
    assert not is_failed_status(None)


def test_normalise_address_unifies_quotes_and_number_sign():
    assert normalise_address("  ул. „Опълченска“  №1 ") == 'ул. "Опълченска" 1'


def test_with_locality_appends_missing_parts_only():
    assert with_locality("Opalchenska 1", "Sofia", "Bulgaria") == "Opalchenska 1, Sofia, Bulgaria"
    assert with_locality("Opalchenska 1, Sofia", "Sofia", "Bulgaria") == "Opalchenska 1, Sofia, Bulgaria"
    assert with_locality("Opalchenska 1, Sofia, Bulgaria", "Sofia", "Bulgaria") == "Opalchenska 1, Sofia, Bulgaria"


def test_normalise_street_name_strips_prefixes_and_quotes():
    assert normalise_street_name("бул. „Витоша“") == "витоша"
    assert normalise_street_name("ул. 'Граф Игнатиев'") == "граф игнатиев"
    assert normalise_street_name("Blvd. Vitosha") == "vitosha"


def test_split_intersection_and_house_numbers():
    assert split_intersection("ул. Раковски & бул. Витоша") == ("ул. Раковски", "бул. Витоша")
    assert split_intersection("ул. Раковски 12") is None
    assert split_intersection("& Витоша") is None
    assert has_house_number("Opalchenska 1")
    assert not has_house_number("бул. Витоша")


def test_referenced_addresses_are_unique_and_ordered():
    extracted = ExtractedData(
        pins=(Pin(address="A 1"), Pin(address="B 2"), Pin(address="A 1")),
        streets=(StreetSection(street="S", from_="B 2", to="C"),),
    )
    assert extracted.referenced_addresses() == ["A 1", "B 2", "C"]


def test_write_json_is_sorted_and_atomic(tmp_path: Path):
    path = tmp_path / "nested" / "out.json"
    write_json(path, {"b": 1, "a": "ж"})

    assert read_json(path) == {"a": "ж", "b": 1}
    assert path.read_text(encoding="utf-8").index('"a"') < path.read_text(encoding="utf-8").index('"b"')
    assert not (tmp_path / "nested" / "out.json.tmp").exists()


def test_log_event_writes_json_lines(tmp_path: Path):
    logger = build_logger("run-log", data_dir=tmp_path, level="INFO")
    log_event(logger, "stage start", run_id="run-log", stage="ingest", message_id="msg-1", status="ok")
    log_event(logger, "stage failed", run_id="run-log", stage="ingest", status="error", error_code="STAGE_ERROR")

    lines = (tmp_path / "run_meta" / "run-log.log.jsonl").read_text(encoding="utf-8").splitlines()
    records = [json.loads(line) for line in lines]

    assert records[0]["message_id"] == "msg-1"
    assert records[0]["level"] == "INFO"
    assert records[1]["level"] == "WARNING"
    assert records[1]["error_code"] == "STAGE_ERROR"
    assert set(records[0]) >= {"timestamp", "run_id", "stage", "event", "rows_in", "message"}
