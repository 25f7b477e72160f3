# tests/core/test_logging.py
import json
import logging

from app.core.db_logging_handler import DatabaseHandler
from app.core.logging_utils import MyJSONFormatter

def _record(name="app.services.action_handler", level=logging.ERROR, msg="G:%s - boom", args=("g1",)):
    return logging.LogRecord(name, level, __file__, 10, msg, args, None)

def test_json_formatter_maps_fields():
    formatter = MyJSONFormatter(fmt_keys={"level": "levelname", "logger": "name", "message": "message"})
    line = json.loads(formatter.format(_record()))
    assert line["level"] == "ERROR"
    assert line["logger"] == "app.services.action_handler"
    assert line["message"] == "G:g1 - boom"
    assert "timestamp" in line

def test_database_handler_writes_errors_as_alerts(mocker):
    mocker.patch("app.core.db_logging_handler.SessionLocal")
    create_alert = mocker.patch("app.crud.crud_system.create_alert")

    DatabaseHandler().emit(_record())
    create_alert.assert_called_once()
    assert create_alert.call_args.kwargs["level"] == "ERROR"
    assert create_alert.call_args.kwargs["message"] == "G:g1 - boom"

def test_database_handler_skips_info_and_its_own_failures(mocker):
    mocker.patch("app.core.db_logging_handler.SessionLocal")
    create_alert = mocker.patch("app.crud.crud_system.create_alert")

    handler = DatabaseHandler()
    handler.emit(_record(level=logging.INFO))
    handler.emit(_record(name="app.crud.system", level=logging.CRITICAL))
    create_alert.assert_not_called()

def test_database_handler_keeps_game_context(mocker):
    mocker.patch("app.core.db_logging_handler.SessionLocal")
    create_alert = mocker.patch("app.crud.crud_system.create_alert")

    record = _record()
    record.game_id = "g1"
    DatabaseHandler().emit(record)
    assert create_alert.call_args.kwargs["game_id"] == "g1"
    assert create_alert.call_args.kwargs["logger_name"] == "app.services.action_handler"

def test_json_formatter_includes_extra_fields():
    formatter = MyJSONFormatter(fmt_keys={"level": "levelname"})
    record = _record()
    record.game_id = "g1"
    line = json.loads(formatter.format(record))
    assert line["game_id"] == "g1"
    assert line["message"] == "G:g1 - boom"

def test_create_alert_persists_row(db_session):
    from app.crud import crud_system

    alert = crud_system.create_alert(db_session, "ERROR", "sweeper failed", game_id="g9", logger_name="app.main")
    assert alert.id is not None
    assert alert.game_id == "g9"
