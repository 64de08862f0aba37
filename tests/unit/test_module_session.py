from __future__ import annotations

from esg_analytics.models.config_models import ModuleConfig
from esg_analytics.models.load_result import LoadErrorType, LoadResult, LoadStatus
from esg_analytics.services.module_session import ModuleSession
from esg_analytics.services.record_loader import load_from_grid


def test_initial_state_is_idle(water_module: ModuleConfig):
    session = ModuleSession(water_module)
    assert session.status is LoadStatus.IDLE
    assert session.generation == 0
    assert session.current.overview == {"totalQuantity": 0, "count": 0}
    assert session.current.series == {"byAttribute": []}


def test_begin_load_enters_loading(water_module: ModuleConfig):
    session = ModuleSession(water_module)
    ticket = session.begin_load()
    assert ticket == 1
    assert session.status is LoadStatus.LOADING


def test_stale_completion_is_dropped(water_module: ModuleConfig, water_rows):
    session = ModuleSession(water_module)
    first = session.begin_load()
    second = session.begin_load()

    assert session.complete_load(second, load_from_grid(water_rows, water_module)) is True
    # 先に始まった読込が後から完了しても上書きしない
    stale = LoadResult.failure(LoadErrorType.FETCH_FAILED, "Unable to fetch records from the data source.")
    assert session.complete_load(first, stale) is False

    assert session.status is LoadStatus.SUCCESS
    assert session.current.record_count == 2


def test_refresh_rebuilds_payload_each_time(water_module: ModuleConfig, water_rows):
    session = ModuleSession(water_module)
    ok = session.refresh(lambda: load_from_grid(water_rows, water_module))
    assert ok.overview["totalQuantity"] == 300

    failed = session.refresh(lambda: load_from_grid([], water_module))
    assert session.status is LoadStatus.ERROR
    assert failed.error_type is LoadErrorType.INPUT_ABSENT
    assert failed.overview["totalQuantity"] == 0
    assert session.generation == 2


def test_refresh_with_raising_loader_ends_in_error(water_module: ModuleConfig, water_rows, caplog):
    session = ModuleSession(water_module)
    session.refresh(lambda: load_from_grid(water_rows, water_module))

    def broken() -> LoadResult:
        raise RuntimeError("connection reset")

    with caplog.at_level("ERROR"):
        payload = session.refresh(broken)
    assert session.status is LoadStatus.ERROR
    assert payload.error_type is LoadErrorType.FETCH_FAILED
    assert payload.message == "Unable to fetch records from the data source."
    assert payload.overview["totalQuantity"] == 0
    assert "loader raised" in caplog.text
