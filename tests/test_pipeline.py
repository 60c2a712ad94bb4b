import threading

import pytest

from conftest import SCENARIO_A, make_periods
from custodia_forecast.alerts import AlertManager
from custodia_forecast.data import InMemoryTimeSeriesStore
from custodia_forecast.exceptions import EnsembleUnavailableError, InvalidSeriesError
from custodia_forecast.pipeline import ForecastEngine
from custodia_forecast.schemas import PacingSnapshot


@pytest.fixture
def engine(config, scenario_a):
    return ForecastEngine(InMemoryTimeSeriesStore(scenario_a), config=config)


def test_forecast_attaches_diagnostics(engine):
    result = engine.forecast()

    assert result.diagnostics is not None
    assert len(result.diagnostics.backtest_results) == 3
    assert result.final_services > 0


def test_forecast_respects_lookback(engine):
    result = engine.forecast(lookback=3)
    assert list(result.components) == ['ResidualBoostedLearner']


def test_forecast_series_has_no_alert_side_effects(config):
    engine = ForecastEngine(InMemoryTimeSeriesStore(), config=config)

    engine.forecast_series(make_periods([10, 500, 3, 800, 2, 1200]))

    assert engine.alerts() == []
    assert engine.performance().current_mape is None


def test_empty_store_rejected(config):
    engine = ForecastEngine(InMemoryTimeSeriesStore(), config=config)
    with pytest.raises(InvalidSeriesError):
        engine.forecast()


def test_ensemble_unavailable_propagates(make_config, scenario_a):
    config = make_config({'ensemble': {'models': ['TrendDecomposer']}})
    engine = ForecastEngine(InMemoryTimeSeriesStore(scenario_a), config=config)

    with pytest.raises(EnsembleUnavailableError, match="insufficient historical data"):
        engine.forecast(lookback=4)


def test_manual_recalibration(engine):
    first = engine.forecast()
    record = engine.trigger_recalibration()

    assert record.trigger_reason == 'manual'
    assert record.weight_snapshot_before == first.weights
    assert record.weight_snapshot_after == first.weights
    assert engine.recalibration_log() == [record]
    assert engine.performance().last_recalibration == record.timestamp


def test_automatic_recalibration_after_consecutive_breaches(make_config, scenario_a):
    config = make_config({'alerts': {'target_mape': 0.0, 'consecutive_breaches': 2}})
    engine = ForecastEngine(InMemoryTimeSeriesStore(scenario_a), config=config)

    engine.forecast()
    assert engine.recalibration_log() == []

    engine.forecast()
    log = engine.recalibration_log()
    assert len(log) == 1
    assert log[0].trigger_reason == 'mape_above_target'
    assert engine.performance().consecutive_breaches == 0


def test_alert_control_interface(make_config, scenario_a):
    config = make_config({'alerts': {'target_mape': 0.0}})
    engine = ForecastEngine(InMemoryTimeSeriesStore(scenario_a), config=config)

    engine.forecast()
    alerts = engine.alerts()
    assert [a.code for a in alerts] == ['mape_above_target']

    engine.resolve_alert(alerts[0].id)
    assert engine.alerts() == []

    engine.forecast()
    assert len(engine.alerts()) == 1
    assert engine.clear_all_alerts() == 1
    assert engine.alerts() == []


def test_engines_share_alert_manager(config, scenario_a):
    manager = AlertManager(config)
    short = ForecastEngine(InMemoryTimeSeriesStore(scenario_a[:4]), config=config, alert_manager=manager)
    full = ForecastEngine(InMemoryTimeSeriesStore(scenario_a), config=config, alert_manager=manager)

    short.forecast()
    full.forecast()

    assert short.alerts() == full.alerts()


class LockstepStore(InMemoryTimeSeriesStore):
    """Holds each thread's first fetch until every thread has reached it"""

    def __init__(self, periods, barrier):
        super().__init__(periods)
        self.barrier = barrier
        self._local = threading.local()

    def fetch_window(self, lookback=None):
        if not getattr(self._local, 'released', False):
            self._local.released = True
            self.barrier.wait(timeout=10)
        return super().fetch_window(lookback)


def test_concurrent_breaches_recalibrate_once(make_config, scenario_a):
    config = make_config({'alerts': {'target_mape': 0.0, 'consecutive_breaches': 3}})
    manager = AlertManager(config)
    manager.record_evaluation(50.0)
    manager.record_evaluation(50.0)

    barrier = threading.Barrier(2)
    engines = [
        ForecastEngine(LockstepStore(scenario_a, barrier), config=config, alert_manager=manager)
        for _ in range(2)
    ]
    errors = []

    def worker(engine):
        try:
            engine.forecast()
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(engine,)) for engine in engines]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    log = manager.recalibration_log()
    assert len(log) == 1
    assert log[0].trigger_reason == 'mape_above_target'
    assert len(manager.alerts()) == 1


def test_concurrent_forecasts_are_independent(config):
    windows = [SCENARIO_A, SCENARIO_A[:8], [100] * 10, [5, 10, 15, 20, 25, 30]]
    engine = ForecastEngine(InMemoryTimeSeriesStore(), config=config)
    expected = [engine.forecast_series(make_periods(w)).to_dict() for w in windows]

    results = [None] * len(windows)

    def worker(i):
        results[i] = engine.forecast_series(make_periods(windows[i])).to_dict()

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(len(windows))]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results == expected


def test_project_current_period(engine):
    projection = engine.project_current_period(
        PacingSnapshot(services_to_date=70, gmv_to_date=455000.0, days_elapsed=15, days_in_period=30)
    )
    assert projection.projected_services >= 70


def test_recommendations_from_engine(engine):
    lines = engine.recommendations(engine.forecast())
    assert lines
    assert all(isinstance(line, str) for line in lines)
