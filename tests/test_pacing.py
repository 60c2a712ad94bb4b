import pytest

from conftest import TICKET, make_periods
from custodia_forecast.exceptions import InsufficientSamplesError, InvalidSeriesError
from custodia_forecast.models import AccelerationEstimator, CurrentPeriodPacer, IntraMonthProjector
from custodia_forecast.schemas import PacingSnapshot


def snapshot(services, days_elapsed=15, days_in_period=30):
    return PacingSnapshot(
        services_to_date=services,
        gmv_to_date=services * TICKET,
        days_elapsed=days_elapsed,
        days_in_period=days_in_period
    )


@pytest.fixture
def pacer(config):
    return CurrentPeriodPacer(config)


def test_intra_month_run_rate():
    assert IntraMonthProjector().project(50, 10, 30) == pytest.approx(150.0)


@pytest.mark.parametrize("values, expected_growth, expected_forecast", [
    ([95, 130, 140], (35 / 95 + 10 / 130) / 2, None),
    ([0, 10, 20], 1.0, 30.0),
    ([100, 90, 81], -0.1, 81 * (1 - 0.1 * 0.1)),
    ([50], 0.0, 50.0),
])
def test_acceleration_estimator(values, expected_growth, expected_forecast):
    forecast, growth, factor = AccelerationEstimator().estimate(values)

    assert growth == pytest.approx(expected_growth)
    assert 0.1 <= factor <= 0.5
    if expected_forecast is not None:
        assert forecast == pytest.approx(expected_forecast)


@pytest.mark.parametrize("progress, change_point, expected", [
    (0.3, False, {'linear_trend': 0.5, 'intra_month': 0.3, 'acceleration': 0.2}),
    (0.6, False, {'linear_trend': 0.35, 'intra_month': 0.45, 'acceleration': 0.2}),
    (0.8, False, {'linear_trend': 0.25, 'intra_month': 0.55, 'acceleration': 0.2}),
    (0.3, True, {'linear_trend': 0.65 / 1.2, 'intra_month': 0.25 / 1.2, 'acceleration': 0.3 / 1.2}),
])
def test_determine_weights(pacer, progress, change_point, expected):
    weights = pacer.determine_weights(progress, change_point)

    assert sum(weights.values()) == pytest.approx(1.0)
    for name, value in expected.items():
        assert weights[name] == pytest.approx(value)


def test_change_point_detection(pacer):
    assert pacer.detect_change_point([100] * 4 + [150] * 4) is True
    assert pacer.detect_change_point([100] * 4 + [110] * 4) is False
    # Fewer than two full windows
    assert pacer.detect_change_point([100] * 3 + [150] * 4) is False


def test_projection_mid_month(pacer, scenario_a):
    projection = pacer.project(scenario_a, snapshot(70))

    assert set(projection.components) == {'linear_trend', 'intra_month', 'acceleration'}
    assert projection.components['intra_month'] == pytest.approx(140.0)
    assert sum(projection.weights.values()) == pytest.approx(1.0)
    assert projection.projected_services >= 70
    assert projection.projected_gmv >= 70 * TICKET
    assert projection.change_point_detected is False
    assert projection.recent_growth_rate == pytest.approx((35 / 95 + 10 / 130) / 2)
    assert 0.4 <= projection.confidence <= 0.95
    assert projection.divergence_alert is False


def test_projection_is_weighted_blend(pacer, scenario_a):
    projection = pacer.project(scenario_a, snapshot(70))

    blended = sum(projection.components[n] * projection.weights[n] for n in projection.components)
    assert projection.projected_services == pytest.approx(blended)


def test_projection_never_below_booked(pacer, scenario_a):
    projection = pacer.project(scenario_a, snapshot(1000, days_elapsed=29))
    assert projection.projected_services == 1000


def test_slow_month_raises_divergence(pacer, scenario_a):
    projection = pacer.project(scenario_a, snapshot(10))
    assert projection.divergence_alert is True


def test_change_point_shifts_weights(pacer):
    periods = make_periods([100] * 4 + [150] * 4)
    projection = pacer.project(periods, snapshot(75))

    assert projection.change_point_detected is True
    assert projection.weights['linear_trend'] == pytest.approx(0.65 / 1.2)


def test_pacing_needs_two_periods(pacer):
    with pytest.raises(InsufficientSamplesError):
        pacer.project(make_periods([100]), snapshot(10))


@pytest.mark.parametrize("bad_snapshot", [
    PacingSnapshot(services_to_date=10, gmv_to_date=100.0, days_elapsed=0, days_in_period=30),
    PacingSnapshot(services_to_date=10, gmv_to_date=100.0, days_elapsed=31, days_in_period=30),
    PacingSnapshot(services_to_date=-1, gmv_to_date=100.0, days_elapsed=10, days_in_period=30),
])
def test_invalid_snapshot(pacer, scenario_a, bad_snapshot):
    with pytest.raises(InvalidSeriesError):
        pacer.project(scenario_a, bad_snapshot)
