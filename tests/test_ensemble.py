import logging

import numpy as np
import pytest

from conftest import SCENARIO_A, make_periods
from custodia_forecast.ensemble import EnsembleCombiner
from custodia_forecast.exceptions import EnsembleUnavailableError
from custodia_forecast.models import BaseComponentModel, SeriesFit, TrendDecomposer
from custodia_forecast.schemas import ConfidenceLevel, TrendDirection


class FixedModel(BaseComponentModel):
    """Returns the same value and confidence for any series"""

    def __init__(self, name, value, confidence, config):
        super().__init__(model_name=name, config=config)
        self.value = value
        self.confidence = confidence

    def _fit_series(self, values):
        return SeriesFit(
            value=self.value,
            confidence=self.confidence,
            estimated_mape=0.0,
            trend_direction=TrendDirection.STABLE,
            seasonality_amplitude=0.0
        )


@pytest.fixture
def combiner(config):
    return EnsembleCombiner(config=config)


def test_scenario_a_within_naive_extrapolation(combiner, scenario_a):
    result = combiner.combine(scenario_a)

    slope = np.polyfit(np.arange(12), SCENARIO_A, 1)[0]
    naive = SCENARIO_A[-1] + slope

    assert 'TrendDecomposer' in result.components
    assert 'AutoRegressiveDifferencer' in result.components
    assert result.failed_models == {}
    assert naive * 0.8 <= result.final_services <= naive * 1.2


def test_weights_sum_to_one(combiner, scenario_a):
    result = combiner.combine(scenario_a)

    assert sum(result.weights.values()) == pytest.approx(1.0, abs=1e-9)
    assert set(result.weights) == set(result.components)


def test_weights_proportional_to_confidence(combiner, scenario_a):
    result = combiner.combine(scenario_a)
    total = sum(c.confidence for c in result.components.values())

    for name, component in result.components.items():
        assert result.weights[name] == pytest.approx(component.confidence / total)


def test_final_is_weighted_average(combiner, scenario_a):
    result = combiner.combine(scenario_a)

    expected_services = sum(result.weights[n] * c.predicted_services for n, c in result.components.items())
    expected_gmv = sum(result.weights[n] * c.predicted_gmv for n, c in result.components.items())
    expected_confidence = sum(result.weights[n] * c.confidence for n, c in result.components.items())

    assert result.final_services == pytest.approx(expected_services)
    assert result.final_gmv == pytest.approx(expected_gmv)
    assert result.overall_confidence == pytest.approx(expected_confidence)


def test_uncertainty_band(combiner, scenario_a):
    result = combiner.combine(scenario_a)
    spread = np.std([c.predicted_services for c in result.components.values()])

    assert result.uncertainty_upper == pytest.approx(result.final_services + 1.96 * spread)
    assert result.uncertainty_lower == pytest.approx(max(0.0, result.final_services - 1.96 * spread))


def test_uncertainty_lower_floored_at_zero(config):
    models = [FixedModel('low', 0.0, 0.5, config), FixedModel('high', 100.0, 0.5, config)]
    result = EnsembleCombiner(models=models, config=config).combine(make_periods([10, 20]))

    assert result.final_services == pytest.approx(50.0)
    assert result.uncertainty_lower == 0.0
    assert result.uncertainty_upper == pytest.approx(50.0 + 1.96 * 50.0)


def test_flat_series_high_confidence(combiner):
    result = combiner.combine(make_periods([100] * 10))

    assert result.final_services == pytest.approx(100.0)
    assert result.overall_confidence > 0.8
    assert result.confidence_level == ConfidenceLevel.ALTA


def test_short_series_only_boosted_learner_survives(combiner, caplog):
    with caplog.at_level(logging.WARNING):
        result = combiner.combine(make_periods([100, 110, 120]))

    assert list(result.components) == ['ResidualBoostedLearner']
    assert result.weights == {'ResidualBoostedLearner': 1.0}
    assert set(result.failed_models) == {
        'TrendDecomposer', 'AutoRegressiveDifferencer', 'SequentialStateSmoother'
    }
    assert "Excluding TrendDecomposer" in caplog.text


def test_zero_total_confidence_uses_equal_weights(config):
    models = [FixedModel('a', 90.0, 0.0, config), FixedModel('b', 110.0, 0.0, config)]
    result = EnsembleCombiner(models=models, config=config).combine(make_periods([100] * 5))

    assert result.weights == {'a': 0.5, 'b': 0.5}
    assert result.final_services == pytest.approx(100.0)
    assert result.overall_confidence == 0.0
    assert result.confidence_level == ConfidenceLevel.BAJA


def test_all_models_failing_raises(config):
    combiner = EnsembleCombiner(models=[TrendDecomposer(config)], config=config)

    with pytest.raises(EnsembleUnavailableError) as excinfo:
        combiner.combine(make_periods([1, 2, 3]))

    assert str(excinfo.value) == "forecast unavailable, insufficient historical data"
    assert 'TrendDecomposer' in excinfo.value.failures


@pytest.mark.parametrize("score, level", [
    (1.0, ConfidenceLevel.ALTA),
    (0.8, ConfidenceLevel.ALTA),
    (0.79, ConfidenceLevel.MEDIA),
    (0.6, ConfidenceLevel.MEDIA),
    (0.59, ConfidenceLevel.BAJA),
    (0.0, ConfidenceLevel.BAJA),
])
def test_confidence_level_bands(combiner, score, level):
    assert combiner.confidence_level(score) == level


def test_deterministic(combiner, scenario_a):
    first = combiner.combine(scenario_a).to_dict()
    second = combiner.combine(list(scenario_a)).to_dict()
    assert first == second


@pytest.mark.parametrize("services", [
    SCENARIO_A,
    [100, 80, 60, 40, 20, 5, 1, 0, 0, 0],
    [0, 0, 0, 0, 0, 0, 0, 0],
    [5, 500, 3, 700, 2, 900, 1, 1200, 0],
])
def test_forecast_never_negative(combiner, services):
    result = combiner.combine(make_periods(services))

    assert result.final_services >= 0
    assert result.final_gmv >= 0
    assert result.uncertainty_lower >= 0
    assert all(c.predicted_services >= 0 for c in result.components.values())


def test_to_dict_is_json_ready(combiner, scenario_a):
    report = combiner.combine(scenario_a).to_dict()

    assert report['confidence_level'] in {'Alta', 'Media', 'Baja'}
    assert report['diagnostics'] is None
    assert report['components']['TrendDecomposer']['trend_direction'] in {
        'increasing', 'decreasing', 'stable'
    }
