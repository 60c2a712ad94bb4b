import pytest

from custodia_forecast.utils.metrics import calculate_mape, percentage_error


@pytest.mark.parametrize("actual, forecast, expected", [
    (100, 110, 10.0),
    (100, 90, 10.0),
    (200, 200, 0.0),
    (50, 100, 100.0),
])
def test_percentage_error(actual, forecast, expected):
    assert percentage_error(actual, forecast) == pytest.approx(expected)


def test_percentage_error_zero_actual_is_undefined():
    assert percentage_error(0, 25) is None


def test_mape_excludes_zero_actuals():
    # The zero-actual period would be a division by zero; it is left out
    mape = calculate_mape([100, 0, 200], [110, 5, 180])
    assert mape == pytest.approx(10.0)


def test_mape_all_zero_actuals_returns_none():
    assert calculate_mape([0, 0], [1, 2]) is None


def test_mape_shape_mismatch():
    with pytest.raises(ValueError):
        calculate_mape([1, 2, 3], [1, 2])
