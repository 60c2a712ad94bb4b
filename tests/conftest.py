import logging

import pytest
import yaml

from custodia_forecast.schemas import HistoricalPeriod
from custodia_forecast.utils.config import ConfigLoader, PROJECT_ROOT
from custodia_forecast.utils.logging_config import ROOT_LOGGER_NAME


REPO_CONFIG = PROJECT_ROOT / 'config' / 'config.yaml'

SCENARIO_A = [100, 105, 110, 98, 102, 115, 120, 98, 90, 95, 130, 140]

# Average ticket used to derive GMV from service counts in fixtures
TICKET = 6500.0


def make_periods(services, start_index=1, ticket=TICKET):
    """Consecutive monthly periods with GMV proportional to services"""
    return [
        HistoricalPeriod(
            period_index=start_index + i,
            period_label=f"{2024 + i // 12}-{i % 12 + 1:02d}",
            service_count=value,
            gmv=value * ticket
        )
        for i, value in enumerate(services)
    ]


def _merge(base, overrides):
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


@pytest.fixture
def config():
    return ConfigLoader(str(REPO_CONFIG))


@pytest.fixture
def make_config(tmp_path):
    """Factory writing the repo config with overrides to a temporary file"""
    with open(REPO_CONFIG) as f:
        base = yaml.safe_load(f)

    def factory(overrides):
        path = tmp_path / 'config.yaml'
        with open(path, 'w') as f:
            yaml.safe_dump(_merge(base, overrides), f)
        return ConfigLoader(str(path))

    return factory


@pytest.fixture
def scenario_a():
    return make_periods(SCENARIO_A)


@pytest.fixture(autouse=True)
def reset_package_logger():
    """CLI runs attach handlers to streams that close when the run ends"""
    yield
    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    package_logger.handlers = []
    package_logger.setLevel(logging.NOTSET)
