from __future__ import annotations

import pytest

from valuation_engine.models.common import ScenarioType
from valuation_engine.sample_data import (
    build_sample_assumptions,
    build_sample_baseline,
    build_sample_config,
    build_sample_readiness,
    build_sample_snapshot,
)
from valuation_engine.services.calculator import compute_dcf


@pytest.fixture
def assumptions():
    return build_sample_assumptions()


@pytest.fixture
def base_assumptions(assumptions):
    return assumptions[ScenarioType.BASE]


@pytest.fixture
def baseline():
    return build_sample_baseline()


@pytest.fixture
def config():
    return build_sample_config()


@pytest.fixture
def dcf_result(assumptions, baseline, config):
    return compute_dcf(assumptions, baseline, config)


@pytest.fixture
def base_result(dcf_result):
    return dcf_result.scenario(ScenarioType.BASE)


@pytest.fixture
def snapshot():
    return build_sample_snapshot()


@pytest.fixture
def readiness():
    return build_sample_readiness()
