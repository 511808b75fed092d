from __future__ import annotations

import pytest

from valuation_engine.exceptions import SnapshotError
from valuation_engine.models.readiness import AdjustmentFactors, ReadinessCategory
from valuation_engine.models.valuation import (
    MethodBasis,
    MultiplesUsed,
    OriginalMethodValues,
    OriginalValuationSnapshot,
    ValuationMethod,
    ValuationRange,
)
from valuation_engine.sample_data import build_sample_period, build_sample_readiness
from valuation_engine.services.adjustment_factors import compute_adjustment_factors
from valuation_engine.services.rescaling import adjust_multiples, rescale_valuation

M = ValuationMethod


def _revenue_only_snapshot(**overrides):
    fields = dict(
        valuation_id="val-1",
        method_values=OriginalMethodValues(equity_value_from_revenue=2_000_000),
        multiples_used=MultiplesUsed(revenue=0.5),
    )
    fields.update(overrides)
    return OriginalValuationSnapshot.from_valuation_metrics(**fields)


def test_revenue_method_rescaled_by_its_factor():
    result = rescale_valuation(_revenue_only_snapshot(), AdjustmentFactors(revenue_multiple_factor=1.10))

    assert result.method_values[M.REVENUE] == pytest.approx(2_200_000)
    assert result.average_valuation == pytest.approx(2_200_000)
    assert result.adjusted_multiples.revenue == pytest.approx(0.55)
    assert result.valuation_range.low == pytest.approx(2_200_000 * 0.8)
    assert result.valuation_range.high == pytest.approx(2_200_000 * 1.2)


def test_neutral_factors_reproduce_snapshot_exactly(snapshot):
    result = rescale_valuation(snapshot, AdjustmentFactors.neutral())

    assert result.average_valuation == snapshot.average_valuation
    assert result.valuation_range == snapshot.valuation_range
    assert not result.book_value_fallback


def test_zero_impact_readiness_leaves_average_unchanged(snapshot):
    factors = compute_adjustment_factors(build_sample_readiness({category: 0.0 for category in ReadinessCategory}))

    assert rescale_valuation(snapshot, factors).average_valuation == snapshot.average_valuation


def test_balance_sheet_methods_pass_through(snapshot, readiness):
    result = rescale_valuation(snapshot, compute_adjustment_factors(readiness))

    assert result.method_values[M.BOOK_VALUE] == 600_000
    assert result.method_values[M.ASSET_BASED_VALUE] == 150_000
    assert result.methods_in_average == 6


def test_missing_method_factor_falls_back_to_overall():
    factors = AdjustmentFactors(overall_factor=0.9, revenue_multiple_factor=None)

    assert adjust_multiples(MultiplesUsed(revenue=2.0, ebit=5.0), factors).revenue == pytest.approx(1.8)
    assert adjust_multiples(MultiplesUsed(revenue=2.0, ebit=5.0), factors).ebit == pytest.approx(5.0)


def test_range_keeps_original_ratios():
    snapshot = _revenue_only_snapshot(valuation_range=ValuationRange(low=1_500_000, high=2_600_000))
    result = rescale_valuation(snapshot, AdjustmentFactors(revenue_multiple_factor=0.5))

    assert result.average_valuation == pytest.approx(1_000_000)
    assert result.valuation_range.low == pytest.approx(750_000)
    assert result.valuation_range.high == pytest.approx(1_300_000)


def test_methods_outside_the_original_average_stay_out():
    snapshot = OriginalValuationSnapshot.from_valuation_metrics(
        valuation_id="val-2",
        method_values=OriginalMethodValues(book_value=500_000, equity_value_from_revenue=1_000_000, equity_value_from_pe=900_000),
        multiples_used=MultiplesUsed(revenue=1.0, pe=8.0),
        method_bases={M.PE: MethodBasis.NOT_APPLICABLE},
    )
    result = rescale_valuation(snapshot, AdjustmentFactors(pe_multiple_factor=2.0))

    assert snapshot.methods_used_in_average == [M.BOOK_VALUE, M.REVENUE]
    assert M.PE not in result.method_values
    assert result.average_valuation == pytest.approx(750_000)


def test_missing_stored_value_raises():
    snapshot = OriginalValuationSnapshot(
        valuation_id="val-3",
        average_valuation=1_000_000,
        valuation_range=ValuationRange(low=800_000, high=1_200_000),
        multiples_used=MultiplesUsed(ebit=5.0),
        original_method_values=OriginalMethodValues(book_value=100_000),
        methods_used_in_average=[M.EBIT],
    )

    with pytest.raises(SnapshotError) as excinfo:
        rescale_valuation(snapshot, AdjustmentFactors.neutral())
    assert excinfo.value.method == "ebit"


def test_missing_multiple_raises():
    snapshot = OriginalValuationSnapshot(
        valuation_id="val-4",
        average_valuation=1_000_000,
        valuation_range=ValuationRange(low=800_000, high=1_200_000),
        original_method_values=OriginalMethodValues(equity_value_from_ebitda=1_000_000),
        methods_used_in_average=[M.EBITDA],
    )

    with pytest.raises(SnapshotError):
        rescale_valuation(snapshot, AdjustmentFactors.neutral())


def test_book_value_fallback_when_nothing_positive():
    snapshot = OriginalValuationSnapshot(
        valuation_id="val-5",
        average_valuation=0,
        valuation_range=ValuationRange(low=0, high=0),
        multiples_used=MultiplesUsed(revenue=0.5),
    )
    period = build_sample_period().model_copy(
        update={"revenue": 0, "ebit": -50_000, "ebitda": -20_000, "net_income": -60_000, "cash": 0}
    )
    result = rescale_valuation(snapshot, AdjustmentFactors.neutral(), period)

    assert result.recalculated_from_period
    assert result.average_valuation == pytest.approx(600_000)
    assert result.methods_in_average == 1
    assert result.valuation_range.low == pytest.approx(480_000)
    assert result.valuation_range.high == pytest.approx(720_000)


def test_period_recalculation_uses_adjusted_multiples():
    snapshot = OriginalValuationSnapshot(
        valuation_id="val-6",
        average_valuation=1_000_000,
        valuation_range=ValuationRange(low=800_000, high=1_200_000),
        multiples_used=MultiplesUsed(revenue=0.5, ebit=6.0, ebitda=4.5, pe=10.0),
    )
    period = build_sample_period()
    result = rescale_valuation(snapshot, AdjustmentFactors(revenue_multiple_factor=1.2), period)
    net_debt = 400_000 - 250_000

    assert result.method_values[M.REVENUE] == pytest.approx(4_000_000 * 0.6 - net_debt)
    assert result.method_values[M.EBIT] == pytest.approx(300_000 * 6.0 - net_debt)
    assert result.method_values[M.EBITDA] == pytest.approx(400_000 * 4.5 - net_debt)
    assert result.method_values[M.PE] == pytest.approx(150_000 * 10.0)
    assert result.method_values[M.BOOK_VALUE] == pytest.approx(600_000)
    assert result.method_values[M.ASSET_BASED_VALUE] == 0


def test_ebitda_is_estimated_from_ebit_and_depreciation():
    snapshot = OriginalValuationSnapshot(
        valuation_id="val-7",
        average_valuation=1_000_000,
        valuation_range=ValuationRange(low=800_000, high=1_200_000),
        multiples_used=MultiplesUsed(ebitda=5.0),
    )
    period = build_sample_period().model_copy(update={"ebitda": 0, "depreciation": 100_000})
    result = rescale_valuation(snapshot, AdjustmentFactors.neutral(), period)

    assert result.method_values[M.EBITDA] == pytest.approx(400_000 * 5.0 - 150_000)


def test_no_values_and_no_period_raises():
    snapshot = OriginalValuationSnapshot(
        valuation_id="val-8",
        average_valuation=1_000_000,
        valuation_range=ValuationRange(low=800_000, high=1_200_000),
    )

    with pytest.raises(SnapshotError):
        rescale_valuation(snapshot, AdjustmentFactors.neutral())


def test_average_never_goes_negative():
    snapshot = OriginalValuationSnapshot(
        valuation_id="val-9",
        average_valuation=500_000,
        valuation_range=ValuationRange(low=-100_000, high=900_000),
        original_method_values=OriginalMethodValues(book_value=-100_000),
        methods_used_in_average=[M.BOOK_VALUE],
    )
    result = rescale_valuation(snapshot, AdjustmentFactors.neutral())

    assert result.average_valuation == 0
    assert result.methods_in_average == 0
    assert not result.book_value_fallback
    assert result.valuation_range.low == 0
    assert result.valuation_range.high == 0
