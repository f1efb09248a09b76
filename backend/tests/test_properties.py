"""
Hypothesis property tests for the calculation invariants.

For any valid contract, sales, and advance:
1. Tier rows foot exactly to each format total
2. Format totals foot exactly to the royalty earned
3. Recouped + net payable == earned, and nothing is negative
4. The same inputs give the same result
5. Recoupment across consecutive periods never exceeds the advance
"""

from datetime import date
from decimal import Decimal

from hypothesis import assume, given, settings, strategies as st
from hypothesis.strategies import composite

from royalty_engine.models.calculation import AuthorShare
from royalty_engine.models.contract import AdvanceState, BookFormat, ContractTerms, Tier
from royalty_engine.models.sales import NetSalesByFormat, RoyaltyPeriod
from royalty_engine.services.advance import recoup_advance
from royalty_engine.services.engine import calculate
from royalty_engine.services.splits import split_royalty_by_ownership
from royalty_engine.services.tier_resolver import resolve_tiers

PERIOD = RoyaltyPeriod(start_date=date(2026, 1, 1), end_date=date(2026, 3, 31))


# =============================================================================
# Strategies
# =============================================================================

def money(max_value="1000000"):
    return st.decimals(
        min_value=Decimal("0"),
        max_value=Decimal(max_value),
        places=2,
        allow_nan=False,
        allow_infinity=False,
    )


rates = st.decimals(min_value=Decimal("0"), max_value=Decimal("0.5"), places=3)


@composite
def tier_schedules(draw):
    """Contiguous tiers: 1-4 tiers, last unbounded."""
    widths = draw(st.lists(st.integers(min_value=1, max_value=5000), min_size=0, max_size=3))
    tier_rates = draw(st.lists(rates, min_size=len(widths) + 1, max_size=len(widths) + 1))
    tiers = []
    start = 0
    for width, rate in zip(widths, tier_rates):
        end = max(start, 1) + width - 1
        tiers.append(Tier(from_units=start, to_units=end, rate=rate))
        start = end + 1
    tiers.append(Tier(from_units=start, rate=tier_rates[-1]))
    return tiers


@composite
def contracts(draw):
    formats = draw(st.lists(st.sampled_from(list(BookFormat)), min_size=1, max_size=3, unique=True))
    rows = []
    for fmt in formats:
        for tier in draw(tier_schedules()):
            rows.append({
                "format": fmt.value,
                "from_units": tier.from_units,
                "to_units": tier.to_units,
                "rate": tier.rate,
            })
    return ContractTerms.from_tier_rows(rows, contract_id="prop")


@composite
def sales_for(draw, terms):
    sales = []
    cumulative = {}
    for fmt in terms.schedules:
        units = draw(st.integers(min_value=0, max_value=20000))
        sales.append(NetSalesByFormat(
            format=fmt,
            gross_units=units,
            net_revenue=draw(money()) if units else Decimal("0"),
        ))
        cumulative[fmt] = draw(st.integers(min_value=0, max_value=20000))
    return sales, cumulative


@composite
def advance_states(draw):
    total = draw(money("100000"))
    recouped = draw(st.decimals(min_value=Decimal("0"), max_value=total, places=2))
    return AdvanceState(total_advance=total, recouped_to_date=recouped)


@composite
def scenarios(draw):
    terms = draw(contracts())
    sales, cumulative = draw(sales_for(terms))
    return terms, sales, cumulative, draw(advance_states())


# =============================================================================
# Properties
# =============================================================================

class TestCalculationProperties:

    @given(scenarios())
    @settings(max_examples=200, deadline=None)
    def test_rows_foot_to_totals(self, scenario):
        terms, sales, cumulative, advance = scenario
        result = calculate(terms, advance, sales, cumulative, PERIOD)

        for calc in result.per_format:
            assert sum(r.royalty_amount for r in calc.tier_breakdown) == calc.format_royalty_total
            assert all(r.royalty_amount >= 0 for r in calc.tier_breakdown)
            if calc.tier_breakdown:
                assert sum(r.units_in_tier for r in calc.tier_breakdown) == calc.net_units
        assert sum(c.format_royalty_total for c in result.per_format) == result.total_royalty_earned

    @given(scenarios())
    @settings(max_examples=200, deadline=None)
    def test_conservation_and_non_negativity(self, scenario):
        terms, sales, cumulative, advance = scenario
        result = calculate(terms, advance, sales, cumulative, PERIOD)

        assert result.advance_recouped_this_period + result.net_payable == result.total_royalty_earned
        assert result.advance_recouped_this_period >= 0
        assert result.advance_remaining_after >= 0
        assert result.net_payable >= 0
        if advance.is_fully_recouped:
            assert result.advance_recouped_this_period == 0
            assert result.net_payable == result.total_royalty_earned

    @given(scenarios())
    @settings(max_examples=50, deadline=None)
    def test_idempotent(self, scenario):
        terms, sales, cumulative, advance = scenario
        first = calculate(terms, advance, sales, cumulative, PERIOD)
        second = calculate(terms, advance, sales, cumulative, PERIOD)
        assert first.model_dump_json() == second.model_dump_json()


class TestTierProperties:

    @given(
        tier_schedules(),
        st.integers(min_value=0, max_value=50000),
        st.integers(min_value=0, max_value=50000),
    )
    @settings(max_examples=300, deadline=None)
    def test_units_allocated_exactly_once(self, tiers, cumulative_before, net_units):
        rows = resolve_tiers(tiers, cumulative_before, net_units)
        assert sum(r.units_in_tier for r in rows) == net_units
        assert [r.tier_index for r in rows] == sorted({r.tier_index for r in rows})


class TestRecoupmentProperties:

    @given(advance_states(), st.lists(money("50000"), min_size=1, max_size=12))
    @settings(max_examples=200, deadline=None)
    def test_monotonic_and_bounded(self, state, earnings):
        total_recouped = state.recouped_to_date
        for earned in earnings:
            recoupment = recoup_advance(earned, state)
            assert recoupment.recouped_this_period >= 0
            assert recoupment.recouped_this_period <= earned
            next_state = state.apply(recoupment)
            assert next_state.recouped_to_date >= state.recouped_to_date
            total_recouped = next_state.recouped_to_date
            state = next_state
        assert total_recouped <= state.total_advance


class TestSplitProperties:

    @given(
        money(),
        st.lists(st.integers(min_value=1, max_value=50), min_size=1, max_size=5),
    )
    @settings(max_examples=200, deadline=None)
    def test_splits_foot(self, total, weights):
        # The last author takes whatever is left of 100%
        percentages = [Decimal(w) for w in weights[:-1]]
        remainder = Decimal(100) - sum(percentages)
        assume(remainder > 0)
        shares = [
            AuthorShare(contact_id=f"author-{i}", ownership_percentage=p)
            for i, p in enumerate(percentages + [remainder])
        ]
        amounts = split_royalty_by_ownership(total, shares)
        assert sum(amounts) == total
        assert all(a >= 0 for a in amounts)
