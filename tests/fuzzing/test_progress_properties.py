"""
Property-based tests for progress reconciliation and offer selection.

Uses Hypothesis to check, over arbitrary non-negative quantities and
arbitrary supplied figures:
- Percentages always stay within [0, 1]
- Pending quantities are never negative and follow the raw counts
- A record without order or receive activity is never complete
- The best offer is a minimum and does not depend on input permutation
"""

from decimal import Decimal
from uuid import uuid4

from hypothesis import given, settings
from hypothesis import strategies as st

from procurement_engines.comparison import SupplierOffer, select_best_offer
from procurement_engines.progress import (
    CompletionMode,
    ProgressEngine,
    ProgressFigures,
)
from procurement_kernel.domain.documents import OfferLine

quantities = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("100000"), places=3, allow_nan=False
)
supplied_values = st.one_of(
    st.none(),
    st.decimals(min_value=Decimal("-10"), max_value=Decimal("10"), places=4, allow_nan=False),
)


@st.composite
def progress_figures(draw):
    return ProgressFigures(
        key="item::m",
        description="item",
        unit="m",
        required=draw(quantities),
        ordered=draw(quantities),
        received=draw(quantities),
        order_pct=draw(supplied_values),
        receive_pct=draw(supplied_values),
        pending_order=draw(supplied_values),
        pending_receive=draw(supplied_values),
    )


class TestProgressInvariants:
    @given(figures=progress_figures(), mode=st.sampled_from(list(CompletionMode)))
    @settings(max_examples=300)
    def test_record_bounds(self, figures, mode):
        record = ProgressEngine(completion_mode=mode).reconcile_figures(figures)

        assert Decimal("0") <= record.order_pct <= Decimal("1")
        assert Decimal("0") <= record.receive_pct <= Decimal("1")
        assert record.pending_order >= Decimal("0")
        assert record.pending_receive >= Decimal("0")

    @given(figures=progress_figures())
    @settings(max_examples=300)
    def test_pending_follows_raw_counts(self, figures):
        engine = ProgressEngine()
        record = engine.reconcile_figures(figures)

        if figures.required <= Decimal("0"):
            expected = Decimal("0")
        else:
            expected = max(Decimal("0"), figures.required - figures.ordered)
        assert abs(record.pending_order - expected) <= engine.epsilon

    @given(required=quantities, mode=st.sampled_from(list(CompletionMode)))
    def test_no_activity_never_complete(self, required, mode):
        figures = ProgressFigures(
            key="k", description="k", unit=None,
            required=required, ordered=Decimal("0"), received=Decimal("0"),
        )
        assert not ProgressEngine(completion_mode=mode).reconcile_figures(figures).complete


def _offers(totals):
    quotation_id = uuid4()
    return [
        SupplierOffer(
            quotation_id=quotation_id,
            supplier_name="S",
            line=OfferLine(id=uuid4(), quotation_id=quotation_id, description="x"),
            normalized_unit_price=None,
            normalized_total=total,
        )
        for total in totals
    ]


class TestBestOffer:
    @given(totals=st.lists(st.one_of(st.none(), quantities), max_size=8))
    def test_best_is_minimum(self, totals):
        best = select_best_offer(_offers(totals))
        priced = [t for t in totals if t is not None]

        if not priced:
            assert best is None
        else:
            assert best.normalized_total == min(priced)

    @given(totals=st.lists(quantities, min_size=1, max_size=8), data=st.data())
    def test_best_total_stable_under_permutation(self, totals, data):
        offers = _offers(totals)
        shuffled = data.draw(st.permutations(offers))

        assert select_best_offer(shuffled).normalized_total == (
            select_best_offer(offers).normalized_total
        )
