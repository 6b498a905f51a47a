"""
Tests for the progress reconciliation engine.

Tests cover:
- Tolerance-based reconciliation of supplied values
- Completion rules per mode and the no-activity guard
- Merging of baseline items by description and unit
- Status bands, free-text search and headline statistics
"""

from decimal import Decimal

import pytest

from procurement_engines.progress import (
    CompletionMode,
    ProgressEngine,
    ProgressFigures,
    ProgressStatus,
    aggregate_progress,
    filter_progress,
    progress_stats,
    reconcile,
    sort_by_pending,
)


def _figures(required="10", ordered="0", received="0", key="cable::m", **derived) -> ProgressFigures:
    return ProgressFigures(
        key=key,
        description=key.split("::")[0],
        unit="m",
        required=Decimal(required),
        ordered=Decimal(ordered),
        received=Decimal(received),
        **{name: Decimal(value) for name, value in derived.items()},
    )


@pytest.fixture
def engine() -> ProgressEngine:
    return ProgressEngine()


# ============================================================================
# reconcile()
# ============================================================================


class TestReconcile:
    def test_absent_uses_fallback_without_replacement(self):
        outcome = reconcile(Decimal("0.5"), None)
        assert outcome.value == Decimal("0.5")
        assert not outcome.replaced

    def test_non_finite_uses_fallback(self):
        assert reconcile(Decimal("0.5"), "NaN").value == Decimal("0.5")

    def test_within_tolerance_keeps_supplied(self):
        outcome = reconcile(Decimal("0.5"), Decimal("0.50005"))
        assert outcome.value == Decimal("0.50005")
        assert not outcome.replaced

    def test_outside_tolerance_replaced(self):
        outcome = reconcile(Decimal("0.5"), Decimal("0.6"))
        assert outcome.value == Decimal("0.5")
        assert outcome.replaced


# ============================================================================
# reconcile_figures()
# ============================================================================


class TestReconcileFigures:
    def test_fallbacks_from_raw_counts(self, engine):
        record = engine.reconcile_figures(_figures(ordered="5", received="2"))

        assert record.order_pct == Decimal("0.5")
        assert record.receive_pct == Decimal("0.2")
        assert record.pending_order == Decimal("5")
        assert record.pending_receive == Decimal("8")
        assert not record.complete
        assert record.corrected_fields == ()

    def test_supplied_over_one_is_replaced_by_raw(self, engine):
        record = engine.reconcile_figures(_figures(ordered="5", order_pct="1.2"))

        assert record.order_pct == Decimal("0.5")
        assert "order_pct" in record.corrected_fields

    def test_supplied_pending_on_other_basis_replaced(self, engine):
        # ordered 10, received 4: upstream reports pending receive as 6 of ordered,
        # the raw basis against required 20 is 16
        record = engine.reconcile_figures(
            _figures(required="20", ordered="10", received="4", pending_receive="6")
        )
        assert record.pending_receive == Decimal("16")
        assert record.corrected_fields == ("pending_receive",)

    def test_over_delivery_clamped(self, engine):
        record = engine.reconcile_figures(_figures(ordered="15", received="12"))

        assert record.order_pct == Decimal("1")
        assert record.receive_pct == Decimal("1")
        assert record.pending_order == Decimal("0")
        assert record.pending_receive == Decimal("0")
        assert record.complete

    def test_zero_required(self, engine):
        record = engine.reconcile_figures(_figures(required="0", ordered="3"))

        assert record.order_pct == Decimal("0")
        assert record.pending_order == Decimal("0")
        # ordered activity with nothing pending completes the order axis
        assert record.complete

    def test_no_activity_never_complete(self, engine):
        record = engine.reconcile_figures(_figures(required="0"))
        assert not record.complete


class TestCompletionModes:
    @pytest.mark.parametrize(
        "mode, ordered, received, expected",
        [
            (CompletionMode.EITHER, "10", "0", True),
            (CompletionMode.EITHER, "5", "5", False),
            (CompletionMode.BOTH, "10", "0", False),
            (CompletionMode.BOTH, "10", "10", True),
            (CompletionMode.RECEIVE, "10", "0", False),
            (CompletionMode.RECEIVE, "0", "10", True),
        ],
    )
    def test_modes(self, mode, ordered, received, expected):
        engine = ProgressEngine(completion_mode=mode)
        record = engine.reconcile_figures(_figures(ordered=ordered, received=received))
        assert record.complete is expected

    def test_threshold_completes_before_zero_pending(self):
        engine = ProgressEngine(completion_threshold=Decimal("0.95"))
        assert engine.reconcile_figures(_figures(ordered="9.6")).complete
        assert not engine.reconcile_figures(_figures(ordered="9.4")).complete


# ============================================================================
# aggregate_progress() and build()
# ============================================================================


class TestAggregation:
    def test_same_description_and_unit_merge(self, make_baseline_item, make_order):
        first = make_baseline_item("Cable THW", required="10", sheet_name="Piso 1")
        second = make_baseline_item("cable  thw", required="5", sheet_name="Piso 2")
        other_unit = make_baseline_item("Cable THW", unit="rollo", required="2")
        order = make_order([(first, "4"), (second, "3")])

        figures = {f.key: f for f in aggregate_progress([first, second, other_unit], [order])}

        merged = figures["cable thw::m"]
        assert merged.required == Decimal("15")
        assert merged.ordered == Decimal("7")
        assert merged.baseline_ids == (first.id, second.id)
        assert merged.sheet_names == ("Piso 1", "Piso 2")
        assert figures["cable thw::rollo"].ordered == Decimal("0")

    def test_unknown_baseline_lines_skipped(self, make_baseline_item, make_delivery):
        item = make_baseline_item()
        stranger = make_baseline_item("Not in catalog")
        delivery = make_delivery([(item, "2"), (stranger, "9")])

        (figures,) = aggregate_progress([item], deliveries=[delivery])
        assert figures.received == Decimal("2")

    def test_quantities_converted_to_baseline_unit(
        self, make_baseline_item, make_order, make_delivery
    ):
        item = make_baseline_item(unit="m", required="10")
        order = make_order([(make_baseline_item(id=item.id, unit="cm"), "500")])

        (figures,) = aggregate_progress([item], [order])
        assert figures.ordered == Decimal("5")

    def test_build_reconciles_supplied_by_key(self, engine, make_baseline_item, make_order):
        item = make_baseline_item(required="10")
        order = make_order([(item, "5")])
        supplied = [_figures(key="cable thw 14 awg::m", order_pct="0.9")]

        (record,) = engine.build(baseline=[item], orders=[order], supplied=supplied)

        assert record.order_pct == Decimal("0.5")
        assert record.corrected_fields == ("order_pct",)

    def test_build_sorted_by_pending(self, engine, make_baseline_item, make_order):
        small = make_baseline_item("Small", required="2")
        large = make_baseline_item("Large", required="50")

        records = engine.build(baseline=[small, large], orders=[make_order([(small, "1")])])

        assert [r.description for r in records] == ["Large", "Small"]

    def test_reconcile_records_logs(self, engine, captured_logs):
        engine.reconcile_records(supplied=[_figures(ordered="5", order_pct="0.1")])

        messages = [r["message"] for r in captured_logs()]
        assert "progress_value_replaced" in messages
        assert "progress_reconciled" in messages


# ============================================================================
# Filters and stats
# ============================================================================


class TestFilters:
    @pytest.fixture
    def records(self, engine):
        return engine.reconcile_records(
            supplied=[
                _figures(key="none::m", ordered="0"),
                _figures(key="quarter::m", ordered="2"),
                _figures(key="over_half::m", ordered="6"),
                _figures(key="most::m", ordered="8"),
                _figures(key="done::m", ordered="10"),
            ]
        )

    def _keys(self, rows):
        return sorted(r.key for r in rows)

    def test_pending(self, records):
        assert self._keys(filter_progress(records, status=ProgressStatus.PENDING)) == [
            "most::m",
            "none::m",
            "over_half::m",
            "quarter::m",
        ]

    def test_bands(self, records):
        assert self._keys(filter_progress(records, status=ProgressStatus.R1_25)) == ["quarter::m"]
        assert self._keys(filter_progress(records, status=ProgressStatus.R26_50)) == []
        assert self._keys(filter_progress(records, status=ProgressStatus.R51_75)) == ["over_half::m"]
        assert self._keys(filter_progress(records, status=ProgressStatus.R76_99)) == ["most::m"]
        assert self._keys(filter_progress(records, status=ProgressStatus.R100)) == ["done::m"]

    def test_search(self, records):
        assert self._keys(filter_progress(records, term="HALF")) == ["over_half::m"]

    def test_search_by_baseline_fields(self, engine, make_baseline_item):
        item = make_baseline_item("Tubo", sheet_name="Sanitarias", item_code="03.20")
        records = engine.build(baseline=[item])
        index = {item.id: item}

        assert filter_progress(records, term="sanit", baseline_index=index) == records
        assert filter_progress(records, term="3.2", baseline_index=index) == records
        assert filter_progress(records, term="zzz", baseline_index=index) == ()


class TestStats:
    def test_empty(self):
        assert progress_stats([]) is None

    def test_means_and_counts(self, engine):
        records = engine.reconcile_records(
            supplied=[
                _figures(key="a::m", ordered="10", received="5"),
                _figures(key="b::m"),
            ]
        )
        stats = progress_stats(records)

        assert stats.total_items == 2
        assert stats.items_with_order == 1
        assert stats.items_received == 1
        assert stats.ordered_pct == Decimal("0.5")
        assert stats.received_pct == Decimal("0.25")


def test_sort_by_pending_stable(engine):
    records = [
        engine.reconcile_figures(_figures(key="a::m")),
        engine.reconcile_figures(_figures(key="b::m")),
        engine.reconcile_figures(_figures(key="c::m", required="30")),
    ]
    assert [r.key for r in sort_by_pending(records)] == ["c::m", "a::m", "b::m"]
