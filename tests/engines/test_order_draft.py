"""
Tests for purchase order drafting.

Tests cover:
- Totals with capped discount and IGV
- Order numbering and suffix extraction
- Adding lines from the comparison (single item and whole supplier)
- Payload validation
- EDIT and REUSE drafts loaded from persisted orders
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from procurement_engines import order_draft as od
from procurement_engines.catalog import BaselineIndex
from procurement_engines.comparison import ComparisonEngine
from procurement_kernel.domain.documents import OfferLine, OrderLine
from procurement_kernel.exceptions import (
    EmptyDraftError,
    InvalidQuantityError,
    InvalidRateError,
)


@pytest.fixture
def draft(process_id):
    return od.new_order_draft(process_id, next_number="001/CP")


@pytest.fixture
def compared(make_baseline_item, make_quotation):
    """Three baseline items priced by two suppliers."""
    items = [
        make_baseline_item("Cable THW", required="100", unit_price="2", sheet_name="Eléctricas"),
        make_baseline_item("Tubo PVC", required="20", unit_price="5", sheet_name="Sanitarias"),
        make_baseline_item("Caja octogonal", required="30", unit_price="1", sheet_name="Eléctricas"),
    ]
    cheap = make_quotation("Barato", [(items[0], "1.5"), (items[1], "6")])
    full = make_quotation("Completo", [(items[0], "1.8"), (items[1], "4"), (items[2], "0.9")])
    result = ComparisonEngine().compare(
        baseline=items, quotations=[cheap, full], base_currency="PEN"
    )
    return items, cheap, full, result


# ============================================================================
# Totals and numbering
# ============================================================================


class TestTotals:
    def test_discount_then_igv(self):
        lines = [OrderLine(description="x", quantity=Decimal("10"), unit_price=Decimal("100"))]
        totals = od.compute_totals(lines, Decimal("0.18"), Decimal("0.10"))

        assert totals.subtotal == Decimal("1000")
        assert totals.discount == Decimal("100")
        assert totals.net_subtotal == Decimal("900")
        assert totals.igv == Decimal("162")
        assert totals.total == Decimal("1062")

    def test_empty_lines(self):
        totals = od.compute_totals([], Decimal("0.18"), Decimal("0"))
        assert totals.total == Decimal("0")

    @pytest.mark.parametrize("igv, discount", [("-0.01", "0"), ("1.01", "0"), ("0.18", "2")])
    def test_rates_outside_unit_interval(self, igv, discount):
        with pytest.raises(ValueError):
            od.compute_totals([], Decimal(igv), Decimal(discount))

    def test_percent_to_rate(self):
        assert od.percent_to_rate("18") == Decimal("0.18")
        assert od.percent_to_rate(None) == Decimal("0")
        with pytest.raises(InvalidRateError) as exc_info:
            od.percent_to_rate("150", "IGV")
        assert exc_info.value.code == "INVALID_RATE"
        assert exc_info.value.rate_name == "IGV"


class TestNumbering:
    @pytest.mark.parametrize(
        "template, expected",
        [("004/CP", "/CP"), ("12/OC-2024", "/OC-2024"), ("7A", "A"), ("15", ""), (None, "")],
    )
    def test_extract_suffix(self, template, expected):
        assert od.extract_order_suffix(template) == expected

    def test_build_number(self):
        assert od.build_order_number(4) == "004/CP"
        assert od.build_order_number(12, template="011/OC") == "012/OC"
        assert od.build_order_number(1234) == "1234/CP"

    def test_order_number_key(self):
        assert od.order_number_key(" 004/cp ") == "004/CP"

    def test_touched_number_not_overwritten(self, draft):
        draft = od.apply_next_order_number(draft, "002/CP")
        assert draft.order_number == "002/CP"

        draft = od.set_order_number(draft, "X-1")
        draft = od.apply_next_order_number(draft, "003/CP")
        assert draft.order_number == "X-1"

    def test_set_rates(self, draft):
        draft = od.set_rates(draft, igv_percent="10")
        assert draft.igv_rate == Decimal("0.1")
        assert draft.discount_rate == Decimal("0")

    def test_set_rates_rejects_out_of_range(self, draft):
        with pytest.raises(InvalidRateError):
            od.set_rates(draft, discount_percent="-5")


# ============================================================================
# Lines from the comparison
# ============================================================================


class TestAddBaselineItem:
    def test_uses_selected_supplier_offer(self, draft, compared):
        items, cheap, full, result = compared
        draft = od.select_supplier(draft, full.id, full.supplier_name)

        draft = od.add_baseline_item(draft, result.item(items[0].id))

        (line,) = draft.lines
        assert line.unit_price == Decimal("1.8")
        assert line.quantity == Decimal("100")
        assert line.auto_linked

    def test_falls_back_to_best_offer_then_reference(self, draft, compared):
        items, cheap, full, result = compared
        draft = od.add_baseline_item(draft, result.item(items[0].id))
        assert draft.lines[0].unit_price == Decimal("1.5")

        draft = od.select_supplier(draft, cheap.id, cheap.supplier_name)
        draft = od.add_baseline_item(draft, result.item(items[2].id))
        assert draft.lines[1].unit_price == Decimal("1")

    def test_same_item_replaces_line(self, draft, compared):
        items, cheap, full, result = compared
        draft = od.add_baseline_item(draft, result.item(items[0].id))
        first_id = draft.lines[0].line_id
        draft = od.select_supplier(draft, full.id, full.supplier_name)

        draft = od.add_baseline_item(draft, result.item(items[0].id))

        assert len(draft.lines) == 1
        assert draft.lines[0].line_id == first_id
        assert draft.lines[0].unit_price == Decimal("1.8")


class TestAddAllFromSupplier:
    @pytest.fixture
    def catalog(self, compared):
        return BaselineIndex(compared[0])

    def test_adds_every_priced_item_in_supplier_order(self, draft, compared, catalog):
        items, cheap, full, result = compared

        draft = od.add_all_from_supplier(draft, full, catalog)

        assert [line.description for line in draft.lines] == [
            "Cable THW",
            "Tubo PVC",
            "Caja octogonal",
        ]
        assert [line.supplier_row_order for line in draft.lines] == [1, 2, 3]
        assert all(line.auto_linked for line in draft.lines)

    def test_unmatched_priced_lines_come_in_unlinked(
        self, draft, make_baseline_item, make_quotation
    ):
        cable = make_baseline_item("Cable THW", required="100")
        freight = OfferLine(
            id=uuid4(),
            quotation_id=uuid4(),
            description="Flete a obra",
            unit="glb",
            quantity=Decimal("1"),
            unit_price=Decimal("250"),
            row_order=2,
        )
        unpriced = OfferLine(
            id=uuid4(), quotation_id=uuid4(), description="Nota", row_order=3
        )
        quotation = make_quotation("Acme", [(cable, "1.5"), freight, unpriced])

        draft = od.add_all_from_supplier(draft, quotation, BaselineIndex([cable]))

        assert [line.description for line in draft.lines] == ["Cable THW", "Flete a obra"]
        extra = draft.lines[1]
        assert extra.baseline_id is None
        assert not extra.auto_linked
        assert extra.unit_price == Decimal("250")
        assert extra.unit == "glb"

    def test_every_supplier_line_for_one_item(self, draft, make_baseline_item, make_quotation):
        cable = make_baseline_item("Cable THW", required="100")
        quotation = make_quotation("Acme", [(cable, "1.5"), (cable, "1.7")])

        draft = od.add_all_from_supplier(draft, quotation, BaselineIndex([cable]))

        assert [line.unit_price for line in draft.lines] == [Decimal("1.5"), Decimal("1.7")]
        assert [line.supplier_row_order for line in draft.lines] == [1, 2]

    def test_sheet_filter_uses_quotation_sheet(self, draft, make_baseline_item, make_quotation):
        cable = make_baseline_item("Cable THW", sheet_name="Eléctricas")
        quotation_id = uuid4()

        def _line(description, sheet_name, row_order):
            return OfferLine(
                id=uuid4(),
                quotation_id=quotation_id,
                description=description,
                baseline_id=cable.id if row_order == 1 else None,
                unit_price=Decimal("3"),
                quantity=Decimal("1"),
                row_order=row_order,
                sheet_name=sheet_name,
            )

        quotation = make_quotation(
            "Acme",
            [_line("Cable", "Hoja 2", 1), _line("Tubo", " Hoja 1 ", 2), _line("Caja", None, 3)],
        )
        catalog = BaselineIndex([cable])

        only_second = od.add_all_from_supplier(draft, quotation, catalog, sheet_name="Hoja 2")
        only_first = od.add_all_from_supplier(draft, quotation, catalog, sheet_name="Hoja 1")
        unnamed = od.add_all_from_supplier(
            draft, quotation, catalog, sheet_name=od.DEFAULT_SHEET_NAME
        )

        assert [line.baseline_id for line in only_second.lines] == [cable.id]
        assert [line.description for line in only_first.lines] == ["Tubo"]
        assert [line.description for line in unnamed.lines] == ["Caja"]

    def test_claimed_lines_keep_operator_edits(self, draft, compared, catalog):
        items, cheap, full, result = compared
        draft = od.add_all_from_supplier(draft, cheap, catalog)
        cable_id = draft.lines[0].line_id
        draft = od.update_line(draft, cable_id, quantity="40", unit_price="1.2")

        draft = od.add_all_from_supplier(draft, full, catalog)

        assert len(draft.lines) == 3
        cable = draft.line(cable_id)
        assert cable.quantity == Decimal("40")
        assert cable.unit_price == Decimal("1.2")
        assert draft.lines[2].description == "Caja octogonal"

    def test_repeat_adds_nothing(self, draft, compared, catalog):
        items, cheap, full, result = compared
        draft = od.add_all_from_supplier(draft, full, catalog)

        again = od.add_all_from_supplier(draft, full, catalog)

        assert again.lines == draft.lines

    def test_unit_price_derived_from_total(self, draft, make_baseline_item, make_quotation):
        item = make_baseline_item(required="4")
        offer = OfferLine(
            id=uuid4(),
            quotation_id=uuid4(),
            description="Cable proveedor",
            baseline_id=item.id,
            quantity=Decimal("4"),
            total_price=Decimal("10"),
            row_order=1,
        )
        quotation = make_quotation("S", [offer])

        draft = od.add_all_from_supplier(draft, quotation, BaselineIndex([item]))

        assert draft.lines[0].unit_price == Decimal("2.5")
        assert draft.lines[0].provider_description == "Cable proveedor"

    def test_quantity_falls_back_to_required(self, draft, make_baseline_item, make_quotation):
        item = make_baseline_item(required="7")
        offer = OfferLine(
            id=uuid4(),
            quotation_id=uuid4(),
            description="Cable",
            baseline_id=item.id,
            unit_price=Decimal("2"),
            row_order=1,
        )
        quotation = make_quotation("S", [offer])

        draft = od.add_all_from_supplier(draft, quotation, BaselineIndex([item]))

        assert draft.lines[0].quantity == Decimal("7")

    def test_row_order_decides_first(self):
        shared = uuid4()
        a = od.OrderDraftLine(line_id="L1", description="A", baseline_id=shared, supplier_row_order=1)
        b = od.OrderDraftLine(line_id="L2", description="A", baseline_id=shared, supplier_row_order=2)
        assert not od.lines_match(a, b)
        assert od.find_claiming_line(a, [b]) is None

        unordered = replace(b, supplier_row_order=None)
        assert od.find_claiming_line(a, [b, unordered]) == 1

        c = od.OrderDraftLine(line_id="L3", description=" tubo ")
        d = od.OrderDraftLine(line_id="L4", description="TUBO")
        assert od.lines_match(c, d)


class TestLineEditing:
    def test_manual_line(self, draft):
        draft = od.add_manual_line(draft)
        assert draft.lines[0].description == od.MANUAL_LINE_DESCRIPTION
        assert draft.lines[0].baseline_id is None

    def test_update_clears_auto_link(self, draft, compared):
        items, cheap, full, result = compared
        draft = od.add_baseline_item(draft, result.item(items[0].id))
        line_id = draft.lines[0].line_id

        draft = od.update_line(draft, line_id, quantity="50", unit_price="")

        assert draft.lines[0].quantity == Decimal("50")
        assert draft.lines[0].unit_price == Decimal("0")
        assert not draft.lines[0].auto_linked

    def test_update_unknown_field(self, draft):
        draft = od.add_manual_line(draft)
        with pytest.raises(ValueError):
            od.update_line(draft, draft.lines[0].line_id, colour="red")

    def test_remove_line(self, draft):
        draft = od.add_manual_line(od.add_manual_line(draft))
        draft = od.remove_line(draft, "L1")
        assert [line.line_id for line in draft.lines] == ["L2"]


# ============================================================================
# Payload
# ============================================================================


class TestPayload:
    def test_empty_draft(self, draft):
        with pytest.raises(EmptyDraftError):
            od.build_order_payload(draft)

    def test_only_blank_descriptions(self, draft):
        draft = od.add_manual_line(draft)
        draft = od.update_line(draft, "L1", description="  ")
        with pytest.raises(EmptyDraftError):
            od.build_order_payload(draft)

    @pytest.mark.parametrize("field", ["quantity", "unit_price"])
    def test_negative_values(self, draft, field):
        draft = od.add_manual_line(draft)
        draft = od.update_line(draft, "L1", **{field: "-1"})
        with pytest.raises(InvalidQuantityError) as exc_info:
            od.build_order_payload(draft)
        assert exc_info.value.line_id == "L1"

    def test_valid_payload(self, draft):
        draft = od.add_manual_line(draft, "Cemento")
        draft = od.update_line(draft, "L1", quantity="10", unit_price="100")

        payload = od.build_order_payload(draft)

        assert payload.supplier_name == od.DEFAULT_SUPPLIER_NAME
        assert payload.order_number == "001/CP"
        assert payload.totals.total == Decimal("1180.00")
        assert payload.lines[0].description == "Cemento"


class TestDraftFromOrder:
    @pytest.fixture
    def order(self, make_baseline_item, make_order):
        item = make_baseline_item()
        return make_order([(item, "5")], supplier_name="Acme", sequence=3)

    def test_edit_keeps_identity(self, order):
        draft = od.draft_from_order(order, od.DraftMode.EDIT, next_number="009/CP")

        assert draft.is_editing
        assert draft.editing_order_id == order.id
        assert draft.order_number == "003/CP"
        assert draft.order_number_touched
        assert od.apply_next_order_number(draft, "010/CP").order_number == "003/CP"

    def test_reuse_starts_new_order(self, order):
        draft = od.draft_from_order(
            order, od.DraftMode.REUSE, next_number="009/CP", issue_date=date(2024, 3, 15)
        )

        assert not draft.is_editing
        assert draft.order_number == "009/CP"
        assert draft.issue_date == date(2024, 3, 15)
        assert draft.supplier_name == "Acme"
        assert draft.lines[0].quantity == Decimal("5")
        assert draft.next_line_seq == 2

    def test_new_mode_rejected(self, order):
        with pytest.raises(ValueError):
            od.draft_from_order(order, od.DraftMode.NEW)
