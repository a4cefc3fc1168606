"""Tests for stock drift planning and posting."""

import asyncio
from decimal import Decimal

import pytest

from conftest import FakeField, make_stock_record
from connectors.base import FieldMaterialRef, FieldStockQuantity, FieldWarehouseRef, LedgerProductRef
from core.errors import AmbiguousMatchError, ValidationError
from core.models.sync import DriftMovement, MovementAction
from reconciliation.drift import match_warehouse, plan_drift_movements, reconcile_drift


PRODUCTS = [LedgerProductRef(id=300, name="Widget", avg_cost="4.5", stock_quant_ids=[1, 2])]
MATERIALS = [FieldMaterialRef(id="10", code="wid-001", full_code="TOOLS.WID-001")]
WAREHOUSES = [FieldWarehouseRef(id="w3", warehouse_id=3, full_code="MAIN.WH-LISBOA")]


def plan(ledger_quantity, field_quantity=None, **kwargs):
    stock = [make_stock_record(stock_id=1, quantity=ledger_quantity, warehouse_name="wh-lisboa")]
    field = []
    if field_quantity is not None:
        field = [FieldStockQuantity(material_id=10, warehouse_id=3, stock_quantity=field_quantity)]
    return plan_drift_movements(stock, field, PRODUCTS, MATERIALS, WAREHOUSES, **kwargs)


class TestMatchWarehouse:

    def test_case_insensitive_containment(self):
        assert match_warehouse("wh-lisboa", WAREHOUSES).warehouse_id == 3

    def test_no_match(self):
        assert match_warehouse("PORTO", WAREHOUSES) is None
        assert match_warehouse(None, WAREHOUSES) is None

    def test_first_match_wins_unless_strict(self):
        warehouses = [
            FieldWarehouseRef(id="a", warehouse_id=1, full_code="WH-1"),
            FieldWarehouseRef(id="b", warehouse_id=2, full_code="WH-10"),
        ]
        assert match_warehouse("WH-1", warehouses).warehouse_id == 1
        with pytest.raises(AmbiguousMatchError):
            match_warehouse("WH-1", warehouses, strict=True)


class TestPlanDriftMovements:

    def test_no_difference(self):
        assert plan(10, 10) == []

    def test_ledger_higher_adds(self):
        movements = plan(12, 7)
        assert len(movements) == 1
        assert movements[0].action == MovementAction.ADD
        assert movements[0].quantity == Decimal("5")
        assert movements[0].material_id == 10
        assert movements[0].warehouse_id == 3
        assert movements[0].mean_price == Decimal("4.5")

    def test_ledger_lower_consumes(self):
        movements = plan(7, 12)
        assert len(movements) == 1
        assert movements[0].action == MovementAction.CONSUME
        assert movements[0].quantity == Decimal("5")

    def test_missing_field_record_counts_as_zero(self):
        movements = plan(6)
        assert movements[0].action == MovementAction.ADD
        assert movements[0].quantity == Decimal("6")

    def test_quants_on_same_pair_are_summed(self):
        stock = [
            make_stock_record(stock_id=1, quantity=4, warehouse_name="WH-LISBOA"),
            make_stock_record(stock_id=2, quantity=6, warehouse_name="WH-LISBOA"),
        ]
        field = [FieldStockQuantity(material_id=10, warehouse_id=3, stock_quantity=10)]
        assert plan_drift_movements(stock, field, PRODUCTS, MATERIALS, WAREHOUSES) == []

    def test_unmapped_rows_are_skipped(self):
        stock = [
            make_stock_record(stock_id=1, code="UNKNOWN", warehouse_name="WH-LISBOA"),
            make_stock_record(stock_id=2, code="WID-001", warehouse_name="PORTO"),
            make_stock_record(stock_id=2, code=None, warehouse_name="WH-LISBOA"),
            make_stock_record(stock_id=99, code="WID-001", warehouse_name="WH-LISBOA"),
        ]
        assert plan_drift_movements(stock, [], PRODUCTS, MATERIALS, WAREHOUSES) == []

    def test_ambiguous_rows_skipped_in_strict_mode(self):
        warehouses = WAREHOUSES + [FieldWarehouseRef(id="w4", warehouse_id=4, full_code="OLD.WH-LISBOA")]
        stock = [make_stock_record(stock_id=1, quantity=5, warehouse_name="WH-LISBOA")]
        assert plan_drift_movements(stock, [], PRODUCTS, MATERIALS, warehouses, strict_warehouse_matching=True) == []
        assert len(plan_drift_movements(stock, [], PRODUCTS, MATERIALS, warehouses)) == 1

    @pytest.mark.parametrize("empty", ["stock", "products", "materials", "warehouses"])
    def test_empty_reference_data(self, empty):
        data = {
            "stock": [make_stock_record()],
            "products": PRODUCTS,
            "materials": MATERIALS,
            "warehouses": WAREHOUSES,
        }
        data[empty] = []
        with pytest.raises(ValidationError):
            plan_drift_movements(data["stock"], [], data["products"], data["materials"], data["warehouses"])


class TestReconcileDrift:

    def test_failed_movement_does_not_abort_siblings(self):
        field = FakeField()
        field.fail_movement_materials = {11}
        movements = [
            DriftMovement(material_id=10, warehouse_id=3, action=MovementAction.ADD, quantity=5),
            DriftMovement(material_id=11, warehouse_id=3, action=MovementAction.CONSUME, quantity=2),
            DriftMovement(material_id=12, warehouse_id=3, action=MovementAction.CONSUME, quantity=1),
        ]

        posted = asyncio.run(reconcile_drift(field, movements))

        assert [p.material_id for p in posted] == [10, 12]
        assert len(field.movements) == 2
        assert field.movements[1][1] == MovementAction.CONSUME

    def test_timed_out_movement_does_not_abort_siblings(self):
        field = FakeField()
        field.timeout_movement_materials = {11}
        movements = [
            DriftMovement(material_id=10, warehouse_id=3, action=MovementAction.ADD, quantity=5),
            DriftMovement(material_id=11, warehouse_id=3, action=MovementAction.CONSUME, quantity=2),
        ]

        posted = asyncio.run(reconcile_drift(field, movements))

        assert [p.material_id for p in posted] == [10]
        assert field.movements[0][1] == MovementAction.ADD

    def test_nothing_to_post(self):
        assert asyncio.run(reconcile_drift(FakeField(), [])) == []
