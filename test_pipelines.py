"""End-to-end tests for the sync pipelines over in-memory gateways and stores."""

import asyncio
import json
import logging
from decimal import Decimal

import pytest

from conftest import make_order, make_settings, make_stock_record
from connectors.base import (
    FieldMaterialRef,
    FieldStockQuantity,
    FieldWarehouseRef,
    LedgerProductRef,
    UserContact,
)
from core.errors import RemoteCallError, ValidationError
from core.models.sync import MovementAction, RelatedToType, RequestState, SourceRequest
from pipelines.handler import (
    FailureReport,
    PipelineResponse,
    build_context,
    format_failure_notice,
    run_pipeline,
)
from pipelines.material_requests import NOTHING_TO_DO, sync_material_requests
from pipelines.products import find_folder, sync_products, unmatched_product_codes
from pipelines.stock_sync import sync_stock_drift
from pipelines.work_orders import WorkOrderEvent, build_labour_posting, sync_work_order
from storage.state_store import InMemoryStateStore, REQUESTS_TABLE, WORK_ORDERS_TABLE


def source_request(request_id="A1", related_to_id="77", date_updated="2024-01-01"):
    return SourceRequest(
        request_id=request_id,
        related_to_id=related_to_id,
        related_to_type=RelatedToType.FAILURE,
        date_updated=date_updated,
    )


# =============================================================================
# Handler
# =============================================================================

class TestPipelineHandler:

    def test_response_shape(self):
        response = PipelineResponse.success("done")
        assert response.to_dict() == {"statusCode": 200, "body": json.dumps({"message": "done"})}
        assert PipelineResponse.failure("x").ok is False

    def test_failure_notice(self):
        notice = format_failure_notice(
            ValueError("boom"), UserContact(name="Ana", email="ana@example.com"), "2024-01-02"
        )
        assert "Error: boom" in notice
        assert "User name: Ana" in notice
        assert "User email: ana@example.com" in notice
        assert "Completed date: 2024-01-02" in notice

    def test_failure_returns_500_and_notifies(self, ctx, notifier):
        async def body(ctx, report):
            report.note(completed_date="2024-01-02")
            raise ValidationError("bad order")

        response = asyncio.run(run_pipeline("test", ctx, body, error_prefix="Error processing Requests"))

        assert response.status_code == 500
        assert response.message == "Error processing Requests: bad order"
        assert len(notifier.sent) == 1
        subject, message = notifier.sent[0]
        assert subject == "Odoo Integration Error"
        assert "User name: Ana Silva" in message
        assert "Completed date: 2024-01-02" in message

    def test_enrichment_failure_keeps_original_error(self, ctx, field_gateway, notifier):
        field_gateway.contact_error = RemoteCallError("users endpoint down", status_code=503)

        async def body(ctx, report):
            raise ValidationError("bad order")

        response = asyncio.run(run_pipeline("test", ctx, body, error_prefix="Error"))

        assert response.status_code == 500
        assert response.message == "Error: bad order"
        assert "User name: None" in notifier.sent[0][1]

    def test_string_outcome_is_200(self, ctx, notifier):
        async def body(ctx, report):
            return "all good"

        response = asyncio.run(run_pipeline("test", ctx, body, error_prefix="Error"))
        assert response.status_code == 200
        assert response.message == "all good"
        assert notifier.sent == []

    def test_failure_report_note(self):
        report = FailureReport()
        report.note(completed_date="2024-01-02")
        report.note(completed_date=None)
        assert report.completed_date == "2024-01-02"


# =============================================================================
# Material Requests
# =============================================================================

class TestMaterialRequestPipeline:

    def test_new_request_is_posted(self, ctx, ledger, field_gateway):
        field_gateway.requests = [source_request()]

        response = asyncio.run(sync_material_requests(ctx))

        assert response.status_code == 200
        assert response.message == "Successfully posted Work Order Id 77 to Odoo."
        record = asyncio.run(ctx.requests.get("A1"))
        assert record.stock_move_ids == [501]
        assert record.account_move_id == 900
        assert record.cost_center_ledger_id == 42
        assert ledger.posted == [900]

    def test_posting_is_logged_with_ledger_ids(self, ctx, field_gateway, caplog):
        field_gateway.requests = [source_request()]

        with caplog.at_level(logging.INFO, logger="pipelines.material_requests"):
            asyncio.run(sync_material_requests(ctx))

        posted = [r for r in caplog.records if r.getMessage() == "Posted request A1"]
        assert posted[0].extra_fields == {"stock_move_ids": [501], "account_move_id": 900}

    def test_unchanged_batch_is_a_no_op(self, ctx, ledger, field_gateway):
        field_gateway.requests = [source_request()]
        asyncio.run(sync_material_requests(ctx))

        response = asyncio.run(sync_material_requests(ctx))

        assert response.status_code == 200
        assert response.message == NOTHING_TO_DO
        assert len(ledger.journals) == 1

    def test_retracted_request_is_reversed(self, ctx, ledger, field_gateway):
        field_gateway.requests = [source_request()]
        asyncio.run(sync_material_requests(ctx))
        field_gateway.requests = []

        response = asyncio.run(sync_material_requests(ctx))

        assert response.status_code == 200
        assert ledger.journals[901].total_debit == ledger.journals[900].total_debit
        assert ledger.journals[901].lines[0].memo == "Work Order 77 REVERSED"
        record = asyncio.run(ctx.requests.get("A1"))
        assert record.reversed is True
        assert record.state == RequestState.REVERSED

    def test_updated_request_is_reposted(self, ctx, ledger, field_gateway):
        field_gateway.requests = [source_request()]
        asyncio.run(sync_material_requests(ctx))
        field_gateway.requests = [source_request(date_updated="2024-02-01")]

        response = asyncio.run(sync_material_requests(ctx))

        assert response.status_code == 200
        # original 900, reversal 901, new posting 902
        assert sorted(ledger.journals) == [900, 901, 902]
        record = asyncio.run(ctx.requests.get("A1"))
        assert record.account_move_id == 902
        assert record.state == RequestState.COMPLETED

    def test_update_is_checked_against_reversed_stock(self, ctx, ledger, field_gateway):
        ledger.track_stock = True
        ledger.snapshot = [make_stock_record(quantity=10)]
        field_gateway.orders["77"] = make_order(stock=[(10, 5, "2.5")])
        field_gateway.requests = [source_request()]
        asyncio.run(sync_material_requests(ctx))
        assert ledger.snapshot[0].quantity_on_hand == Decimal("5")

        field_gateway.orders["77"] = make_order(stock=[(10, 8, "2.5")])
        field_gateway.requests = [source_request(date_updated="2024-02-01")]

        response = asyncio.run(sync_material_requests(ctx))

        assert response.status_code == 200
        assert sorted(ledger.journals) == [900, 901, 902]
        assert ledger.snapshot[0].quantity_on_hand == Decimal("2")
        record = asyncio.run(ctx.requests.get("A1"))
        assert record.account_move_id == 902
        assert record.state == RequestState.COMPLETED

    def test_insufficient_stock_fails_without_writes(self, ctx, ledger, field_gateway, notifier):
        ledger.snapshot = [make_stock_record(quantity=4)]
        field_gateway.orders["77"] = make_order(stock=[(10, 5, "2.5")], completed_date="2024-01-02")
        field_gateway.requests = [source_request()]

        response = asyncio.run(sync_material_requests(ctx))

        assert response.status_code == 500
        assert response.message.startswith("Error processing Requests:")
        assert "Cannot post 5 for stock ID 1. Odoo has 4." in response.message
        assert ledger.write_count == 0
        assert "Completed date: 2024-01-02" in notifier.sent[0][1]
        # cost center is kept for manual correction
        assert asyncio.run(ctx.requests.get("A1")).cost_center_ledger_id == 42

    def test_all_items_processed_by_default(self, ctx, ledger, field_gateway):
        field_gateway.orders["78"] = make_order(order_id="78")
        field_gateway.requests = [source_request(), source_request("A2", related_to_id="78")]

        response = asyncio.run(sync_material_requests(ctx))

        assert response.status_code == 200
        assert "Work Order Id 77" in response.message
        assert "Work Order Id 78" in response.message
        assert len(ledger.journals) == 2

    def test_first_item_only_when_configured(self, ledger, field_gateway, notifier):
        ctx = build_context(
            settings=make_settings(process_all_items=False),
            ledger=ledger,
            field_gateway=field_gateway,
            request_store=InMemoryStateStore(REQUESTS_TABLE, "request_id"),
            work_order_store=InMemoryStateStore(WORK_ORDERS_TABLE, "order_id"),
            notifier=notifier,
        )
        field_gateway.orders["78"] = make_order(order_id="78")
        field_gateway.requests = [source_request(), source_request("A2", related_to_id="78")]

        response = asyncio.run(sync_material_requests(ctx))

        assert response.message == "Successfully posted Work Order Id 77 to Odoo."
        assert len(ledger.journals) == 1

    def test_one_failure_reports_aggregate(self, ctx, ledger, field_gateway):
        field_gateway.orders["78"] = make_order(order_id="78", materials=[(10, "MISSING", "TOOLS.MISSING")])
        field_gateway.requests = [source_request(), source_request("A2", related_to_id="78")]

        response = asyncio.run(sync_material_requests(ctx))

        assert response.status_code == 500
        assert "1 of 2 requests failed" in response.message
        assert "MISSING" in response.message
        assert len(ledger.journals) == 1

    def test_batch_cannot_overdraw_stock(self, ctx, ledger, field_gateway):
        ledger.track_stock = True
        ledger.snapshot = [make_stock_record(quantity=10)]
        field_gateway.orders["77"] = make_order(stock=[(10, 6, "2.5")])
        field_gateway.orders["78"] = make_order(order_id="78", stock=[(10, 6, "2.5")])
        field_gateway.requests = [source_request(), source_request("A2", related_to_id="78")]

        response = asyncio.run(sync_material_requests(ctx))

        assert response.status_code == 500
        assert "1 of 2 requests failed" in response.message
        assert "Work Order 78: Cannot post 6 for stock ID 1. Odoo has 4." in response.message
        assert ledger.snapshot[0].quantity_on_hand == Decimal("4")
        assert len(ledger.journals) == 1

    def test_stock_is_reread_after_a_failed_request(self, ctx, ledger, field_gateway):
        ledger.snapshot = [make_stock_record(quantity=10)]
        field_gateway.orders["77"] = make_order(materials=[(10, "MISSING", "TOOLS.MISSING")])
        field_gateway.orders["78"] = make_order(order_id="78", stock=[(10, 6, "2.5")])
        field_gateway.requests = [source_request(), source_request("A2", related_to_id="78")]
        reads = []
        fetch = ledger.fetch_stock_snapshot

        async def counting_fetch():
            reads.append(1)
            return await fetch()

        ledger.fetch_stock_snapshot = counting_fetch

        response = asyncio.run(sync_material_requests(ctx))

        assert "1 of 2 requests failed" in response.message
        assert len(reads) == 2
        assert len(ledger.journals) == 1

    def test_timed_out_request_does_not_stop_the_batch(self, ctx, ledger, field_gateway):
        field_gateway.orders["78"] = make_order(order_id="78")
        field_gateway.requests = [source_request(), source_request("A2", related_to_id="78")]
        fetch = field_gateway.fetch_order_detail

        async def slow_for_77(order_id, order_type):
            if str(order_id) == "77":
                raise asyncio.TimeoutError()
            return await fetch(order_id, order_type)

        field_gateway.fetch_order_detail = slow_for_77

        response = asyncio.run(sync_material_requests(ctx))

        assert response.status_code == 500
        assert "1 of 2 requests failed" in response.message
        assert "Timed out processing request A1" in response.message
        assert len(ledger.journals) == 1
        assert asyncio.run(ctx.requests.get("A2")).account_move_id == 900


# =============================================================================
# Work Orders
# =============================================================================

class TestWorkOrderEvent:

    def test_raw_payload(self):
        event = WorkOrderEvent.from_payload({"data": {"id": 77, "type": "failures"}})
        assert event.order_id == "77"
        assert event.order_type == "Work Order"

    def test_json_body_envelope(self):
        event = WorkOrderEvent.from_payload({"body": json.dumps({"data": {"id": "88", "type": "works"}})})
        assert event.order_id == "88"
        assert event.order_type == "Planned Order"

    @pytest.mark.parametrize("payload", [{}, {"data": {}}, {"data": {"id": 1}}, {"body": "not json"}])
    def test_malformed(self, payload):
        with pytest.raises(ValidationError):
            WorkOrderEvent.from_payload(payload)

    def test_labour_posting(self):
        posting = build_labour_posting("77", "Work Order", Decimal("150"), 42, 182)
        assert posting.lines[0].debit_account_id == 42
        assert posting.lines[0].credit_account_id == 182
        assert posting.reference_text == "Work Order 77 - Labour cost"


class TestWorkOrderPipeline:

    @pytest.fixture(autouse=True)
    def order(self, field_gateway):
        field_gateway.orders["77"] = make_order(
            manpower_cost="150.00", completed_by_id=12, completed_date="2024-01-02"
        )

    def test_labour_cost_is_posted_once(self, ctx, ledger, notifier):
        payload = {"data": {"id": 77, "type": "failures"}}

        first = asyncio.run(sync_work_order(ctx, payload))
        second = asyncio.run(sync_work_order(ctx, payload))

        assert first.status_code == 200
        assert first.message == "Successfully posted Work Order Id 77 to Odoo."
        line = ledger.journals[900].lines[0]
        assert (line.debit_account_id, line.credit_account_id, line.amount) == (42, 182, Decimal("150.00"))
        assert ledger.posted == [900]
        item = asyncio.run(ctx.work_orders.get("77"))
        assert item["posted_to_ledger"] == 900
        assert item["completed_by"] == "12"

        assert second.status_code == 200
        assert "has been posted to Odoo already with account move id 900" in second.message
        assert len(ledger.journals) == 1
        assert notifier.sent == []

    def test_zero_labour_cost(self, ctx, ledger, field_gateway):
        field_gateway.orders["77"] = make_order(manpower_cost=0)
        response = asyncio.run(sync_work_order(ctx, {"data": {"id": "77", "type": "failures"}}))
        assert response.status_code == 200
        assert response.message == "No labour cost to post for Work Order Id 77."
        assert ledger.journals == {}

    def test_malformed_payload_is_500(self, ctx, notifier):
        response = asyncio.run(sync_work_order(ctx, {"data": "nope"}))
        assert response.status_code == 500
        assert response.message.startswith("Error handling webhook event:")

    def test_finalize_failure_keeps_posted_marker(self, ctx, ledger):
        ledger.fail_post_journal = True
        response = asyncio.run(sync_work_order(ctx, {"data": {"id": 77, "type": "failures"}}))
        assert response.status_code == 500
        assert asyncio.run(ctx.work_orders.posted_move_id("77")) == 900


# =============================================================================
# Stock Drift
# =============================================================================

class TestStockSyncPipeline:

    @pytest.fixture(autouse=True)
    def catalogue(self, ledger, field_gateway):
        ledger.snapshot = [make_stock_record(quantity=12, warehouse_name="WH-LISBOA")]
        ledger.products = [LedgerProductRef(id=300, name="Widget", avg_cost=4, stock_quant_ids=[1])]
        field_gateway.materials = [FieldMaterialRef(id="10", code="WID-001")]
        field_gateway.warehouses = [FieldWarehouseRef(id="w3", warehouse_id=3, full_code="MAIN.WH-LISBOA")]

    def test_difference_is_posted(self, ctx, field_gateway):
        field_gateway.quantities = [FieldStockQuantity(material_id=10, warehouse_id=3, stock_quantity=7)]

        response = asyncio.run(sync_stock_drift(ctx))

        assert response.status_code == 200
        movement_id = field_gateway.movements[0][0]
        assert response.message == f"Success! Stock-Movement Id(s): {movement_id}"
        assert field_gateway.movements[0][1:5] == (MovementAction.ADD, 3, 10, Decimal("5"))

    def test_no_difference(self, ctx, field_gateway):
        field_gateway.quantities = [FieldStockQuantity(material_id=10, warehouse_id=3, stock_quantity=12)]
        response = asyncio.run(sync_stock_drift(ctx))
        assert response.message == "No stock quantity differences. Nothing to post"

    def test_every_movement_failing_is_500(self, ctx, field_gateway, notifier):
        field_gateway.quantities = [FieldStockQuantity(material_id=10, warehouse_id=3, stock_quantity=7)]
        field_gateway.fail_movement_materials = {10}

        response = asyncio.run(sync_stock_drift(ctx))

        assert response.status_code == 500
        assert response.message == "Error handling stock sync: All 1 stock movements failed to post"
        assert notifier.sent

    def test_partial_failure_reports_failed_count(self, ctx, ledger, field_gateway):
        ledger.snapshot.append(make_stock_record(stock_id=2, product_id=301, code="WID-002", quantity=4,
                                                 warehouse_name="WH-LISBOA"))
        ledger.products.append(LedgerProductRef(id=301, name="Gadget", avg_cost=2, stock_quant_ids=[2]))
        field_gateway.materials.append(FieldMaterialRef(id="11", code="WID-002"))
        field_gateway.quantities = [FieldStockQuantity(material_id=10, warehouse_id=3, stock_quantity=7)]
        field_gateway.fail_movement_materials = {11}

        response = asyncio.run(sync_stock_drift(ctx))

        assert response.status_code == 200
        movement_id = field_gateway.movements[0][0]
        assert response.message == f"Success! Stock-Movement Id(s): {movement_id}. 1 of 2 movements failed"

    def test_empty_catalogue_is_500(self, ctx, field_gateway):
        field_gateway.materials = []
        response = asyncio.run(sync_stock_drift(ctx))
        assert response.status_code == 500
        assert response.message.startswith("Error handling stock sync:")


# =============================================================================
# Products
# =============================================================================

class TestProductPipeline:

    @pytest.fixture(autouse=True)
    def catalogue(self, ledger, field_gateway):
        ledger.snapshot = [make_stock_record(
            stock_id=5, product_id=301, code="new-1", quantity=6, warehouse_name="WH-LISBOA", category_id=9,
        )]
        ledger.products = [LedgerProductRef(
            id=301, name=" New Thing ", avg_cost="3.5", category_id=9, category_name="Tools",
        )]
        ledger.category_codes = {9: "tls"}
        field_gateway.warehouses = [FieldWarehouseRef(id="w3", warehouse_id=3, full_code="MAIN.WH-LISBOA")]

    def test_unmatched_codes(self, ledger):
        materials = [FieldMaterialRef(id="1", code="NEW-1", is_real=False)]
        assert unmatched_product_codes(ledger.snapshot, materials) == ["NEW-1"]
        materials = [FieldMaterialRef(id="1", code="new-1", is_real=True)]
        assert unmatched_product_codes(ledger.snapshot, materials) == []

    def test_find_folder(self):
        materials = [
            FieldMaterialRef(id="1", code="TLS", is_real=True),
            FieldMaterialRef(id="2", code="TLS", is_real=False),
        ]
        assert find_folder(materials, "TLS").id == "2"
        assert find_folder(materials, "XYZ") is None

    def test_creates_folder_material_and_stock(self, ctx, field_gateway):
        response = asyncio.run(sync_products(ctx))

        assert response.status_code == 200
        assert response.message == "Success! Product with code NEW-1 has been added to Infraspeak"
        folder_id, folder_name, folder_code, folder_wh = field_gateway.folders[0]
        assert (folder_name, folder_code, folder_wh) == ("Tools", "TLS", 3)
        material_id, name, code, price, wh, parent = field_gateway.created_materials[0]
        assert (name, code, price, wh, parent) == ("New Thing", "NEW-1", Decimal("3.5"), 3, folder_id)
        assert field_gateway.movements[0][1:5] == (MovementAction.ADD, 3, int(material_id), Decimal("6"))

    def test_existing_folder_is_reused(self, ctx, field_gateway):
        field_gateway.materials = [FieldMaterialRef(id="55", code="TLS", is_real=False)]
        asyncio.run(sync_products(ctx))
        assert field_gateway.folders == []
        assert field_gateway.created_materials[0][5] == "55"

    def test_nothing_to_do(self, ctx, field_gateway):
        field_gateway.materials = [FieldMaterialRef(id="1", code="NEW-1", is_real=True)]
        response = asyncio.run(sync_products(ctx))
        assert response.message == "No unmatched products to process."

    def test_missing_category_code_is_500(self, ctx, ledger, field_gateway):
        ledger.category_codes = {}
        response = asyncio.run(sync_products(ctx))
        assert response.status_code == 500
        assert "No valid product found with the necessary details." in response.message
        assert field_gateway.created_materials == []

    def test_unknown_warehouse_is_500(self, ctx, field_gateway):
        field_gateway.warehouses = [FieldWarehouseRef(id="w9", warehouse_id=9, full_code="PORTO")]
        response = asyncio.run(sync_products(ctx))
        assert response.status_code == 500
        assert "No matching warehouse found" in response.message
