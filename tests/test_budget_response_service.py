import sqlite3
import unittest
from unittest.mock import patch

from peca_ai import create_app
from peca_ai.application.budget_response_service import (
    BudgetResponseService,
    group_responses_by_vehicle,
    parse_budget_response_input,
)
from peca_ai.config import Config
from peca_ai.db import close_db, get_db
from peca_ai.errors import NotFoundError, PersistenceError, ValidationError
from peca_ai.infrastructure.repositories import (
    BudgetRequestRepository,
    SupplierRepository,
    find_budget_request_by_short_id,
)
from peca_ai.integrations.webhook_client import DeliveryResult
from peca_ai.observability import metrics_snapshot, reset_metrics_for_tests
from tests.helpers.temp_db import TempDbSandbox


TENANT = "tenant-service"


class _RecordingNotifier:
    def __init__(self, result: DeliveryResult | None = None) -> None:
        self.calls = []
        self.result = result or DeliveryResult(delivered=True, status_code=200)

    def notify(self, event, payload):
        self.calls.append((event, dict(payload)))
        return self.result


class ParseBudgetResponseInputTest(unittest.TestCase):
    def _payload(self, **overrides):
        payload = {
            "short_id": "12",
            "shop_id": 3,
            "parts_and_prices": [{"part": "Filtro de oleo", "price": "R$ 35,90"}],
            "total_price": "1.235,90",
            "notes": "  ",
        }
        payload.update(overrides)
        return payload

    def test_parses_numbers_and_brazilian_prices(self) -> None:
        parsed = parse_budget_response_input(self._payload())
        self.assertEqual(parsed.short_id, 12)
        self.assertEqual(parsed.shop_id, 3)
        self.assertAlmostEqual(parsed.total_price, 1235.90)
        self.assertIsNone(parsed.notes)

    def test_reports_first_missing_field_in_order(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            parse_budget_response_input({"parts_and_prices": [], "total_price": 1})
        self.assertEqual(ctx.exception.payload["field"], "short_id")

        with self.assertRaises(ValidationError) as ctx:
            parse_budget_response_input({"short_id": 1, "shop_id": 2, "parts_and_prices": []})
        self.assertEqual(ctx.exception.payload["field"], "total_price")

    def test_blank_values_count_as_missing(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            parse_budget_response_input(self._payload(shop_id="  "))
        self.assertEqual(ctx.exception.code, "missing_required_field")
        self.assertEqual(ctx.exception.user_message(), "Missing required field: shop_id")

    def test_rejects_non_numeric_identifiers(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            parse_budget_response_input(self._payload(short_id="abc"))
        self.assertEqual(ctx.exception.code, "field_invalid")

    def test_rejects_non_mapping_line_items(self) -> None:
        with self.assertRaises(ValidationError):
            parse_budget_response_input(self._payload(parts_and_prices=["Filtro"]))

    def test_line_items_need_a_part_and_a_price(self) -> None:
        invalid = (
            [{"foo": 1}],
            [{"part": "  ", "price": 10}],
            [{"part": "Filtro"}],
            [{"part": "Filtro", "price": "barato"}],
        )
        for items in invalid:
            with self.assertRaises(ValidationError) as ctx:
                parse_budget_response_input(self._payload(parts_and_prices=items))
            self.assertEqual(ctx.exception.code, "field_invalid")
            self.assertEqual(ctx.exception.payload["field"], "parts_and_prices")

    def test_rejects_negative_prices(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            parse_budget_response_input(self._payload(total_price=-5))
        self.assertEqual(ctx.exception.payload["field"], "total_price")

        with self.assertRaises(ValidationError) as ctx:
            parse_budget_response_input(self._payload(parts_and_prices=[{"part": "Filtro", "price": "-10,00"}]))
        self.assertEqual(ctx.exception.payload["field"], "parts_and_prices")

    def test_line_items_are_kept_as_sent(self) -> None:
        parsed = parse_budget_response_input(self._payload())
        self.assertEqual(parsed.parts_and_prices, [{"part": "Filtro de oleo", "price": "R$ 35,90"}])


class BudgetResponseServiceTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="response_service")
        self.app = create_app(self._temp_db.make_config(Config, TESTING=True, AUTH_ENABLED=False))
        self._ctx = self.app.app_context()
        self._ctx.push()
        reset_metrics_for_tests()
        self.db = get_db()

        suppliers = SupplierRepository(tenant_id=TENANT)
        self.shop_a = suppliers.create(self.db, name="Autopecas A", whatsapp="11911111111")
        self.shop_b = suppliers.create(self.db, name="Autopecas B", whatsapp="11922222222")
        self.request_repo = BudgetRequestRepository(tenant_id=TENANT)
        self.request_id = self.request_repo.create(
            self.db,
            short_id=42,
            car_model="Onix",
            car_year="2020",
            car_engine=None,
            parts=[{"name": "Amortecedor"}],
            notes=None,
            selected_shops_ids=[self.shop_a, self.shop_b],
        )
        self.db.commit()

    def tearDown(self) -> None:
        close_db()
        self._ctx.pop()
        self._temp_db.cleanup()

    def _input(self, shop_id: int, total: float = 400.0, short_id: int = 42):
        return parse_budget_response_input(
            {
                "short_id": short_id,
                "shop_id": shop_id,
                "parts_and_prices": [{"part": "Amortecedor", "price": total}],
                "total_price": total,
            }
        )

    def _response_count(self) -> int:
        row = self.db.execute("SELECT COUNT(*) AS total FROM budget_responses").fetchone()
        return int(row["total"])

    def test_records_response_and_forwards_after_commit(self) -> None:
        notifier = _RecordingNotifier()
        result = BudgetResponseService(notifier=notifier).record_response(self.db, self._input(self.shop_a))

        self.assertEqual(result.status_code, 200)
        self.assertEqual(result.payload["data"]["request_status"], "answered")
        self.assertEqual(self.request_repo.get_by_id(self.db, self.request_id)["status"], "answered")
        self.assertEqual(len(notifier.calls), 1)
        event, payload = notifier.calls[0]
        self.assertEqual(event, "budget_response_received")
        self.assertEqual(payload["shop_name"], "Autopecas A")
        self.assertEqual(payload["status"], "answered")
        self.assertTrue(payload["workshop"]["notify_on_response"])
        self.assertEqual(metrics_snapshot()["budget_responses_recorded_total"], 1)

    def test_failed_delivery_does_not_change_result(self) -> None:
        notifier = _RecordingNotifier(DeliveryResult(delivered=False, status_code=500))
        result = BudgetResponseService(notifier=notifier).record_response(self.db, self._input(self.shop_a))
        self.assertEqual(result.payload["success"], True)
        self.assertNotIn("notification", result.payload)

    def test_status_update_failure_rolls_back_response(self) -> None:
        notifier = _RecordingNotifier()
        with patch.object(
            BudgetRequestRepository,
            "update_status",
            side_effect=sqlite3.OperationalError("database is locked"),
        ):
            with self.assertRaises(PersistenceError) as ctx:
                BudgetResponseService(notifier=notifier).record_response(self.db, self._input(self.shop_a))

        self.assertEqual(ctx.exception.http_status, 500)
        self.assertIn("database is locked", ctx.exception.user_message())
        self.assertEqual(self._response_count(), 0)
        self.assertEqual(self.request_repo.get_by_id(self.db, self.request_id)["status"], "pending")
        self.assertEqual(notifier.calls, [])

    def test_unknown_supplier_is_reported_before_request_lookup(self) -> None:
        with patch("peca_ai.application.budget_response_service.find_budget_request_by_short_id") as lookup:
            with self.assertRaises(NotFoundError) as ctx:
                BudgetResponseService().record_response(self.db, self._input(9999))
            lookup.assert_not_called()
        self.assertEqual(ctx.exception.code, "supplier_not_found")
        self.assertEqual(ctx.exception.http_status, 500)

    def test_unknown_short_id_is_reported(self) -> None:
        response_input = parse_budget_response_input(
            {"short_id": 777, "shop_id": self.shop_a, "parts_and_prices": [], "total_price": 1}
        )
        with self.assertRaises(NotFoundError) as ctx:
            BudgetResponseService().record_response(self.db, response_input)
        self.assertEqual(ctx.exception.code, "budget_request_not_found")
        self.assertIn("777", ctx.exception.user_message())
        self.assertEqual(self._response_count(), 0)

    def test_completed_after_every_selected_supplier_answers(self) -> None:
        service = BudgetResponseService()
        service.record_response(self.db, self._input(self.shop_a))
        result = service.record_response(self.db, self._input(self.shop_b, total=380.0))
        self.assertEqual(result.payload["data"]["request_status"], "completed")

        history = self.db.execute(
            "SELECT from_status, to_status, reason FROM status_events WHERE entity_id = ? ORDER BY id",
            (self.request_id,),
        ).fetchall()
        self.assertEqual(
            [(row["from_status"], row["to_status"]) for row in history],
            [("pending", "answered"), ("answered", "completed")],
        )
        self.assertEqual({row["reason"] for row in history}, {"budget_response_received"})

    def test_no_status_event_when_status_unchanged(self) -> None:
        service = BudgetResponseService()
        service.record_response(self.db, self._input(self.shop_a))
        service.record_response(self.db, self._input(self.shop_b))
        service.record_response(self.db, self._input(self.shop_b))
        row = self.db.execute(
            "SELECT COUNT(*) AS total FROM status_events WHERE entity_id = ?",
            (self.request_id,),
        ).fetchone()
        self.assertEqual(int(row["total"]), 2)
        self.assertEqual(self._response_count(), 3)


    def test_status_history_follows_committed_state_when_lookups_interleave(self) -> None:
        shop_c = SupplierRepository(tenant_id=TENANT).create(self.db, name="Autopecas C", whatsapp="11933333333")
        request_id = self.request_repo.create(
            self.db,
            short_id=43,
            car_model="Gol",
            car_year="2015",
            car_engine=None,
            parts=[{"name": "Embreagem"}],
            notes=None,
            selected_shops_ids=[self.shop_a, self.shop_b, shop_c],
        )
        self.db.commit()
        stale_row = find_budget_request_by_short_id(self.db, 43)

        service = BudgetResponseService()
        service.record_response(self.db, self._input(self.shop_a, short_id=43))
        with patch(
            "peca_ai.application.budget_response_service.find_budget_request_by_short_id",
            return_value=stale_row,
        ):
            result = service.record_response(self.db, self._input(self.shop_b, short_id=43))

        self.assertEqual(result.payload["data"]["request_status"], "answered")
        history = self.db.execute(
            "SELECT from_status, to_status FROM status_events WHERE entity_id = ? ORDER BY id",
            (request_id,),
        ).fetchall()
        self.assertEqual([(row["from_status"], row["to_status"]) for row in history], [("pending", "answered")])

    def test_request_deleted_after_lookup_is_not_found(self) -> None:
        stale_row = find_budget_request_by_short_id(self.db, 42)
        with self.db.transaction():
            self.request_repo.delete(self.db, self.request_id)
        with patch(
            "peca_ai.application.budget_response_service.find_budget_request_by_short_id",
            return_value=stale_row,
        ):
            with self.assertRaises(NotFoundError) as ctx:
                BudgetResponseService().record_response(self.db, self._input(self.shop_a))
        self.assertEqual(ctx.exception.code, "budget_request_not_found")
        self.assertEqual(self._response_count(), 0)


class GroupResponsesByVehicleTest(unittest.TestCase):
    def test_groups_keep_first_seen_order(self) -> None:
        rows = [
            {"id": 3, "car_model": "Gol", "car_year": "2015"},
            {"id": 2, "car_model": "Onix", "car_year": "2020"},
            {"id": 1, "car_model": "Gol", "car_year": "2015"},
        ]
        groups = group_responses_by_vehicle(rows)
        self.assertEqual([group["vehicle"] for group in groups], ["Gol - 2015", "Onix - 2020"])
        self.assertEqual([row["id"] for row in groups[0]["responses"]], [3, 1])


if __name__ == "__main__":
    unittest.main()
