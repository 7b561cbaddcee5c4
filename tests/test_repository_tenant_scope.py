import sqlite3
import unittest

from peca_ai import create_app
from peca_ai.config import Config
from peca_ai.db import close_db, get_db
from peca_ai.infrastructure.repositories import (
    BudgetRequestRepository,
    BudgetResponseRepository,
    SupplierRepository,
    TenantScopeRequiredError,
    find_budget_request_by_short_id,
)
from tests.helpers.temp_db import TempDbSandbox


class RepositoryTenantScopeTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="repo_scope")
        TempConfig = self._temp_db.make_config(
            Config,
            TESTING=True,
            AUTH_ENABLED=False,
        )
        self.app = create_app(TempConfig)

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def _create_request(self, db, repo: BudgetRequestRepository, shop_ids: list[int]) -> int:
        return repo.create(
            db,
            short_id=repo.next_short_id(db),
            car_model="Palio",
            car_year="2012",
            car_engine="1.0",
            parts=[{"name": "Correia dentada"}],
            notes=None,
            selected_shops_ids=shop_ids,
        )

    def test_repository_requires_tenant_scope(self) -> None:
        with self.assertRaises(TenantScopeRequiredError):
            SupplierRepository()
        with self.assertRaises(TenantScopeRequiredError):
            BudgetRequestRepository(tenant_id="   ")

    def test_budget_request_repository_isolates_tenant_data(self) -> None:
        with self.app.app_context():
            db = get_db()
            repo_a = BudgetRequestRepository(tenant_id="tenant-a")
            repo_b = BudgetRequestRepository(tenant_id="tenant-b")

            a_id = self._create_request(db, repo_a, [1])
            b_id = self._create_request(db, repo_b, [2])
            db.commit()

            tenant_a_rows = repo_a.list_summary(db, limit=20)
            self.assertTrue(any(int(row["id"]) == a_id for row in tenant_a_rows))
            self.assertFalse(any(int(row["id"]) == b_id for row in tenant_a_rows))
            self.assertIsNone(repo_a.get_by_id(db, b_id))
            self.assertFalse(repo_a.delete(db, b_id))
            self.assertIsNotNone(repo_b.get_by_id(db, b_id))

    def test_short_ids_are_global_across_workshops(self) -> None:
        with self.app.app_context():
            db = get_db()
            repo_a = BudgetRequestRepository(tenant_id="tenant-a")
            repo_b = BudgetRequestRepository(tenant_id="tenant-b")
            a_id = self._create_request(db, repo_a, [1])
            b_id = self._create_request(db, repo_b, [1])
            db.commit()

            short_a = repo_a.get_by_id(db, a_id)["short_id"]
            short_b = repo_b.get_by_id(db, b_id)["short_id"]
            self.assertEqual(short_b, short_a + 1)
            self.assertEqual(find_budget_request_by_short_id(db, short_b)["tenant_id"], "tenant-b")

    def test_short_id_is_unique(self) -> None:
        with self.app.app_context():
            db = get_db()
            repo = BudgetRequestRepository(tenant_id="tenant-a")
            request_id = self._create_request(db, repo, [1])
            db.commit()
            short_id = repo.get_by_id(db, request_id)["short_id"]

            with self.assertRaises(sqlite3.IntegrityError):
                with db.transaction():
                    repo.create(
                        db,
                        short_id=short_id,
                        car_model="Uno",
                        car_year="2010",
                        car_engine=None,
                        parts=[{"name": "Vela"}],
                        notes=None,
                        selected_shops_ids=[1],
                    )

    def test_responses_are_counted_per_workshop(self) -> None:
        with self.app.app_context():
            db = get_db()
            suppliers = SupplierRepository(tenant_id="tenant-a")
            shop_id = suppliers.create(db, name="Loja A", whatsapp="11911112222")
            request_id = self._create_request(db, BudgetRequestRepository(tenant_id="tenant-a"), [shop_id])
            BudgetResponseRepository(tenant_id="tenant-a").create(
                db,
                budget_request_id=request_id,
                supplier_id=shop_id,
                shop_name="Loja A",
                shop_whatsapp="11911112222",
                parts_and_prices=[{"part": "Correia dentada", "price": 120.0}],
                total_price=120.0,
                notes=None,
            )
            db.commit()

            self.assertEqual(BudgetResponseRepository(tenant_id="tenant-a").count_for_request(db, request_id), 1)
            self.assertEqual(BudgetResponseRepository(tenant_id="tenant-b").count_for_request(db, request_id), 0)
            stored = BudgetResponseRepository(tenant_id="tenant-a").list_for_request(db, request_id)[0]
            self.assertEqual(stored["parts_and_prices"], [{"part": "Correia dentada", "price": 120.0}])


if __name__ == "__main__":
    unittest.main()
