from __future__ import annotations

from peca_ai.domain.budget_status import BUDGET_REQUEST_STATUSES
from peca_ai.domain.contracts import ServiceOutput
from peca_ai.infrastructure.repositories import (
    BudgetRequestRepository,
    BudgetResponseRepository,
    OrderRepository,
    SupplierRepository,
)


def build_dashboard(db, *, tenant_id: str) -> ServiceOutput:
    by_status = BudgetRequestRepository(tenant_id=tenant_id).count_by_status(db)
    requests = {status: int(by_status.get(status, 0)) for status in BUDGET_REQUEST_STATUSES}
    return ServiceOutput(
        payload={
            "suppliers": SupplierRepository(tenant_id=tenant_id).count(db),
            "budget_requests": {"total": sum(requests.values()), **requests},
            "budget_responses": BudgetResponseRepository(tenant_id=tenant_id).count(db),
            "orders": OrderRepository(tenant_id=tenant_id).count(db),
        }
    )
