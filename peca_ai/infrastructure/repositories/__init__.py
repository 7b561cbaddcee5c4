from .auth_repository import AuthRepository
from .base import TenantScopeRequiredError
from .budget_request_repository import BudgetRequestRepository, find_budget_request_by_short_id
from .budget_response_repository import BudgetResponseRepository
from .order_repository import OrderRepository
from .settings_repository import SETTINGS_FIELDS, SettingsRepository
from .status_event_repository import StatusEventRepository
from .supplier_repository import SupplierRepository, find_supplier_unscoped

__all__ = [
    "AuthRepository",
    "BudgetRequestRepository",
    "BudgetResponseRepository",
    "OrderRepository",
    "SETTINGS_FIELDS",
    "SettingsRepository",
    "StatusEventRepository",
    "SupplierRepository",
    "TenantScopeRequiredError",
    "find_budget_request_by_short_id",
    "find_supplier_unscoped",
]
