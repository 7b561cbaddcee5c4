from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass(frozen=True)
class ServiceOutput:
    payload: Dict[str, Any]
    status_code: int = 200


@dataclass(frozen=True)
class BudgetResponseInput:
    """Supplier submission for one budget request, as received on the public endpoint."""

    short_id: int
    shop_id: int
    parts_and_prices: List[Dict[str, Any]]
    total_price: float
    notes: str | None = None


@dataclass(frozen=True)
class BudgetRequestCreateInput:
    car_model: str
    car_year: str
    car_engine: str | None
    parts: List[str]
    notes: str | None
    selected_shops_ids: List[int]


@dataclass(frozen=True)
class SupplierInput:
    name: str
    whatsapp: str


@dataclass(frozen=True)
class OrderItemInput:
    part: str
    quantity: int


@dataclass(frozen=True)
class OrderCreateInput:
    budget_response_id: int
    items: List[OrderItemInput]
    notes: str | None = None


@dataclass(frozen=True)
class WorkshopSettingsInput:
    values: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AuthLoginInput:
    login: str
    password: str


@dataclass(frozen=True)
class AuthRegisterInput:
    username: str
    email: str
    password: str
    workshop_name: str | None


@dataclass(frozen=True)
class AuthUser:
    username: str
    email: str
    display_name: str
    tenant_id: str
