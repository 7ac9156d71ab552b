from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

WorkOrderStatus = Literal["Scheduled", "Travel", "Active", "Appointment", "Completed", "Cancelled"]
JobCompletion = Literal["none", "spt", "complete"]
DiagnosticFeeType = Literal["standard", "built-in", "boutique"]
EffectiveState = Literal["active", "parts_pending", "completed", "cancelled"]

STATUSES: tuple[str, ...] = ("Scheduled", "Travel", "Active", "Appointment", "Completed", "Cancelled")
JOB_COMPLETION_STATES: tuple[str, ...] = ("none", "spt", "complete")
VIEWS: tuple[str, ...] = ("active", "parts_pending", "completed", "cancelled")


@dataclass(frozen=True)
class Actor:
    user_id: str
    display_name: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class PartLine:
    part_name: str
    part_number: str
    unit_cost: Decimal
    markup_percentage: Decimal
    final_price: Decimal
    quantity: int
    id: Optional[int] = None
    work_order_id: Optional[str] = None


@dataclass(frozen=True)
class PartDirectoryEntry:
    part_name: str
    part_number: str
    unit_cost: Decimal
    markup_percentage: Decimal
    final_price: Decimal
    appliance_brand: Optional[str] = None
    appliance_model: Optional[str] = None
    appliance_type: Optional[str] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class ApplianceModel:
    brand: str
    model: str
    appliance_type: str
    serial_number: Optional[str] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class WorkOrder:
    id: Optional[str]
    work_order_number: Optional[str]
    owner_id: Optional[str]

    customer_name: str
    customer_phone: Optional[str]
    customer_email: Optional[str]
    customer_address: Optional[str]
    customer_address_line_2: Optional[str]
    customer_city: Optional[str]
    customer_state: Optional[str]
    customer_zip_code: Optional[str]

    appliance_brand: str
    appliance_type: str
    appliance_model: Optional[str]
    serial_number: Optional[str]
    warranty_status: Optional[str]

    service_type: Optional[str]
    problem_description: str
    initial_diagnosis: Optional[str]
    parts_needed: Optional[str]
    estimated_time: Optional[str]
    technician_notes: Optional[str]
    cancellation_reason: Optional[str]

    labor_level: int
    diagnostic_fee_type: Optional[DiagnosticFeeType]
    diagnostic_fee_amount: Decimal
    labor_cost_calculated: Decimal
    parts_cost: str
    total_cost: Decimal
    pricing_version: str

    status: WorkOrderStatus
    job_completion: JobCompletion

    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    updated_by: Optional[str] = None
    part_lines: tuple[PartLine, ...] = field(default_factory=tuple)

    @property
    def is_public(self) -> bool:
        return self.owner_id is None
