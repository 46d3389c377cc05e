"""Tenant-scoped business records, stored with camelCase keys."""
from datetime import datetime
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RouteStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class InvoiceStatus(str, Enum):
    DRAFT = "Draft"
    SENT = "Sent"
    PAID = "Paid"
    OVERDUE = "Overdue"
    CANCELLED = "Cancelled"


class ResourceStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "Bank Transfer"
    CHEQUE = "Cheque"
    CASH = "Cash"


class EntityModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )

    def to_record(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TenantEntity(EntityModel):
    id: str
    tenant_id: str = Field(alias="organizationId")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None
    idempotency_key: Optional[str] = None


class Route(TenantEntity):
    pickup_location: str
    delivery_location: str
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    date: str
    rate: float = 0.0
    status: RouteStatus = RouteStatus.PENDING
    driver_id: Optional[str] = None
    driver_name: Optional[str] = None
    vehicle_id: Optional[str] = None
    vehicle_plate: Optional[str] = None


class Driver(TenantEntity):
    name: str
    phone: str
    license_number: str
    nin: Optional[str] = None
    annual_salary: Optional[float] = None
    account_number: Optional[str] = None
    status: ResourceStatus = ResourceStatus.ACTIVE


class Vehicle(TenantEntity):
    make: str
    model: str
    year: int
    plate_number: str
    vin: Optional[str] = None
    odometer: float = 0.0
    status: ResourceStatus = ResourceStatus.ACTIVE


class Client(TenantEntity):
    company_name: str
    contact_person: str
    email: str
    phone: str
    cac_number: Optional[str] = None
    tin: Optional[str] = None
    address: str


class InvoiceItem(EntityModel):
    description: str
    quantity: float
    unit_price: float
    amount: float


class Invoice(TenantEntity):
    invoice_number: str
    client_id: Optional[str] = None
    client_name: str
    items: List[InvoiceItem]
    subtotal: float
    vat_inclusive: bool = False
    vat_rate: float = 0.0
    vat_amount: float = 0.0
    total: float
    currency: str = "NGN"
    status: InvoiceStatus = InvoiceStatus.DRAFT
    issue_date: str
    due_date: str
    notes: Optional[str] = None


class Expense(TenantEntity):
    route_id: Optional[str] = None
    category: str
    amount: float
    description: Optional[str] = None
    date: str


class InvoiceProfile(EntityModel):
    tenant_id: str = Field(alias="organizationId")
    company_name: str
    address: str
    email: str
    phone: str
    payment_method: PaymentMethod
    bank_name: Optional[str] = None
    bank_code: Optional[str] = None
    account_number: Optional[str] = None
    account_name: Optional[str] = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Organization(EntityModel):
    id: str
    name: str
    fleet_size: str
    address: str
    city: str
    state: str
    owner_user_id: str
    subscription_status: str = "trial"
    trial_ends_at: datetime
    wallet_balance: float = 0.0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    last_notification_at: Optional[datetime] = None


class UserAccount(EntityModel):
    id: str
    tenant_id: str = Field(alias="organizationId")
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone_number: str
    pin_hash: str
    role: str = "owner"
    password_hash: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
