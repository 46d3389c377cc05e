"""Typed inputs that wizard commits validate their collected fields against."""
from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

FleetSize = Literal["1-5", "6-10", "11-20", "21-50", "50+"]


class FlowInput(BaseModel):
    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)


class OnboardingInput(FlowInput):
    first_name: str = Field(min_length=2)
    last_name: str = Field(min_length=2)
    company_name: str = Field(min_length=2)
    fleet_size: FleetSize
    street: str = Field(min_length=3)
    city: str = Field(min_length=2)
    state: str
    terms_accepted: Literal[True]
    pin_hash: str


class InvoiceProfileInput(FlowInput):
    company_name: str = Field(min_length=2)
    address: str = Field(min_length=3)
    email: str
    phone: str
    payment_method: Literal["Bank Transfer", "Cheque", "Cash"]
    bank_name: Optional[str] = None
    bank_code: Optional[str] = None
    account_number: Optional[str] = Field(default=None, pattern=r"^\d{10}$")
    account_name: Optional[str] = None

    @model_validator(mode="after")
    def bank_details_for_transfers(self) -> "InvoiceProfileInput":
        if self.payment_method == "Bank Transfer" and not (self.bank_name and self.account_number):
            raise ValueError("Bank transfer profiles need a bank name and account number")
        return self


class InvoiceDraftInput(FlowInput):
    client_id: Optional[str] = None
    client_name: str
    item_description: str = Field(min_length=2)
    quantity: float = Field(gt=0)
    unit_price: float = Field(gt=0)
    vat_applied: bool
    vat_rate: float = Field(default=0.0, ge=0, le=100)
    vat_inclusive: bool = False
    notes: Optional[str] = None
