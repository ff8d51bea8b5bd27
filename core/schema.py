"""
Pydantic schemas for the subscription ledger.
Defines the validated record types exchanged between the classifier
boundary, the aggregator and the API layer.
"""
from datetime import datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def normalize_amount(v):
    """Bank statements report debits as negative values; keep the magnitude."""
    if isinstance(v, str):
        v = v.strip().replace(",", ".")
    if isinstance(v, (int, float, str)) and not isinstance(v, bool):
        try:
            return abs(float(v))
        except ValueError:
            return v
    return v


def normalize_frequency(v):
    """Accept 'Monthly', ' YEARLY ' and similar spellings."""
    if isinstance(v, str):
        return v.strip().lower()
    return v


def normalize_optional_text(v):
    """Treat blank strings from the LLM as missing."""
    if isinstance(v, str) and not v.strip():
        return None
    return v


class CamelModel(BaseModel):
    """Base model serializing to the camelCase JSON used by the web client."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SubscriptionItem(CamelModel):
    """One recurring charge detected by the classifier."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str = Field(..., min_length=1, description="Clean vendor name (e.g. Netflix)")
    amount: Annotated[float, BeforeValidator(normalize_amount)] = Field(
        ..., gt=0, description="Cost per billing cycle, positive"
    )
    frequency: Annotated[Literal["monthly", "yearly"], BeforeValidator(normalize_frequency)]
    category: str = Field(..., min_length=1, description="Streaming, Fitness, Software, ...")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Confidence score between 0 and 1")
    recommendation: Annotated[Optional[str], BeforeValidator(normalize_optional_text)] = None

    @field_validator("name", "category", mode="before")
    @classmethod
    def strip_text(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v


class CategoryTotal(CamelModel):
    """Sum of raw item amounts for one category (chart breakdown)."""
    category: str
    amount: float


class AnalysisResult(CamelModel):
    """Authoritative result of one statement analysis."""
    total_monthly: float = 0.0
    total_yearly: float = 0.0
    subscription_count: int = 0
    items: List[SubscriptionItem] = Field(default_factory=list)
    insights: List[str] = Field(default_factory=list)
    category_breakdown: List[CategoryTotal] = Field(default_factory=list)
    id: Optional[str] = None
    created_at: Optional[datetime] = None


class HistoryRecord(AnalysisResult):
    """An analysis result stored in the history log."""
    id: str
    created_at: datetime


class SimulationRequest(CamelModel):
    """What-if simulation input: items plus a positional active flag each."""
    items: List[SubscriptionItem]
    active: List[bool]


class SimulationResult(CamelModel):
    """Totals recomputed over the items still marked active."""
    total_monthly: float
    total_yearly: float
    active_count: int
    category_breakdown: List[CategoryTotal] = Field(default_factory=list)


class ClassifierOutput(CamelModel):
    """Canonical classifier payload after boundary normalization."""
    items: List[SubscriptionItem]
    insights: List[str] = Field(default_factory=list)
    reported_total_monthly: Optional[float] = None
    reported_total_yearly: Optional[float] = None
    reported_count: Optional[int] = None


class CheckoutSession(CamelModel):
    """Billing created at the payment provider."""
    billing_id: str
    url: str
    pix_code: Optional[str] = None


class PaymentCheckRequest(CamelModel):
    billing_id: str


class LoginRequest(CamelModel):
    email: str = Field(..., min_length=3, max_length=254)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        """Simulated login: only a plausible address is required."""
        v = v.strip().lower()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("Invalid email address")
        return v


class SessionState(str, Enum):
    """States of the credit/paywall session machine."""
    ANONYMOUS = "anonymous"
    AUTHENTICATED_WITH_CREDITS = "authenticated_with_credits"
    AUTHENTICATED_NO_CREDITS = "authenticated_no_credits"


class SessionSnapshot(CamelModel):
    session_id: str
    state: SessionState
    email: Optional[str] = None
    credits: int
    analysis_in_flight: bool = False


# Sheet names for the spreadsheet report
SHEET_NAMES = {
    "items": "Assinaturas",
    "summary": "Resumo",
}
