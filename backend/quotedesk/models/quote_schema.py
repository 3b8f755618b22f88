from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class QuoteStatus(str, Enum):
    """Closed set of quote lifecycle states."""
    DRAFT = "draft"
    SENT = "sent"
    APPROVED = "approved"
    REJECTED = "rejected"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class MethodSelection(BaseModel):
    """
    One decoration/add-on chosen for a line item.
    Count multiplies the method's flat price into the unit price.
    """
    method_id: str = Field(..., description="CatalogMethod id within the item's kind")
    count: int = Field(1, description="Number of applications per unit (>= 1)")
    print_position_id: Optional[str] = None
    print_width_mm: Optional[float] = None
    print_height_mm: Optional[float] = None


class Attachment(BaseModel):
    """Opaque file reference; storage mechanics live elsewhere."""
    name: str = "file"
    size: int = 0
    content_type: str = "application/octet-stream"
    url: str = ""


class QuoteItemDraft(BaseModel):
    """
    Input for a new line item.

    Catalog mode is selected by ``model_id``; otherwise ``manual_price`` is
    used as the unit price.
    """
    name: str
    quantity: int = 1
    unit: str = "pcs"
    description: Optional[str] = None
    manual_price: Optional[float] = None
    type_id: Optional[str] = None
    kind_id: Optional[str] = None
    model_id: Optional[str] = None
    print_position_id: Optional[str] = None
    print_width_mm: Optional[float] = None
    print_height_mm: Optional[float] = None
    methods: List[MethodSelection] = Field(default_factory=list)
    attachment: Optional[Attachment] = None

    @property
    def is_catalog_mode(self) -> bool:
        return self.model_id is not None


class QuoteItemPatch(BaseModel):
    """
    Partial update for a line item. Only fields explicitly set are applied
    (``model_fields_set``), so ``None`` can clear an optional field.
    """
    name: Optional[str] = None
    quantity: Optional[int] = None
    unit: Optional[str] = None
    description: Optional[str] = None
    manual_price: Optional[float] = None
    type_id: Optional[str] = None
    kind_id: Optional[str] = None
    model_id: Optional[str] = None
    print_position_id: Optional[str] = None
    print_width_mm: Optional[float] = None
    print_height_mm: Optional[float] = None
    methods: Optional[List[MethodSelection]] = None
    attachment: Optional[Attachment] = None


class QuoteItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    quote_id: str
    position: int
    name: str
    quantity: int
    unit: str = "pcs"
    unit_price: float
    line_total: float
    description: Optional[str] = None
    type_id: Optional[str] = None
    kind_id: Optional[str] = None
    model_id: Optional[str] = None
    print_position_id: Optional[str] = None
    print_width_mm: Optional[float] = None
    print_height_mm: Optional[float] = None
    methods: List[MethodSelection] = Field(default_factory=list)
    attachment: Optional[Attachment] = None

    @property
    def is_catalog_mode(self) -> bool:
        return self.model_id is not None


class QuoteTotals(BaseModel):
    model_config = ConfigDict(frozen=True)

    subtotal: float
    discount_percent: float
    discount_amount: float
    after_discount: float
    tax_percent: float
    tax_amount: float
    total: float


class Quote(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    team_id: str
    status: QuoteStatus = QuoteStatus.DRAFT
    currency: str = "UAH"
    customer_id: Optional[str] = None
    title: Optional[str] = None
    comment: Optional[str] = None
    deadline_at: Optional[date] = None
    deadline_note: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class QuoteStatusHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    quote_id: str
    from_status: Optional[QuoteStatus] = None
    to_status: QuoteStatus
    note: Optional[str] = None
    changed_by: Optional[str] = None
    created_at: datetime
