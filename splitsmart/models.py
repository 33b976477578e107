from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ReceiptItem(BaseModel):
    """A single line on the receipt and the people sharing it."""
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    id: str
    name: str
    price: float  # Negative for credits and adjustments
    assigned_to: list[str] = []


class Discount(BaseModel):
    """A bill-wide discount, either a percentage or a fixed amount."""
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    kind: Literal["percentage", "fixed"]
    value: float


class ReceiptState(BaseModel):
    """
    The full editable state of one receipt.

    subtotal, tax, tip and total are tracked independently and are not
    required to add up; any residual is handled by the allocation.
    """
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    items: list[ReceiptItem] = []
    subtotal: float = 0.0
    tax: float = 0.0
    tip: float = 0.0
    total: float = 0.0
    discount: Optional[Discount] = None
    fixed_contributions: dict[str, float] = {}
    merchant_name: Optional[str] = None
    date: Optional[str] = None
    location: Optional[str] = None
    currency_symbol: str = "$"


class PersonSummary(BaseModel):
    """What one participant owes, derived from a ReceiptState."""
    name: str
    items: list[ReceiptItem] = []
    subtotal_owed: float = 0.0
    tax_owed: float = 0.0
    tip_owed: float = 0.0
    total_owed: float = 0.0
    is_fixed: bool = False


class AllocationResult(BaseModel):
    """Per-person amounts, highest first, plus the bill-level figures behind them."""
    summaries: list[PersonSummary] = []
    unassigned_total: float = 0.0
    net_bill: float = 0.0
    fixed_total: float = 0.0
    remaining_pool: float = 0.0


# Commands


class _Command(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, allow_inf_nan=False)


class ItemAssignment(_Command):
    item_name: str
    people: list[str]


class SplitPart(_Command):
    name: str
    price: float
    people: list[str] = []


class AssignItems(_Command):
    command: Literal["assign_items"] = "assign_items"
    assignments: list[ItemAssignment]


class SplitItem(_Command):
    command: Literal["split_item"] = "split_item"
    original_item_name: str
    new_items: list[SplitPart] = Field(min_length=1)


class AddItem(_Command):
    command: Literal["add_item"] = "add_item"
    name: str
    price: float
    people: list[str] = []


class ApplyDiscount(_Command):
    command: Literal["apply_discount"] = "apply_discount"
    kind: Literal["percentage", "fixed"]
    value: float


class SetFixedContribution(_Command):
    command: Literal["set_fixed_contribution"] = "set_fixed_contribution"
    name: str
    amount: float


class RemoveFixedContribution(_Command):
    command: Literal["remove_fixed_contribution"] = "remove_fixed_contribution"
    name: str


class UpdateTip(_Command):
    command: Literal["update_tip"] = "update_tip"
    amount: float


class ResetReceipt(_Command):
    command: Literal["reset_receipt"] = "reset_receipt"


Command = Annotated[
    Union[
        AssignItems,
        SplitItem,
        AddItem,
        ApplyDiscount,
        SetFixedContribution,
        RemoveFixedContribution,
        UpdateTip,
        ResetReceipt,
    ],
    Field(discriminator="command"),
]


class ApplyResult(BaseModel):
    """
    Outcome of applying a batch of commands.

    state is None when the batch requested a full reset; skipped lists
    every command or assignment that could not be applied.
    """
    state: Optional[ReceiptState] = None
    reset_requested: bool = False
    skipped: list[str] = []


# External collaborators


class ExtractedItem(BaseModel):
    """An item as returned by receipt extraction."""
    name: str = ""
    price: float = 0.0


class ExtractedReceipt(BaseModel):
    """Structured receipt data returned by image extraction."""
    items: list[ExtractedItem] = []
    subtotal: Optional[float] = None
    tax: Optional[float] = None
    tip: Optional[float] = None
    total: Optional[float] = None
    merchant_name: Optional[str] = None
    date: Optional[str] = None
    location: Optional[str] = None
    currency_symbol: Optional[str] = None


class TranslationResult(BaseModel):
    """Commands and explanation produced from one chat message."""
    explanation: str = ""
    commands: list[Command] = []
    rejected: list[str] = []
    reset_requested: bool = False


class ChatTurn(BaseModel):
    """A previous message in the conversation."""
    role: Literal["user", "assistant"]
    text: str


# Request / response bodies


class ReceiptParseRequest(BaseModel):
    """Request body for receipt parsing with base64 image."""
    image_base64: str
    media_type: str = "image/jpeg"


class StateRequest(BaseModel):
    """Request body carrying only the current receipt state."""
    state: ReceiptState


class CommandsRequest(BaseModel):
    """Request body for applying a batch of raw commands."""
    state: ReceiptState
    commands: list[Any] = []


class ChatRequest(BaseModel):
    """Request body for a chat message against the current receipt."""
    state: ReceiptState
    message: str
    history: list[ChatTurn] = []


class ChatResponse(BaseModel):
    """Response for a chat message."""
    explanation: str
    result: ApplyResult
    allocation: Optional[AllocationResult] = None


class SummaryResponse(BaseModel):
    """Plain-text summary of the split."""
    text: str
