from fastapi import APIRouter, UploadFile, File, HTTPException

from ..config import get_settings
from ..models import (
    AllocationResult,
    ApplyResult,
    ChatRequest,
    ChatResponse,
    CommandsRequest,
    ReceiptParseRequest,
    ReceiptState,
    StateRequest,
    SummaryResponse,
)
from ..services.allocation import compute_allocation
from ..services.commands import apply_commands, clear_assignments, hydrate_receipt, parse_commands
from ..services.extraction import parse_receipt_image
from ..services.summary import render_summary
from ..services.translation import translate_message

router = APIRouter(prefix="/receipts", tags=["Receipts"])


async def _extract_state(image_data: str | bytes, media_type: str) -> ReceiptState:
    try:
        extracted = await parse_receipt_image(image_data, media_type)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Receipt processing failed: {str(e)}")
    return hydrate_receipt(extracted, get_settings().default_currency_symbol)


@router.post("/parse", response_model=ReceiptState)
async def parse_receipt_upload(file: UploadFile = File(...)) -> ReceiptState:
    """
    Parse a receipt image from file upload into a fresh receipt state.

    Every item starts unassigned.
    """
    content = await file.read()
    media_type = file.content_type or "image/jpeg"
    return await _extract_state(content, media_type)


@router.post("/parse/base64", response_model=ReceiptState)
async def parse_receipt_base64(request: ReceiptParseRequest) -> ReceiptState:
    """Parse a receipt image from base64-encoded data into a fresh receipt state."""
    return await _extract_state(request.image_base64, request.media_type)


@router.post("/commands", response_model=ApplyResult)
async def apply_receipt_commands(request: CommandsRequest) -> ApplyResult:
    """
    Apply a batch of commands to the given state.

    Malformed commands and unresolvable names are reported in `skipped`;
    they never fail the request.
    """
    commands, rejected = parse_commands(request.commands)
    result = apply_commands(request.state, commands)
    return result.model_copy(update={"skipped": rejected + result.skipped})


@router.post("/allocation", response_model=AllocationResult)
async def get_allocation(request: StateRequest) -> AllocationResult:
    """Compute what each participant owes, highest first."""
    return compute_allocation(request.state)


@router.post("/clear-assignments", response_model=ReceiptState)
async def clear_receipt_assignments(request: StateRequest) -> ReceiptState:
    """Unassign all items and drop fixed contributions and the discount."""
    return clear_assignments(request.state)


@router.post("/summary", response_model=SummaryResponse)
async def get_summary(request: StateRequest) -> SummaryResponse:
    """Plain-text summary of the split, ready to share."""
    allocation = compute_allocation(request.state)
    return SummaryResponse(text=render_summary(request.state, allocation))


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest) -> ChatResponse:
    """
    Interpret a chat message, apply the resulting commands and recompute the split.

    After a reset the state and allocation are null and the client should
    return to the upload step.
    """
    translation = await translate_message(request.message, request.state, request.history)
    result = apply_commands(request.state, translation.commands)
    result = result.model_copy(update={"skipped": translation.rejected + result.skipped})

    allocation = compute_allocation(result.state) if result.state is not None else None
    return ChatResponse(
        explanation=translation.explanation,
        result=result,
        allocation=allocation,
    )
