import logging
import math
import uuid
from decimal import Decimal
from typing import Any, Callable, Optional

from pydantic import TypeAdapter, ValidationError

from ..models import (
    AddItem,
    ApplyDiscount,
    ApplyResult,
    AssignItems,
    Command,
    Discount,
    ExtractedReceipt,
    ReceiptItem,
    ReceiptState,
    RemoveFixedContribution,
    ResetReceipt,
    SetFixedContribution,
    SplitItem,
    UpdateTip,
)

logger = logging.getLogger(__name__)

_command_adapter = TypeAdapter(Command)


def new_item_id(prefix: str = "item") -> str:
    """Generate a session-unique item id."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _add(a: float, b: float) -> float:
    return float(Decimal(str(a)) + Decimal(str(b)))


def hydrate_receipt(extracted: ExtractedReceipt, currency_symbol: str = "$") -> ReceiptState:
    """
    Build a fresh ReceiptState from an extraction result.

    Every item gets a new id and no assignees. Missing amounts become 0 and
    a missing currency symbol falls back to currency_symbol.
    """
    items = [
        ReceiptItem(id=new_item_id(), name=item.name, price=item.price)
        for item in extracted.items
    ]
    return ReceiptState(
        items=items,
        subtotal=extracted.subtotal or 0.0,
        tax=extracted.tax or 0.0,
        tip=extracted.tip or 0.0,
        total=extracted.total or 0.0,
        merchant_name=extracted.merchant_name,
        date=extracted.date,
        location=extracted.location,
        currency_symbol=extracted.currency_symbol or currency_symbol,
    )


def parse_commands(raw_commands: list[Any]) -> tuple[list[Command], list[str]]:
    """
    Validate raw command payloads one by one.

    Returns:
        Tuple of (valid commands in order, descriptions of rejected entries)
    """
    commands: list[Command] = []
    rejected: list[str] = []

    for position, raw in enumerate(raw_commands, start=1):
        try:
            commands.append(_command_adapter.validate_python(raw))
        except ValidationError as e:
            kind = raw.get("command", "unknown") if isinstance(raw, dict) else "unknown"
            message = f"Command {position} ({kind}) is malformed: {e.error_count()} validation error(s)"
            logger.info(message)
            rejected.append(message)

    return commands, rejected


def resolve_item_index(items: list[ReceiptItem], query: str) -> Optional[int]:
    """
    Find the item a (possibly paraphrased) name refers to.

    Case-insensitive exact match wins; otherwise the first item whose name
    contains the query or is contained in it.
    """
    needle = query.strip().casefold()
    if not needle:
        return None

    for index, item in enumerate(items):
        if item.name.strip().casefold() == needle:
            return index

    for index, item in enumerate(items):
        name = item.name.strip().casefold()
        if name and (needle in name or name in needle):
            return index

    return None


def known_participants(state: ReceiptState) -> list[str]:
    """Everyone assigned to an item or holding a fixed contribution, first appearance order."""
    names: list[str] = []
    for item in state.items:
        for name in item.assigned_to:
            if name not in names:
                names.append(name)
    for name in state.fixed_contributions:
        if name not in names:
            names.append(name)
    return names


def normalize_people(people: list[str], known: list[str]) -> list[str]:
    """
    Trim names, drop blanks and duplicates, and reuse the casing of an
    already known participant. Newly seen names are appended to known.
    """
    casing: dict[str, str] = {}
    for name in known:
        casing.setdefault(name.casefold(), name)

    result: list[str] = []
    for raw in people:
        name = raw.strip()
        if not name:
            continue
        key = name.casefold()
        if key not in casing:
            casing[key] = name
            known.append(name)
        canonical = casing[key]
        if canonical not in result:
            result.append(canonical)

    return result


def clear_assignments(state: ReceiptState) -> ReceiptState:
    """Unassign every item and drop fixed contributions and the discount."""
    return state.model_copy(update={
        "items": [item.model_copy(update={"assigned_to": []}) for item in state.items],
        "fixed_contributions": {},
        "discount": None,
    })


def _assign_items(state: ReceiptState, command: AssignItems, skipped: list[str]) -> ReceiptState:
    items = list(state.items)
    known = known_participants(state)

    for assignment in command.assignments:
        index = resolve_item_index(items, assignment.item_name)
        if index is None:
            skipped.append(f"assign_items: no item matches '{assignment.item_name}'")
            continue
        people = normalize_people(assignment.people, known)
        items[index] = items[index].model_copy(update={"assigned_to": people})

    return state.model_copy(update={"items": items})


def _split_item(state: ReceiptState, command: SplitItem, skipped: list[str]) -> ReceiptState:
    items = list(state.items)
    index = resolve_item_index(items, command.original_item_name)
    if index is None:
        skipped.append(f"split_item: no item matches '{command.original_item_name}'")
        return state

    original = items[index]
    known = known_participants(state)
    # Part prices are recorded as given, not checked against the original.
    parts = [
        ReceiptItem(
            id=f"{original.id}-split-{position}-{uuid.uuid4().hex[:6]}",
            name=part.name,
            price=part.price,
            assigned_to=normalize_people(part.people, known),
        )
        for position, part in enumerate(command.new_items)
    ]
    items[index:index + 1] = parts

    return state.model_copy(update={"items": items})


def _add_item(state: ReceiptState, command: AddItem, skipped: list[str]) -> ReceiptState:
    subtotal = _add(state.subtotal, command.price)
    total = _add(state.total, command.price)
    if not (math.isfinite(subtotal) and math.isfinite(total)):
        skipped.append(f"add_item: '{command.name}' would overflow the receipt total")
        return state

    item = ReceiptItem(
        id=new_item_id("added"),
        name=command.name,
        price=command.price,
        assigned_to=normalize_people(command.people, known_participants(state)),
    )
    return state.model_copy(update={
        "items": [*state.items, item],
        "subtotal": subtotal,
        "total": total,
    })


def _apply_discount(state: ReceiptState, command: ApplyDiscount, skipped: list[str]) -> ReceiptState:
    return state.model_copy(update={"discount": Discount(kind=command.kind, value=command.value)})


def _set_fixed_contribution(
    state: ReceiptState, command: SetFixedContribution, skipped: list[str]
) -> ReceiptState:
    people = normalize_people([command.name], known_participants(state))
    if not people:
        skipped.append("set_fixed_contribution: blank participant name")
        return state
    name = people[0]

    # Overwrite in place so an existing payer keeps their position.
    contributions: dict[str, float] = {}
    for key, amount in state.fixed_contributions.items():
        if key.casefold() == name.casefold():
            contributions.setdefault(name, command.amount)
        else:
            contributions[key] = amount
    contributions.setdefault(name, command.amount)

    return state.model_copy(update={"fixed_contributions": contributions})


def _remove_fixed_contribution(
    state: ReceiptState, command: RemoveFixedContribution, skipped: list[str]
) -> ReceiptState:
    contributions = dict(state.fixed_contributions)
    if command.name in contributions:
        key = command.name
    else:
        wanted = command.name.strip().casefold()
        key = next((k for k in contributions if k.casefold() == wanted), None)

    if key is None:
        skipped.append(f"remove_fixed_contribution: no fixed contribution for '{command.name}'")
        return state

    del contributions[key]
    return state.model_copy(update={"fixed_contributions": contributions})


def _update_tip(state: ReceiptState, command: UpdateTip, skipped: list[str]) -> ReceiptState:
    # Total moves with the tip so the rest of the bill is unchanged.
    total = Decimal(str(state.total)) - Decimal(str(state.tip)) + Decimal(str(command.amount))
    if not math.isfinite(float(total)):
        skipped.append("update_tip: new tip would overflow the receipt total")
        return state
    return state.model_copy(update={"tip": command.amount, "total": float(total)})


_HANDLERS: dict[type, Callable[..., ReceiptState]] = {
    AssignItems: _assign_items,
    SplitItem: _split_item,
    AddItem: _add_item,
    ApplyDiscount: _apply_discount,
    SetFixedContribution: _set_fixed_contribution,
    RemoveFixedContribution: _remove_fixed_contribution,
    UpdateTip: _update_tip,
}


def apply_command(state: ReceiptState, command: Command, skipped: list[str]) -> ReceiptState:
    """
    Apply one non-reset command and return the new state.

    The given state is never modified. Anything that could not be applied
    is described in skipped.
    """
    handler = _HANDLERS.get(type(command))
    if handler is None:
        skipped.append(f"{command.command}: not applicable here")
        return state
    return handler(state, command, skipped)


def apply_commands(state: ReceiptState, commands: list[Command]) -> ApplyResult:
    """
    Apply a batch of commands in order.

    A reset_receipt anywhere in the batch discards every change made by the
    batch and stops processing; the caller starts over from an empty receipt.

    Args:
        state: The current receipt state
        commands: Validated commands, in the order received

    Returns:
        ApplyResult with the new state (None on reset) and any skipped work
    """
    skipped: list[str] = []
    current = state

    for command in commands:
        if isinstance(command, ResetReceipt):
            logger.info("Reset requested, discarding %d command(s) of the batch", len(commands))
            return ApplyResult(state=None, reset_requested=True, skipped=skipped)
        current = apply_command(current, command, skipped)

    for message in skipped:
        logger.info("Skipped: %s", message)

    return ApplyResult(state=current, skipped=skipped)
