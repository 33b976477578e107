from decimal import Decimal

from ..models import AllocationResult, ReceiptState


def _plain(value: float) -> str:
    return format(Decimal(str(value)).normalize(), "f")


def _discount_label(state: ReceiptState) -> str:
    discount = state.discount
    if discount.kind == "percentage":
        return f"{_plain(discount.value)}%"
    return f"{state.currency_symbol}{_plain(discount.value)}"


def render_summary(state: ReceiptState, allocation: AllocationResult) -> str:
    """
    Render a shareable plain-text summary of the split.

    Amounts are shown with two decimals. An unassigned line appears when
    more than a cent of items has no owner.
    """
    currency = state.currency_symbol
    header = f"SplitSmart Summary for {state.merchant_name or 'Bill'}\n"

    lines = [
        f"{person.name}: {currency}{person.total_owed:.2f} ({len(person.items)} items)"
        for person in allocation.summaries
    ]
    if allocation.unassigned_total > 0.01:
        lines.append(f"Unassigned: {currency}{allocation.unassigned_total:.2f} + tax/tip")

    footer = f"\n\nTotal: {currency}{state.total:.2f}"
    if state.discount is not None:
        footer += f" (After {_discount_label(state)} discount)"

    return header + "\n".join(lines) + footer
