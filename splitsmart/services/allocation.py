import logging
from decimal import Decimal

from ..models import AllocationResult, PersonSummary, ReceiptItem, ReceiptState

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def _dec(value: float) -> Decimal:
    return Decimal(str(value))


def _net_bill(state: ReceiptState) -> Decimal:
    total = _dec(state.total)
    discount = state.discount
    if discount is None:
        return total
    if discount.kind == "percentage":
        return total * (1 - _dec(discount.value) / 100)
    return max(ZERO, total - _dec(discount.value))


def net_bill(state: ReceiptState) -> float:
    """Total after the bill-wide discount, before fixed contributions."""
    return float(_net_bill(state))


def unassigned_total(state: ReceiptState) -> float:
    """Sum of prices of items nobody is assigned to."""
    return float(sum((_dec(item.price) for item in state.items if not item.assigned_to), ZERO))


def compute_allocation(state: ReceiptState) -> AllocationResult:
    """
    Work out what every participant owes.

    1. Each assigned item is split evenly among its assignees.
    2. Tax (whatever the total exceeds subtotal plus tip by) and tip are
       added in proportion to each person's item subtotal. The result is
       the person's weight.
    3. The discount is applied to the whole bill.
    4. Fixed payers owe exactly their committed amount; what is left of the
       net bill is shared among everyone else by weight.

    Args:
        state: The receipt to split

    Returns:
        AllocationResult with summaries sorted by amount owed, highest first
    """
    # Phase 1: raw item shares
    raw_subtotals: dict[str, Decimal] = {}
    person_items: dict[str, list[ReceiptItem]] = {}
    unassigned = ZERO

    for item in state.items:
        if not item.assigned_to:
            unassigned += _dec(item.price)
            continue
        share = _dec(item.price) / len(item.assigned_to)
        for name in item.assigned_to:
            raw_subtotals[name] = raw_subtotals.get(name, ZERO) + share
            person_items.setdefault(name, []).append(item)

    # Fixed payers with no items still take part
    for name in state.fixed_contributions:
        raw_subtotals.setdefault(name, ZERO)
        person_items.setdefault(name, [])

    # Phase 2: proportional tax and tip
    subtotal = _dec(state.subtotal)
    tip = _dec(state.tip)
    distributable_tax = max(ZERO, _dec(state.total) - subtotal - tip)
    denominator = subtotal if subtotal != 0 else Decimal("1")
    tax_ratio = distributable_tax / denominator
    tip_ratio = tip / denominator

    weights: dict[str, Decimal] = {}
    tax_shares: dict[str, Decimal] = {}
    tip_shares: dict[str, Decimal] = {}
    for name, raw in raw_subtotals.items():
        tax_shares[name] = raw * tax_ratio
        tip_shares[name] = raw * tip_ratio
        weights[name] = raw + tax_shares[name] + tip_shares[name]

    # Phase 3: discount
    bill = _net_bill(state)

    # Phase 4: fixed contributions and redistribution
    fixed = {name: _dec(amount) for name, amount in state.fixed_contributions.items()}
    fixed_total = sum(fixed.values(), ZERO)
    remaining_pool = max(ZERO, bill - fixed_total)
    variable_weight_total = sum(
        (weight for name, weight in weights.items() if name not in fixed), ZERO
    )

    if fixed_total > bill:
        logger.debug("Fixed contributions %s exceed net bill %s", fixed_total, bill)

    summaries: list[PersonSummary] = []
    for name, raw in raw_subtotals.items():
        if name in fixed:
            owed = float(state.fixed_contributions[name])
            is_fixed = True
        else:
            if variable_weight_total > 0:
                owed = float(weights[name] / variable_weight_total * remaining_pool)
            else:
                owed = 0.0
            is_fixed = False

        summaries.append(PersonSummary(
            name=name,
            items=person_items[name],
            subtotal_owed=float(raw),
            tax_owed=float(tax_shares[name]),
            tip_owed=float(tip_shares[name]),
            total_owed=owed,
            is_fixed=is_fixed,
        ))

    # sorted() is stable, so equal amounts keep first-appearance order
    summaries = sorted(summaries, key=lambda s: s.total_owed, reverse=True)

    return AllocationResult(
        summaries=summaries,
        unassigned_total=float(unassigned),
        net_bill=float(bill),
        fixed_total=float(fixed_total),
        remaining_pool=float(remaining_pool),
    )
