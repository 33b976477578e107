import logging
from typing import Optional

from anthropic import APIError, AsyncAnthropic

from ..config import get_settings
from ..models import ChatTurn, ReceiptState, ResetReceipt, TranslationResult
from .commands import known_participants, parse_commands

logger = logging.getLogger(__name__)

FALLBACK_EXPLANATION = "Sorry, I had trouble processing that request."
UPDATED_EXPLANATION = "I've updated the receipt based on your request."
UNCLEAR_EXPLANATION = "I'm not sure I understood. Could you try rephrasing?"

_PEOPLE = {"type": "array", "items": {"type": "string"}}

COMMAND_TOOLS = [
    {
        "name": "assign_items",
        "description": "Assigns people to receipt items. An empty people list clears the item's assignment.",
        "input_schema": {
            "type": "object",
            "properties": {
                "assignments": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "item_name": {
                                "type": "string",
                                "description": "The exact item name as listed in the receipt context.",
                            },
                            "people": {**_PEOPLE, "description": "Names of everyone sharing this item."},
                        },
                        "required": ["item_name", "people"],
                    },
                },
            },
            "required": ["assignments"],
        },
    },
    {
        "name": "split_item",
        "description": (
            "Replaces one item with several smaller items. Use for shared quantities or "
            "percentages; compute each portion's price yourself."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "original_item_name": {"type": "string"},
                "new_items": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "name": {"type": "string", "description": "e.g. 'Pizza (70% share)'"},
                            "price": {"type": "number"},
                            "people": _PEOPLE,
                        },
                        "required": ["name", "price", "people"],
                    },
                },
            },
            "required": ["original_item_name", "new_items"],
        },
    },
    {
        "name": "add_item",
        "description": "Adds a missing item or extra charge. Negative prices are credits.",
        "input_schema": {
            "type": "object",
            "properties": {
                "name": {"type": "string"},
                "price": {"type": "number"},
                "people": _PEOPLE,
            },
            "required": ["name", "price"],
        },
    },
    {
        "name": "apply_discount",
        "description": "Applies a discount to the entire bill, replacing any previous discount.",
        "input_schema": {
            "type": "object",
            "properties": {
                "kind": {"type": "string", "enum": ["percentage", "fixed"]},
                "value": {"type": "number", "description": "Percent (20 for 20%) or fixed amount."},
            },
            "required": ["kind", "value"],
        },
    },
    {
        "name": "set_fixed_contribution",
        "description": "Pins a person's total to a fixed amount. Everyone else splits the rest.",
        "input_schema": {
            "type": "object",
            "properties": {
                "name": {"type": "string"},
                "amount": {"type": "number"},
            },
            "required": ["name", "amount"],
        },
    },
    {
        "name": "remove_fixed_contribution",
        "description": "Removes a person's fixed amount so they share proportionally again.",
        "input_schema": {
            "type": "object",
            "properties": {"name": {"type": "string"}},
            "required": ["name"],
        },
    },
    {
        "name": "update_tip",
        "description": "Sets the tip to a new absolute amount.",
        "input_schema": {
            "type": "object",
            "properties": {"amount": {"type": "number"}},
            "required": ["amount"],
        },
    },
    {
        "name": "reset_receipt",
        "description": "Discards the receipt and starts over. Only when the user asks to start over.",
        "input_schema": {"type": "object", "properties": {}},
    },
]


def build_system_prompt(state: ReceiptState) -> str:
    """Describe the current receipt and participants for the model."""
    symbol = state.currency_symbol
    item_lines = "\n".join(
        f"- {item.name} ({symbol}{item.price:.2f}) [Assigned: {', '.join(item.assigned_to) or 'Nobody'}]"
        for item in state.items
    ) or "- (no items)"
    people = known_participants(state)
    people_line = f"KNOWN PEOPLE: {', '.join(people)}" if people else "KNOWN PEOPLE: None yet."

    return f"""You are SplitSmart, a bill-splitting assistant.

CURRENT RECEIPT ITEMS:
{item_lines}

{people_line}

RULES:
1. Show the step-by-step math in your reply before giving any computed amount.
2. Percentage splits must add up to 100%. If they don't, explain the problem and call no tool.
3. For uneven splits ("Pizza 70/30") compute the portion prices and use split_item.
4. Use add_item with a negative price for credits or comps.
5. Fixed amounts ("Ben pays 1000") use set_fixed_contribution; the app splits the rest by share.
6. Reuse the spelling of KNOWN PEOPLE when the user refers to them.
7. Always reply with a short text summary of what you changed."""


async def translate_message(
    message: str,
    state: ReceiptState,
    history: Optional[list[ChatTurn]] = None,
) -> TranslationResult:
    """
    Turn a chat message into receipt commands using Claude tool use.

    Args:
        message: What the user said
        state: The current receipt, given to the model as context
        history: Earlier turns of the conversation, oldest first

    Returns:
        TranslationResult with the explanation text and validated commands.
        API failures produce a fallback explanation and no commands.
    """
    settings = get_settings()
    client = AsyncAnthropic(api_key=settings.anthropic_api_key)

    messages = [
        {"role": turn.role, "content": turn.text}
        for turn in history or []
        if turn.text.strip()
    ]
    messages.append({"role": "user", "content": message})

    try:
        response = await client.messages.create(
            model=settings.anthropic_model,
            max_tokens=2048,
            system=build_system_prompt(state),
            tools=COMMAND_TOOLS,
            messages=messages,
        )
    except APIError:
        logger.exception("Command translation failed")
        return TranslationResult(explanation=FALLBACK_EXPLANATION)

    texts: list[str] = []
    raw_commands: list[dict] = []
    for block in response.content:
        if block.type == "text":
            texts.append(block.text)
        elif block.type == "tool_use":
            raw_commands.append({**(block.input or {}), "command": block.name})

    explanation = "\n".join(t for t in texts if t).strip()
    if not explanation:
        explanation = UPDATED_EXPLANATION if raw_commands else UNCLEAR_EXPLANATION

    commands, rejected = parse_commands(raw_commands)
    logger.info("Translated message into %d command(s), %d rejected", len(commands), len(rejected))

    return TranslationResult(
        explanation=explanation,
        commands=commands,
        rejected=rejected,
        reset_requested=any(isinstance(c, ResetReceipt) for c in commands),
    )
