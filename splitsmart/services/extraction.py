import json
import math
import base64
import logging
from anthropic import AsyncAnthropic

from ..config import get_settings
from ..models import ExtractedReceipt, ExtractedItem

logger = logging.getLogger(__name__)


RECEIPT_EXTRACTION_PROMPT = """Analyze this receipt image and extract the following information in JSON format:

{
  "merchant_name": "Name of the restaurant or store",
  "date": "Date of the transaction if visible",
  "location": "City, State, or Country of the store",
  "currency_symbol": "Currency symbol (e.g. $, €, £, ₹)",
  "items": [
    {
      "name": "Item name",
      "price": 12.99
    }
  ],
  "subtotal": 25.00,
  "tax": 1.50,
  "tip": null,
  "total": 26.50
}

Important:
- All amounts should be numeric values, not strings
- "tax" must include ALL surcharges (sales tax, VAT, GST, service charge, etc.)
- Make sure subtotal + tax + tip is close to the total
- If the currency is not visible, infer it from the location
- Clean up item names; include every individual item, not grouped totals
- If a field is not visible or cannot be determined, use null
- Return ONLY the JSON, no additional text"""


def _amount(value) -> float | None:
    if value is None:
        return None
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    return amount if math.isfinite(amount) else None


async def parse_receipt_image(
    image_data: str | bytes,
    media_type: str = "image/jpeg"
) -> ExtractedReceipt:
    """
    Extract structured receipt data from an image using Claude Vision.

    Args:
        image_data: Base64 encoded image string or raw bytes
        media_type: MIME type of the image (image/jpeg, image/png, etc.)

    Returns:
        ExtractedReceipt with items, amounts and merchant details
    """
    settings = get_settings()
    client = AsyncAnthropic(api_key=settings.anthropic_api_key)

    # Ensure image_data is base64 string
    if isinstance(image_data, bytes):
        image_base64 = base64.b64encode(image_data).decode("utf-8")
    else:
        image_base64 = image_data

    message = await client.messages.create(
        model=settings.anthropic_model,
        max_tokens=2048,
        messages=[
            {
                "role": "user",
                "content": [
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": media_type,
                            "data": image_base64,
                        },
                    },
                    {
                        "type": "text",
                        "text": RECEIPT_EXTRACTION_PROMPT,
                    },
                ],
            }
        ],
    )

    response_text = message.content[0].text

    try:
        # The model sometimes wraps the JSON in prose
        json_start = response_text.find("{")
        json_end = response_text.rfind("}") + 1
        if json_start != -1 and json_end > json_start:
            data = json.loads(response_text[json_start:json_end])
        else:
            data = json.loads(response_text)
    except json.JSONDecodeError:
        logger.warning("Receipt extraction returned unparseable output")
        return ExtractedReceipt()

    items = [
        ExtractedItem(
            name=str(item.get("name") or ""),
            price=_amount(item.get("price")) or 0.0,
        )
        for item in data.get("items") or []
        if isinstance(item, dict)
    ]

    logger.info("Extracted %d items from %s", len(items), data.get("merchant_name") or "receipt")

    return ExtractedReceipt(
        items=items,
        subtotal=_amount(data.get("subtotal")),
        tax=_amount(data.get("tax")),
        tip=_amount(data.get("tip")),
        total=_amount(data.get("total")),
        merchant_name=data.get("merchant_name"),
        date=data.get("date"),
        location=data.get("location"),
        currency_symbol=data.get("currency_symbol"),
    )
