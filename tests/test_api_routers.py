"""Tests for API router endpoints."""

import pytest
from unittest.mock import patch, AsyncMock
from fastapi.testclient import TestClient

from splitsmart.main import app
from splitsmart.models import (
    ExtractedItem,
    ExtractedReceipt,
    ResetReceipt,
    SetFixedContribution,
    TranslationResult,
)

client = TestClient(app)


@pytest.fixture
def pizza_payload(pizza_state):
    """The pizza receipt as a JSON request body."""
    return {"state": pizza_state.model_dump()}


class TestHealthEndpoints:
    """Tests for health and root endpoints."""

    def test_health_check_returns_healthy(self):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "splitsmart-api"

    def test_root_returns_api_info(self):
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "SplitSmart API"
        assert data["docs"] == "/docs"
        assert data["health"] == "/health"


class TestParseEndpoints:
    """Tests for receipt parsing endpoints."""

    @pytest.fixture
    def extracted(self):
        return ExtractedReceipt(
            items=[ExtractedItem(name="Burger", price=12.0), ExtractedItem(name="Fries", price=4.0)],
            subtotal=16.0,
            tax=1.5,
            total=17.5,
            merchant_name="Diner",
        )

    @patch("splitsmart.routers.receipts.parse_receipt_image", new_callable=AsyncMock)
    def test_parse_base64_returns_hydrated_state(self, mock_parse, extracted):
        mock_parse.return_value = extracted

        response = client.post(
            "/receipts/parse/base64",
            json={"image_base64": "aGVsbG8=", "media_type": "image/png"},
        )

        assert response.status_code == 200
        data = response.json()
        assert [item["name"] for item in data["items"]] == ["Burger", "Fries"]
        assert all(item["assigned_to"] == [] for item in data["items"])
        assert data["total"] == 17.5
        assert data["tip"] == 0.0
        assert data["currency_symbol"] == "$"
        mock_parse.assert_called_once_with("aGVsbG8=", "image/png")

    @patch("splitsmart.routers.receipts.parse_receipt_image", new_callable=AsyncMock)
    def test_parse_upload_reads_file(self, mock_parse, extracted):
        mock_parse.return_value = extracted

        response = client.post(
            "/receipts/parse",
            files={"file": ("receipt.jpg", b"fake-image", "image/jpeg")},
        )

        assert response.status_code == 200
        assert response.json()["merchant_name"] == "Diner"
        mock_parse.assert_called_once_with(b"fake-image", "image/jpeg")

    @patch("splitsmart.routers.receipts.parse_receipt_image", new_callable=AsyncMock)
    def test_parse_returns_500_on_error(self, mock_parse):
        mock_parse.side_effect = Exception("Vision service down")

        response = client.post("/receipts/parse/base64", json={"image_base64": "abc"})

        assert response.status_code == 500
        assert "Receipt processing failed" in response.json()["detail"]
        assert "Vision service down" in response.json()["detail"]

    def test_parse_base64_requires_image(self):
        response = client.post("/receipts/parse/base64", json={})

        assert response.status_code == 422


class TestCommandsEndpoint:
    """Tests for POST /receipts/commands."""

    def test_applies_commands(self, pizza_payload):
        pizza_payload["commands"] = [
            {"command": "set_fixed_contribution", "name": "Bob", "amount": 15},
            {"command": "update_tip", "amount": 3},
        ]

        response = client.post("/receipts/commands", json=pizza_payload)

        assert response.status_code == 200
        data = response.json()
        assert data["reset_requested"] is False
        assert data["state"]["fixed_contributions"] == {"Bob": 15.0}
        assert data["state"]["tip"] == 3.0
        assert data["state"]["total"] == 25.0
        assert data["skipped"] == []

    def test_reports_malformed_and_unresolved(self, pizza_payload):
        pizza_payload["commands"] = [
            {"command": "update_tip"},
            {"command": "assign_items", "assignments": [{"item_name": "Sushi", "people": ["Ann"]}]},
            {"command": "apply_discount", "kind": "fixed", "value": 2},
        ]

        response = client.post("/receipts/commands", json=pizza_payload)

        assert response.status_code == 200
        data = response.json()
        assert len(data["skipped"]) == 2
        assert data["skipped"][0].startswith("Command 1 (update_tip)")
        assert "Sushi" in data["skipped"][1]
        assert data["state"]["discount"] == {"kind": "fixed", "value": 2.0}

    def test_reset_returns_null_state(self, pizza_payload):
        pizza_payload["commands"] = [{"command": "reset_receipt"}]

        response = client.post("/receipts/commands", json=pizza_payload)

        assert response.status_code == 200
        assert response.json()["state"] is None
        assert response.json()["reset_requested"] is True

    def test_invalid_state_returns_422(self):
        response = client.post("/receipts/commands", json={"state": {"items": [{"name": "x"}]}})

        assert response.status_code == 422


class TestAllocationEndpoints:
    """Tests for allocation, clearing and summary endpoints."""

    def test_allocation(self, pizza_payload):
        response = client.post("/receipts/allocation", json=pizza_payload)

        assert response.status_code == 200
        data = response.json()
        assert [s["name"] for s in data["summaries"]] == ["Alice", "Bob"]
        assert data["summaries"][0]["total_owed"] == 11.0
        assert data["summaries"][0]["tax_owed"] == 1.0
        assert data["unassigned_total"] == 0.0
        assert data["net_bill"] == 22.0

    def test_non_finite_state_returns_422(self):
        # Python's json module reads the bare NaN token as float("nan")
        body = '{"state": {"items": [], "subtotal": 10, "total": NaN}}'

        response = client.post(
            "/receipts/allocation",
            content=body,
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 422
        assert response.json()["detail"][0]["loc"] == ["body", "state", "total"]

    def test_non_finite_command_amount_is_skipped(self, pizza_payload):
        pizza_payload["commands"] = [{"command": "update_tip", "amount": "Infinity"}]

        response = client.post("/receipts/commands", json=pizza_payload)

        assert response.status_code == 200
        data = response.json()
        assert data["state"]["tip"] == pizza_payload["state"]["tip"]
        assert data["skipped"][0].startswith("Command 1 (update_tip)")

    def test_clear_assignments(self, pizza_payload):
        pizza_payload["state"]["fixed_contributions"] = {"Bob": 10.0}

        response = client.post("/receipts/clear-assignments", json=pizza_payload)

        assert response.status_code == 200
        data = response.json()
        assert data["items"][0]["assigned_to"] == []
        assert data["fixed_contributions"] == {}

    def test_summary(self, pizza_payload):
        response = client.post("/receipts/summary", json=pizza_payload)

        assert response.status_code == 200
        assert "Alice: $11.00 (1 items)" in response.json()["text"]


class TestChatEndpoint:
    """Tests for POST /receipts/chat."""

    @patch("splitsmart.routers.receipts.translate_message", new_callable=AsyncMock)
    def test_chat_applies_and_allocates(self, mock_translate, pizza_payload):
        mock_translate.return_value = TranslationResult(
            explanation="Bob now pays $15.",
            commands=[SetFixedContribution(name="Bob", amount=15)],
            rejected=["Command 2 (update_tip) is malformed: 1 validation error(s)"],
        )
        pizza_payload["message"] = "Bob pays 15"

        response = client.post("/receipts/chat", json=pizza_payload)

        assert response.status_code == 200
        data = response.json()
        assert data["explanation"] == "Bob now pays $15."
        assert data["result"]["state"]["fixed_contributions"] == {"Bob": 15.0}
        assert len(data["result"]["skipped"]) == 1
        owed = {s["name"]: s["total_owed"] for s in data["allocation"]["summaries"]}
        assert owed == {"Bob": 15.0, "Alice": 7.0}

    @patch("splitsmart.routers.receipts.translate_message", new_callable=AsyncMock)
    def test_chat_reset_has_no_allocation(self, mock_translate, pizza_payload):
        mock_translate.return_value = TranslationResult(
            explanation="Starting over.",
            commands=[ResetReceipt()],
            reset_requested=True,
        )
        pizza_payload["message"] = "start over"

        response = client.post("/receipts/chat", json=pizza_payload)

        assert response.status_code == 200
        data = response.json()
        assert data["result"]["reset_requested"] is True
        assert data["result"]["state"] is None
        assert data["allocation"] is None
