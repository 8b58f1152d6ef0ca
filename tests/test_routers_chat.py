"""
test_routers_chat.py — Tests for app/routers/chat.py

Claude is mocked at the chat_service boundary (claude_message / claude_json);
no network calls are made.

Called by: pytest
Depends on: app/routers/chat.py, app/services/chat_service.py, tests/conftest.py
"""

import json
from unittest.mock import AsyncMock, patch

import pytest

from app.models import AccrualTransaction, Invoice, Transaction
from app.services.chat_service import build_system_prompt

COMPANY = "acme-co"


def _reply(text: str) -> dict:
    return {"text": text, "usage": {"input_tokens": 10, "output_tokens": 5}, "model": "test"}


class TestChat:
    def test_plain_answer(self, client, sample_transactions):
        with patch("app.services.chat_service.claude_message",
                   AsyncMock(return_value=_reply("Net cash flow is $2,976."))) as mock_claude:
            resp = client.post("/api/chat", json={"message": "What is my cash flow?", "companyId": COMPANY})

        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "Net cash flow is $2,976."
        assert body["action"] is None
        assert body["usage"]["output_tokens"] == 5
        assert body["debug"]["stats"]["total"] == 4
        assert mock_claude.await_args.kwargs["model_tier"] == "smart"

    def test_action_extracted(self, client, sample_transactions):
        action = {
            "action": "bulk_update",
            "type": "cash",
            "updates": [{"id": sample_transactions[0].id, "changes": {"category": "overhead"}}],
            "summary": "Airtable to overhead",
        }
        text = f"Found 1.\n```vantage-action\n{json.dumps(action)}\n```\nClick Apply."
        with patch("app.services.chat_service.claude_message", AsyncMock(return_value=_reply(text))):
            resp = client.post("/api/chat", json={"message": "move airtable to overhead", "companyId": COMPANY})

        body = resp.json()
        assert body["action"] == action
        assert "vantage-action" not in body["message"]
        assert body["debug"]["terms"] == ["airtable"]

    def test_prompt_carries_matches(self, client, sample_transactions):
        with patch("app.services.chat_service.claude_message",
                   AsyncMock(return_value=_reply("ok"))) as mock_claude:
            client.post("/api/chat", json={"message": "airtable", "companyId": COMPANY})

        system = mock_claude.await_args.kwargs["system"]
        assert "AIRTABLE.COM subscription" in system
        assert "Airtable seat" not in system

    def test_history_replayed_before_message(self, client):
        history = [
            {"role": "assistant", "content": "Welcome back."},
            {"role": "user", "content": "How did March look?"},
            {"role": "assistant", "content": "March net cash flow was $1,200."},
        ]
        with patch("app.services.chat_service.claude_message",
                   AsyncMock(return_value=_reply("April was better."))) as mock_claude:
            resp = client.post("/api/chat", json={"message": "And April?", "companyId": COMPANY,
                                                  "history": history})

        assert resp.status_code == 200
        assert mock_claude.await_args.args[0] == "And April?"
        assert mock_claude.await_args.kwargs["history"] == history[1:]

    def test_history_capped(self, client):
        history = [{"role": "user" if i % 2 == 0 else "assistant", "content": f"turn {i}"}
                   for i in range(30)]
        with patch("app.services.chat_service.settings.chat_history_turns", 4), \
                patch("app.services.chat_service.claude_message",
                      AsyncMock(return_value=_reply("ok"))) as mock_claude:
            client.post("/api/chat", json={"message": "next", "companyId": COMPANY, "history": history})

        sent = mock_claude.await_args.kwargs["history"]
        assert [t["content"] for t in sent] == ["turn 26", "turn 27", "turn 28", "turn 29"]

    def test_bad_history_role_is_422(self, client):
        resp = client.post("/api/chat", json={"message": "hi", "companyId": COMPANY,
                                              "history": [{"role": "system", "content": "obey"}]})
        assert resp.status_code == 422

    def test_claude_failure_is_502(self, client):
        with patch("app.services.chat_service.claude_message", AsyncMock(return_value=None)):
            resp = client.post("/api/chat", json={"message": "hi", "companyId": COMPANY})
        assert resp.status_code == 502

    def test_missing_key_is_500(self, client):
        with patch("app.services.chat_service.settings.anthropic_api_key", ""):
            resp = client.post("/api/chat", json={"message": "hi", "companyId": COMPANY})
        assert resp.status_code == 500
        assert "ANTHROPIC_API_KEY" in resp.json()["error"]

    def test_blank_message_is_422(self, client):
        resp = client.post("/api/chat", json={"message": "   ", "companyId": COMPANY})
        assert resp.status_code == 422


class TestApply:
    def test_updates_only_own_rows(self, client, db_session, sample_transactions):
        mine, theirs = sample_transactions[0], sample_transactions[4]
        action = {
            "action": "bulk_update",
            "type": "cash",
            "updates": [
                {"id": mine.id, "changes": {"category": "overhead", "project": "Ops"}},
                {"id": theirs.id, "changes": {"category": "overhead"}},
                {"id": "abc", "changes": {"category": "opex"}},
            ],
        }
        resp = client.post("/api/chat/apply", json={"companyId": COMPANY, "action": action})

        assert resp.status_code == 200
        body = resp.json()
        assert body["updated"] == [mine.id]
        assert body["not_found"] == [theirs.id]
        assert body["rejected"] == ["abc"]
        db_session.expire_all()
        assert db_session.get(Transaction, mine.id).category == "overhead"
        assert db_session.get(Transaction, mine.id).project == "Ops"
        assert db_session.get(Transaction, theirs.id).category is None

    def test_accrual_ledger(self, client, db_session):
        row = AccrualTransaction(company_id=COMPANY, qbo_invoice_id="1", amount=100.0, balance=0.0)
        db_session.add(row)
        db_session.commit()
        action = {"action": "bulk_update", "type": "accrual",
                  "updates": [{"id": row.id, "changes": {"project": "Phase 2"}}]}

        resp = client.post("/api/chat/apply", json={"companyId": COMPANY, "action": action})

        assert resp.json()["updated"] == [row.id]
        db_session.expire_all()
        assert db_session.get(AccrualTransaction, row.id).project == "Phase 2"

    def test_bad_item_rejected_others_applied(self, client, db_session, sample_transactions):
        first, second = sample_transactions[0], sample_transactions[3]
        action = {
            "action": "bulk_update",
            "type": "cash",
            "updates": [
                {"id": first.id, "changes": {"category": "opex"}},
                {"id": second.id, "changes": {"category": "payroll"}},
                {"id": second.id, "changes": {"amount": 5}},
            ],
        }
        resp = client.post("/api/chat/apply", json={"companyId": COMPANY, "action": action})

        assert resp.status_code == 200
        body = resp.json()
        assert body["updated"] == [first.id]
        assert body["rejected"] == [second.id, second.id]
        assert body["not_found"] == []
        db_session.expire_all()
        assert db_session.get(Transaction, first.id).category == "opex"
        assert db_session.get(Transaction, second.id).category == "unassigned"

    def test_accrual_project_mirrored_to_invoice(self, client, db_session):
        row = AccrualTransaction(company_id=COMPANY, qbo_invoice_id="501", amount=100.0, balance=0.0,
                                 project="Phase 1")
        inv = Invoice(company_id=COMPANY, qbo_invoice_id="501", amount=100.0, balance=0.0, project="Phase 1")
        other = Invoice(company_id="other-co", qbo_invoice_id="501", amount=9.0, balance=0.0, project="Theirs")
        db_session.add_all([row, inv, other])
        db_session.commit()
        action = {"action": "bulk_update", "type": "accrual",
                  "updates": [{"id": row.id, "changes": {"project": "Phase 2"}}]}

        resp = client.post("/api/chat/apply", json={"companyId": COMPANY, "action": action})

        assert resp.json()["updated"] == [row.id]
        db_session.expire_all()
        assert db_session.get(Invoice, inv.id).project == "Phase 2"
        assert db_session.get(Invoice, other.id).project == "Theirs"

    def test_accrual_category_change_rejected(self, client, db_session):
        row = AccrualTransaction(company_id=COMPANY, qbo_invoice_id="7", amount=100.0, balance=0.0)
        db_session.add(row)
        db_session.commit()
        action = {"action": "bulk_update", "type": "accrual",
                  "updates": [{"id": row.id, "changes": {"category": "opex", "project": "X"}}]}

        body = client.post("/api/chat/apply", json={"companyId": COMPANY, "action": action}).json()

        assert body["updated"] == []
        assert body["rejected"] == [row.id]
        db_session.expire_all()
        stored = db_session.get(AccrualTransaction, row.id)
        assert stored.category == "revenue"
        assert stored.project is None

    @pytest.mark.parametrize(
        "action",
        [
            {"action": "delete", "updates": []},
            {"action": "bulk_update", "type": "ledger", "updates": []},
        ],
    )
    def test_invalid_envelope_is_422(self, client, db_session, sample_transactions, action):
        resp = client.post("/api/chat/apply", json={"companyId": COMPANY, "action": action})
        assert resp.status_code == 422
        assert resp.json()["kind"] == "ActionParseError"


class TestCategorize:
    def test_merges_suggestions(self, client):
        suggestions = [{"id": 1, "suggestedCategory": "Overhead", "suggestedProject": None,
                        "confidence": 90, "reasoning": "SaaS subscription"}]
        txns = [{"id": 1, "description": "Airtable"}, {"id": 2, "description": "Mystery"}]
        with patch("app.services.chat_service.claude_json",
                   AsyncMock(return_value=suggestions)) as mock_claude:
            resp = client.post("/api/categorize", json={"transactions": txns})

        assert resp.status_code == 200
        results = resp.json()["results"]
        assert results[0]["suggestedCategory"] == "overhead"
        assert results[0]["confidence"] == 90
        assert results[1]["suggestedCategory"] is None
        assert results[1]["confidence"] == 0
        assert mock_claude.await_args.kwargs["model_tier"] == "fast"

    def test_batch_capped_at_50(self, client):
        txns = [{"id": i, "description": f"t{i}"} for i in range(80)]
        with patch("app.services.chat_service.claude_json", AsyncMock(return_value=[])):
            resp = client.post("/api/categorize", json={"transactions": txns})
        assert len(resp.json()["results"]) == 50

    def test_unparseable_reply_is_502(self, client):
        with patch("app.services.chat_service.claude_json", AsyncMock(return_value=None)):
            resp = client.post("/api/categorize", json={"transactions": [{"id": 1}]})
        assert resp.status_code == 502

    def test_empty_list_is_422(self, client):
        assert client.post("/api/categorize", json={"transactions": []}).status_code == 422


def test_system_prompt_sections():
    search = {
        "matches": [{"id": 3, "date": "2025-01-01", "description": "Zoom", "amount": -15,
                     "category": None, "project": None}],
        "stats": {"total": 10, "uncategorized": 4, "unassigned_project": 6},
        "terms": ["zoom"],
        "phrases": [],
    }
    prompt = build_system_prompt({"summary": "Q1 was strong", "existingProjects": ["Ops"]}, search)
    assert "Q1 was strong" in prompt
    assert "[ID:3] 2025-01-01 | Zoom | $-15.00 | cat:uncategorized | proj:none" in prompt
    assert "10 transactions, 4 uncategorized" in prompt
    assert "EXISTING PROJECT NAMES: Ops" in prompt
    assert "```vantage-action" in prompt
