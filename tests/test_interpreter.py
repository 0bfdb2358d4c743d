"""
Tests para agent/interpreter.py — Extracción de payloads de las respuestas.
"""

import sys
from pathlib import Path

import pytest

project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from agent.interpreter import (
    build_payload,
    extract_json_object,
    interpret,
    iter_balanced_spans,
    parse_with_repair,
    repair_json,
)
from agent.models import (
    AgentPayload,
    RequestType,
    TicketCategory,
    TicketPriority,
    TicketStatus,
    Uninterpretable,
)


class TestLocate:
    def test_bare_object(self):
        assert extract_json_object('{"response_text": "Hi"}') == {"response_text": "Hi"}

    def test_object_inside_prose(self):
        text = 'Sure thing! {"response_text": "Hello"} Let me know.'
        assert extract_json_object(text) == {"response_text": "Hello"}

    def test_fenced_block(self):
        text = 'Here you go:\n```json\n{"response_text": "Fenced"}\n```\nThanks'
        assert extract_json_object(text) == {"response_text": "Fenced"}

    def test_fence_without_language(self):
        text = '```\n{"a": 1}\n```'
        assert extract_json_object(text) == {"a": 1}

    def test_falls_back_to_full_text_when_fence_has_no_object(self):
        text = '```\nnot json\n```\n{"a": 2}'
        assert extract_json_object(text) == {"a": 2}

    def test_first_parseable_span_wins(self):
        text = '{broken} and then {"a": 1} and {"b": 2}'
        assert extract_json_object(text) == {"a": 1}

    def test_apostrophe_in_prose_does_not_open_string(self):
        text = 'I\'m checking now: {"response_text": "Done"}'
        assert extract_json_object(text) == {"response_text": "Done"}

    def test_braces_inside_strings_are_ignored(self):
        text = 'x {"response_text": "use {curly} braces"} y'
        assert extract_json_object(text) == {"response_text": "use {curly} braces"}

    def test_nested_object(self):
        text = 'Result: {"ticket": {"ticket_id": "TKT-1"}}'
        assert extract_json_object(text) == {"ticket": {"ticket_id": "TKT-1"}}

    def test_unclosed_span_is_not_emitted(self):
        assert list(iter_balanced_spans('{"a": 1')) == []

    def test_spans_left_to_right(self):
        assert list(iter_balanced_spans("{a} x {b}")) == ["{a}", "{b}"]

    def test_unclosed_brace_in_prose_does_not_hide_later_object(self):
        text = 'Your options are {a, b and: {"response_text": "Hello"}'
        assert extract_json_object(text) == {"response_text": "Hello"}

    def test_apostrophe_inside_prose_braces(self):
        result = interpret('Pick one {it\'s up to you} then {"response_text": "Hi"}')
        assert isinstance(result, AgentPayload)
        assert result.response_text == "Hi"

    def test_each_brace_is_a_candidate_start(self):
        assert list(iter_balanced_spans('{x {"b": 1}')) == ['{"b": 1}']

    def test_single_quoted_object_with_brace_in_string(self):
        assert extract_json_object("Here: {'a': 'x}y'}") == {"a": "x}y"}

    def test_no_object(self):
        assert extract_json_object("just some words") is None

    def test_array_is_not_an_object(self):
        assert extract_json_object("[1, 2, 3]") is None


class TestRepair:
    def test_trailing_comma(self):
        assert parse_with_repair('{"a": 1, "b": [1, 2,],}') == {"a": 1, "b": [1, 2]}

    def test_single_quotes(self):
        assert parse_with_repair("{'response_text': 'Hello'}") == {"response_text": "Hello"}

    def test_apostrophe_inside_double_quoted_string_is_kept(self):
        repaired = repair_json("{'a': \"it's fine\",}")
        assert repaired == '{"a": "it\'s fine"}'

    def test_double_quote_inside_single_quoted_string_is_escaped(self):
        assert parse_with_repair("{'a': 'say \"hi\"'}") == {"a": 'say "hi"'}

    def test_unrepairable_returns_none(self):
        assert parse_with_repair("{not: json at all") is None

    def test_valid_json_untouched(self):
        assert parse_with_repair('{"a": null}') == {"a": None}


class TestInterpret:
    def test_plain_text_is_uninterpretable(self):
        result = interpret("Hello there, no structure here.")
        assert isinstance(result, Uninterpretable)
        assert result.text == "Hello there, no structure here."

    def test_empty_string_is_uninterpretable(self):
        assert isinstance(interpret("   "), Uninterpretable)

    def test_none_is_uninterpretable(self):
        result = interpret(None)
        assert isinstance(result, Uninterpretable)
        assert result.text == ""

    def test_number_is_uninterpretable(self):
        assert isinstance(interpret(42), Uninterpretable)

    def test_dict_is_read_directly(self):
        result = interpret({"response_text": "Structured"})
        assert isinstance(result, AgentPayload)
        assert result.response_text == "Structured"

    def test_payload_passes_through(self):
        payload = AgentPayload(response_text="x")
        assert interpret(payload) is payload

    def test_text_with_embedded_object(self):
        result = interpret('Answer: {"response_text": "Embedded"}')
        assert isinstance(result, AgentPayload)
        assert result.response_text == "Embedded"
        assert result.data == {"response_text": "Embedded"}


class TestBuildPayload:
    def test_all_fields_optional(self):
        payload = build_payload({})
        assert payload.response_text is None
        assert payload.citations == []
        assert payload.ticket is None
        assert payload.rejected == {}

    def test_blank_response_text_is_absent(self):
        assert build_payload({"response_text": "  "}).response_text is None

    def test_non_string_response_text_is_absent(self):
        assert build_payload({"response_text": 12}).response_text is None

    def test_citations_skip_non_objects(self):
        payload = build_payload(
            {"citations": [{"source": "Guide", "excerpt": "..."}, "junk", 3]}
        )
        assert len(payload.citations) == 1
        assert payload.citations[0].source == "Guide"

    def test_citation_defaults(self):
        payload = build_payload({"citations": [{}]})
        assert payload.citations[0].source == "Source"
        assert payload.citations[0].excerpt == ""

    def test_ticket_is_normalized(self):
        payload = build_payload(
            {
                "ticket": {
                    "ticket_id": "TKT-9",
                    "category": "Technical",
                    "status": "In Progress",
                    "priority": "HIGH",
                    "subject": "API down",
                }
            }
        )
        ticket = payload.ticket
        assert ticket.category == TicketCategory.TECHNICAL
        assert ticket.status == TicketStatus.IN_PROGRESS
        assert ticket.priority == TicketPriority.HIGH

    def test_unknown_ticket_values_fall_back_to_defaults(self):
        payload = build_payload(
            {"ticket": {"ticket_id": "TKT-9", "category": "weird", "status": "??"}}
        )
        assert payload.ticket.category == TicketCategory.GENERAL
        assert payload.ticket.status == TicketStatus.OPEN

    def test_nulls_are_treated_as_absent(self):
        payload = build_payload({"ticket": {"ticket_id": "TKT-1", "subject": None}})
        assert payload.ticket.subject == ""
        assert "subject" not in payload.ticket.model_fields_set

    def test_agent_supplied_timestamps_are_ignored(self):
        payload = build_payload(
            {"ticket": {"ticket_id": "TKT-1", "created_at": "2020-01-01T00:00:00Z"}}
        )
        assert payload.ticket.created_at is None

    def test_upsell_defaults(self):
        offer = build_payload({"upsell_offer": {"description": "d"}}).upsell_offer
        assert offer.product_name == "Product"
        assert offer.price == "$0"
        assert offer.checkout_url == "#"

    def test_numeric_price_becomes_text(self):
        offer = build_payload({"upsell_offer": {"price": 97}}).upsell_offer
        assert offer.price == "97"

    def test_approval_request_type_normalized(self):
        payload = build_payload(
            {"approval_request": {"request_type": "Account Change", "order_id": "#1"}}
        )
        assert payload.approval_request.request_type == RequestType.ACCOUNT_CHANGE

    def test_invalid_request_type_is_rejected(self):
        payload = build_payload(
            {"approval_request": {"request_type": "discount", "order_id": "#1"}}
        )
        assert payload.approval_request is None
        assert "approval_request" in payload.rejected

    @pytest.mark.parametrize("amount", ["97", True, float("nan"), float("inf")])
    def test_non_numeric_revenue_is_rejected(self, amount):
        payload = build_payload({"revenue_entry": {"amount": amount, "product": "X"}})
        assert payload.revenue_entry is None
        assert "revenue_entry" in payload.rejected

    def test_integer_revenue_accepted(self):
        payload = build_payload({"revenue_entry": {"amount": 97, "product": "Concierge"}})
        assert payload.revenue_entry.amount == 97.0

    def test_non_object_annotation_is_rejected(self):
        payload = build_payload({"lead_info": "Sarah"})
        assert payload.lead_info is None
        assert payload.rejected["lead_info"]

    def test_empty_annotation_is_absent(self):
        payload = build_payload({"ticket": {}, "lead_info": None})
        assert payload.ticket is None
        assert payload.lead_info is None
        assert payload.rejected == {}

    def test_fields_are_independent(self):
        payload = build_payload(
            {
                "response_text": "Thanks!",
                "revenue_entry": {"amount": "lots"},
                "lead_info": {"name": "Ana", "email": "ana@example.com"},
            }
        )
        assert payload.response_text == "Thanks!"
        assert payload.lead_info.name == "Ana"
        assert "revenue_entry" in payload.rejected
