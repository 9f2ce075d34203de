"""
Tests for prompt helpers and static response content.

Tests verify:
- Domain disclaimers with a general fallback
- Escalation target selection, urgency and referral text
- Empathy framing and the feature flag
- Conversation context formatting limits
"""

import pytest
from langchain_core.messages import AIMessage, HumanMessage

from api.composer.disclaimers import DISCLAIMERS, GENERAL_DISCLAIMER, get_disclaimer
from api.composer.empathy import build_support_message, get_safety_resources, get_tone_guidance, with_empathy
from api.composer.escalation import (
    ATHLETE_OMBUDS,
    build_escalation,
    build_referral_message,
    determine_urgency,
    get_escalation_targets,
)
from api.composer.prompts import format_conversation_context
from libs.common.settings import get_settings


class TestDisclaimers:
    def test_domain_specific(self):
        assert get_disclaimer("safesport") == DISCLAIMERS["safesport"]

    def test_unknown_and_missing_domain_fall_back(self):
        assert get_disclaimer(None) == GENERAL_DISCLAIMER
        assert get_disclaimer("not_a_domain") == GENERAL_DISCLAIMER


class TestEscalation:
    def test_safesport_targets(self):
        ids = [t.id for t in get_escalation_targets("safesport")]
        assert ids[0] == "safesport_center"
        assert "emergency_services" in ids

    def test_ombuds_fallback(self):
        assert get_escalation_targets(None) == [ATHLETE_OMBUDS]

    def test_urgency(self):
        assert determine_urgency("anti_doping", False) == "immediate"
        assert determine_urgency("eligibility", True) == "immediate"
        assert determine_urgency("eligibility", False) == "standard"

    def test_build_escalation_uses_primary_target(self):
        info = build_escalation("anti_doping", "Missed test")

        assert info.target == "usada"
        assert info.contact_phone == "1-866-601-2632"
        assert info.urgency == "immediate"

    def test_referral_message_lists_contacts_and_reason(self):
        message = build_referral_message("dispute_resolution", "Selection appeal deadline", "standard")

        assert "Selection appeal deadline" in message
        assert "**Athlete Ombuds**" in message
        assert "**Court of Arbitration for Sport (CAS)**" in message
        assert "right away" not in message


class TestEmpathy:
    def test_neutral_is_unchanged(self):
        assert with_empathy("Answer", "neutral") == "Answer"

    def test_distressed_gets_preamble(self):
        framed = with_empathy("Answer", "distressed")
        assert framed.endswith("Answer")
        assert "1-888-602-9002" in framed

    def test_disabled_flag_skips_preamble(self, monkeypatch):
        monkeypatch.setenv("ATHLETE_AGENT_FEATURE_EMOTIONAL_SUPPORT", "false")
        get_settings.cache_clear()

        assert with_empathy("Answer", "distressed") == "Answer"

    def test_tone_guidance_only_for_non_neutral(self):
        assert get_tone_guidance("neutral") == ""
        assert "distressed" in get_tone_guidance("distressed")

    def test_safety_resources_end_with_helpline(self):
        assert get_safety_resources("safesport")[-1].endswith("1-888-602-9002")
        assert get_safety_resources(None)[-1].endswith("1-888-602-9002")

    def test_support_message_offers_to_continue(self):
        message = build_support_message("panicked", "team_selection")
        assert "step by step" in message


class TestConversationContext:
    @pytest.fixture
    def messages(self):
        return [
            HumanMessage(content="First question"),
            AIMessage(content="First answer"),
            HumanMessage(content="x" * 20),
            AIMessage(content="Second answer"),
            HumanMessage(content="Latest question"),
        ]

    def test_latest_excluded_by_default(self, messages):
        context = format_conversation_context(messages)

        assert context.startswith("User: First question")
        assert "Latest question" not in context

    def test_include_latest(self, messages):
        assert format_conversation_context(messages, exclude_latest=False).endswith("User: Latest question")

    def test_turn_limit(self, messages):
        context = format_conversation_context(messages, max_turns=1)
        assert context.splitlines() == ["User: " + "x" * 20, "Assistant: Second answer"]

    def test_message_truncation(self, messages):
        context = format_conversation_context(messages, max_chars=5)
        assert "User: xxxxx..." in context
