"""Tests for the instruction templates and fixed replies."""

from agri_assistant.application.prompts import (
    DOMAIN_GATE_TEMPLATE,
    EMPTY_RESPONSE_FALLBACK,
    REFERENCE_CHECK_TEMPLATE,
    REJECTION_MESSAGE,
    RESEARCH_REPORT_TEMPLATE,
    RESEARCH_SEARCH_NEED_TEMPLATE,
    SEARCH_NEED_TEMPLATE,
)


class TestClassifierTemplates:
    def test_gate_template_answers_with_labels(self):
        assert "Answer ONLY with: AGRICULTURE or NOT_AGRICULTURE" in DOMAIN_GATE_TEMPLATE

    def test_gate_template_covers_contextual_followups(self):
        assert "take the domain of the recent conversation" in DOMAIN_GATE_TEMPLATE
        assert '"Tell me more" (after a non-agriculture topic) -> NOT_AGRICULTURE' in DOMAIN_GATE_TEMPLATE

    def test_gate_template_placeholders(self):
        filled = DOMAIN_GATE_TEMPLATE.format(
            message="m", document_preview="", file_list="", recent_conversation=""
        )
        assert 'Current User Query: "m"' in filled

    def test_yes_no_templates(self):
        for template in (REFERENCE_CHECK_TEMPLATE, SEARCH_NEED_TEMPLATE, RESEARCH_SEARCH_NEED_TEMPLATE):
            assert "YES or NO" in template

    def test_acknowledgements_do_not_reference_history(self):
        assert '"Thanks, that was excellent" -> NO' in REFERENCE_CHECK_TEMPLATE


class TestFixedReplies:
    def test_rejection_lists_supported_topics(self):
        assert REJECTION_MESSAGE.startswith("🌾 **Agriculture-Focused Assistant**")
        assert "Livestock and animal husbandry" in REJECTION_MESSAGE

    def test_fallback_text(self):
        assert EMPTY_RESPONSE_FALLBACK == "Sorry, I was unable to generate a proper response. Please try again."


class TestResearchTemplate:
    def test_model_must_not_write_sources(self):
        assert 'Do NOT include a "Sources" section' in RESEARCH_REPORT_TEMPLATE

    def test_report_sections(self):
        for heading in ("## Executive Summary", "## Key Findings", "## Detailed Analysis", "## Practical Recommendations"):
            assert heading in RESEARCH_REPORT_TEMPLATE
