"""Tests for system instructions and model-text helpers."""

from tabpilot.api.prompts import build_system_instructions, external_priority_section
from tabpilot.api.tools import build_catalog, format_agent_tools
from tabpilot.utils import looks_like_described_tool_call, sanitize_model_text


class TestSystemInstructions:
    def test_browser_enabled(self):
        text = build_system_instructions(build_catalog(), True)
        assert text.startswith("You are a helpful AI assistant with browser automation capabilities")
        assert "TOOL USAGE GUIDELINES" in text
        assert "MCP TOOLS AVAILABLE" not in text

    def test_browser_disabled(self):
        text = build_system_instructions(build_catalog(local_tools_enabled=False), False)
        assert "Browser tools are DISABLED" in text
        assert "TOOL USAGE GUIDELINES" not in text
        assert "TOOL CALLING FORMAT" in text

    def test_external_tools_listed(self):
        external = [
            {"name": "forecast", "description": "Weather forecast"},
            *format_agent_tools([{"server_name": "travel"}]),
        ]
        text = build_system_instructions(build_catalog(external_tools=external), True)
        assert "  - forecast: Weather forecast" in text
        assert "a2a_travel:" not in text

    def test_only_agent_tools(self):
        catalog = build_catalog(external_tools=format_agent_tools([{"server_name": "travel"}]))
        assert "(No MCP tools available)" in external_priority_section(catalog)

    def test_site_instructions(self):
        text = build_system_instructions(
            build_catalog(), True, current_url="https://shop.test/cart", site_instructions="Use the top search bar.",
        )
        assert "Current URL: https://shop.test/cart" in text
        assert "Use the top search bar." in text

    def test_deterministic(self):
        catalog = build_catalog(external_tools=[{"name": "forecast"}])
        assert build_system_instructions(catalog, True) == build_system_instructions(catalog, True)


class TestSanitize:
    def test_strips_control_syntax(self):
        raw = 'Sure.<function_calls><invoke name="click"><parameter name="x">1</parameter></invoke></function_calls>'
        assert sanitize_model_text(raw) == "Sure."

    def test_strips_tool_call_tags(self):
        assert sanitize_model_text("a<tool_call>{}</tool_call>b") == "ab"

    def test_fake_actions_kept_when_browser_enabled(self):
        raw = "[Executing: navigate] I'll navigate to the page."
        assert sanitize_model_text(raw, True) == raw

    def test_fake_actions_stripped_when_browser_disabled(self):
        raw = "[Executing: navigate] I'll navigate to the store page. Here is the answer."
        assert sanitize_model_text(raw, False).strip() == "Here is the answer."

    def test_described_tool_call(self):
        assert looks_like_described_tool_call("I will clickElement with selector: #go")
        assert not looks_like_described_tool_call("The weather is nice.")
