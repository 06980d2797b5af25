# =============================================================================
# Unit Tests — Analyst and LLM Provider Factory
# =============================================================================
#
# Tests prompt assembly and answer synthesis without requiring API keys.
# Uses mock LLM providers.
# =============================================================================

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

from app.agents.analyst import (
    APOLOGY_MESSAGE,
    PROMPT_HIT_LIMIT,
    SynthesisResult,
    build_grounding_context,
    render_prompt,
    synthesize_answer,
)
from app.models.requests import ChatMessage
from app.services.llm import LLMResponse
from tests.fakes import SALES_CSV, make_hit


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _history(n: int) -> list[ChatMessage]:
    return [
        ChatMessage(content=f"turn {i}", is_user=i % 2 == 0)
        for i in range(n)
    ]


# ---------------------------------------------------------------------------
# Test: Grounding Context
# ---------------------------------------------------------------------------


class TestBuildGroundingContext:
    """Hits and history are trimmed before rendering."""

    def test_keeps_top_five_hits(self):
        hits = [make_hit(str(i)) for i in range(8)]
        context = build_grounding_context(hits)
        assert [h.id for h in context.hits] == ["0", "1", "2", "3", "4"]
        assert context.total_hits == 8

    def test_keeps_last_six_turns(self):
        context = build_grounding_context([], history=_history(10))
        assert [m.content for m in context.history] == [
            "turn 4", "turn 5", "turn 6", "turn 7", "turn 8", "turn 9",
        ]

    def test_defaults(self):
        context = build_grounding_context([])
        assert context.hits == []
        assert context.revenue_by_year == {}
        assert context.history == []


# ---------------------------------------------------------------------------
# Test: Prompt Rendering
# ---------------------------------------------------------------------------


class TestRenderPrompt:
    """The single prompt string sent to the model."""

    def test_financial_block_first(self):
        context = build_grounding_context([], revenue_by_year={"2021": 3000.0})
        prompt = render_prompt("What was revenue?", context)
        assert prompt.startswith("Structured Financial Data (from documents)")
        assert 'RevenueByYear: {"2021":3000}' in prompt

    def test_financial_block_sorted_and_fractional(self):
        context = build_grounding_context(
            [], revenue_by_year={"2021": 10.5, "2020": 7.0},
        )
        prompt = render_prompt("q", context)
        assert 'RevenueByYear: {"2020":7,"2021":10.5}' in prompt

    def test_no_financial_block_without_figures(self):
        prompt = render_prompt("q", build_grounding_context([make_hit("a")]))
        assert "RevenueByYear" not in prompt

    def test_hits_numbered_with_labels(self):
        hit = make_hit(
            "s", title="Sales 2021", type="csv", content=SALES_CSV,
            category="Finance",
        )
        prompt = render_prompt("q", build_grounding_context([hit]))
        assert "1. **Sales 2021** (CSV)" in prompt
        assert "Category: Finance" in prompt
        assert "Department: N/A" in prompt
        assert "Content: Month,Revenue" in prompt

    def test_content_clipped(self):
        hit = make_hit("a", content="x" * 1000)
        prompt = render_prompt("q", build_grounding_context([hit]))
        assert "x" * 300 + "..." in prompt
        assert "x" * 301 not in prompt

    def test_only_five_documents_shown(self):
        hits = [make_hit(str(i), title=f"Doc {i}") for i in range(8)]
        prompt = render_prompt("q", build_grounding_context(hits))
        assert "8 relevant documents found, top 5 shown" in prompt
        assert "**Doc 4**" in prompt
        assert "**Doc 5**" not in prompt

    def test_history_roles_and_clipping(self):
        history = [
            ChatMessage(content="hello", is_user=True),
            ChatMessage(content="y" * 500, is_user=False),
        ]
        prompt = render_prompt("q", build_grounding_context([], history=history))
        assert "User: hello" in prompt
        assert "Assistant: " + "y" * 200 + "..." in prompt

    def test_question_and_instructions_last(self):
        prompt = render_prompt("What was revenue?", build_grounding_context([]))
        assert "User Question: What was revenue?" in prompt
        assert prompt.index("User Question") < prompt.index("Instructions:")
        assert "(Doc 1, Doc 3)" in prompt

    def test_prompt_bounded_regardless_of_input_size(self):
        hits = [make_hit(str(i), title="t" * 5000, content="c" * 50000) for i in range(50)]
        history = [ChatMessage(content="h" * 10000) for _ in range(100)]
        prompt = render_prompt(
            "q" * 1000, build_grounding_context(hits, history=history),
        )
        assert len(prompt) < 8000


# ---------------------------------------------------------------------------
# Test: Answer Synthesis with Mock LLM
# ---------------------------------------------------------------------------


class TestSynthesizeAnswer:
    """One model call; every failure becomes the apology."""

    def test_returns_model_answer(self):
        mock_llm = AsyncMock()
        mock_llm.complete.return_value = LLMResponse(
            content="Revenue in 2021 was 3000 (Doc 1).",
            model="test-model",
            input_tokens=100,
            output_tokens=20,
        )

        result = _run(synthesize_answer("prompt text", mock_llm))

        assert isinstance(result, SynthesisResult)
        assert result.answer == "Revenue in 2021 was 3000 (Doc 1)."
        assert result.model == "test-model"
        assert result.succeeded
        mock_llm.complete.assert_called_once_with("prompt text")

    def test_llm_error_returns_apology(self):
        mock_llm = AsyncMock()
        mock_llm.complete.side_effect = RuntimeError("HTTP 500")
        result = _run(synthesize_answer("p", mock_llm))
        assert result.answer == APOLOGY_MESSAGE
        assert not result.succeeded

    def test_empty_completion_returns_apology(self):
        mock_llm = AsyncMock()
        mock_llm.complete.return_value = LLMResponse(
            content="   ", model="test-model", input_tokens=1, output_tokens=0,
        )
        result = _run(synthesize_answer("p", mock_llm))
        assert result.answer == APOLOGY_MESSAGE
        assert result.model == "test-model"

    def test_no_provider_returns_apology(self):
        result = _run(synthesize_answer("p", None))
        assert result.answer == APOLOGY_MESSAGE
        assert result.model == "n/a"

    def test_timeout_returns_apology(self):
        async def slow_complete(prompt):
            await asyncio.sleep(1)

        mock_llm = AsyncMock()
        mock_llm.complete.side_effect = slow_complete
        result = _run(synthesize_answer("p", mock_llm, timeout=0.05))
        assert result.answer == APOLOGY_MESSAGE

    def test_prompt_hit_limit_is_five(self):
        assert PROMPT_HIT_LIMIT == 5


# ---------------------------------------------------------------------------
# Test: LLM Provider Factory
# ---------------------------------------------------------------------------


class TestLLMProviderFactory:
    """Tests for the LLM provider factory function."""

    def test_factory_raises_without_api_key(self):
        """Factory should raise ValueError when no API key is set."""
        from app.services import llm

        # Reset the singleton
        original = llm._provider
        llm._provider = None

        try:
            with patch.object(
                llm.settings, "llm_provider", "anthropic"
            ), patch.object(
                llm.settings, "llm_api_key", None
            ), patch.object(
                llm.settings, "anthropic_api_key", ""
            ):
                try:
                    llm.get_llm_provider()
                    assert False, "Should have raised ValueError"
                except ValueError as e:
                    assert "API key" in str(e)
        finally:
            # Restore singleton
            llm._provider = original

    def test_get_llm_dependency_degrades_to_none(self):
        from app.api import deps
        from app.services import llm

        original = llm._provider
        llm._provider = None

        try:
            with patch.object(
                llm.settings, "llm_provider", "openai_compatible"
            ), patch.object(
                llm.settings, "llm_api_key", None
            ), patch.object(
                llm.settings, "openai_api_key", ""
            ):
                assert deps.get_llm() is None
        finally:
            llm._provider = original

    def test_unknown_provider_rejected(self):
        from app.services import llm

        original = llm._provider
        llm._provider = None

        try:
            with patch.object(llm.settings, "llm_provider", "mystery"):
                try:
                    llm.get_llm_provider()
                    assert False, "Should have raised ValueError"
                except ValueError as e:
                    assert "mystery" in str(e)
        finally:
            llm._provider = original


# ---------------------------------------------------------------------------
# Test: Provider Requests
# ---------------------------------------------------------------------------


class TestProviderRequests:
    """Providers send the configured model options with every prompt."""

    def test_openai_compatible_sends_configured_options(self):
        from app.services import llm

        with patch.object(llm.settings, "llm_temperature", 0.2), patch.object(
            llm.settings, "llm_max_tokens", 321
        ):
            provider = llm.OpenAICompatibleProvider(api_key="k", model="m")

        create = AsyncMock(return_value=SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="ok"))],
            model="m",
            usage=SimpleNamespace(prompt_tokens=3, completion_tokens=1),
        ))
        provider._client = SimpleNamespace(
            chat=SimpleNamespace(completions=SimpleNamespace(create=create)),
        )

        result = _run(provider.complete("prompt text"))

        assert result.content == "ok"
        assert result.input_tokens == 3
        create.assert_called_once_with(
            model="m",
            messages=[{"role": "user", "content": "prompt text"}],
            temperature=0.2,
            max_tokens=321,
        )

    def test_anthropic_sends_configured_options(self):
        from app.services import llm

        with patch.object(llm.settings, "llm_temperature", 0.0), patch.object(
            llm.settings, "llm_max_tokens", 512
        ):
            provider = llm.AnthropicProvider(api_key="k", model="claude-test")

        create = AsyncMock(return_value=SimpleNamespace(
            content=[SimpleNamespace(type="text", text="answer")],
            model="claude-test",
            usage=SimpleNamespace(input_tokens=7, output_tokens=2),
        ))
        provider._client = SimpleNamespace(messages=SimpleNamespace(create=create))

        result = _run(provider.complete("prompt text"))

        assert result.content == "answer"
        assert result.output_tokens == 2
        create.assert_called_once_with(
            model="claude-test",
            messages=[{"role": "user", "content": "prompt text"}],
            temperature=0.0,
            max_tokens=512,
        )
