"""Test analysis synthesis."""

import asyncio

import pytest

from autoresearch.errors import ProviderError
from autoresearch.synth import analyze_content, fallback_analysis

from conftest import ScriptedLLM, make_content

ANALYSIS = "Across the sources, solar and wind costs fell sharply [1], while storage remains the bottleneck [2]. " * 2


class HangingLLM:
    name = "hanging"
    model = "hanging"

    async def complete(self, prompt, max_tokens=800, temperature=0.7):
        await asyncio.sleep(1)
        return ANALYSIS


class TestAnalysis:

    @pytest.mark.asyncio
    async def test_returns_model_analysis(self):
        llm = ScriptedLLM([f"  {ANALYSIS}  "])
        contents = [make_content(1, author="Jane Doe", publish_date="2022"), make_content(2)]

        result = await analyze_content("Renewable Energy", contents, llm)

        assert result == ANALYSIS.strip()
        assert "Source 1: Article 1" in llm.prompts[0]
        assert "Author: Jane Doe" in llm.prompts[0]
        assert "Source 2: Article 2" in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_prompt_limited_to_ten_sources(self):
        llm = ScriptedLLM([ANALYSIS])
        await analyze_content("topic", [make_content(i) for i in range(1, 13)], llm)

        assert "Source 10:" in llm.prompts[0]
        assert "Source 11:" not in llm.prompts[0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [ProviderError("down"), "Too short."])
    async def test_fallback_on_failure_or_short_output(self, response):
        """Test that provider errors and trivially short output use the title summary."""
        contents = [make_content(i) for i in range(1, 5)]
        result = await analyze_content("Renewable Energy", contents, ScriptedLLM([response]))

        assert result == fallback_analysis("Renewable Energy", contents)
        assert result.startswith('Analysis of 4 sources on "Renewable Energy"')
        assert "Article 1, Article 2, Article 3." in result

    @pytest.mark.asyncio
    async def test_fallback_on_timeout(self):
        contents = [make_content(1)]
        result = await analyze_content("Wind", contents, HangingLLM(), timeout=0.01)

        assert result == fallback_analysis("Wind", contents)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [ValueError("unreadable body"), RuntimeError("client closed")])
    async def test_fallback_on_unexpected_exception(self, error):
        """Test that any model client exception degrades to the title summary."""
        contents = [make_content(1), make_content(2)]
        result = await analyze_content("Wind", contents, ScriptedLLM([error]))

        assert result == fallback_analysis("Wind", contents)
