"""Tests for prompt registry (F1)."""

import pytest

from speaking.prompts.registry import clear_prompt_cache, get_prompt, list_prompts


class TestListPrompts:
    def test_scoring_prompts_available(self):
        """All scoring templates are registered."""
        prompts = list_prompts()
        for key in (
            "scoring/system",
            "scoring/part1",
            "scoring/part2",
            "scoring/part3",
            "scoring/response",
            "scoring/complete_test_system",
            "scoring/complete_test",
        ):
            assert key in prompts


class TestGetPrompt:
    def test_substitutes_variables(self):
        prompt = get_prompt(
            "scoring/response",
            part_instructions="",
            question_text="Where is your hometown?",
            transcript="I come from a small village.",
        )
        assert 'IELTS Question: "Where is your hometown?"' in prompt
        assert "I come from a small village." in prompt
        assert "{transcript}" not in prompt

    def test_json_braces_kept(self):
        """Braces that are not variables are left untouched."""
        prompt = get_prompt(
            "scoring/response",
            part_instructions="",
            question_text="q",
            transcript="t",
        )
        assert '"fluency_coherence_score": number' in prompt
        assert prompt.count("{") >= 1

    def test_missing_prompt(self):
        with pytest.raises(FileNotFoundError):
            get_prompt("scoring/does_not_exist")

    def test_uncached_matches_cached(self):
        clear_prompt_cache()
        assert get_prompt("scoring/system", use_cache=False) == get_prompt("scoring/system")
