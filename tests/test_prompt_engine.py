"""
Tests for template rendering, chunk planning and chunk prompt assembly.
"""
import re

import pytest

from schemas import ArticleContext, BrandInfo, ContextMode, RefinementArtifacts, WorkflowProfile
from services.prompt_engine import (
    DEFAULT_OUTLINE,
    build_chunk_prompt,
    build_prompt_values,
    partition_outline,
    plan_chunks,
    render_template,
)
from services.prompt_templates import ARTICLE_BRIEF_TEMPLATE


def _context(**overrides):
    defaults = {
        "title": "How to Choose a Roofing Contractor",
        "description": "Vetting roofers before signing.",
        "keywords": ["roofing contractor"],
        "outline": ["Licensing", "Insurance", "Quotes", "Warranties", "Red Flags"],
        "brand": BrandInfo(name="Acme Roofing", target_audience="Homeowners"),
    }
    defaults.update(overrides)
    return ArticleContext(**defaults)


def _refinement():
    return RefinementArtifacts(
        strategy={"angle": "trust first"},
        blueprint={"sections": []},
        voice={"tone_descriptors": ["warm"]},
    )


# ===================================================================
# render_template
# ===================================================================

class TestRenderTemplate:

    def test_substitutes_values(self):
        assert render_template("Hi {{NAME}}!", {"NAME": "Ada"}) == "Hi Ada!"

    @pytest.mark.parametrize("value", [None, "", []])
    def test_unset_values_render_marker(self, value):
        assert render_template("[{{KEY}}]", {"KEY": value}) == "[[KEY not set]]"

    def test_missing_key_renders_marker(self):
        assert render_template("{{MISSING}}", {}) == "[MISSING not set]"

    def test_conditional_kept_when_set(self):
        template = "a{{#IF FLAG}} b={{FLAG}}{{/IF}} c"
        assert render_template(template, {"FLAG": "yes"}) == "a b=yes c"

    @pytest.mark.parametrize("value", [None, "", "false", "False"])
    def test_conditional_dropped_when_unset_or_false(self, value):
        template = "a{{#IF FLAG}} b{{/IF}} c"
        assert render_template(template, {"FLAG": value}) == "a c"

    def test_equality_conditional(self):
        template = "{{#IF LEVEL == 'none'}}no links{{/IF}}"
        assert render_template(template, {"LEVEL": "none"}) == "no links"
        assert render_template(template, {"LEVEL": "few"}) == ""
        assert render_template(template, {}) == ""

    def test_placeholders_inside_dropped_block_do_not_render(self):
        template = "{{#IF STRATEGY}}{{STRATEGY}}{{/IF}}done"
        assert render_template(template, {}) == "done"

    def test_brief_template_leaves_no_tokens(self):
        values = build_prompt_values(_context(), 800, ContextMode.SINGLE_STAGE_FALLBACK)
        rendered = render_template(ARTICLE_BRIEF_TEMPLATE, values)

        assert not re.search(r"\{\{[^}]*\}\}", rendered)
        assert "{{" not in rendered and "}}" not in rendered


# ===================================================================
# Chunk planning
# ===================================================================

class TestPlanChunks:

    @pytest.mark.parametrize("words,total,size", [
        (800, 1, 800),
        (1000, 1, 1000),
        (1500, 2, 750),
        (2000, 2, 1000),
        (2500, 3, 834),
    ])
    def test_unified_profile(self, words, total, size):
        plan = plan_chunks(words, WorkflowProfile.UNIFIED)
        assert plan == {"target_words": words, "total_chunks": total, "chunk_size": size}

    def test_legacy_profile_pads_target(self):
        plan = plan_chunks(800, WorkflowProfile.LEGACY)
        assert plan == {"target_words": 1250, "total_chunks": 2, "chunk_size": 675}

    def test_legacy_profile_three_chunks(self):
        plan = plan_chunks(2000, WorkflowProfile.LEGACY)
        assert plan["total_chunks"] == 3
        assert plan["chunk_size"] == 867


class TestPartitionOutline:

    def test_even_split(self):
        assert partition_outline(["a", "b", "c", "d"], 2) == [["a", "b"], ["c", "d"]]

    def test_ceil_split_leaves_trailing_chunks_short(self):
        assert partition_outline(["a", "b", "c", "d", "e"], 3) == [["a", "b"], ["c", "d"], ["e"]]
        assert partition_outline(["a", "b", "c", "d"], 3) == [["a", "b"], ["c", "d"], []]

    def test_every_item_assigned_once_in_order(self):
        outline = [f"s{i}" for i in range(7)]
        parts = partition_outline(outline, 3)
        assert [item for part in parts for item in part] == outline

    def test_empty_outline(self):
        assert partition_outline([], 2) == [[], []]

    def test_rejects_zero_chunks(self):
        with pytest.raises(ValueError):
            partition_outline(["a"], 0)


# ===================================================================
# Prompt values and chunk prompts
# ===================================================================

class TestPromptValues:

    def test_defaults(self):
        values = build_prompt_values(_context(), 800, ContextMode.SINGLE_STAGE_FALLBACK)

        assert values["SEARCH_INTENT"] == "informational"
        assert values["BRAND_MENTIONS_LEVEL"] == "regular"
        assert values["COMPETITOR_MENTIONS_LEVEL"] == "minimal"
        assert values["INTERNAL_LINKS_LEVEL"] == "few"
        assert values["INCLUDE_FAQ"] == "false"
        assert values["WORD_COUNT"] == "800"
        assert values["BRAND_NAME"] == "Acme Roofing"

    def test_refinement_only_in_multi_stage(self):
        context = _context(refinement=_refinement())

        single = build_prompt_values(context, 800, ContextMode.SINGLE_STAGE_FALLBACK)
        multi = build_prompt_values(context, 800, ContextMode.MULTI_STAGE_ACTIVE)

        assert "CONTENT_STRATEGY" not in single
        assert "trust first" in multi["CONTENT_STRATEGY"]
        assert "warm" in multi["BRAND_VOICE_PROFILE"]

    def test_no_internal_links_instruction(self):
        context = _context(content_settings={"internal_links": "none"})
        values = build_prompt_values(context, 800, ContextMode.SINGLE_STAGE_FALLBACK)
        rendered = render_template(ARTICLE_BRIEF_TEMPLATE, values)
        assert "Do not add internal links." in rendered


class TestBuildChunkPrompt:

    def test_single_chunk_is_complete_article(self):
        prompt = build_chunk_prompt(_context(), 1, 1, [], 800, ContextMode.SINGLE_STAGE_FALLBACK)

        assert "CHUNK 1 OF 1" in prompt
        assert "complete article" in prompt
        assert "Licensing, Insurance, Quotes, Warranties, Red Flags" in prompt
        assert "{{" not in prompt

    def test_later_chunk_lists_previous_headings_and_echo(self):
        previous = ["<h2>Licensing Basics</h2><p>P1</p><p>P2</p><p>P3</p><p>P4</p>"]
        prompt = build_chunk_prompt(_context(), 2, 2, previous, 700, ContextMode.SINGLE_STAGE_FALLBACK)

        assert "CLOSING chunk" in prompt
        assert '- "licensing basics"' in prompt
        assert "<p>P2</p>\n<p>P3</p>\n<p>P4</p>" in prompt
        assert "<p>P1</p>" not in prompt

    def test_outline_slice_per_chunk(self):
        prompt = build_chunk_prompt(_context(), 2, 3, ["<p>x</p>"], 500, ContextMode.SINGLE_STAGE_FALLBACK)
        assert "MIDDLE chunk" in prompt
        assert "Cover these outline sections: Quotes, Warranties" in prompt

    def test_default_outline_when_missing(self):
        prompt = build_chunk_prompt(_context(outline=[]), 1, 1, [], 800, ContextMode.SINGLE_STAGE_FALLBACK)
        assert ", ".join(DEFAULT_OUTLINE) in prompt

    def test_multi_stage_prompt_includes_strategy(self):
        context = _context(refinement=_refinement())
        prompt = build_chunk_prompt(context, 1, 1, [], 800, ContextMode.MULTI_STAGE_ACTIVE)
        assert "## Content Strategy" in prompt
        assert "trust first" in prompt

    def test_single_stage_prompt_omits_strategy(self):
        context = _context(refinement=_refinement())
        prompt = build_chunk_prompt(context, 1, 1, [], 800, ContextMode.SINGLE_STAGE_FALLBACK)
        assert "## Content Strategy" not in prompt
        assert "CONTENT_STRATEGY" not in prompt
