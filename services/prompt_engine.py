"""
Prompt assembly for chunked article generation
"""
import json
import logging
import math
import re
from typing import Any, Dict, List, Optional, Sequence

from const import (
    CONTINUITY_PARAGRAPHS,
    DOUBLE_CHUNK_MAX_WORDS,
    LEGACY_CHUNK_PADDING,
    LEGACY_WORD_PADDING,
    SINGLE_CHUNK_MAX_WORDS,
)
from schemas import ArticleContext, ContextMode, WorkflowProfile
from services.article_text import extract_headings, last_paragraphs
from services.prompt_templates import ARTICLE_BRIEF_TEMPLATE

logger = logging.getLogger(__name__)

_CONDITIONAL = re.compile(
    r"\{\{#IF\s+(\w+)(?:\s*==\s*'([^']*)')?\s*\}\}(.*?)\{\{/IF\}\}",
    re.DOTALL,
)
_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")

DEFAULT_OUTLINE = ["Introduction", "Main Content", "Conclusion"]

BRAND_MENTIONS_GUIDANCE = {
    "none": "Do not mention the brand at all",
    "minimal": "Mention the brand 1-2 times naturally",
    "regular": "Mention the brand 3-4 times throughout the article",
    "frequent": "Mention the brand 5+ times, positioning it as an industry leader",
}
COMPETITOR_MENTIONS_GUIDANCE = {
    "none": "Do not mention competitors",
    "minimal": "Brief, factual competitor references only if necessary",
    "regular": "Compare with competitors where relevant",
}
INTERNAL_LINKS_GUIDANCE = {
    "none": "Do not suggest internal links",
    "few": "Include 1-2 relevant internal link opportunities",
    "regular": "Include 3-4 strategic internal link opportunities",
    "many": "Include 5+ internal link opportunities throughout",
}


def _is_set(value: Any) -> bool:
    return value is not None and value != "" and value != []


def render_template(template: str, values: Dict[str, Any]) -> str:
    """
    Fill a template from a value map

    Conditional blocks are evaluated first: {{#IF KEY}} keeps its body when
    the value is set and not the string 'false'; {{#IF KEY == 'v'}} keeps it
    when the value equals 'v'. Then every {{KEY}} is replaced; keys that are
    missing or empty render as "[KEY not set]". Blocks do not nest.
    """
    def _conditional(match: re.Match) -> str:
        key, expected, body = match.group(1), match.group(2), match.group(3)
        value = values.get(key)
        if expected is not None:
            return body if _is_set(value) and str(value) == expected else ""
        return body if _is_set(value) and str(value).lower() != "false" else ""

    def _placeholder(match: re.Match) -> str:
        key = match.group(1)
        value = values.get(key)
        return str(value) if _is_set(value) else f"[{key} not set]"

    rendered = _CONDITIONAL.sub(_conditional, template)
    return _PLACEHOLDER.sub(_placeholder, rendered)


# Chunk planning

def plan_chunks(word_count: int, profile: WorkflowProfile) -> Dict[str, int]:
    """
    Split a word target into generation chunks

    Returns:
        {"target_words", "total_chunks", "chunk_size"}
    """
    if profile == WorkflowProfile.LEGACY:
        target = word_count + LEGACY_WORD_PADDING
        total = 2 if target <= DOUBLE_CHUNK_MAX_WORDS else 3
        chunk_size = math.ceil(target / total) + LEGACY_CHUNK_PADDING
    else:
        target = word_count
        if target <= SINGLE_CHUNK_MAX_WORDS:
            total = 1
        elif target <= DOUBLE_CHUNK_MAX_WORDS:
            total = 2
        else:
            total = 3
        chunk_size = math.ceil(target / total)

    return {"target_words": target, "total_chunks": total, "chunk_size": chunk_size}


def partition_outline(outline: Sequence[str], total_chunks: int) -> List[List[str]]:
    """
    Assign outline sections to chunks in order.

    Chunk i gets outline[i*per : min((i+1)*per, len)] with
    per = ceil(len / total_chunks); trailing chunks may get nothing.
    """
    length = len(outline)
    if total_chunks <= 0:
        raise ValueError("total_chunks must be positive")
    per_chunk = math.ceil(length / total_chunks) if length else 0
    return [
        list(outline[min(i * per_chunk, length):min((i + 1) * per_chunk, length)])
        for i in range(total_chunks)
    ]


# Prompt values

def _join(items: Optional[Sequence[Any]], limit: Optional[int] = None, sep: str = ", ") -> str:
    if not items:
        return ""
    selected = list(items)[:limit] if limit else list(items)
    return sep.join(str(item) for item in selected if _is_set(item))


def _as_text(artifact: Optional[Dict[str, Any]]) -> str:
    return json.dumps(artifact, indent=2, ensure_ascii=False) if artifact else ""


def build_prompt_values(context: ArticleContext, chunk_size: int, mode: ContextMode) -> Dict[str, Any]:
    brand = context.brand
    campaign = context.campaign
    settings = context.content_settings or {}
    outline = context.outline or DEFAULT_OUTLINE

    brand_level = settings.get("brand_mentions") or "regular"
    competitor_level = settings.get("competitor_mentions") or "minimal"
    links_level = settings.get("internal_links") or "few"

    values: Dict[str, Any] = {
        "ARTICLE_TITLE": context.title,
        "TOPIC_DESCRIPTION": context.description,
        "PRIMARY_KEYWORDS": _join(context.keywords),
        "SEARCH_INTENT": context.intent or "informational",
        "WORD_COUNT": str(chunk_size),
        "TARGET_LANGUAGE": context.language,
        "TONE": context.tone,
        "BRAND_NAME": context.brand_name or (brand.name if brand else ""),
        "BRAND_WEBSITE": brand.website if brand else "",
        "INDUSTRY": brand.industry if brand else "",
        "BRAND_DESCRIPTION": brand.description if brand else "",
        "TARGET_AUDIENCE": brand.target_audience if brand else "",
        "BRAND_VOICE": (brand.brand_voice if brand else None) or context.tone,
        "KEY_SELLING_POINTS": brand.key_selling_points if brand else "",
        "CAMPAIGN_ID": context.campaign_id or "",
        "CAMPAIGN_WEBSITE": campaign.website_url if campaign else "",
        "BUSINESS_DESCRIPTION": campaign.business_description if campaign else "",
        "TARGET_MARKET": campaign.target_country if campaign else "",
        "ORGANIC_KEYWORDS": _join(campaign.organic_keywords, 10) if campaign else "",
        "COMPETITORS": _join(campaign.competitors, 3) if campaign else "",
        "CONTENT_PILLARS": _join(campaign.content_pillars) if campaign else "",
        "BRAND_MENTIONS_LEVEL": brand_level,
        "BRAND_MENTIONS_GUIDANCE": BRAND_MENTIONS_GUIDANCE.get(brand_level, BRAND_MENTIONS_GUIDANCE["regular"]),
        "COMPETITOR_MENTIONS_LEVEL": competitor_level,
        "COMPETITOR_MENTIONS_GUIDANCE": COMPETITOR_MENTIONS_GUIDANCE.get(
            competitor_level, COMPETITOR_MENTIONS_GUIDANCE["minimal"]),
        "INTERNAL_LINKS_LEVEL": links_level,
        "INTERNAL_LINKS_GUIDANCE": INTERNAL_LINKS_GUIDANCE.get(links_level, INTERNAL_LINKS_GUIDANCE["few"]),
        "INCLUDE_INTRO": "true" if context.include_intro else "false",
        "INCLUDE_CONCLUSION": "true" if context.include_conclusion else "false",
        "INCLUDE_FAQ": "true" if context.include_faq else "false",
        "TOPIC_SOURCES": _join(context.sources),
        "SOURCE_CITATIONS": _join(context.source_citations, sep="\n"),
        "BACKLINKS": _join(context.backlinks, sep="\n"),
        "INTERNAL_LINK_OPPORTUNITIES": _join(context.internal_links),
        "SUGGESTED_OUTLINE": "\n".join(f"{i}. {item}" for i, item in enumerate(outline, start=1)),
    }

    # Strategy fields exist only while multi-stage context is active;
    # absent keys make their template blocks disappear
    if mode == ContextMode.MULTI_STAGE_ACTIVE and context.refinement:
        values["CONTENT_STRATEGY"] = _as_text(context.refinement.strategy)
        values["ARTICLE_BLUEPRINT"] = _as_text(context.refinement.blueprint)
        values["BRAND_VOICE_PROFILE"] = _as_text(context.refinement.voice)

    return values


def build_chunk_prompt(
    context: ArticleContext,
    chunk_number: int,
    total_chunks: int,
    previous_chunks: List[str],
    chunk_size: int,
    mode: ContextMode,
) -> str:
    """
    Build the full prompt for one chunk

    Args:
        context: Article context for the run
        chunk_number: 1-based chunk index
        total_chunks: Number of chunks in the plan
        previous_chunks: Text of chunks already generated, in order
        chunk_size: Word target for this chunk
        mode: Whether refinement artifacts are included

    Returns:
        Prompt string
    """
    outline = context.outline or DEFAULT_OUTLINE
    chunk_outline = partition_outline(outline, total_chunks)[chunk_number - 1]
    sections = ", ".join(chunk_outline) or "continue the remaining topics of the outline"
    previous_headings = [h for chunk in previous_chunks for h in extract_headings(chunk)]

    logger.info(f"[PromptEngine] Chunk {chunk_number}/{total_chunks} covers: {sections}")

    prompt = render_template(ARTICLE_BRIEF_TEMPLATE, build_prompt_values(context, chunk_size, mode))

    lines = ["", "---", "", f"# CHUNK {chunk_number} OF {total_chunks} INSTRUCTIONS", ""]
    lines.append(f"Write about {chunk_size} words for this chunk.")
    lines.append("")

    if total_chunks == 1:
        lines += [
            "## This chunk is the complete article:",
            "- Open with an engaging hook",
            f"- Cover these outline sections: {sections}",
            "- Finish with key takeaways and a clear next step",
        ]
    elif chunk_number == 1:
        lines += [
            "## This is the OPENING chunk:",
            "- Start with an engaging hook",
            f"- Cover these outline sections: {sections}",
            "- Use <h2> headings for each major section",
        ]
    elif chunk_number == total_chunks:
        lines += [
            "## This is the CLOSING chunk:",
            f"- Cover these outline sections: {sections}",
            "- Summarize the key takeaways",
            "- Give actionable next steps and a call to action under a descriptive heading",
        ]
    else:
        lines += [
            "## This is a MIDDLE chunk:",
            f"- Cover these outline sections: {sections}",
            "- Go deep with practical, specific detail",
            "- Use <h2> and <h3> headings appropriately",
        ]

    if previous_headings:
        lines += ["", "DO NOT REPEAT THESE HEADINGS (already used in earlier chunks):"]
        lines += [f'- "{heading}"' for heading in previous_headings]
        lines.append("Write NEW sections with DIFFERENTLY worded headings that continue the outline.")

    if previous_chunks:
        lines += [
            "",
            "## Previous Content (continue naturally from here):",
            last_paragraphs(previous_chunks[-1], CONTINUITY_PARAGRAPHS),
        ]

    if context.custom_prompt:
        lines += ["", "## Custom Instructions:", context.custom_prompt]

    if context.analysis:
        lines += ["", "## Content Research:", context.analysis]

    lines += [
        "",
        "## Final Requirements:",
        f"- About {chunk_size} words",
        "- HTML only, no markdown, no <h1>",
        f"- Follow the assigned outline sections: {sections}",
        "- Main content in <p> paragraphs; no bullet lists outside FAQ or feature lists",
        "- No generic section labels such as \"Introduction:\" or \"Conclusion:\"",
        "- Do NOT include any META_DESCRIPTION text; it is generated separately",
    ]

    return prompt + "\n".join(lines) + "\n"
