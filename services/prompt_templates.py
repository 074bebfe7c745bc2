"""
Prompt templates for the content writing workflow

Placeholders use {{KEY}}; {{#IF KEY}}...{{/IF}} and
{{#IF KEY == 'value'}}...{{/IF}} blocks are rendered by prompt_engine.
"""

ARTICLE_BRIEF_TEMPLATE = """# SEO Content Brief

## Article
**Title:** {{ARTICLE_TITLE}}
**Topic Summary:** {{TOPIC_DESCRIPTION}}
**Primary Keywords:** {{PRIMARY_KEYWORDS}}
**Search Intent:** {{SEARCH_INTENT}}
**Target Word Count:** {{WORD_COUNT}} words
**Language:** {{TARGET_LANGUAGE}}
**Tone:** {{TONE}}

## Brand
**Company:** {{BRAND_NAME}}
**Website:** {{BRAND_WEBSITE}}
**Industry:** {{INDUSTRY}}
**Description:** {{BRAND_DESCRIPTION}}
**Audience:** {{TARGET_AUDIENCE}}
**Voice:** {{BRAND_VOICE}}
**Key Selling Points:** {{KEY_SELLING_POINTS}}

## Campaign
**Campaign:** {{CAMPAIGN_ID}}
**Business Website:** {{CAMPAIGN_WEBSITE}}
**Business Description:** {{BUSINESS_DESCRIPTION}}
**Target Market:** {{TARGET_MARKET}}
**Related Keywords:** {{ORGANIC_KEYWORDS}}
**Content Pillars:** {{CONTENT_PILLARS}}
**Main Competitors:** {{COMPETITORS}}
{{#IF CONTENT_STRATEGY}}
## Content Strategy
{{CONTENT_STRATEGY}}
{{/IF}}{{#IF ARTICLE_BLUEPRINT}}
## Article Blueprint
{{ARTICLE_BLUEPRINT}}
{{/IF}}{{#IF BRAND_VOICE_PROFILE}}
## Brand Voice Profile
{{BRAND_VOICE_PROFILE}}
{{/IF}}
## Mentions and Links
**Brand mentions ({{BRAND_MENTIONS_LEVEL}}):** {{BRAND_MENTIONS_GUIDANCE}}
**Competitor mentions ({{COMPETITOR_MENTIONS_LEVEL}}):** {{COMPETITOR_MENTIONS_GUIDANCE}}
**Internal links ({{INTERNAL_LINKS_LEVEL}}):** {{INTERNAL_LINKS_GUIDANCE}}
{{#IF INTERNAL_LINKS_LEVEL == 'none'}}Do not add internal links.{{/IF}}
**Internal link opportunities:**
{{INTERNAL_LINK_OPPORTUNITIES}}
{{#IF BACKLINKS}}
**Backlinks to embed naturally:**
{{BACKLINKS}}
{{/IF}}
## Structure
- Use <h2> for major sections and <h3> for subsections
- Every heading is specific and descriptive
{{#IF INCLUDE_INTRO}}- Open with an engaging introduction (no "Introduction" heading label)
{{/IF}}{{#IF INCLUDE_CONCLUSION}}- Close with a conclusion that gives clear next steps
{{/IF}}{{#IF INCLUDE_FAQ}}- Add an FAQ section near the end; bullet points are allowed there only
{{/IF}}
**Suggested Outline:**
{{SUGGESTED_OUTLINE}}

## Research
**Reference Sources:**
{{TOPIC_SOURCES}}
{{#IF SOURCE_CITATIONS}}
**Citations to reference:**
{{SOURCE_CITATIONS}}
{{/IF}}
## Style
- Write naturally for {{TARGET_AUDIENCE}} in {{TARGET_MARKET}}
- Paragraphs of 3-5 sentences carry the main content
- Do not use em dashes
- Embed links inside sentences instead of "read more" phrasing
- Keywords appear naturally, never stuffed

## Format
- HTML only: <h2>, <h3>, <p>, <strong>, <em>, <table>, <tr>, <td>, <th>
- No <h1>; the title is rendered separately
- No markdown
- No generic labels such as "Introduction:", "Main Content:", "Conclusion:", "Call to Action:"
- No bullet lists outside FAQ or explicit feature-list sections
- Never write a meta description inside the article
"""

MULTI_STAGE_SYSTEM_PROMPT = (
    "You are an expert SEO content writer. Follow the content strategy, article "
    "blueprint and brand voice profile in the brief exactly. Write clean HTML "
    "article body content in paragraph form and never include a meta description."
)

SINGLE_STAGE_SYSTEM_PROMPT = (
    "You are an expert SEO content writer. Write engaging, well-researched article "
    "body content as clean HTML in paragraph form. Never include a meta description."
)

ANALYSIS_PROMPT = """Analyze the reference content below for an article titled "{title}".
Topic summary: {description}
Target keywords: {keywords}

Reference content:
{content}

Return a JSON object with these keys:
{{
  "key_points": ["..."],
  "statistics": ["..."],
  "unique_angles": ["..."],
  "content_gaps": ["..."],
  "summary": "..."
}}
Return only the JSON object."""

STRATEGY_PROMPT = """Create a content strategy for an article.
Title: {title}
Keywords: {keywords}
Search intent: {intent}
Audience: {audience}
Brand: {brand}
Research notes: {analysis}

Return JSON with keys: "angle", "reader_goals" (list), "key_messages" (list),
"differentiators" (list), "call_to_action". Return only the JSON object."""

BLUEPRINT_PROMPT = """Using this content strategy, design the article blueprint.
Title: {title}
Target word count: {word_count}
Suggested outline: {outline}
Strategy: {strategy}

Return JSON with keys: "sections" (list of {{"heading", "purpose", "key_points"}}),
"faq" (list of questions), "internal_link_placements" (list). Return only the JSON object."""

VOICE_PROMPT = """Define the brand voice profile for this article.
Brand: {brand}
Brand voice notes: {voice}
Requested tone: {tone}
Audience: {audience}
Blueprint: {blueprint}

Return JSON with keys: "tone_descriptors" (list), "vocabulary" (list),
"avoid" (list), "sample_sentence". Return only the JSON object."""

SEO_PROMPT = """Optimize this HTML article for the keywords: {keywords}.
Place the primary keyword in the first paragraph and in at least one <h2>,
use related terms naturally, and keep every existing section and heading text.
Do not add an <h1>, markdown, or a meta description.
Return only the optimized HTML.

{content}"""

HUMANIZE_PROMPT = """Rewrite this HTML article so it reads as written by an experienced
human writer in a {tone} tone. Vary sentence length, remove robotic phrasing
and em dashes, and keep all headings, links and facts unchanged.
Do not add an <h1>, markdown, or a meta description.
Return only the HTML.

{content}"""

META_DESCRIPTION_PROMPT = """Write a meta description of at most 155 characters for the article below.
Title: {title}
Primary keyword: {keyword}

Article:
{excerpt}

Return only the meta description text, without quotes."""

IMAGE_PROMPT = """Create a professional featured image for a blog article titled "{title}".
Themes: {keywords}.
Context: {excerpt}
{style}
Landscape 16:9 composition, no text or lettering in the image."""
