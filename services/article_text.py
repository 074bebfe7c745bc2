"""
HTML text helpers for assembling generated article chunks
"""
import logging
import re
from typing import List

logger = logging.getLogger(__name__)

# h2/h3 headings; one pattern for extraction and section splitting so both agree
HEADING_PATTERN = re.compile(r"<h([23])\b[^>]*>.*?</h\1>", re.IGNORECASE | re.DOTALL)
_HEADING_SPLIT = re.compile(r"(<h([23])\b[^>]*>.*?</h\2>)", re.IGNORECASE | re.DOTALL)
_H1_PATTERN = re.compile(r"<h1\b[^>]*>.*?</h1>", re.IGNORECASE | re.DOTALL)
_EMPTY_HEADING = re.compile(r"<h([1-6])\b[^>]*>(?:\s|&nbsp;|<br\s*/?>)*</h\1>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]+>")
_PARAGRAPH = re.compile(r"<p\b[^>]*>.*?</p>", re.IGNORECASE | re.DOTALL)

# "meta" followed later on the same line by "description", as separate words.
# Underscores, hyphens, markup and punctuation all count as separators, so
# META_DESCRIPTION:, **Meta Description:** and <b>Meta</b> description match.
META_MARKER = re.compile(r"(?<![a-z])meta(?![a-z])[^\n]*?(?<![a-z])description(?![a-z])", re.IGNORECASE)
_META_BLOCK = re.compile(r"<(p|h[1-6])\b[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)


def strip_tags(html: str) -> str:
    return _TAG.sub("", html or "")


def normalize_heading(heading_html: str) -> str:
    return " ".join(strip_tags(heading_html).split()).lower()


def extract_headings(html: str) -> List[str]:
    """Normalized (tag-free, lowercase, whitespace-collapsed) h2/h3 texts in order"""
    return [normalize_heading(m.group(0)) for m in HEADING_PATTERN.finditer(html or "")]


def find_duplicate_headings(headings: List[str]) -> List[str]:
    seen = set()
    duplicates = []
    for heading in headings:
        if heading in seen and heading not in duplicates:
            duplicates.append(heading)
        seen.add(heading)
    return duplicates


def remove_duplicate_sections(html: str, seen: set = None) -> str:
    """
    Drop every h2/h3 section whose heading was already used.

    A section is the heading plus everything up to the next h2/h3. The first
    occurrence wins; later ones are cut together with their body.
    """
    seen = set() if seen is None else seen
    parts = _HEADING_SPLIT.split(html or "")

    # split() yields: text, heading, level, text, heading, level, ...
    kept = [parts[0]]
    for i in range(1, len(parts), 3):
        heading, body = parts[i], parts[i + 2]
        key = normalize_heading(heading)
        if key in seen:
            logger.info(f"[ArticleText] Removing duplicate section: '{key}'")
            continue
        seen.add(key)
        kept.append(heading)
        kept.append(body)
    return "".join(kept)


def normalize_whitespace(text: str) -> str:
    text = "\n".join(line.rstrip() for line in (text or "").split("\n"))
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def strip_meta_description(content: str) -> str:
    """
    Remove leaked meta-description text from an article body.

    A paragraph or heading whose text contains the marker is removed whole,
    then any remaining line containing the marker is removed. Applying the
    function twice gives the same result as applying it once.
    """
    if not content:
        return ""

    def _drop_block(match: re.Match) -> str:
        flattened = strip_tags(match.group(0)).replace("\n", " ")
        return "" if META_MARKER.search(flattened) or META_MARKER.search(match.group(0)) else match.group(0)

    # Dropping a line can move a </p> boundary, so repeat until stable
    cleaned = normalize_whitespace(content)
    while True:
        without_blocks = _META_BLOCK.sub(_drop_block, cleaned)
        lines = [line for line in without_blocks.split("\n") if not META_MARKER.search(line)]
        next_pass = normalize_whitespace("\n".join(lines))
        if next_pass == cleaned:
            break
        cleaned = next_pass

    if cleaned != normalize_whitespace(content):
        logger.info("[ArticleText] Removed meta description text from article content")
    return cleaned


def last_paragraphs(html: str, count: int) -> str:
    """Trailing paragraphs of a chunk, echoed into the next prompt for continuity"""
    paragraphs = _PARAGRAPH.findall(html or "")
    if paragraphs:
        return "\n".join(paragraphs[-count:])
    return (html or "")[-600:]


def combine_chunks(chunks: List[str]) -> str:
    """
    Join generated chunks into one article body

    Order matters: meta text is scrubbed before sections are deduplicated so
    that no later edit can change a heading's text; the final whitespace pass
    does not affect normalized headings.
    """
    joined = "\n\n".join(chunk.strip() for chunk in chunks if chunk and chunk.strip())
    joined = _H1_PATTERN.sub("", joined)
    joined = strip_meta_description(joined)
    joined = _EMPTY_HEADING.sub("", joined)
    joined = remove_duplicate_sections(joined)
    article = normalize_whitespace(joined)

    duplicates = find_duplicate_headings(extract_headings(article))
    if duplicates:
        logger.warning(f"[ArticleText] Duplicate headings remain after combination: {duplicates}")
    return article


def text_length(html: str) -> int:
    """Length of the visible text, markup removed"""
    return len(" ".join(strip_tags(html).split()))


def word_count(html: str) -> int:
    return len(strip_tags(html).split())
