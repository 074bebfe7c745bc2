"""
Constants used across the content and scraping services
"""

# Chunked generation
DEFAULT_WORD_COUNT = 800
SINGLE_CHUNK_MAX_WORDS = 1000  # unified profile: one chunk up to this target
DOUBLE_CHUNK_MAX_WORDS = 2000  # two chunks up to this target, three above
LEGACY_WORD_PADDING = 450  # legacy profile pads the requested word count
LEGACY_CHUNK_PADDING = 50
CONTINUITY_PARAGRAPHS = 3  # paragraphs of the previous chunk echoed into the next prompt
MIN_ARTICLE_LENGTH = 100  # characters of text once markup is stripped

# Models
DEFAULT_GENERATION_MODEL = "openai/gpt-4o"
ANALYSIS_MODEL = "anthropic/claude-3.5-sonnet"
REFINEMENT_MODEL = "anthropic/claude-3.5-sonnet"
META_DESCRIPTION_MODEL = "openai/gpt-4o-mini"
GENERATION_TEMPERATURE = 0.7
GENERATION_MAX_TOKENS = 6000

# USD per 1M tokens (input, output)
MODEL_PRICING = {
    "openai/gpt-4o": (2.50, 10.00),
    "openai/gpt-4o-mini": (0.15, 0.60),
    "anthropic/claude-3.5-sonnet": (3.00, 15.00),
}

# Meta description
META_DESCRIPTION_MAX_LENGTH = 155

# Status reporter checkpoints (percent)
PROGRESS_CONTEXT = 10
PROGRESS_SCRAPING = 20
PROGRESS_ANALYZING = 40
PROGRESS_REFINING = 50
PROGRESS_GENERATING = 60
PROGRESS_OPTIMIZING = 70
PROGRESS_GENERATING_IMAGE = 80
PROGRESS_SAVING = 90
PROGRESS_COMPLETED = 100

# Lobstr scraping
LOBSTR_DEFAULT_MAX_RESULTS = 50
LOBSTR_MAX_RESULTS_PER_SEARCH = 200  # provider ceiling for a single search
LOBSTR_RESULTS_PAGE_SIZE = 100
LOBSTR_LANGUAGE = "English (United States)"
SQUID_LEASE_TTL_SECONDS = 30 * 60

# Scrape run polling (Temporal workflow)
SCRAPE_POLL_INTERVAL_SECONDS = 15
SCRAPE_POLL_CEILING_SECONDS = 10 * 60
