"""
Request, context and result models shared by the routers, activities and workflows
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class StageStatus(str, Enum):
    SUCCESS = "Success"
    FAILED = "Failed"
    SKIPPED = "Skipped"
    PROCESSING = "Processing"


class ContextMode(str, Enum):
    """Whether strategy/blueprint/voice artifacts feed the generation prompts"""
    MULTI_STAGE_ACTIVE = "multi-stage"
    SINGLE_STAGE_FALLBACK = "single-stage"


class WorkflowProfile(str, Enum):
    UNIFIED = "unified"
    LEGACY = "workflow"


class FeaturedImageMode(str, Enum):
    NONE = "none"
    AI_GENERATION = "ai_generation"
    GALLERY_SELECTION = "gallery_selection"


# Content writing request

class Topic(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    title: str = Field(min_length=1)
    description: str = ""
    keywords: List[str] = Field(default_factory=list)
    intent: Optional[str] = None
    outline: List[str] = Field(default_factory=list)
    sources: List[Any] = Field(default_factory=list)
    source: Optional[str] = None  # JSON string {"url": ...} or a bare URL
    source_citations: List[Any] = Field(default_factory=list)
    matched_backlinks: List[Any] = Field(default_factory=list)
    internal_links: List[Any] = Field(default_factory=list)
    campaign_id: Optional[str] = None
    seo_campaign_id: Optional[str] = None


class ContentWritingRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    topics: List[Topic] = Field(min_length=1)
    brand_id: str = Field(alias="brandId")
    user_id: str = Field(alias="userId")
    brand_name: str = Field(default="", alias="brandName")
    language: str = "English"
    word_count: int = Field(default=800, alias="wordCount", gt=0)
    tone: str = "professional"
    include_intro: bool = Field(default=True, alias="includeIntro")
    include_conclusion: bool = Field(default=True, alias="includeConclusion")
    include_faq: bool = Field(default=False, alias="includeFAQ")
    featured_image: FeaturedImageMode = Field(default=FeaturedImageMode.NONE, alias="featuredImage")
    model: Optional[str] = None
    custom_prompt: Optional[str] = Field(default=None, alias="customPrompt")
    content_settings: Dict[str, Any] = Field(default_factory=dict, alias="contentSettings")
    execution_id: Optional[str] = Field(default=None, alias="executionId")
    campaign_id: Optional[str] = None
    seo_campaign_id: Optional[str] = None

    @property
    def topic(self) -> Topic:
        return self.topics[0]

    @property
    def resolved_campaign_id(self) -> Optional[str]:
        topic = self.topic
        return self.campaign_id or topic.campaign_id or self.seo_campaign_id or topic.seo_campaign_id


# Enhanced context

class BrandInfo(BaseModel):
    name: Optional[str] = None
    website: Optional[str] = None
    industry: Optional[str] = None
    description: Optional[str] = None
    target_audience: Optional[str] = None
    brand_voice: Optional[str] = None
    key_selling_points: Optional[str] = None


class CampaignInfo(BaseModel):
    website_url: Optional[str] = None
    business_description: Optional[str] = None
    target_country: Optional[str] = None
    language: Optional[str] = None
    organic_keywords: List[str] = Field(default_factory=list)
    competitors: List[str] = Field(default_factory=list)
    content_pillars: List[str] = Field(default_factory=list)


class EnhancedContext(BaseModel):
    brand: Optional[BrandInfo] = None
    campaign: Optional[CampaignInfo] = None


class RefinementArtifacts(BaseModel):
    strategy: Optional[Dict[str, Any]] = None
    blueprint: Optional[Dict[str, Any]] = None
    voice: Optional[Dict[str, Any]] = None
    cached: bool = False

    @property
    def complete(self) -> bool:
        return bool(self.strategy and self.blueprint and self.voice)


class ArticleContext(BaseModel):
    """
    Everything a generation prompt needs, fixed for the rest of the run
    """
    model_config = ConfigDict(frozen=True)

    title: str
    description: str = ""
    keywords: List[str] = Field(default_factory=list)
    intent: Optional[str] = None
    outline: List[str] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)
    source_citations: List[str] = Field(default_factory=list)
    backlinks: List[str] = Field(default_factory=list)
    internal_links: List[str] = Field(default_factory=list)
    language: str = "English"
    tone: str = "professional"
    word_count: int = 800
    brand_name: str = ""
    campaign_id: Optional[str] = None
    brand: Optional[BrandInfo] = None
    campaign: Optional[CampaignInfo] = None
    content_settings: Dict[str, Any] = Field(default_factory=dict)
    include_intro: bool = True
    include_conclusion: bool = True
    include_faq: bool = False
    custom_prompt: Optional[str] = None
    analysis: Optional[str] = None
    refinement: Optional[RefinementArtifacts] = None


# Stage outcomes

class StageResult(BaseModel):
    """
    Outcome of a fail-soft stage: the status is the tag, value or error the payload
    """
    status: StageStatus
    value: Any = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: Any = None) -> "StageResult":
        return cls(status=StageStatus.SUCCESS, value=value)

    @classmethod
    def failed(cls, error: str) -> "StageResult":
        return cls(status=StageStatus.FAILED, error=error)

    @classmethod
    def skipped(cls) -> "StageResult":
        return cls(status=StageStatus.SKIPPED)

    @property
    def ok(self) -> bool:
        return self.status == StageStatus.SUCCESS


class StageWarning(BaseModel):
    step: str
    message: str
    error: Optional[str] = None
    impact: str


class FeaturedImage(BaseModel):
    url: str
    alt_text: str


class GeneratedArticle(BaseModel):
    id: str
    title: str
    content: str
    meta_description: str
    featured_image: Optional[str] = None
    featured_image_alt: Optional[str] = None
    word_count: int
    status: str


class ContentWritingResult(BaseModel):
    success: bool
    article: Optional[GeneratedArticle] = None
    error: Optional[str] = None
    workflow_results: Dict[str, StageStatus]
    workflow_warnings: List[StageWarning] = Field(default_factory=list)
    stage_results: Optional[Dict[str, Any]] = None


# Scrape operations

class LobstrRequest(BaseModel):
    """
    Body of a lobstr-scraper call. Only `type` is always required; each
    operation checks its own fields.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str
    query: Optional[str] = None
    location: Optional[str] = None
    max_results: Optional[int] = Field(default=None, alias="maxResults", gt=0)
    user_id: Optional[str] = Field(default=None, alias="userId")
    run_id: Optional[str] = Field(default=None, alias="runId")
    target_leads: Optional[int] = Field(default=None, alias="targetLeads", gt=0)
    search_categories: List[str] = Field(default_factory=list, alias="searchCategories")
