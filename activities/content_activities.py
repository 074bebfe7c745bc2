"""
Stage functions for the content writing workflow

Fail-soft stages return a StageResult; fail-hard stages raise a StageFailure.
They run in-process, awaited one after another by ContentWritingWorkflow.
"""
import json
import logging
import re
import time
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from const import (
    ANALYSIS_MODEL,
    DEFAULT_GENERATION_MODEL,
    GENERATION_MAX_TOKENS,
    GENERATION_TEMPERATURE,
    META_DESCRIPTION_MAX_LENGTH,
    META_DESCRIPTION_MODEL,
    MIN_ARTICLE_LENGTH,
    REFINEMENT_MODEL,
)
from database import SessionLocal
from errors import (
    ArticleSaveError,
    ArticleTooShortError,
    EmptyChunkError,
    NoRowReturnedError,
    ServiceError,
    StageFailure,
)
from models import BlogPost, Brand, SelectedTopic, SeoCampaign, WorkflowExecution
from schemas import (
    ArticleContext,
    BrandInfo,
    CampaignInfo,
    ContentWritingRequest,
    ContextMode,
    EnhancedContext,
    FeaturedImage,
    RefinementArtifacts,
    StageResult,
    StageStatus,
    Topic,
)
from services.article_text import (
    combine_chunks,
    strip_meta_description,
    strip_tags,
    text_length,
)
from services.background import spawn_detached
from services.firecrawl_client import FirecrawlClient
from services.image_client import ImageGatewayClient
from services.openrouter_client import OpenRouterClient, parse_json_content
from services.prompt_engine import build_chunk_prompt
from services.prompt_templates import (
    ANALYSIS_PROMPT,
    BLUEPRINT_PROMPT,
    HUMANIZE_PROMPT,
    IMAGE_PROMPT,
    META_DESCRIPTION_PROMPT,
    MULTI_STAGE_SYSTEM_PROMPT,
    SEO_PROMPT,
    SINGLE_STAGE_SYSTEM_PROMPT,
    STRATEGY_PROMPT,
    VOICE_PROMPT,
)
from services.supabase_client import SupabaseClient
from services.usage_logger import log_token_usage

logger = logging.getLogger(__name__)

IMAGE_BUCKET = "images"
_CODE_FENCE = re.compile(r"^```[a-zA-Z]*\s*\n?|\n?```\s*$")


def _text_items(items: List[Any]) -> List[str]:
    """Flatten list entries that may be strings or {url/title/...} dicts"""
    flattened = []
    for item in items or []:
        if isinstance(item, dict):
            value = item.get("url") or item.get("link") or item.get("title") or item.get("name")
            if value:
                flattened.append(str(value))
        elif item:
            flattened.append(str(item))
    return flattened


def _keyword_list(raw: Any) -> List[str]:
    keywords = []
    for item in raw or []:
        if isinstance(item, dict):
            value = item.get("keyword") or item.get("name")
        else:
            value = item
        if value:
            keywords.append(str(value))
    return keywords


# Step 1: context fetch

def fetch_enhanced_context(request: ContentWritingRequest) -> StageResult:
    """
    Load brand and campaign details; missing rows simply leave fields empty
    """
    db = SessionLocal()
    try:
        context = EnhancedContext()

        brand = db.query(Brand).filter(Brand.id == request.brand_id).first()
        if brand:
            context.brand = BrandInfo(
                name=brand.name,
                website=brand.website,
                industry=brand.industry,
                description=brand.description,
                target_audience=brand.target_audience,
                brand_voice=brand.brand_voice,
                key_selling_points=brand.key_selling_points,
            )

        campaign_id = request.resolved_campaign_id
        if campaign_id:
            campaign = db.query(SeoCampaign).filter(SeoCampaign.id == campaign_id).first()
            if campaign:
                style = campaign.style_analysis or {}
                competitor_data = style.get("competitorData") or {}
                context.campaign = CampaignInfo(
                    website_url=campaign.website_url,
                    business_description=campaign.business_description,
                    target_country=campaign.target_country,
                    language=campaign.language,
                    organic_keywords=_keyword_list(campaign.organic_keywords),
                    competitors=_text_items(competitor_data.get("topCompetitors") or []),
                    content_pillars=_text_items(style.get("contentPillars") or []),
                )

        logger.info(
            f"[ContentActivities] Context for brand {request.brand_id}: "
            f"brand={'yes' if context.brand else 'no'}, campaign={'yes' if context.campaign else 'no'}"
        )
        return StageResult.success(context)
    except SQLAlchemyError as e:
        logger.error(f"[ContentActivities] Context fetch failed: {str(e)}", exc_info=True)
        return StageResult(status=StageStatus.FAILED, value=EnhancedContext(), error=str(e))
    finally:
        db.close()


# Step 2: reference scrape

def resolve_reference_url(topic: Topic) -> Optional[str]:
    if topic.source:
        try:
            parsed = json.loads(topic.source)
            if isinstance(parsed, dict) and parsed.get("url"):
                return parsed["url"]
        except (TypeError, ValueError):
            if topic.source.startswith(("http://", "https://")):
                return topic.source
    for candidate in _text_items(topic.sources) + _text_items(topic.source_citations):
        if candidate.startswith(("http://", "https://")):
            return candidate
    return None


async def scrape_reference_content(topic: Topic, scraper: Optional[FirecrawlClient] = None) -> StageResult:
    url = resolve_reference_url(topic)
    if not url:
        logger.info(f"[ContentActivities] No reference URL for '{topic.title}', skipping scrape")
        return StageResult.skipped()

    try:
        scraper = scraper or FirecrawlClient()
        page = await scraper.scrape(url)
        return StageResult.success(page)
    except (ServiceError, ValueError) as e:
        logger.warning(f"[ContentActivities] Reference scrape failed for {url}: {str(e)}")
        return StageResult.failed(str(e))


# Step 3: content analysis

def format_analysis(analysis: Dict[str, Any]) -> str:
    lines = []
    for key, label in (("key_points", "Key points"), ("statistics", "Statistics"),
                       ("unique_angles", "Unique angles"), ("content_gaps", "Content gaps")):
        items = analysis.get(key) or []
        if items:
            lines.append(f"{label}:")
            lines += [f"- {item}" for item in items]
    if analysis.get("summary"):
        lines.append(f"Summary: {analysis['summary']}")
    return "\n".join(lines)


async def analyze_content(request: ContentWritingRequest, scraped: Dict[str, Any],
                          llm: OpenRouterClient) -> StageResult:
    topic = request.topic
    prompt = ANALYSIS_PROMPT.format(
        title=topic.title,
        description=topic.description or "N/A",
        keywords=", ".join(topic.keywords) or "N/A",
        content=(scraped.get("markdown") or "")[:8000],
    )
    try:
        completion = await llm.complete(
            [{"role": "user", "content": prompt}],
            model=ANALYSIS_MODEL,
            temperature=0.3,
            max_tokens=2000,
        )
        log_token_usage("content-analysis", completion, {"title": topic.title})
        analysis = parse_json_content(completion.content)
        return StageResult.success(format_analysis(analysis) or completion.content.strip())
    except (ServiceError, ValueError) as e:
        logger.warning(f"[ContentActivities] Content analysis failed: {str(e)}")
        return StageResult.failed(str(e))


# Step 4: multi-stage refinement

def load_cached_refinement(campaign_id: Optional[str]) -> Optional[RefinementArtifacts]:
    """
    Reuse artifacts from the newest completed execution of the same campaign
    """
    if not campaign_id:
        return None

    db = SessionLocal()
    try:
        executions = db.query(WorkflowExecution).filter(
            WorkflowExecution.campaign_id == campaign_id,
            WorkflowExecution.status == "completed",
            WorkflowExecution.stage_results.isnot(None),
        ).order_by(WorkflowExecution.created_at.desc()).limit(5).all()

        for execution in executions:
            stages = execution.stage_results or {}
            if stages.get("stage1_strategy"):
                logger.info(f"[ContentActivities] Reusing refinement artifacts from execution {execution.id}")
                return RefinementArtifacts(
                    strategy=stages.get("stage1_strategy"),
                    blueprint=stages.get("stage2_blueprint"),
                    voice=stages.get("stage3_voice"),
                    cached=True,
                )
        return None
    except SQLAlchemyError as e:
        logger.warning(f"[ContentActivities] Refinement cache lookup failed: {str(e)}")
        return None
    finally:
        db.close()


async def _refinement_call(llm: OpenRouterClient, prompt: str, label: str) -> Dict[str, Any]:
    completion = await llm.complete(
        [{"role": "user", "content": prompt}],
        model=REFINEMENT_MODEL,
        temperature=0.5,
        max_tokens=2000,
    )
    log_token_usage(f"content-refinement-{label}", completion)
    return parse_json_content(completion.content)


async def refine_context(request: ContentWritingRequest, enhanced: EnhancedContext,
                         analysis: Optional[str], llm: OpenRouterClient) -> StageResult:
    """
    Strategy -> blueprint -> voice profile, each feeding the next.

    Returns a success carrying RefinementArtifacts, or a failure when any
    sub-stage fails; the caller then switches to single-stage context.
    """
    topic = request.topic
    brand = enhanced.brand or BrandInfo()
    artifacts = load_cached_refinement(request.resolved_campaign_id) or RefinementArtifacts()
    if artifacts.complete:
        return StageResult.success(artifacts)

    try:
        if not artifacts.strategy:
            artifacts.strategy = await _refinement_call(llm, STRATEGY_PROMPT.format(
                title=topic.title,
                keywords=", ".join(topic.keywords) or "N/A",
                intent=topic.intent or "informational",
                audience=brand.target_audience or "N/A",
                brand=brand.name or request.brand_name or "N/A",
                analysis=analysis or "N/A",
            ), "strategy")

        if not artifacts.blueprint:
            artifacts.blueprint = await _refinement_call(llm, BLUEPRINT_PROMPT.format(
                title=topic.title,
                word_count=request.word_count,
                outline=", ".join(topic.outline) or "N/A",
                strategy=json.dumps(artifacts.strategy),
            ), "blueprint")

        if not artifacts.voice:
            artifacts.voice = await _refinement_call(llm, VOICE_PROMPT.format(
                brand=brand.name or request.brand_name or "N/A",
                voice=brand.brand_voice or "N/A",
                tone=request.tone,
                audience=brand.target_audience or "N/A",
                blueprint=json.dumps(artifacts.blueprint),
            ), "voice")
    except (ServiceError, ValueError) as e:
        logger.warning(f"[ContentActivities] Context refinement failed, falling back to single-stage: {str(e)}")
        return StageResult.failed(str(e))

    return StageResult.success(artifacts)


# Step 5-6: chunked generation and combination

def build_article_context(request: ContentWritingRequest, enhanced: EnhancedContext,
                          analysis: Optional[str],
                          refinement: Optional[RefinementArtifacts]) -> ArticleContext:
    topic = request.topic
    return ArticleContext(
        title=topic.title,
        description=topic.description,
        keywords=topic.keywords,
        intent=topic.intent,
        outline=topic.outline,
        sources=_text_items(topic.sources),
        source_citations=_text_items(topic.source_citations),
        backlinks=_text_items(topic.matched_backlinks),
        internal_links=_text_items(topic.internal_links),
        language=request.language,
        tone=request.tone,
        word_count=request.word_count,
        brand_name=request.brand_name or (enhanced.brand.name if enhanced.brand else "") or "",
        campaign_id=request.resolved_campaign_id,
        brand=enhanced.brand,
        campaign=enhanced.campaign,
        content_settings=request.content_settings,
        include_intro=request.include_intro,
        include_conclusion=request.include_conclusion,
        include_faq=request.include_faq,
        custom_prompt=request.custom_prompt,
        analysis=analysis,
        refinement=refinement,
    )


def strip_code_fences(text: str) -> str:
    return _CODE_FENCE.sub("", (text or "").strip()).strip()


async def generate_chunks(context: ArticleContext, total_chunks: int, chunk_size: int,
                          mode: ContextMode, llm: OpenRouterClient, model: str) -> List[str]:
    """
    Generate chunks strictly in order; each prompt sees the earlier chunks

    Raises:
        EmptyChunkError: a chunk came back empty
        StageFailure: the LLM call itself failed
    """
    system_prompt = MULTI_STAGE_SYSTEM_PROMPT if mode == ContextMode.MULTI_STAGE_ACTIVE else SINGLE_STAGE_SYSTEM_PROMPT
    chunks: List[str] = []

    for chunk_number in range(1, total_chunks + 1):
        prompt = build_chunk_prompt(context, chunk_number, total_chunks, chunks, chunk_size, mode)
        try:
            completion = await llm.complete(
                [{"role": "system", "content": system_prompt}, {"role": "user", "content": prompt}],
                model=model,
                temperature=GENERATION_TEMPERATURE,
                max_tokens=GENERATION_MAX_TOKENS,
            )
        except ServiceError as e:
            raise StageFailure(
                "article_generation",
                f"Step 5 (Article Generation) failed: chunk {chunk_number}: {str(e)}",
            ) from e

        log_token_usage("content-writing", completion, {"title": context.title, "chunk": chunk_number})

        chunk = strip_meta_description(strip_code_fences(completion.content))
        if not chunk.strip():
            raise EmptyChunkError(chunk_number)

        logger.info(f"[ContentActivities] Chunk {chunk_number}/{total_chunks}: {len(chunk)} chars")
        chunks.append(chunk)

    return chunks


def assemble_article(chunks: List[str]) -> str:
    """
    Raises:
        ArticleTooShortError: visible text below the minimum length
    """
    article = combine_chunks(chunks)
    length = text_length(article)
    if length < MIN_ARTICLE_LENGTH:
        raise ArticleTooShortError(length)
    return article


# Step 7-8: optional rewrite passes

async def _rewrite_pass(llm: OpenRouterClient, prompt: str, label: str, original: str) -> StageResult:
    try:
        completion = await llm.complete(
            [{"role": "user", "content": prompt}],
            model=DEFAULT_GENERATION_MODEL,
            temperature=0.5,
            max_tokens=GENERATION_MAX_TOKENS,
        )
        log_token_usage(f"content-{label}", completion)
    except ServiceError as e:
        logger.warning(f"[ContentActivities] {label} pass failed: {str(e)}")
        return StageResult.failed(str(e))

    rewritten = combine_chunks([strip_code_fences(completion.content)])
    # Reject rewrites that lost most of the article
    if text_length(rewritten) < max(MIN_ARTICLE_LENGTH, text_length(original) // 2):
        logger.warning(f"[ContentActivities] {label} pass returned too little content, keeping original")
        return StageResult.failed(f"{label} pass returned insufficient content")
    return StageResult.success(rewritten)


async def optimize_for_seo(article: str, keywords: List[str], llm: OpenRouterClient) -> StageResult:
    prompt = SEO_PROMPT.format(keywords=", ".join(keywords) or "N/A", content=article)
    return await _rewrite_pass(llm, prompt, "seo", article)


async def humanize_article(article: str, tone: str, llm: OpenRouterClient) -> StageResult:
    prompt = HUMANIZE_PROMPT.format(tone=tone, content=article)
    return await _rewrite_pass(llm, prompt, "humanize", article)


# Step 9: meta description

def clamp_meta_description(text: str) -> str:
    text = " ".join((text or "").split()).strip().strip('"').strip("'").strip()
    if len(text) > META_DESCRIPTION_MAX_LENGTH:
        text = text[:META_DESCRIPTION_MAX_LENGTH - 3].rstrip() + "..."
    return text


def fallback_meta_description(topic: Topic) -> str:
    return clamp_meta_description(topic.description or topic.title)


async def generate_meta_description(topic: Topic, article: str, llm: OpenRouterClient) -> StageResult:
    prompt = META_DESCRIPTION_PROMPT.format(
        title=topic.title,
        keyword=topic.keywords[0] if topic.keywords else topic.title,
        excerpt=strip_tags(article)[:1000],
    )
    try:
        completion = await llm.complete(
            [{"role": "user", "content": prompt}],
            model=META_DESCRIPTION_MODEL,
            temperature=0.5,
            max_tokens=100,
        )
        log_token_usage("meta-description", completion)
    except ServiceError as e:
        logger.warning(f"[ContentActivities] Meta description generation failed: {str(e)}")
        return StageResult.failed(str(e))

    meta = clamp_meta_description(completion.content)
    if not meta:
        return StageResult.failed("Meta description came back empty")
    return StageResult.success(meta)


# Step 10: featured image

def image_storage_path(brand_id: str, title: str) -> str:
    sanitized = re.sub(r"[^a-zA-Z0-9]", "_", title)[:50]
    return f"images/brands/{brand_id}/articles/{sanitized}_{int(time.time() * 1000)}.png"


async def generate_featured_image(request: ContentWritingRequest, article: str,
                                  images: Optional[ImageGatewayClient] = None,
                                  storage: Optional[SupabaseClient] = None) -> StageResult:
    topic = request.topic
    style = request.content_settings.get("image_style")
    prompt = IMAGE_PROMPT.format(
        title=topic.title,
        keywords=", ".join(topic.keywords[:3]) or topic.title,
        excerpt=strip_tags(article)[:500],
        style=f"Style: {style}" if style else "",
    )
    try:
        images = images or ImageGatewayClient()
        storage = storage or SupabaseClient()
        image_bytes = await images.generate_image(prompt)
        url = await storage.upload_object(
            IMAGE_BUCKET, image_storage_path(request.brand_id, topic.title), image_bytes, "image/png",
        )
    except (ServiceError, ValueError) as e:
        logger.warning(f"[ContentActivities] Featured image failed: {str(e)}")
        return StageResult.failed(str(e))

    return StageResult.success(FeaturedImage(url=url, alt_text=f"Featured image for {topic.title}"))


# Step 11: persistence

def _article_values(request: ContentWritingRequest, content: str, meta_description: str,
                    image: Optional[FeaturedImage]) -> Dict[str, Any]:
    topic = request.topic
    plain = " ".join(strip_tags(content).split())
    return {
        "title": topic.title,
        "content": content,
        "excerpt": plain[:157] + "..." if len(plain) > 160 else plain,
        "meta_description": meta_description,
        "meta_title": topic.title,
        "meta_keywords": ", ".join(topic.keywords),
        "featured_image": image.url if image else None,
        "featured_image_alt": image.alt_text if image else None,
        "status": "draft",
        "brand_id": request.brand_id,
        "user_id": request.user_id,
        "campaign_id": request.resolved_campaign_id,
        "keywords": topic.keywords,
        "wordpress_settings": {
            "status": "draft",
            "tags": topic.keywords,
            "categories": [],
        },
    }


def save_article(request: ContentWritingRequest, content: str, meta_description: str,
                 image: Optional[FeaturedImage]) -> Dict[str, Any]:
    """
    Upsert the article over a 'generating' placeholder for the same title and
    brand, or insert a new row.

    Raises:
        NoRowReturnedError: the write reported no row
        ArticleSaveError: the database raised
    """
    topic = request.topic
    values = _article_values(request, content, meta_description, image)

    db = SessionLocal()
    try:
        placeholder = db.query(BlogPost).filter(
            BlogPost.title == topic.title,
            BlogPost.brand_id == request.brand_id,
            BlogPost.status == "generating",
        ).first()

        if placeholder:
            updated = db.query(BlogPost).filter(
                BlogPost.id == placeholder.id,
                BlogPost.status == "generating",
            ).update(values, synchronize_session=False)
            db.commit()
            if not updated:
                raise NoRowReturnedError(topic.title)
            post_id = placeholder.id
            logger.info(f"[ContentActivities] Updated placeholder article {post_id}")
        else:
            post = BlogPost(**values)
            db.add(post)
            db.commit()
            post_id = post.id
            logger.info(f"[ContentActivities] Inserted article {post_id}")

        db.expire_all()
        saved = db.query(BlogPost).filter(BlogPost.id == post_id).first()
        if saved is None:
            raise NoRowReturnedError(topic.title)

        result = {
            "id": saved.id,
            "title": saved.title,
            "content": saved.content,
            "meta_description": saved.meta_description,
            "featured_image": saved.featured_image,
            "featured_image_alt": saved.featured_image_alt,
            "status": saved.status,
        }
    except StageFailure:
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[ContentActivities] Failed to save article: {str(e)}", exc_info=True)
        raise ArticleSaveError(str(e)) from e
    finally:
        db.close()

    if topic.id:
        mark_topic_completed(topic.id, result["id"])
    return result


def mark_topic_completed(topic_id: str, article_id: str) -> None:
    db = SessionLocal()
    try:
        updated = db.query(SelectedTopic).filter(SelectedTopic.id == topic_id).update(
            {"status": "completed", "article_id": article_id}, synchronize_session=False,
        )
        db.commit()
        if not updated:
            logger.warning(f"[ContentActivities] Selected topic {topic_id} not found")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[ContentActivities] Failed to mark topic {topic_id} completed: {str(e)}")
    finally:
        db.close()


# Step 12: background backlink optimization

async def optimize_backlinks(article_id: str, content: str, brand_id: str) -> Any:
    client = SupabaseClient()
    return await client.invoke_function("optimize-backlinks", {
        "articleId": article_id,
        "articleContent": content,
        "brandId": brand_id,
    })


def dispatch_backlink_optimization(article_id: str, content: str, brand_id: str) -> None:
    spawn_detached(
        optimize_backlinks(article_id, content, brand_id),
        name=f"optimize-backlinks:{article_id}",
    )
