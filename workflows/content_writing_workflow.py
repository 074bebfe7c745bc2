"""
Orchestrator for the content writing endpoints

Runs in-process for one HTTP request. Stages are awaited in order, progress is
mirrored to workflow_executions, and every stage outcome ends up in the
result's workflow_results / workflow_warnings.
"""
import logging
from typing import Dict, List, Optional

from activities import content_activities as stages
from const import (
    DEFAULT_GENERATION_MODEL,
    PROGRESS_ANALYZING,
    PROGRESS_COMPLETED,
    PROGRESS_CONTEXT,
    PROGRESS_GENERATING,
    PROGRESS_GENERATING_IMAGE,
    PROGRESS_OPTIMIZING,
    PROGRESS_REFINING,
    PROGRESS_SAVING,
    PROGRESS_SCRAPING,
)
from errors import ServiceError, StageFailure
from schemas import (
    ContentWritingRequest,
    ContentWritingResult,
    ContextMode,
    EnhancedContext,
    FeaturedImage,
    FeaturedImageMode,
    GeneratedArticle,
    RefinementArtifacts,
    StageStatus,
    StageWarning,
    WorkflowProfile,
)
from services.article_text import word_count
from services.openrouter_client import OpenRouterClient
from services.prompt_engine import plan_chunks
from services.status_reporter import ExecutionStatusReporter

logger = logging.getLogger(__name__)

# Result keys in execution order
STAGES = [
    "context_fetch",
    "scraped_content",
    "content_analysis",
    "context_refinement",
    "article_generation",
    "seo_optimization",
    "humanization",
    "meta_description_generation",
    "image_generation",
    "database_save",
    "backlink_optimization",
]

STAGE_LABELS = {
    "context_fetch": "Context Fetch",
    "scraped_content": "Reference Content Scraping",
    "content_analysis": "Content Analysis",
    "context_refinement": "Context Refinement",
    "article_generation": "Article Generation",
    "seo_optimization": "SEO Optimization",
    "humanization": "Humanization",
    "meta_description_generation": "Meta Description Generation",
    "image_generation": "Featured Image Generation",
    "database_save": "Database Save",
    "backlink_optimization": "Backlink Optimization",
}

IMPACTS = {
    "context_fetch": "Article generated without brand and campaign context",
    "scraped_content": "Article generated without reference content - may have reduced quality",
    "content_analysis": "Article generated without content research insights",
    "context_refinement": "Article generated with single-stage context - strategy, blueprint and voice profile were not applied",
    "seo_optimization": "Article saved without the SEO optimization pass",
    "humanization": "Article saved without the humanization pass",
    "meta_description_generation": "Meta description derived from the topic description - you can regenerate it later",
    "image_generation": "Article saved without featured image",
}


class ContentWritingWorkflow:
    """
    Generates, cleans and saves one article for topics[0] of the request
    """

    def __init__(self, request: ContentWritingRequest, profile: WorkflowProfile = WorkflowProfile.UNIFIED,
                 llm: Optional[OpenRouterClient] = None):
        self.request = request
        self.profile = profile
        self.llm = llm
        self.reporter = ExecutionStatusReporter(
            request.execution_id,
            campaign_id=request.resolved_campaign_id,
            workflow_type=f"content-writing-{profile.value}",
        )
        self.results: Dict[str, StageStatus] = {}
        self.warnings: List[StageWarning] = []

    def _record(self, stage: str, status: StageStatus, error: Optional[str] = None) -> None:
        self.results[stage] = status
        if status == StageStatus.FAILED and stage in IMPACTS:
            self.warnings.append(StageWarning(
                step=STAGE_LABELS[stage],
                message=f"{STAGE_LABELS[stage]} failed",
                error=error,
                impact=IMPACTS[stage],
            ))

    async def run(self) -> ContentWritingResult:
        topic = self.request.topic
        logger.info(f"[ContentWorkflow] Starting {self.profile.value} run for '{topic.title}'")
        self.reporter.start()

        try:
            return await self._run_stages()
        except StageFailure as e:
            return self._fail(e.stage, e.message)
        except ServiceError as e:
            # Raised outside a stage, e.g. missing OPENROUTER_API_KEY
            return self._fail("article_generation", f"Step 5 (Article Generation) failed: {str(e)}")

    async def _run_stages(self) -> ContentWritingResult:
        request = self.request
        topic = request.topic
        llm = self.llm or OpenRouterClient()

        # 1. context
        self.reporter.checkpoint("fetching_context", PROGRESS_CONTEXT)
        context_result = stages.fetch_enhanced_context(request)
        enhanced: EnhancedContext = context_result.value or EnhancedContext()
        self._record("context_fetch", context_result.status, context_result.error)

        # 2. reference scrape
        self.reporter.checkpoint("scraping", PROGRESS_SCRAPING)
        scrape_result = await stages.scrape_reference_content(topic)
        self._record("scraped_content", scrape_result.status, scrape_result.error)

        # 3. analysis
        self.reporter.checkpoint("analyzing", PROGRESS_ANALYZING)
        analysis: Optional[str] = None
        if scrape_result.ok:
            analysis_result = await stages.analyze_content(request, scrape_result.value, llm)
            analysis = analysis_result.value if analysis_result.ok else None
            self._record("content_analysis", analysis_result.status, analysis_result.error)
        else:
            self._record("content_analysis", StageStatus.SKIPPED)

        # 4. refinement
        mode = ContextMode.SINGLE_STAGE_FALLBACK
        refinement: Optional[RefinementArtifacts] = None
        if self.profile == WorkflowProfile.UNIFIED:
            self.reporter.checkpoint("refining_context", PROGRESS_REFINING)
            refinement_result = await stages.refine_context(request, enhanced, analysis, llm)
            if refinement_result.ok:
                mode = ContextMode.MULTI_STAGE_ACTIVE
                refinement = refinement_result.value
            self._record("context_refinement", refinement_result.status, refinement_result.error)
        else:
            self._record("context_refinement", StageStatus.SKIPPED)
        logger.info(f"[ContentWorkflow] Context mode: {mode.value}")

        # 5-6. generation
        self.reporter.checkpoint("generating", PROGRESS_GENERATING)
        plan = plan_chunks(request.word_count, self.profile)
        logger.info(
            f"[ContentWorkflow] Target {plan['target_words']} words in {plan['total_chunks']} "
            f"chunk(s) of ~{plan['chunk_size']}"
        )
        context = stages.build_article_context(request, enhanced, analysis, refinement)
        chunks = await stages.generate_chunks(
            context, plan["total_chunks"], plan["chunk_size"], mode, llm,
            request.model or DEFAULT_GENERATION_MODEL,
        )
        article = stages.assemble_article(chunks)
        self._record("article_generation", StageStatus.SUCCESS)

        # 7-8. rewrite passes, only with multi-stage context
        if mode == ContextMode.MULTI_STAGE_ACTIVE:
            self.reporter.checkpoint("optimizing", PROGRESS_OPTIMIZING)
            seo_result = await stages.optimize_for_seo(article, topic.keywords, llm)
            if seo_result.ok:
                article = seo_result.value
            self._record("seo_optimization", seo_result.status, seo_result.error)

            humanize_result = await stages.humanize_article(article, request.tone, llm)
            if humanize_result.ok:
                article = humanize_result.value
            self._record("humanization", humanize_result.status, humanize_result.error)
        else:
            self._record("seo_optimization", StageStatus.SKIPPED)
            self._record("humanization", StageStatus.SKIPPED)

        # 9. meta description
        meta_result = await stages.generate_meta_description(topic, article, llm)
        meta_description = meta_result.value if meta_result.ok else stages.fallback_meta_description(topic)
        self._record("meta_description_generation", meta_result.status, meta_result.error)

        # 10. featured image
        image: Optional[FeaturedImage] = None
        if request.featured_image == FeaturedImageMode.AI_GENERATION:
            self.reporter.checkpoint("generating_image", PROGRESS_GENERATING_IMAGE)
            image_result = await stages.generate_featured_image(request, article)
            image = image_result.value if image_result.ok else None
            self._record("image_generation", image_result.status, image_result.error)
        else:
            self._record("image_generation", StageStatus.SKIPPED)

        # 11. persistence
        self.reporter.checkpoint("saving", PROGRESS_SAVING)
        saved = stages.save_article(request, article, meta_description, image)
        self._record("database_save", StageStatus.SUCCESS)

        # 12. detached backlink optimization
        stages.dispatch_backlink_optimization(saved["id"], saved["content"], request.brand_id)
        self._record("backlink_optimization", StageStatus.PROCESSING)

        stage_results = self._stage_results(mode, refinement)
        self.reporter.update(
            "completed",
            result={"currentStep": "completed", "progress": PROGRESS_COMPLETED, "articleId": saved["id"]},
            stage_results=stage_results,
            current_stage="completed",
            progress=PROGRESS_COMPLETED,
        )

        logger.info(
            f"[ContentWorkflow] Saved article {saved['id']} for '{topic.title}' "
            f"with {len(self.warnings)} warning(s)"
        )
        return ContentWritingResult(
            success=True,
            article=GeneratedArticle(
                id=saved["id"],
                title=saved["title"],
                content=saved["content"],
                meta_description=saved["meta_description"],
                featured_image=saved["featured_image"],
                featured_image_alt=saved["featured_image_alt"],
                word_count=word_count(saved["content"]),
                status=saved["status"],
            ),
            workflow_results=self.results,
            workflow_warnings=self.warnings,
            stage_results=stage_results,
        )

    @staticmethod
    def _stage_results(mode: ContextMode, refinement: Optional[RefinementArtifacts]) -> Dict:
        if mode == ContextMode.MULTI_STAGE_ACTIVE and refinement:
            return {
                "stage1_strategy": refinement.strategy,
                "stage2_blueprint": refinement.blueprint,
                "stage3_voice": refinement.voice,
                "workflow_type": mode.value,
            }
        return {"workflow_type": ContextMode.SINGLE_STAGE_FALLBACK.value}

    def _fail(self, stage: str, message: str) -> ContentWritingResult:
        logger.error(f"[ContentWorkflow] Run failed at {stage}: {message}")

        # The failing stage and everything after it is reported Failed
        failed_from = STAGES.index(stage) if stage in STAGES else 0
        for name in STAGES[failed_from:]:
            self.results[name] = StageStatus.FAILED
        for name in STAGES[:failed_from]:
            self.results.setdefault(name, StageStatus.FAILED)

        self.warnings.append(StageWarning(
            step="Workflow Execution",
            message="Content writing workflow failed",
            error=message,
            impact="No article was generated",
        ))
        self.reporter.update("failed", error=message, current_stage=stage)

        return ContentWritingResult(
            success=False,
            error=message,
            workflow_results={name: self.results[name] for name in STAGES},
            workflow_warnings=self.warnings,
        )
