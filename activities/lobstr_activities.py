"""
Temporal activities for Lobstr.io Google Maps scraping runs

Each activity takes the lobstr-scraper request body and returns its success
envelope. Failures raise ScrapeRunError subclasses carrying the HTTP status
and error type the router reports. The same functions back the
/lobstr-scraper endpoint and ScrapeRunWorkflow.
"""
import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

from pydantic import ValidationError
from sqlalchemy import func
from temporalio import activity

from config import LOBSTR_SQUID_ID
from const import LOBSTR_DEFAULT_MAX_RESULTS, LOBSTR_MAX_RESULTS_PER_SEARCH
from database import SessionLocal
from errors import (
    InvalidRequestError,
    InvalidRunTransition,
    MissingFieldError,
    NoCreditsError,
    RunNotFoundError,
    ScrapeRunError,
    ServiceError,
)
from models import BusinessLead, LobstrRun, ScrapingRun
from schemas import LobstrRequest
from services.lobstr_client import LobstrClient
from services.run_state import RunStatus, can_transition, is_terminal, transition
from services.squid_lease import acquire_squid, release_squid

logger = logging.getLogger(__name__)

ACTIVE_PROVIDER_STATUSES = {"done", "running", "uploading", "aborted"}

STATUS_MESSAGES = {
    "pending": "Scraping task is queued and waiting to start",
    "running": "Scraping is in progress, collecting business data",
    "done": "Scraping completed successfully",
    "failed": "Scraping failed, please try again",
    "aborted": "Scraping was cancelled",
}


def status_message(status: Optional[str]) -> str:
    return STATUS_MESSAGES.get(status, f"Current status: {status}")


def _parse(payload: Dict[str, Any], *required: str) -> LobstrRequest:
    try:
        request = LobstrRequest.model_validate(payload)
    except ValidationError as e:
        raise InvalidRequestError(
            "Invalid request",
            debug={"step": payload.get("type"), "validationErrors": e.errors(include_url=False, include_context=False)},
        ) from e
    missing = [name for name in required if not getattr(request, name)]
    if missing:
        raise MissingFieldError(
            f"Missing required fields: {', '.join(missing)}",
            debug={"step": request.type, "missingFields": missing},
        )
    return request


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _lease_holder(user_id: Optional[str]) -> str:
    return user_id or "anonymous"


def _provider_failure(step: str, error: ServiceError, error_type: str = "PROVIDER_ERROR") -> ScrapeRunError:
    return ScrapeRunError(
        str(error),
        status_code=500,
        error_type=error_type,
        debug={"step": step, "providerResponse": getattr(error, "payload", None)},
    )


# Location handling

def parse_location(location: str) -> Optional[Dict[str, str]]:
    """
    "city, country" or "city, region, country" -> parameter fields; None otherwise
    """
    parts = [part.strip() for part in (location or "").split(",") if part.strip()]
    if len(parts) < 2:
        return None
    return {
        "city": parts[0],
        "region": parts[1] if len(parts) >= 3 else "",
        "country": parts[-1],
        "district": "",
    }


def build_maps_url(query: str, location: str) -> str:
    return f"https://www.google.com/maps/search/{quote(f'{query} in {location}')}"


def build_tasks(query: str, location: str) -> Tuple[List[Dict[str, Any]], str]:
    """
    Parameter tasks are preferred; a Maps search URL is the fallback
    """
    parsed = parse_location(location)
    if parsed:
        return [{
            "city": parsed["city"],
            "category": query,
            "country": parsed["country"],
            "region": parsed["region"],
            "district": parsed["district"],
        }], "parameters"
    return [{"url": build_maps_url(query, location)}], "url"


# Shared provider steps

async def _empty_squid(client: LobstrClient, squid_id: str) -> Dict[str, Any]:
    tasks = await client.list_tasks(squid_id)
    deleted, failed = 0, []
    for task in tasks:
        try:
            await client.delete_task(task["id"])
            deleted += 1
        except ServiceError as e:
            logger.warning(f"[Lobstr] Could not delete task {task.get('id')}: {str(e)}")
            failed.append(task.get("id"))

    remaining = await client.list_tasks(squid_id)
    summary = {"found": len(tasks), "deleted": deleted, "failed": failed, "remaining": len(remaining)}
    if remaining or failed:
        summary["warning"] = f"{len(remaining)} task(s) could not be removed from squid {squid_id}"
    logger.info(f"[Lobstr] Emptied squid {squid_id}: {summary}")
    return summary


async def _halt_provider_run(client: LobstrClient, run_id: str) -> str:
    """
    Abort a provider run, falling back to stop

    Returns:
        'abort' or 'stop'
    """
    try:
        await client.abort_run(run_id)
        return "abort"
    except ServiceError as e:
        logger.warning(f"[Lobstr] Abort failed for run {run_id}, falling back to stop: {str(e)}")
    await client.stop_run(run_id)
    return "stop"


def _load_run(db, run_record_id: str) -> LobstrRun:
    run = db.query(LobstrRun).filter(LobstrRun.id == run_record_id).first()
    if not run:
        raise RunNotFoundError(f"Run record not found: {run_record_id}", debug={"runRecordId": run_record_id})
    return run


def _load_run_by_provider_id(db, provider_run_id: str) -> Optional[LobstrRun]:
    return db.query(LobstrRun).filter(LobstrRun.run_id == provider_run_id).first()


def _set_status(run_record_id: str, status: RunStatus, error: Optional[str] = None) -> None:
    db = SessionLocal()
    try:
        run = _load_run(db, run_record_id)
        if can_transition(run.status, status):
            transition(run, status)
            if error:
                run.error_message = error
            db.commit()
    finally:
        db.close()


def _finish_run(db, run: LobstrRun) -> None:
    """Side effects of a run reaching a terminal status"""
    release_squid(run.squid_id, _lease_holder(run.user_id))

    if run.scraping_run_id:
        campaign = db.query(ScrapingRun).filter(ScrapingRun.id == run.scraping_run_id).first()
        if campaign:
            campaign.status = "completed" if run.status in ("completed", "target_reached") else run.status
            campaign.completed_at = _now()

    if run.parent_campaign_id:
        parent = db.query(LobstrRun).filter(LobstrRun.id == run.parent_campaign_id).first()
        if parent:
            parent.searches_completed = (parent.searches_completed or 0) + 1
            if parent.searches_completed >= (parent.searches_total or 1) and can_transition(parent.status, RunStatus.COMPLETED):
                transition(parent, RunStatus.COMPLETED)


def _record_provider_state(run_record_id: str, provider_status: Optional[str]) -> str:
    """
    Reflect a provider run that is not collectable yet. A failed provider run
    fails the row and releases the squid; other states leave it unchanged.
    """
    db = SessionLocal()
    try:
        run = _load_run(db, run_record_id)
        if provider_status == "failed" and not is_terminal(run.status):
            transition(run, RunStatus.FAILED)
            run.error_message = status_message(provider_status)
            _finish_run(db, run)
            db.commit()
            logger.warning(f"[Lobstr] Provider run {run.run_id} failed, run {run.id} marked failed")
        return run.status
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


async def _submit_tasks(client: LobstrClient, run_record_id: str) -> Dict[str, Any]:
    """
    Push the run's query/location to the squid as tasks
    """
    db = SessionLocal()
    try:
        run = _load_run(db, run_record_id)
        transition(run, RunStatus.TASKS_BEING_ADDED)
        db.commit()
        squid_id, query, location = run.squid_id, run.query, run.location
    finally:
        db.close()

    tasks, task_type = build_tasks(query, location)
    try:
        response = await client.add_tasks(squid_id, tasks)
    except ServiceError as e:
        _set_status(run_record_id, RunStatus.FAILED, str(e))
        raise _provider_failure("add_tasks", e, "ADD_TASKS_ERROR") from e

    db = SessionLocal()
    try:
        run = _load_run(db, run_record_id)
        run.task_creation_type = task_type
        db.commit()
    finally:
        db.close()

    logger.info(f"[Lobstr] Added {len(tasks)} {task_type} task(s) to squid {squid_id}")
    return {"tasks": tasks, "taskType": task_type, "tasksResponse": response}


async def _launch(client: LobstrClient, run_record_id: str) -> Dict[str, Any]:
    db = SessionLocal()
    try:
        run = _load_run(db, run_record_id)
        squid_id = run.squid_id
    finally:
        db.close()

    try:
        launch = await client.start_run(squid_id)
    except NoCreditsError as e:
        _set_status(run_record_id, RunStatus.FAILED, e.message)
        raise ScrapeRunError(
            e.message, status_code=402, error_type="NO_CREDITS",
            debug={"step": "launch_run", "providerResponse": e.payload},
        ) from e
    except ServiceError as e:
        _set_status(run_record_id, RunStatus.FAILED, str(e))
        raise _provider_failure("launch_run", e, "LAUNCH_ERROR") from e

    provider_run_id = launch.get("id") if isinstance(launch, dict) else None
    if not provider_run_id:
        _set_status(run_record_id, RunStatus.FAILED, "Launch response had no run id")
        raise ScrapeRunError("Launch response had no run id", error_type="LAUNCH_ERROR",
                             debug={"step": "launch_run", "providerResponse": launch})

    db = SessionLocal()
    try:
        run = _load_run(db, run_record_id)
        transition(run, RunStatus.RUNNING)
        run.run_id = provider_run_id
        run.started_at = _now()

        if run.scraping_run_id:
            campaign = db.query(ScrapingRun).filter(ScrapingRun.id == run.scraping_run_id).first()
            if campaign:
                campaign.status = "running"
                campaign.lobstr_run_id = run.id
                campaign.started_at = run.started_at

        if run.parent_campaign_id:
            parent = db.query(LobstrRun).filter(LobstrRun.id == run.parent_campaign_id).first()
            if parent and parent.status == RunStatus.PLANNED.value:
                transition(parent, RunStatus.RUNNING)
                parent.started_at = run.started_at
        db.commit()
    finally:
        db.close()

    logger.info(f"[Lobstr] Launched provider run {provider_run_id} for run record {run_record_id}")
    return {"providerRunId": provider_run_id, "launchResponse": launch}


# Operations

@activity.defn
async def prepare_squid(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Lease the shared squid, empty its tasks and apply this run's settings
    """
    request = _parse(payload, "query", "location")
    squid_id = LOBSTR_SQUID_ID
    max_results = request.max_results or LOBSTR_DEFAULT_MAX_RESULTS
    holder = _lease_holder(request.user_id)

    acquire_squid(squid_id, holder)
    client = LobstrClient()
    try:
        cleanup = await _empty_squid(client, squid_id)
        settings = await client.update_squid(squid_id, max_results)
    except ServiceError as e:
        release_squid(squid_id, holder)
        raise _provider_failure("prepare_squid", e) from e

    response = {
        "success": True,
        "squidId": squid_id,
        "maxResults": max_results,
        "message": "Squid prepared successfully",
        "debugData": {"step": "prepare_squid", "taskCleanup": cleanup, "settingsResponse": settings},
    }
    if cleanup.get("warning"):
        response["warning"] = cleanup["warning"]
    return response


@activity.defn
async def add_tasks(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Create or reuse the user's run row for the squid and submit its tasks
    """
    request = _parse(payload, "query", "location", "user_id")
    squid_id = LOBSTR_SQUID_ID
    max_results = request.max_results or LOBSTR_DEFAULT_MAX_RESULTS
    warning = None

    db = SessionLocal()
    try:
        # Upsert on user + squid, ignoring multi-search rows
        run = db.query(LobstrRun).filter(
            LobstrRun.user_id == request.user_id,
            LobstrRun.squid_id == squid_id,
            LobstrRun.parent_campaign_id.is_(None),
            LobstrRun.search_index.is_(None),
        ).first()

        if run:
            transition(run, RunStatus.TASKS_BEING_ADDED)
        else:
            run = LobstrRun(squid_id=squid_id, user_id=request.user_id, status=RunStatus.TASKS_BEING_ADDED.value)
            db.add(run)

        run.query = request.query
        run.location = request.location
        run.max_results = max_results
        run.abort_limit = None
        run.run_id = None
        run.search_session_id = str(uuid.uuid4())
        run.results_count = 0
        run.results_saved_count = 0
        run.total_results_found = 0
        run.error_message = None
        run.started_at = None
        run.completed_at = None
        db.commit()
        run_record_id = run.id

        campaign = ScrapingRun(
            user_id=request.user_id,
            query=request.query,
            location=request.location,
            max_results=max_results,
            status="pending",
            lobstr_squid_id=squid_id,
        )
        try:
            db.add(campaign)
            db.commit()
            run.scraping_run_id = campaign.id
            db.commit()
        except Exception as e:
            db.rollback()
            warning = f"Failed to create campaign record: {str(e)}"
            logger.warning(f"[Lobstr] {warning}")
        campaign_id = run.scraping_run_id
    finally:
        db.close()

    submitted = await _submit_tasks(LobstrClient(), run_record_id)

    response = {
        "success": True,
        "runId": run_record_id,
        "campaignId": campaign_id,
        "taskType": submitted["taskType"],
        "tasks": submitted["tasks"],
        "message": "Tasks added successfully",
        "debugData": {"step": "add_tasks", "tasksResponse": submitted["tasksResponse"]},
    }
    if warning:
        response["warning"] = warning
    return response


@activity.defn
async def launch_run(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Launch the run record `runId`. Planned multi-search children get their
    squid prepared and tasks submitted first.
    """
    request = _parse(payload, "run_id")
    client = LobstrClient()

    db = SessionLocal()
    try:
        run = _load_run(db, request.run_id)
        if run.status not in (RunStatus.PLANNED.value, RunStatus.TASKS_BEING_ADDED.value):
            raise InvalidRunTransition(run.status, RunStatus.RUNNING.value)
        needs_tasks = run.status == RunStatus.PLANNED.value
        squid_id, holder, max_results = run.squid_id, _lease_holder(run.user_id), run.max_results
    finally:
        db.close()

    debug: Dict[str, Any] = {"step": "launch_run"}
    if needs_tasks:
        acquire_squid(squid_id, holder)
        try:
            debug["taskCleanup"] = await _empty_squid(client, squid_id)
            await client.update_squid(squid_id, max_results or LOBSTR_DEFAULT_MAX_RESULTS)
        except ServiceError as e:
            release_squid(squid_id, holder)
            raise _provider_failure("launch_run", e) from e
        debug["tasks"] = (await _submit_tasks(client, request.run_id))["tasks"]

    try:
        launched = await _launch(client, request.run_id)
    except ScrapeRunError:
        release_squid(squid_id, holder)
        raise

    debug["launchResponse"] = launched["launchResponse"]
    return {
        "success": True,
        "runId": launched["providerRunId"],
        "runRecordId": request.run_id,
        "status": RunStatus.RUNNING.value,
        "message": "Scraping run launched successfully",
        "debugData": debug,
    }


@activity.defn
async def get_status(payload: Dict[str, Any]) -> Dict[str, Any]:
    request = _parse(payload, "run_id")
    try:
        run = await LobstrClient().get_run(request.run_id)
    except ServiceError as e:
        raise _provider_failure("get_status", e) from e

    status = run.get("status")
    return {
        "success": True,
        "status": status,
        "message": status_message(status),
        "totalResults": run.get("total_results", 0),
        "progress": run.get("done_percent"),
        "exportDone": run.get("export_done", False),
        "debugData": {"step": "get_status", "providerResponse": run},
    }


@activity.defn
async def get_results(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Enforce the run's lead limit, then append newly available results as leads.

    If the provider is still running and has reached the limit, the run is
    aborted (stop as fallback) before collecting; if both fail, collection
    still goes ahead. Sequence numbers continue from the highest already
    saved for this provider run, so repeated calls append only records beyond
    those already stored. The cursor is positional: it relies on the provider
    returning a run's results in the same order on every poll.

    A provider run reported as failed moves the row to failed and releases
    the squid.
    """
    request = _parse(payload, "run_id")
    provider_run_id = request.run_id
    client = LobstrClient()

    db = SessionLocal()
    try:
        run = _load_run_by_provider_id(db, provider_run_id)
        if not run:
            raise RunNotFoundError(f"Run record not found for run {provider_run_id}",
                                   debug={"step": "get_results", "runId": provider_run_id})
        run_record_id = run.id
        squid_id = run.squid_id
        limit = run.abort_limit or run.max_results or LOBSTR_DEFAULT_MAX_RESULTS
        search = {
            "query": run.query,
            "location": run.location,
            "maxResults": run.max_results,
            "abortLimit": run.abort_limit,
        }
    finally:
        db.close()

    try:
        provider_run = await client.get_run(provider_run_id)
        provider_status = provider_run.get("status")
        total_results = provider_run.get("total_results") or 0

        target_reached = False
        halt_method = None
        halt_error = None
        if provider_status == "running" and total_results >= limit:
            logger.info(f"[Lobstr] Run {provider_run_id} reached {total_results}/{limit}, halting")
            target_reached = True
            try:
                halt_method = await _halt_provider_run(client, provider_run_id)
            except ServiceError as e:
                halt_error = str(e)
                logger.error(
                    f"[Lobstr] Both abort and stop failed for run {provider_run_id}, "
                    f"continuing with results collection: {halt_error}"
                )

        if provider_status not in ACTIVE_PROVIDER_STATUSES and not target_reached:
            run_status = _record_provider_state(run_record_id, provider_status)
            return {
                "success": True,
                "ready": False,
                "providerStatus": provider_status,
                "runStatus": run_status,
                "savedCount": 0,
                "message": status_message(provider_status),
                "debugData": {"step": "get_results", "providerResponse": provider_run},
            }

        records = await client.get_all_results(squid_id, provider_run_id, limit)
    except ServiceError as e:
        raise _provider_failure("get_results", e) from e

    db = SessionLocal()
    try:
        run = _load_run(db, run_record_id)
        last_sequence = db.query(func.max(BusinessLead.scraped_sequence)).filter(
            BusinessLead.provider_run_id == provider_run_id
        ).scalar() or 0
        new_records = records[last_sequence:]

        for offset, record in enumerate(new_records):
            db.add(_lead_from_record(record, run, provider_run_id, last_sequence + offset + 1,
                                     request.search_categories))

        run.results_count = len(records)
        run.results_saved_count = last_sequence + len(new_records)
        run.total_results_found = total_results

        if target_reached:
            next_status = RunStatus.TARGET_REACHED
        elif provider_status == "done":
            next_status = RunStatus.COMPLETED
        elif provider_status == "aborted":
            next_status = RunStatus.ABORTED
        else:
            next_status = RunStatus.RUNNING

        was_terminal = is_terminal(run.status)
        if can_transition(run.status, next_status):
            transition(run, next_status)
        if is_terminal(run.status) and not was_terminal:
            _finish_run(db, run)

        db.commit()
        run_status = run.status
        total_saved = run.results_saved_count
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    logger.info(
        f"[Lobstr] Run {provider_run_id}: saved {len(new_records)} new lead(s), "
        f"{total_saved} total, status {run_status}"
    )
    return {
        "success": True,
        "ready": True,
        "providerStatus": provider_status,
        "runStatus": run_status,
        "totalResults": total_results,
        "resultsCount": len(records),
        "savedCount": len(new_records),
        "totalSaved": total_saved,
        "targetReached": target_reached,
        "searchSummary": search,
        "message": f"Saved {len(new_records)} new business leads ({total_saved} total)",
        "debugData": {
            "step": "get_results",
            "haltMethod": halt_method,
            "haltError": halt_error,
            "providerStatus": provider_status,
        },
    }


def _float(value: Any) -> Optional[float]:
    try:
        return float(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def _int(value: Any) -> Optional[int]:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def _lead_from_record(record: Dict[str, Any], run: LobstrRun, provider_run_id: str,
                      sequence: int, search_categories: List[str]) -> BusinessLead:
    return BusinessLead(
        name=record.get("name") or record.get("title"),
        address=record.get("address"),
        phone=record.get("phone") or record.get("phone_number"),
        email=record.get("email"),
        website=record.get("website") or record.get("url"),
        rating=_float(record.get("rating") or record.get("score")),
        reviews_count=_int(record.get("reviews_count") or record.get("number_of_reviews")),
        category=record.get("category") or record.get("type"),
        activity=record.get("activity"),
        latitude=_float(record.get("latitude")),
        longitude=_float(record.get("longitude")),
        place_id=record.get("place_id"),
        google_id=record.get("google_id") or record.get("cid"),
        cid=record.get("cid"),
        google_url=record.get("google_url") or record.get("url"),
        social_media=record.get("social_media") or {},
        search_query=run.query,
        search_location=run.location,
        search_categories=search_categories or ([run.query] if run.query else []),
        user_id=run.user_id,
        lobstr_run_id=run.id,
        provider_run_id=provider_run_id,
        scraped_sequence=sequence,
        processing_status="raw",
    )


@activity.defn
async def save_incremental(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Re-entrant polling entry point; appends whatever is newly available"""
    result = await get_results(payload)
    result["incremental"] = True
    return result


@activity.defn
async def start_multi_search(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Fan a large lead target out over several searches of at most 200 results.

    Creates a parent row plus one child per search and launches the first
    child; the others stay planned until launched with launch_run.
    """
    request = _parse(payload, "query", "location", "target_leads", "user_id")
    target = request.target_leads
    searches_needed = max(1, math.ceil(target / LOBSTR_MAX_RESULTS_PER_SEARCH))
    results_per_search = min(target, LOBSTR_MAX_RESULTS_PER_SEARCH)

    db = SessionLocal()
    try:
        parent = LobstrRun(
            squid_id=LOBSTR_SQUID_ID,
            user_id=request.user_id,
            query=request.query,
            location=request.location,
            max_results=LOBSTR_MAX_RESULTS_PER_SEARCH,
            abort_limit=target,
            status=RunStatus.PLANNED.value,
            search_index=0,
            searches_total=searches_needed,
            searches_completed=0,
            search_batch_size=results_per_search,
            search_session_id=str(uuid.uuid4()),
        )
        db.add(parent)
        db.flush()

        children = []
        for index in range(1, searches_needed + 1):
            allocation = min(LOBSTR_MAX_RESULTS_PER_SEARCH, target - LOBSTR_MAX_RESULTS_PER_SEARCH * (index - 1))
            child = LobstrRun(
                squid_id=LOBSTR_SQUID_ID,
                user_id=request.user_id,
                query=request.query,
                location=request.location,
                max_results=allocation,
                abort_limit=allocation,
                status=RunStatus.PLANNED.value,
                parent_campaign_id=parent.id,
                search_index=index,
                search_session_id=parent.search_session_id,
                geographic_segment={
                    "segment_index": index,
                    "original_location": request.location,
                    "segment_location": request.location,
                },
            )
            db.add(child)
            children.append(child)
        db.commit()

        parent_id = parent.id
        child_ids = [child.id for child in children]
    finally:
        db.close()

    logger.info(f"[Lobstr] Multi-search {parent_id}: {searches_needed} search(es) for {target} leads")

    launched = await launch_run({"type": "launch_run", "runId": child_ids[0], "userId": request.user_id})

    db = SessionLocal()
    try:
        rows = db.query(LobstrRun).filter(LobstrRun.id.in_(child_ids)).order_by(LobstrRun.search_index).all()
        search_runs = [
            {
                "id": row.id,
                "searchIndex": row.search_index,
                "status": row.status,
                "maxResults": row.max_results,
                "runId": row.run_id,
            }
            for row in rows
        ]
    finally:
        db.close()

    return {
        "success": True,
        "campaignId": parent_id,
        "searchRuns": search_runs,
        "totalSearches": searches_needed,
        "targetLeads": target,
        "batchSize": results_per_search,
        "runId": launched["runId"],
        "message": f"Started search 1 of {searches_needed}",
        "debugData": {"step": "start_multi_search", "launch": launched["debugData"]},
    }


async def _record_halt(provider_run_id: str, status: RunStatus) -> Optional[str]:
    db = SessionLocal()
    try:
        run = _load_run_by_provider_id(db, provider_run_id)
        if not run:
            logger.warning(f"[Lobstr] No run record for provider run {provider_run_id}")
            return None
        if not can_transition(run.status, status):
            logger.info(f"[Lobstr] Run {run.id} already {run.status}, not marking {status.value}")
            return run.status
        transition(run, status)
        _finish_run(db, run)
        db.commit()
        return run.status
    finally:
        db.close()


@activity.defn
async def stop_run(payload: Dict[str, Any]) -> Dict[str, Any]:
    request = _parse(payload, "run_id")
    try:
        response = await LobstrClient().stop_run(request.run_id)
    except ServiceError as e:
        raise _provider_failure("stop_run", e, "STOP_ERROR") from e

    run_status = await _record_halt(request.run_id, RunStatus.STOPPED)
    return {
        "success": True,
        "runId": request.run_id,
        "runStatus": run_status,
        "message": "Scraping run stopped",
        "debugData": {"step": "stop_run", "providerResponse": response},
    }


@activity.defn
async def abort_run(payload: Dict[str, Any]) -> Dict[str, Any]:
    request = _parse(payload, "run_id")
    try:
        method = await _halt_provider_run(LobstrClient(), request.run_id)
    except ServiceError as e:
        raise _provider_failure("abort_run", e, "ABORT_ERROR") from e

    run_status = await _record_halt(request.run_id, RunStatus.ABORTED)
    return {
        "success": True,
        "runId": request.run_id,
        "runStatus": run_status,
        "method": method,
        "message": "Scraping run aborted" if method == "abort" else "Abort failed, scraping run stopped instead",
        "debugData": {"step": "abort_run", "method": method},
    }


@activity.defn
async def get_geolocation(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Show how a location string will be targeted by add_tasks
    """
    request = _parse(payload, "location")
    parsed = parse_location(request.location)
    response = {
        "success": True,
        "location": request.location,
        "taskType": "parameters" if parsed else "url",
        "geolocation": parsed,
        "debugData": {"step": "get_geolocation"},
    }
    if not parsed:
        response["searchUrl"] = build_maps_url(request.query or "businesses", request.location)
    return response


LOBSTR_OPERATIONS = {
    "prepare_squid": prepare_squid,
    "add_tasks": add_tasks,
    "launch_run": launch_run,
    "get_status": get_status,
    "get_results": get_results,
    "save_incremental": save_incremental,
    "start_multi_search": start_multi_search,
    "stop_run": stop_run,
    "abort_run": abort_run,
    "get_geolocation": get_geolocation,
}
