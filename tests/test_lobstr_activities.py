"""
Tests for the Lobstr scrape run operations against an in-memory fake of
the Lobstr.io API served through httpx.MockTransport.
"""
import json

import httpx
import pytest

from activities import lobstr_activities as ops
from config import LOBSTR_SQUID_ID
from errors import InvalidRunTransition, MissingFieldError, ScrapeRunError, SquidBusyError
from models import BusinessLead, LobstrRun, ScrapingRun, SquidLease
from services.lobstr_client import LobstrClient
from services.squid_lease import acquire_squid


class FakeLobstr:
    """Just enough of api.lobstr.io/v1 to drive a run end to end."""

    def __init__(self):
        self.tasks = []
        self.runs = {}
        self.results = {}
        self.no_credits = False
        self.abort_fails = False
        self.stop_fails = False
        self.calls = []
        self._task_seq = 0

    def add_results(self, run_id, count, status="running"):
        self.results[run_id] = [
            {"name": f"Business {i}", "place_id": f"place-{i}", "rating": "4.5", "phone": f"555-{i:04d}"}
            for i in range(1, count + 1)
        ]
        self.runs[run_id]["total_results"] = count
        self.runs[run_id]["status"] = status

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path[len("/v1"):]
        method = request.method
        self.calls.append((method, path))

        if path == "/tasks" and method == "GET":
            return httpx.Response(200, json={"data": list(self.tasks)})
        if path.startswith("/tasks/") and method == "DELETE":
            task_id = path.rsplit("/", 1)[1]
            self.tasks = [task for task in self.tasks if task["id"] != task_id]
            return httpx.Response(200, json={"deleted": True})
        if path == "/tasks" and method == "POST":
            body = json.loads(request.content)
            for task in body["tasks"]:
                self._task_seq += 1
                self.tasks.append(dict(task, id=f"task-{self._task_seq}"))
            return httpx.Response(200, json={"tasks": self.tasks})
        if path.startswith("/squids/") and method == "POST":
            return httpx.Response(200, json={"id": path.rsplit("/", 1)[1], **json.loads(request.content)})
        if path == "/runs" and method == "POST":
            if self.no_credits:
                return httpx.Response(400, json={"errors": {"type": "NoMoreCredits"}})
            run_id = f"run-{len(self.runs) + 1}"
            self.runs[run_id] = {"id": run_id, "status": "running", "total_results": 0}
            self.results[run_id] = []
            return httpx.Response(200, json=self.runs[run_id])
        if path.startswith("/runs/") and path.endswith("/abort"):
            run_id = path.split("/")[2]
            if self.abort_fails:
                return httpx.Response(500, json={"error": "abort unavailable"})
            self.runs[run_id]["status"] = "aborted"
            return httpx.Response(200, json=self.runs[run_id])
        if path.startswith("/runs/") and path.endswith("/stop"):
            run_id = path.split("/")[2]
            if self.stop_fails:
                return httpx.Response(500, json={"error": "stop unavailable"})
            self.runs[run_id]["status"] = "done"
            return httpx.Response(200, json=self.runs[run_id])
        if path.startswith("/runs/") and method == "GET":
            return httpx.Response(200, json=self.runs[path.split("/")[2]])
        if path == "/results" and method == "GET":
            run_id = request.url.params["run"]
            page = int(request.url.params["page"])
            size = int(request.url.params["page_size"])
            records = self.results.get(run_id, [])
            return httpx.Response(200, json={"data": records[(page - 1) * size:page * size]})
        return httpx.Response(404, json={"error": f"unexpected {method} {path}"})


@pytest.fixture
def lobstr(monkeypatch):
    fake = FakeLobstr()
    transport = httpx.MockTransport(fake.handler)
    monkeypatch.setattr(ops, "LobstrClient", lambda: LobstrClient(api_key="test", transport=transport))
    return fake


async def _start_run(user_id="user-1", location="Austin, Texas, United States", max_results=50):
    await ops.prepare_squid({"type": "prepare_squid", "query": "roofers", "location": location,
                             "maxResults": max_results, "userId": user_id})
    added = await ops.add_tasks({"type": "add_tasks", "query": "roofers", "location": location,
                                 "maxResults": max_results, "userId": user_id})
    launched = await ops.launch_run({"type": "launch_run", "runId": added["runId"], "userId": user_id})
    return added["runId"], launched["runId"]


def _sequences(session, provider_run_id):
    session.expire_all()
    leads = session.query(BusinessLead).filter(BusinessLead.provider_run_id == provider_run_id).all()
    return sorted(lead.scraped_sequence for lead in leads)


# ===================================================================
# Location handling
# ===================================================================

class TestLocationParsing:

    def test_city_country(self):
        assert ops.parse_location("Paris, France") == {
            "city": "Paris", "region": "", "country": "France", "district": "",
        }

    def test_city_region_country(self):
        parsed = ops.parse_location("Austin, Texas, United States")
        assert parsed["city"] == "Austin"
        assert parsed["region"] == "Texas"
        assert parsed["country"] == "United States"

    def test_single_token_is_not_parsed(self):
        assert ops.parse_location("Austin") is None

    def test_build_tasks_url_fallback(self):
        tasks, task_type = ops.build_tasks("roofers", "Austin")
        assert task_type == "url"
        assert tasks == [{"url": "https://www.google.com/maps/search/roofers%20in%20Austin"}]

    def test_build_tasks_parameters(self):
        tasks, task_type = ops.build_tasks("roofers", "Paris, France")
        assert task_type == "parameters"
        assert tasks[0]["category"] == "roofers"
        assert tasks[0]["city"] == "Paris"


# ===================================================================
# Squid preparation and task submission
# ===================================================================

class TestPrepareAndAddTasks:

    @pytest.mark.asyncio
    async def test_prepare_empties_squid_and_takes_lease(self, lobstr, db_session):
        lobstr.tasks = [{"id": "old-1"}, {"id": "old-2"}]

        result = await ops.prepare_squid({"type": "prepare_squid", "query": "roofers",
                                          "location": "Austin", "userId": "user-1"})

        assert result["success"] is True
        assert result["maxResults"] == 50
        assert result["debugData"]["taskCleanup"]["deleted"] == 2
        assert "warning" not in result
        assert lobstr.tasks == []
        lease = db_session.query(SquidLease).filter(SquidLease.squid_id == LOBSTR_SQUID_ID).first()
        assert lease.holder == "user-1"

    @pytest.mark.asyncio
    async def test_prepare_requires_query_and_location(self, lobstr):
        with pytest.raises(MissingFieldError) as exc_info:
            await ops.prepare_squid({"type": "prepare_squid", "query": "roofers"})
        assert exc_info.value.status_code == 400
        assert "location" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_prepare_refused_while_another_user_holds_squid(self, lobstr):
        acquire_squid(LOBSTR_SQUID_ID, "someone-else")

        with pytest.raises(SquidBusyError) as exc_info:
            await ops.prepare_squid({"type": "prepare_squid", "query": "roofers",
                                     "location": "Austin", "userId": "user-1"})
        assert exc_info.value.status_code == 409
        assert not any(call[0] == "DELETE" for call in lobstr.calls)

    @pytest.mark.asyncio
    async def test_add_tasks_creates_run_and_campaign(self, lobstr, db_session):
        result = await ops.add_tasks({"type": "add_tasks", "query": "roofers",
                                      "location": "Austin, Texas, United States", "userId": "user-1"})

        assert result["taskType"] == "parameters"
        assert result["campaignId"]
        run = db_session.query(LobstrRun).filter(LobstrRun.id == result["runId"]).first()
        assert run.status == "tasks_being_added"
        assert run.task_creation_type == "parameters"
        assert run.parent_campaign_id is None
        assert db_session.query(ScrapingRun).count() == 1
        assert lobstr.tasks[0]["city"] == "Austin"

    @pytest.mark.asyncio
    async def test_add_tasks_requires_user(self, lobstr):
        with pytest.raises(MissingFieldError):
            await ops.add_tasks({"type": "add_tasks", "query": "roofers", "location": "Austin"})


# ===================================================================
# Launching
# ===================================================================

class TestLaunch:

    @pytest.mark.asyncio
    async def test_launch_marks_run_running(self, lobstr, db_session):
        record_id, provider_run_id = await _start_run()

        run = db_session.query(LobstrRun).filter(LobstrRun.id == record_id).first()
        assert provider_run_id == "run-1"
        assert run.status == "running"
        assert run.run_id == "run-1"
        assert run.started_at is not None

    @pytest.mark.asyncio
    async def test_no_credits(self, lobstr, db_session):
        lobstr.no_credits = True

        with pytest.raises(ScrapeRunError) as exc_info:
            await _start_run()

        error = exc_info.value
        assert error.status_code == 402
        assert error.error_type == "NO_CREDITS"
        assert "No more Lobstr.io credits available" in error.message
        run = db_session.query(LobstrRun).first()
        assert run.status == "failed"
        assert db_session.query(SquidLease).count() == 0

    @pytest.mark.asyncio
    async def test_launch_rejects_running_row(self, lobstr):
        record_id, _ = await _start_run()
        with pytest.raises(InvalidRunTransition):
            await ops.launch_run({"type": "launch_run", "runId": record_id})


# ===================================================================
# Result collection
# ===================================================================

class TestGetResults:

    @pytest.mark.asyncio
    async def test_target_enforced_with_abort(self, lobstr, db_session):
        record_id, provider_run_id = await _start_run(max_results=50)
        lobstr.add_results(provider_run_id, 60)

        result = await ops.get_results({"type": "get_results", "runId": provider_run_id})

        assert result["targetReached"] is True
        assert result["runStatus"] == "target_reached"
        assert result["debugData"]["haltMethod"] == "abort"
        assert result["savedCount"] == 50
        assert _sequences(db_session, provider_run_id) == list(range(1, 51))
        assert lobstr.runs[provider_run_id]["status"] == "aborted"
        assert db_session.query(SquidLease).count() == 0

        run = db_session.query(LobstrRun).filter(LobstrRun.id == record_id).first()
        assert run.results_saved_count == 50
        assert run.total_results_found == 60
        assert run.completed_at is not None

    @pytest.mark.asyncio
    async def test_stop_used_when_abort_fails(self, lobstr):
        _, provider_run_id = await _start_run(max_results=50)
        lobstr.add_results(provider_run_id, 55)
        lobstr.abort_fails = True

        result = await ops.get_results({"type": "get_results", "runId": provider_run_id})

        assert result["debugData"]["haltMethod"] == "stop"
        assert ("POST", f"/runs/{provider_run_id}/stop") in lobstr.calls
        assert result["runStatus"] == "target_reached"

    @pytest.mark.asyncio
    async def test_results_saved_when_abort_and_stop_fail(self, lobstr, db_session):
        _, provider_run_id = await _start_run(max_results=50)
        lobstr.add_results(provider_run_id, 60)
        lobstr.abort_fails = True
        lobstr.stop_fails = True

        result = await ops.get_results({"type": "get_results", "runId": provider_run_id})

        assert result["targetReached"] is True
        assert result["runStatus"] == "target_reached"
        assert result["debugData"]["haltMethod"] is None
        assert "stop unavailable" in result["debugData"]["haltError"]
        assert result["savedCount"] == 50
        assert _sequences(db_session, provider_run_id) == list(range(1, 51))

    @pytest.mark.asyncio
    async def test_target_reached_row_reused_by_next_run(self, lobstr, db_session):
        record_id, first_run = await _start_run(max_results=50)
        lobstr.add_results(first_run, 60)
        first = await ops.get_results({"type": "get_results", "runId": first_run})
        assert first["runStatus"] == "target_reached"

        second_record_id, second_run = await _start_run(max_results=50)

        db_session.expire_all()
        run = db_session.query(LobstrRun).filter(LobstrRun.id == record_id).one()
        assert second_record_id == record_id
        assert second_run != first_run
        assert run.run_id == second_run
        assert run.status == "running"
        assert db_session.query(SquidLease).count() == 1

    @pytest.mark.asyncio
    async def test_failed_provider_run_fails_row(self, lobstr, db_session):
        record_id, provider_run_id = await _start_run()
        lobstr.runs[provider_run_id]["status"] = "failed"

        result = await ops.get_results({"type": "get_results", "runId": provider_run_id})

        assert result["ready"] is False
        assert result["runStatus"] == "failed"
        assert result["message"] == "Scraping failed, please try again"

        db_session.expire_all()
        run = db_session.query(LobstrRun).filter(LobstrRun.id == record_id).one()
        assert run.status == "failed"
        assert run.completed_at is not None
        assert db_session.query(SquidLease).count() == 0

        campaign = db_session.query(ScrapingRun).one()
        assert campaign.status == "failed"

    @pytest.mark.asyncio
    async def test_pending_run_keeps_row_status(self, lobstr):
        _, provider_run_id = await _start_run()
        lobstr.runs[provider_run_id]["status"] = "pending"

        result = await ops.get_results({"type": "get_results", "runId": provider_run_id})
        assert result["runStatus"] == "running"

    @pytest.mark.asyncio
    async def test_incremental_saves_continue_sequence(self, lobstr, db_session):
        _, provider_run_id = await _start_run(max_results=50)

        lobstr.add_results(provider_run_id, 20)
        first = await ops.save_incremental({"type": "save_incremental", "runId": provider_run_id})
        lobstr.add_results(provider_run_id, 35)
        second = await ops.save_incremental({"type": "save_incremental", "runId": provider_run_id})
        lobstr.add_results(provider_run_id, 35, status="done")
        final = await ops.save_incremental({"type": "save_incremental", "runId": provider_run_id})

        assert (first["savedCount"], second["savedCount"], final["savedCount"]) == (20, 15, 0)
        assert first["runStatus"] == "running"
        assert final["runStatus"] == "completed"
        assert final["incremental"] is True
        assert _sequences(db_session, provider_run_id) == list(range(1, 36))

    @pytest.mark.asyncio
    async def test_new_provider_run_restarts_sequence(self, lobstr, db_session):
        _, first_run = await _start_run()
        lobstr.add_results(first_run, 10, status="done")
        await ops.get_results({"type": "get_results", "runId": first_run})

        _, second_run = await _start_run()
        lobstr.add_results(second_run, 4, status="done")
        await ops.get_results({"type": "get_results", "runId": second_run})

        assert second_run != first_run
        assert _sequences(db_session, first_run) == list(range(1, 11))
        assert _sequences(db_session, second_run) == [1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_pending_run_not_ready(self, lobstr):
        _, provider_run_id = await _start_run()
        lobstr.runs[provider_run_id]["status"] = "pending"

        result = await ops.get_results({"type": "get_results", "runId": provider_run_id})

        assert result["ready"] is False
        assert result["message"] == "Scraping task is queued and waiting to start"

    @pytest.mark.asyncio
    async def test_unknown_run(self, lobstr):
        with pytest.raises(ScrapeRunError) as exc_info:
            await ops.get_results({"type": "get_results", "runId": "missing"})
        assert exc_info.value.error_type == "RUN_NOT_FOUND"


# ===================================================================
# Multi-search campaigns
# ===================================================================

class TestMultiSearch:

    @pytest.mark.asyncio
    async def test_target_split_into_searches(self, lobstr, db_session):
        result = await ops.start_multi_search({
            "type": "start_multi_search", "query": "roofers",
            "location": "Austin, Texas, United States", "targetLeads": 500, "userId": "user-1",
        })

        assert result["totalSearches"] == 3
        assert result["targetLeads"] == 500
        assert result["batchSize"] == 200
        assert [run["maxResults"] for run in result["searchRuns"]] == [200, 200, 100]
        assert [run["status"] for run in result["searchRuns"]] == ["running", "planned", "planned"]

        parent = db_session.query(LobstrRun).filter(LobstrRun.id == result["campaignId"]).first()
        assert parent.abort_limit == 500
        assert parent.max_results == 200
        assert parent.searches_total == 3
        assert parent.status == "running"

    @pytest.mark.asyncio
    async def test_next_search_launched_after_previous_completes(self, lobstr, db_session):
        result = await ops.start_multi_search({
            "type": "start_multi_search", "query": "roofers", "location": "Austin",
            "targetLeads": 300, "userId": "user-1",
        })
        first, second = result["searchRuns"]

        lobstr.add_results(first["runId"], 200, status="done")
        await ops.get_results({"type": "get_results", "runId": first["runId"]})
        launched = await ops.launch_run({"type": "launch_run", "runId": second["id"], "userId": "user-1"})

        lobstr.add_results(launched["runId"], 100, status="done")
        await ops.get_results({"type": "get_results", "runId": launched["runId"]})

        db_session.expire_all()
        parent = db_session.query(LobstrRun).filter(LobstrRun.id == result["campaignId"]).first()
        assert parent.searches_completed == 2
        assert parent.status == "completed"
        assert _sequences(db_session, launched["runId"]) == list(range(1, 101))

    @pytest.mark.asyncio
    async def test_requires_target(self, lobstr):
        with pytest.raises(MissingFieldError):
            await ops.start_multi_search({"type": "start_multi_search", "query": "roofers",
                                          "location": "Austin", "userId": "user-1"})


# ===================================================================
# Status, halting and geolocation
# ===================================================================

class TestRunControl:

    @pytest.mark.asyncio
    async def test_get_status_message(self, lobstr):
        _, provider_run_id = await _start_run()
        result = await ops.get_status({"type": "get_status", "runId": provider_run_id})
        assert result["status"] == "running"
        assert result["message"] == "Scraping is in progress, collecting business data"

    def test_status_message_fallback(self):
        assert ops.status_message("uploading") == "Current status: uploading"

    @pytest.mark.asyncio
    async def test_stop_run_releases_squid(self, lobstr, db_session):
        record_id, provider_run_id = await _start_run()

        result = await ops.stop_run({"type": "stop_run", "runId": provider_run_id})

        assert result["runStatus"] == "stopped"
        assert db_session.query(SquidLease).count() == 0

    @pytest.mark.asyncio
    async def test_abort_run(self, lobstr):
        _, provider_run_id = await _start_run()
        result = await ops.abort_run({"type": "abort_run", "runId": provider_run_id})
        assert result["method"] == "abort"
        assert result["runStatus"] == "aborted"

    @pytest.mark.asyncio
    async def test_geolocation_preview(self):
        parsed = await ops.get_geolocation({"type": "get_geolocation", "location": "Lyon, France"})
        assert parsed["taskType"] == "parameters"
        assert parsed["geolocation"]["city"] == "Lyon"

        fallback = await ops.get_geolocation({"type": "get_geolocation", "location": "Lyon",
                                              "query": "bakeries"})
        assert fallback["taskType"] == "url"
        assert fallback["searchUrl"].endswith("bakeries%20in%20Lyon")
