from temporalio import workflow
from temporalio.common import RetryPolicy
from datetime import timedelta
from typing import Dict, Any
import asyncio

with workflow.unsafe.imports_passed_through():
    from const import SCRAPE_POLL_INTERVAL_SECONDS, SCRAPE_POLL_CEILING_SECONDS

TERMINAL_RUN_STATUSES = {"target_reached", "completed", "stopped", "aborted", "failed"}

# Request and provider errors are final; retrying only repeats them
NON_RETRYABLE_ERRORS = [
    "ScrapeRunError",
    "InvalidRequestError",
    "MissingFieldError",
    "RunNotFoundError",
    "SquidBusyError",
    "InvalidRunTransition",
    "NoCreditsError",
    "MissingConfigError",
]


@workflow.defn
class ScrapeRunWorkflow:
    """
    Launches a prepared Lobstr run and saves leads until it finishes
    """

    def __init__(self) -> None:
        self._summary: Dict[str, Any] = {"run_status": "launching", "polls": 0, "total_saved": 0}

    @workflow.query
    def progress(self) -> Dict[str, Any]:
        """Latest poll summary, readable while the workflow runs"""
        return dict(self._summary)

    @workflow.run
    async def run(self, run_record_id: str, user_id: str = None,
                  poll_ceiling_seconds: int = SCRAPE_POLL_CEILING_SECONDS) -> Dict[str, Any]:
        """
        Execute one scraping run

        Args:
            run_record_id: lobstr_runs row to launch (must hold its tasks or be a planned search)
            user_id: Owner of the run, used as the squid lease holder
            poll_ceiling_seconds: Stop polling after this long; the provider run keeps going

        Returns:
            Summary with the final run status and saved lead count
        """
        workflow.logger.info(f"Starting scrape run workflow for run record {run_record_id}")

        launch = await workflow.execute_activity(
            "launch_run",
            args=[{"type": "launch_run", "runId": run_record_id, "userId": user_id}],
            start_to_close_timeout=timedelta(minutes=5),
            retry_policy=RetryPolicy(
                initial_interval=timedelta(seconds=2),
                maximum_interval=timedelta(seconds=30),
                maximum_attempts=3,
                non_retryable_error_types=NON_RETRYABLE_ERRORS,
            )
        )
        provider_run_id = launch["runId"]
        workflow.logger.info(f"Provider run {provider_run_id} launched")

        summary = self._summary = {
            "run_record_id": run_record_id,
            "provider_run_id": provider_run_id,
            "polls": 0,
            "total_saved": 0,
            "run_status": launch.get("status"),
            "timed_out": False,
        }

        started = workflow.now()
        while True:
            await asyncio.sleep(SCRAPE_POLL_INTERVAL_SECONDS)

            result = await workflow.execute_activity(
                "save_incremental",
                args=[{"type": "save_incremental", "runId": provider_run_id, "userId": user_id}],
                start_to_close_timeout=timedelta(minutes=10),
                retry_policy=RetryPolicy(
                    initial_interval=timedelta(seconds=5),
                    maximum_interval=timedelta(seconds=60),
                    maximum_attempts=5,
                    non_retryable_error_types=NON_RETRYABLE_ERRORS,
                )
            )
            summary["polls"] += 1
            summary["run_status"] = result.get("runStatus")
            summary["total_saved"] = result.get("totalSaved", summary["total_saved"])

            if summary["run_status"] in TERMINAL_RUN_STATUSES:
                break

            elapsed = (workflow.now() - started).total_seconds()
            if elapsed >= poll_ceiling_seconds:
                workflow.logger.warning(
                    f"Run {provider_run_id} still {summary['run_status']} after {int(elapsed)}s, stopping polling"
                )
                summary["timed_out"] = True
                summary["message"] = (
                    "Polling stopped before the run finished; leads saved so far are kept "
                    "and the remaining results can be collected with get_results"
                )
                break

        workflow.logger.info(
            f"Scrape run workflow finished for {provider_run_id}: status={summary['run_status']}, "
            f"saved={summary['total_saved']}, polls={summary['polls']}"
        )
        return summary
