#!/usr/bin/env python
"""
Temporal Worker
This worker executes scraping run workflows and Lobstr activities
"""
import asyncio
import logging
from temporalio.client import Client
from temporalio.worker import Worker

from config import TEMPORAL_ADDRESS, TEMPORAL_TASK_QUEUE
from workflows.scrape_run_workflow import ScrapeRunWorkflow
from activities.lobstr_activities import LOBSTR_OPERATIONS

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def main():
    """Main worker function"""
    logger.info(f"Connecting to Temporal at {TEMPORAL_ADDRESS}")

    client = await Client.connect(TEMPORAL_ADDRESS)
    logger.info("Connected to Temporal successfully")

    logger.info(f"Starting worker on task queue: {TEMPORAL_TASK_QUEUE}")
    worker = Worker(
        client,
        task_queue=TEMPORAL_TASK_QUEUE,
        workflows=[ScrapeRunWorkflow],
        activities=list(LOBSTR_OPERATIONS.values()),
        max_concurrent_activities=20,
    )

    logger.info("Worker started and ready to process workflows")
    logger.info(f"Registered workflows: {ScrapeRunWorkflow.__name__}")
    logger.info(f"Registered activities: {', '.join(LOBSTR_OPERATIONS)}")

    await worker.run()


if __name__ == "__main__":
    asyncio.run(main())
