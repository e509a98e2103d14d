#!/usr/bin/env python3
"""
Heroku worker process for running the APScheduler background jobs.
This keeps the scheduler running separately from the web process.
"""

import logging

from dotenv import load_dotenv
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

# Load environment variables
load_dotenv()

# Import after loading env vars
from app import app, audit_volunteer_sequences, send_day_of_reminders

logger = logging.getLogger(__name__)


def build_scheduler(config=None):
    """Scheduler with the reminder and sequence-audit jobs registered."""
    config = config or app.config
    scheduler = BlockingScheduler()

    # Day-of reminders every morning (server local time)
    scheduler.add_job(
        send_day_of_reminders,
        CronTrigger(hour=config.get("REMINDER_HOUR", 6)),
        id="daily-day-of-reminders",
        replace_existing=True
    )

    # Nightly audit of food-distribution volunteer sequences
    scheduler.add_job(
        audit_volunteer_sequences,
        CronTrigger(hour=config.get("AUDIT_HOUR", 2)),
        id="nightly-sequence-audit",
        replace_existing=True
    )
    return scheduler


def run_scheduler():
    """Run the background scheduler for reminders and audits."""
    scheduler = build_scheduler()
    logger.info("Starting UUMC volunteer signup scheduler")
    logger.info(f"Day-of reminders daily at {app.config.get('REMINDER_HOUR', 6)}:00")
    logger.info(f"Food sequence audit nightly at {app.config.get('AUDIT_HOUR', 2)}:00")

    try:
        scheduler.start()
    except KeyboardInterrupt:
        scheduler.shutdown()


if __name__ == '__main__':
    run_scheduler()
