import logging
from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger(__name__)
scheduler = BackgroundScheduler()


def init_scheduler(app):
    """Initialize and start the scheduler with app context."""
    if not app.config.get('SCHEDULER_ENABLED', False):
        logger.info("Scheduler disabled by config")
        return

    # Workspaces of killed workers - every 30 minutes
    @scheduler.scheduled_job('interval', minutes=30, id='sweep_workspaces')
    def sweep_workspaces_job():
        from judge.engine.sandbox import sweep_stale_workspaces

        removed = sweep_stale_workspaces(app.config['JUDGE_WORKSPACE_DIR'])
        if removed:
            logger.info(f"Removed {removed} stale sandbox workspace(s)")

    # Submissions stuck in pending/running - every 10 minutes
    @scheduler.scheduled_job('interval', minutes=10, id='fail_stale_submissions')
    def stale_submissions_job():
        with app.app_context():
            from judge.services.stores import SubmissionStore

            count = SubmissionStore().fail_stale_running()
            if count:
                logger.info(f"Closed {count} stale submission(s)")

    # Close results of contests that have ended - every minute
    @scheduler.scheduled_job('interval', minutes=1, id='close_ended_contests')
    def close_contests_job():
        with app.app_context():
            from judge.services.judge_service import JudgeService

            try:
                closed = JudgeService(app).close_ended_contests()
                if closed:
                    logger.info(f"Completed {closed} contest result(s) of ended contests")
            except Exception as e:
                logger.error(f"Closing ended contests failed: {e}")

    try:
        scheduler.start()
        logger.info("Scheduler started successfully")
    except Exception as e:
        logger.error(f"Scheduler failed to start: {e}")
