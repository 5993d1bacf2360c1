import logging

from apscheduler.schedulers.background import BackgroundScheduler

from extensions import db
from utils.errors import DependencyFailure
from utils.fee_store import SqlAlchemyFeeStore
from utils.ledger import mark_overdue_periods

logger = logging.getLogger(__name__)


def overdue_job(app):
    """Promote past-due periods to overdue via the server-side procedure."""
    with app.app_context():
        try:
            mark_overdue_periods(SqlAlchemyFeeStore(db.session))
        except DependencyFailure:
            # Next run retries; nothing to compensate here.
            logger.exception("Scheduled mark_overdue_periods run failed")
            return False
        logger.info("Scheduled mark_overdue_periods run completed")
        return True


def start_scheduler(app):
    scheduler = BackgroundScheduler(timezone=app.config.get("SCHOOL_TIMEZONE"))
    hours = app.config.get("OVERDUE_JOB_INTERVAL_HOURS", 24)
    scheduler.add_job(
        lambda: overdue_job(app),
        'interval',
        hours=hours,
        id='mark_overdue_periods',
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info("Overdue scheduler started (every %s hours)", hours)
    return scheduler
