"""
FixIt Background Scheduler

Runs periodic tasks:
- Expire job offers whose window has passed (every OFFER_SWEEP_SECONDS)
- Rebuild technicians' cached earnings from the ledger (every EARNINGS_RECONCILE_MINUTES)

Only starts when ENABLE_SCHEDULER=true to prevent running on multiple instances.
Offer expiry is also applied lazily on read, so a stopped scheduler only
leaves stale status columns behind.
"""

import logging

from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger(__name__)


def _expire_offers(app):
    """Flip pending offers past expires_at to expired."""
    with app.app_context():
        from fixit import db
        from fixit.services.dispatch import expire_stale_offers

        try:
            return expire_stale_offers()
        except Exception:
            db.session.rollback()
            logger.exception("Scheduler: offer expiry sweep failed")
            return 0


def _reconcile_earnings(app):
    """Recompute every technician's cached earnings."""
    with app.app_context():
        from fixit import db
        from fixit.services.ledger import reconcile_earnings_cache

        try:
            return reconcile_earnings_cache()
        except Exception:
            db.session.rollback()
            logger.exception("Scheduler: earnings reconciliation failed")
            return 0


def init_scheduler(app):
    """Initialize and start the background scheduler.

    Called by create_app() when ENABLE_SCHEDULER is set.
    """
    if not app.config.get("ENABLE_SCHEDULER"):
        logger.info("Scheduler disabled (set ENABLE_SCHEDULER=true to enable)")
        return None

    scheduler = BackgroundScheduler(daemon=True)

    scheduler.add_job(
        _expire_offers,
        "interval",
        seconds=app.config["OFFER_SWEEP_SECONDS"],
        args=[app],
        id="expire_job_offers",
        name="Expire stale job offers",
        coalesce=True,
        max_instances=1,
    )

    scheduler.add_job(
        _reconcile_earnings,
        "interval",
        minutes=app.config["EARNINGS_RECONCILE_MINUTES"],
        args=[app],
        id="reconcile_earnings",
        name="Reconcile technician earnings cache",
        coalesce=True,
        max_instances=1,
    )

    try:
        scheduler.start()
    except Exception:
        logger.exception("Failed to start scheduler")
        return None
    logger.info("Background scheduler started with 2 jobs")
    return scheduler
