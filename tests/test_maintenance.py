"""
Background jobs and CLI maintenance commands for FixIt
"""
from datetime import timedelta

import scheduler
from fixit.models import JobOffer, utcnow


class TestScheduler:

    def test_disabled_by_default(self, app):
        assert scheduler.init_scheduler(app) is None

    def test_registers_jobs_when_enabled(self, app):
        app.config['ENABLE_SCHEDULER'] = True
        background = scheduler.init_scheduler(app)
        try:
            assert {job.id for job in background.get_jobs()} == {'expire_job_offers', 'reconcile_earnings'}
        finally:
            background.shutdown(wait=False)

    def test_expiry_job(self, app, db_session, paid_booking, technician, offer_factory):
        offer = offer_factory(paid_booking, technician, expires_at=utcnow() - timedelta(minutes=1))

        assert scheduler._expire_offers(app) == 1

        db_session.expire_all()
        assert db_session.get(JobOffer, offer.id).status == 'expired'


class TestCliCommands:

    def test_expire_offers(self, app, db_session, paid_booking, technician, offer_factory):
        offer_factory(paid_booking, technician, expires_at=utcnow() - timedelta(minutes=1))

        result = app.test_cli_runner().invoke(args=['expire-offers'])

        assert result.exit_code == 0
        assert 'Expired 1 job offer(s).' in result.output

    def test_reconcile_earnings(self, app, technician, completed_booking_factory):
        completed_booking_factory(technician, 1000)

        result = app.test_cli_runner().invoke(args=['reconcile-earnings'])

        assert result.exit_code == 0
        assert 'Reconciled earnings for 1 technician(s).' in result.output
        assert technician.earnings_total == 700
