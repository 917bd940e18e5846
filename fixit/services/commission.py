"""
Admin commission rate.

The percentage lives in a single ``settings`` row (key ``commission``) and is
read fresh on every call. Callers take a provider object instead of reading
the row themselves so tests can pin the rate with ``FixedCommissionRate``.
"""
import logging

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from fixit import db
from fixit.errors import DependencyError
from fixit.models import Setting
from fixit.models.setting import COMMISSION_KEY

logger = logging.getLogger(__name__)

DEFAULT_COMMISSION_PERCENTAGE = 30


def clamp_percentage(value):
    return max(0, min(100, int(value)))


class FixedCommissionRate:
    """Always returns the same percentage."""

    def __init__(self, percentage):
        self.percentage = clamp_percentage(percentage)

    def get_commission_percentage(self):
        return self.percentage


class SettingsCommissionRate:
    """Reads the admin-configured percentage from the settings table."""

    def __init__(self, default=DEFAULT_COMMISSION_PERCENTAGE):
        self.default = clamp_percentage(default)

    def _read(self):
        try:
            setting = db.session.get(Setting, COMMISSION_KEY)
        except SQLAlchemyError as e:
            raise DependencyError("commission setting unavailable") from e
        return setting.value if setting else None

    def get_commission_percentage(self):
        try:
            raw = self._read()
        except DependencyError:
            logger.exception("Falling back to default commission %s%%", self.default)
            return self.default

        if isinstance(raw, dict):
            raw = raw.get('percentage')
        if raw is None or isinstance(raw, bool):
            return self.default
        try:
            value = float(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring non-numeric commission setting %r", raw)
            return self.default
        if value < 0:
            logger.warning("Ignoring negative commission setting %r", raw)
            return self.default
        return clamp_percentage(value)


def get_commission_rate_provider():
    """The provider registered on the current app."""
    provider = current_app.extensions.get('commission_rate')
    if provider is None:
        provider = SettingsCommissionRate(
            default=current_app.config.get('DEFAULT_COMMISSION_PERCENTAGE', DEFAULT_COMMISSION_PERCENTAGE)
        )
        current_app.extensions['commission_rate'] = provider
    return provider
