"""
Commission rate provider tests for FixIt
"""
import json

from sqlalchemy.exc import OperationalError

from fixit import db
from fixit.models import Setting
from fixit.services.commission import (
    FixedCommissionRate,
    SettingsCommissionRate,
    get_commission_rate_provider,
)


class TestSettingsCommissionRate:

    def test_default_when_no_setting(self, db_session):
        assert SettingsCommissionRate(default=30).get_commission_percentage() == 30

    def test_reads_setting_fresh_each_call(self, db_session):
        provider = SettingsCommissionRate(default=30)
        db_session.add(Setting(key='commission', value=25))
        db_session.commit()
        assert provider.get_commission_percentage() == 25

        setting = db_session.get(Setting, 'commission')
        setting.value = 40
        db_session.commit()
        assert provider.get_commission_percentage() == 40

    def test_accepts_object_value(self, db_session):
        db_session.add(Setting(key='commission', value={'percentage': '15'}))
        db_session.commit()
        assert SettingsCommissionRate().get_commission_percentage() == 15

    def test_clamps_above_hundred(self, db_session):
        db_session.add(Setting(key='commission', value=150))
        db_session.commit()
        assert SettingsCommissionRate().get_commission_percentage() == 100

    def test_negative_or_garbage_falls_back(self, db_session):
        setting = Setting(key='commission', value=-5)
        db_session.add(setting)
        db_session.commit()
        assert SettingsCommissionRate(default=30).get_commission_percentage() == 30

        setting.value = 'lots'
        db_session.commit()
        assert SettingsCommissionRate(default=30).get_commission_percentage() == 30

    def test_database_error_falls_back_to_default(self, db_session, monkeypatch):
        def broken_get(*args, **kwargs):
            raise OperationalError('SELECT', {}, Exception('database is locked'))

        monkeypatch.setattr(db.session(), 'get', broken_get)
        assert SettingsCommissionRate(default=30).get_commission_percentage() == 30


class TestProviderRegistry:

    def test_app_registers_settings_provider(self, app):
        provider = get_commission_rate_provider()
        assert isinstance(provider, SettingsCommissionRate)
        assert provider.default == app.config['DEFAULT_COMMISSION_PERCENTAGE']

    def test_provider_can_be_substituted(self, app, client, admin_headers):
        app.extensions['commission_rate'] = FixedCommissionRate(12)
        response = client.get('/api/admin/commission', headers=admin_headers)
        assert response.status_code == 200
        assert json.loads(response.data)['commission_percentage'] == 12

    def test_commission_endpoint_requires_admin(self, client, customer_headers):
        response = client.get('/api/admin/commission', headers=customer_headers)
        assert response.status_code == 403
