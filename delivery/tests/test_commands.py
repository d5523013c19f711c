"""
Unit tests for the delivery management commands.
"""
import json
from io import StringIO

import pytest
from django.core.management import call_command


@pytest.mark.django_db
class TestRunDeliveryScheduler:
    def test_once_runs_every_sweep(self, product, make_credentials, make_order):
        make_credentials(product, count=1)
        make_order(items=[(product, 1)])
        out = StringIO()

        call_command('run_delivery_scheduler', '--once', stdout=out)

        report = json.loads(out.getvalue())
        assert report['errors'] == {}
        assert set(report['results']) == {
            'pending_deliveries', 'failed_deliveries', 'inventory_levels', 'delivery_alerts',
        }
        assert report['results']['pending_deliveries']['processed_orders'] == 1
        # The only record was just used up
        assert report['results']['inventory_levels']['low_stock_products'][0]['available_count'] == 0
