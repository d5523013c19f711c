import itertools
import os
import sys

import pytest

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'storefront.settings')
os.environ.setdefault('USE_SQLITE_FOR_TESTS', 'true')


@pytest.fixture(autouse=True)
def delivery_settings(settings):
    """Pin delivery configuration so local .env files cannot leak into tests."""
    settings.ADMIN_EMAIL = ''
    settings.ALERT_WEBHOOK_URL = ''
    settings.ALERT_WEBHOOK_TOKEN = ''
    settings.PAYMENT_WEBHOOK_SECRET = None
    settings.DEFAULT_FROM_EMAIL = 'noreply@zelyx.shop'
    settings.CLIENT_URL = 'https://zelyx.shop'
    settings.STORE_NAME = 'Zelyx'
    settings.DELIVERY_RETRY_DELAYS_MINUTES = [5, 15, 45]
    settings.DELIVERY_MAX_RETRIES = 3
    settings.DELIVERY_RETRY_WINDOW_HOURS = 24
    settings.LOW_STOCK_THRESHOLD = 5
    settings.MULTIPLE_FAILURES_THRESHOLD = 5
    settings.DELIVERY_SWEEP_LOCK_TIMEOUT = 600
    settings.AUTO_DELIVERY_CHECK_INTERVAL_MINUTES = 5
    return settings


@pytest.fixture(autouse=True)
def clear_cache():
    """Sweep locks and alert cooldowns live in the cache."""
    from django.core.cache import cache

    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def make_product(db):
    """Return a factory creating products."""
    from delivery.models import Product

    def _make(title='Netflix Premium', auto_delivery=True, delivery_priority=5):
        return Product.objects.create(
            title=title,
            auto_delivery=auto_delivery,
            delivery_priority=delivery_priority,
        )
    return _make


@pytest.fixture
def product(make_product):
    return make_product()


@pytest.fixture
def make_credentials(db):
    """Return a factory adding credential records to a product's pool."""
    from delivery.models import CredentialRecord

    counter = itertools.count(1)

    def _make(product, count=1, max_assignments=1, **kwargs):
        records = []
        for _ in range(count):
            n = next(counter)
            records.append(CredentialRecord.objects.create(
                product=product,
                credentials=f"Email: account{n}@mail.test\nPassword: secret-{n}",
                max_assignments=max_assignments,
                **kwargs
            ))
        return records
    return _make


@pytest.fixture
def make_order(db):
    """
    Return a factory creating an order with line items.

    items is a list of (product, quantity) tuples.
    """
    from delivery.models import Order, OrderItem

    counter = itertools.count(1)

    def _make(items=(), payment_status='paid', **kwargs):
        n = next(counter)
        kwargs.setdefault('customer_email', f'customer{n}@example.com')
        order = Order.objects.create(
            order_number=f'ZLX-{n:05d}',
            customer_first_name='Alex',
            customer_last_name='Morgan',
            payment_status=payment_status,
            **kwargs
        )
        for item_product, quantity in items:
            OrderItem.objects.create(
                order=order,
                product=item_product,
                title=item_product.title,
                quantity=quantity,
            )
        return order
    return _make
