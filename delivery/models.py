"""
Data models for the auto-delivery engine.
"""
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone


CREDENTIAL_SEPARATOR = "\n\n--- Next Account ---\n\n"


class Product(models.Model):
    """
    Purchasable digital product. Owned by the catalogue; the engine only
    reads the auto-delivery flag and the delivery priority.
    """

    title = models.CharField(max_length=100)
    auto_delivery = models.BooleanField(default=False)
    delivery_priority = models.PositiveSmallIntegerField(
        default=5,
        validators=[MinValueValidator(1), MaxValueValidator(10)],
        help_text='Delivery priority (1 = highest, 10 = lowest)'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['title']

    def __str__(self):
        return self.title


class CredentialRecord(models.Model):
    """
    One reusable account in the inventory pool of a product.

    A record can be held by up to ``max_assignments`` orders at the same time.
    ``active_assignment_count`` is maintained by the allocator with a
    conditional update and never exceeds ``max_assignments``.
    """

    class Status(models.TextChoices):
        AVAILABLE = 'available', 'Available'
        RESERVED = 'reserved', 'Reserved'
        DELIVERED = 'delivered', 'Delivered'
        EXPIRED = 'expired', 'Expired'

    product = models.ForeignKey(
        Product,
        on_delete=models.CASCADE,
        related_name='credentials'
    )
    credentials = models.TextField(max_length=1000)
    max_assignments = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)]
    )
    active_assignment_count = models.PositiveIntegerField(default=0)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.AVAILABLE,
        db_index=True
    )
    expiration_date = models.DateTimeField(null=True, blank=True)
    allow_updates_after_expiry = models.BooleanField(default=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    notes = models.CharField(max_length=500, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['product', 'status'], name='credential_product_status_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(active_assignment_count__lte=models.F('max_assignments')),
                name='credential_assignments_within_capacity',
            ),
        ]

    def __str__(self):
        return f"Credential {self.id} for {self.product_id} - {self.status}"

    @property
    def is_expired(self) -> bool:
        if self.expiration_date is None:
            return False
        return timezone.now() > self.expiration_date

    @property
    def is_available(self) -> bool:
        return (
            self.status == self.Status.AVAILABLE
            and self.active_assignment_count < self.max_assignments
            and not self.is_expired
        )

    @property
    def remaining_assignments(self) -> int:
        return max(self.max_assignments - self.active_assignment_count, 0)

    @property
    def can_receive_updates(self) -> bool:
        if not self.is_expired:
            return True
        return self.allow_updates_after_expiry

    def update_credentials(self, credentials: str):
        """Replace the credential text, honouring the expiry edit policy."""
        from delivery.services.inventory import CredentialUpdateNotAllowed

        if not self.can_receive_updates:
            raise CredentialUpdateNotAllowed(
                f"Credential {self.id} expired on {self.expiration_date} and does not accept updates"
            )
        self.credentials = credentials
        self.save(update_fields=['credentials', 'updated_at'])


class Order(models.Model):
    """Customer order. Owned by the checkout flow; mutated here only for delivery."""

    class PaymentStatus(models.TextChoices):
        PENDING = 'pending', 'Pending'
        PAID = 'paid', 'Paid'
        CONFIRMED = 'confirmed', 'Confirmed'
        FAILED = 'failed', 'Failed'
        REFUNDED = 'refunded', 'Refunded'
        DECLINED = 'declined', 'Declined'

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        CONFIRMED = 'confirmed', 'Confirmed'
        PROCESSING = 'processing', 'Processing'
        DELIVERED = 'delivered', 'Delivered'
        CANCELLED = 'cancelled', 'Cancelled'

    class DeliveryMethod(models.TextChoices):
        AUTO = 'auto', 'Automatic'
        MANUAL = 'manual', 'Manual'

    PAID_STATUSES = (PaymentStatus.PAID, PaymentStatus.CONFIRMED)

    order_number = models.CharField(max_length=32, unique=True)
    customer_first_name = models.CharField(max_length=100, blank=True, default='')
    customer_last_name = models.CharField(max_length=100, blank=True, default='')
    customer_email = models.EmailField()
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
        db_index=True
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True
    )
    auto_delivery_enabled = models.BooleanField(default=True)
    delivered_inventory = models.ManyToManyField(
        CredentialRecord,
        blank=True,
        related_name='delivered_orders'
    )
    paid_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    delivery_method = models.CharField(
        max_length=10,
        choices=DeliveryMethod.choices,
        null=True,
        blank=True
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"Order {self.order_number} - {self.status}"

    @property
    def customer_name(self) -> str:
        return f"{self.customer_first_name} {self.customer_last_name}".strip()

    @property
    def is_payment_confirmed(self) -> bool:
        return self.payment_status in self.PAID_STATUSES


class OrderItem(models.Model):
    """Line item of an order; carries the per-item delivery state."""

    class DeliveryStatus(models.TextChoices):
        PENDING = 'pending', 'Pending'
        DELIVERED = 'delivered', 'Delivered'
        FAILED = 'failed', 'Failed'

    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='items'
    )
    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name='order_items'
    )
    title = models.CharField(max_length=100)
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    auto_delivery = models.BooleanField(default=False)
    delivery_status = models.CharField(
        max_length=20,
        choices=DeliveryStatus.choices,
        default=DeliveryStatus.PENDING,
        db_index=True
    )
    delivered = models.BooleanField(default=False)
    delivered_at = models.DateTimeField(null=True, blank=True)
    credentials = models.TextField(blank=True, default='')

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.quantity}x {self.title} ({self.delivery_status})"

    @property
    def is_delivered(self) -> bool:
        return self.delivered or self.delivery_status == self.DeliveryStatus.DELIVERED


class Assignment(models.Model):
    """
    Ledger entry binding one unit of a credential record's capacity to one order.
    Never deleted; only the status changes on revocation or expiry.
    """

    class Status(models.TextChoices):
        ACTIVE = 'active', 'Active'
        EXPIRED = 'expired', 'Expired'
        REVOKED = 'revoked', 'Revoked'

    credential = models.ForeignKey(
        CredentialRecord,
        on_delete=models.PROTECT,
        related_name='assignments'
    )
    order = models.ForeignKey(
        Order,
        on_delete=models.PROTECT,
        related_name='assignments'
    )
    order_number = models.CharField(max_length=32)
    customer_email = models.EmailField()
    customer_name = models.CharField(max_length=200, blank=True, default='')
    assigned_at = models.DateTimeField(default=timezone.now)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE,
        db_index=True
    )
    notes = models.TextField(blank=True, default='')

    class Meta:
        ordering = ['-assigned_at']
        indexes = [
            models.Index(fields=['credential', 'assigned_at'], name='assignment_credential_idx'),
            models.Index(fields=['customer_email'], name='assignment_customer_idx'),
        ]

    def __str__(self):
        return f"Assignment {self.id}: credential {self.credential_id} -> {self.order_number}"


class DeliveryLog(models.Model):
    """
    Append-only audit event of the delivery pipeline.
    The only permitted mutation is marking the event resolved.
    """

    class EventType(models.TextChoices):
        DELIVERY_STARTED = 'delivery_started', 'Delivery started'
        DELIVERY_RETRY = 'delivery_retry', 'Delivery retry'
        DELIVERY_SUCCESS = 'delivery_success', 'Delivery success'
        DELIVERY_FAILED = 'delivery_failed', 'Delivery failed'
        INSUFFICIENT_INVENTORY = 'insufficient_inventory', 'Insufficient inventory'
        EMAIL_SENT = 'email_sent', 'Email sent'
        EMAIL_FAILED = 'email_failed', 'Email failed'

    class Status(models.TextChoices):
        SUCCESS = 'success', 'Success'
        ERROR = 'error', 'Error'
        WARNING = 'warning', 'Warning'
        INFO = 'info', 'Info'

    RETRYABLE_EVENTS = (EventType.DELIVERY_FAILED, EventType.INSUFFICIENT_INVENTORY)

    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='delivery_logs'
    )
    order_number = models.CharField(max_length=32)
    product = models.ForeignKey(
        Product,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='delivery_logs'
    )
    product_title = models.CharField(max_length=100)
    customer_email = models.EmailField()
    event_type = models.CharField(max_length=30, choices=EventType.choices)
    status = models.CharField(max_length=10, choices=Status.choices)
    message = models.TextField()
    details = models.JSONField(default=dict, blank=True)
    quantity = models.PositiveIntegerField(default=1)
    inventory_used = models.PositiveIntegerField(default=0)
    error_code = models.CharField(max_length=50, null=True, blank=True)
    processing_time_ms = models.PositiveIntegerField(default=0)
    retry_count = models.PositiveIntegerField(default=0)
    is_resolved = models.BooleanField(default=False)
    resolved_by = models.CharField(max_length=150, null=True, blank=True)
    resolved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['order', 'created_at'], name='deliverylog_order_idx'),
            models.Index(fields=['event_type', 'created_at'], name='deliverylog_event_idx'),
            models.Index(fields=['status', 'created_at'], name='deliverylog_status_idx'),
            models.Index(fields=['customer_email', 'created_at'], name='deliverylog_customer_idx'),
            models.Index(fields=['product', 'created_at'], name='deliverylog_product_idx'),
            models.Index(fields=['is_resolved', 'status'], name='deliverylog_resolved_idx'),
        ]

    def __str__(self):
        return f"{self.event_type} [{self.status}] for {self.order_number}"
