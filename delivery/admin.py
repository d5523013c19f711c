"""
Django admin configuration for delivery app.
"""
from django.contrib import admin, messages
from django.utils import timezone

from delivery.models import Assignment, CredentialRecord, DeliveryLog, Order, OrderItem, Product
from delivery.tasks import process_order_delivery


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ('id', 'title', 'auto_delivery', 'delivery_priority')
    list_filter = ('auto_delivery',)
    list_editable = ('auto_delivery', 'delivery_priority')
    search_fields = ('title',)


class AssignmentInline(admin.TabularInline):
    """Inline display of the assignments held on a credential record."""
    model = Assignment
    fk_name = 'credential'
    extra = 0
    readonly_fields = ('order', 'order_number', 'customer_email', 'assigned_at', 'status', 'notes')
    can_delete = False


@admin.register(CredentialRecord)
class CredentialRecordAdmin(admin.ModelAdmin):
    list_display = ('id', 'product', 'status', 'active_assignment_count', 'max_assignments',
                    'expiration_date', 'created_at')
    list_filter = ('status', 'product')
    search_fields = ('id', 'product__title')
    readonly_fields = ('active_assignment_count', 'delivered_at', 'created_at', 'updated_at')
    inlines = [AssignmentInline]


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ('delivery_status', 'delivered', 'delivered_at', 'credentials')


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ('id', 'order_number', 'customer_email', 'payment_status', 'status',
                    'auto_delivery_enabled', 'created_at')
    list_filter = ('payment_status', 'status', 'auto_delivery_enabled')
    search_fields = ('order_number', 'customer_email')
    readonly_fields = ('delivered_at', 'delivery_method', 'created_at', 'updated_at')
    filter_horizontal = ('delivered_inventory',)
    inlines = [OrderItemInline]
    actions = ['trigger_auto_delivery']

    @admin.action(description='Run auto-delivery for selected orders')
    def trigger_auto_delivery(self, request, queryset):
        queued = 0
        for order in queryset:
            process_order_delivery.delay(order.id)
            queued += 1
        self.message_user(request, f"{queued} orders enqueued for auto-delivery", level=messages.SUCCESS)


@admin.register(Assignment)
class AssignmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'credential', 'order_number', 'customer_email', 'assigned_at', 'status')
    list_filter = ('status', 'assigned_at')
    search_fields = ('order_number', 'customer_email')
    readonly_fields = ('credential', 'order', 'order_number', 'customer_email', 'customer_name',
                       'assigned_at', 'notes')

    def has_add_permission(self, request):
        """Assignments are created only by the allocator."""
        return False

    def has_delete_permission(self, request, obj=None):
        """The assignment ledger is never deleted from."""
        return False


@admin.register(DeliveryLog)
class DeliveryLogAdmin(admin.ModelAdmin):
    """Admin interface for the delivery audit log."""

    list_display = ('id', 'created_at', 'order_number', 'event_type', 'status', 'retry_count', 'is_resolved')
    list_filter = ('status', 'event_type', 'is_resolved', 'created_at')
    search_fields = ('order_number', 'customer_email', 'product_title')
    readonly_fields = [field.name for field in DeliveryLog._meta.fields]
    actions = ['resolve_selected']

    fieldsets = (
        ('Event', {
            'fields': ('id', 'created_at', 'event_type', 'status', 'message', 'error_code')
        }),
        ('Order', {
            'fields': ('order', 'order_number', 'customer_email', 'product', 'product_title')
        }),
        ('Metrics', {
            'fields': ('quantity', 'inventory_used', 'processing_time_ms', 'retry_count')
        }),
        ('Resolution', {
            'fields': ('is_resolved', 'resolved_by', 'resolved_at')
        }),
        ('Details', {
            'fields': ('details',),
            'classes': ('collapse',)
        }),
    )

    @admin.action(description='Mark selected events resolved')
    def resolve_selected(self, request, queryset):
        updated = queryset.filter(is_resolved=False).update(
            is_resolved=True,
            resolved_by=request.user.get_username(),
            resolved_at=timezone.now(),
        )
        self.message_user(request, f"{updated} events resolved")

    def has_add_permission(self, request):
        """Disable manual audit event creation through admin."""
        return False

    def has_delete_permission(self, request, obj=None):
        """Disable audit event deletion through admin."""
        return False
