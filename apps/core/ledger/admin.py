from django.contrib import admin

from .models import PresetNominal, Transaction


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = ('trx_no', 'created_at', 'student', 'type', 'amount', 'user')
    list_filter = ('type', 'created_at')
    search_fields = ('trx_no', 'student__name', 'student__nis')
    readonly_fields = [field.name for field in Transaction._meta.fields]

    # Balance changes go through the ledger engine only.
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(PresetNominal)
class PresetNominalAdmin(admin.ModelAdmin):
    list_display = ('type', 'amount', 'label', 'sort_order', 'is_active')
    list_filter = ('type', 'is_active')
