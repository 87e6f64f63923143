from django.contrib import admin
from .models import User, AuditLog

@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'full_name', 'role', 'is_staff')
    list_filter = ('role',)
    search_fields = ('username', 'full_name')


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ('created_at', 'action', 'user', 'entity', 'entity_id')
    list_filter = ('action', 'entity', 'method', 'created_at')
    search_fields = ('path', 'entity', 'entity_id', 'user__username')

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
