from django.contrib import admin

from .models import Feedback


@admin.register(Feedback)
class FeedbackAdmin(admin.ModelAdmin):
    list_display = ('created_at', 'sender_name', 'deleted_at', 'deleted_by')
    list_filter = ('deleted_at',)
    search_fields = ('sender_name', 'message')
