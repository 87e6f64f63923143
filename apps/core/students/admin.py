from django.contrib import admin

from .models import Student


@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    list_display = ('nis', 'name', 'student_class', 'group', 'balance')
    list_filter = ('student_class', 'group')
    search_fields = ('nis', 'name')
    readonly_fields = ('balance', 'created_at', 'updated_at')
