from django.urls import path

from .views import (
    admin_dashboard,
    daily_stats,
    kasir_dashboard,
    transaction_report,
    transaction_report_csv,
    transaction_report_pdf,
)

urlpatterns = [
    path('dashboard/admin/', admin_dashboard, name='admin_dashboard'),
    path('dashboard/kasir/', kasir_dashboard, name='kasir_dashboard'),
    path('dashboard/api/daily/', daily_stats, name='daily_stats'),
    path('laporan/', transaction_report, name='transaction_report'),
    path('laporan/export/csv/', transaction_report_csv, name='transaction_report_csv'),
    path('laporan/export/pdf/', transaction_report_pdf, name='transaction_report_pdf'),
]
