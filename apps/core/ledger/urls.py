from django.urls import path

from .views import (
    deposit_create,
    preset_delete,
    preset_list,
    preset_update,
    receipt_pdf,
    student_lookup,
    transaction_reverse,
    transaction_student_search,
    withdrawal_create,
)

urlpatterns = [
    path('setor/', deposit_create, name='deposit_create'),
    path('tarik/', withdrawal_create, name='withdrawal_create'),
    path('cari/', student_lookup, name='student_lookup'),
    path('search/', transaction_student_search, name='transaction_student_search'),
    path('hapus/', transaction_reverse, name='transaction_reverse'),
    path('presets/', preset_list, name='preset_list'),
    path('presets/<int:pk>/edit/', preset_update, name='preset_update'),
    path('presets/<int:pk>/delete/', preset_delete, name='preset_delete'),
    path('<str:trx_no>/pdf/', receipt_pdf, name='receipt_pdf'),
]
