from django.urls import path

from .views import (
    student_create,
    student_delete,
    student_detail,
    student_import,
    student_list,
    student_search,
    student_update,
)

urlpatterns = [
    path('', student_list, name='student_list'),
    path('new/', student_create, name='student_create'),
    path('import/', student_import, name='student_import'),
    path('search/', student_search, name='student_search'),
    path('<int:pk>/', student_detail, name='student_detail'),
    path('<int:pk>/edit/', student_update, name='student_update'),
    path('<int:pk>/delete/', student_delete, name='student_delete'),
]
