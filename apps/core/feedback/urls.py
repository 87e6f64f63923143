from django.urls import path

from .views import feedback_delete, feedback_list, feedback_submit

urlpatterns = [
    path('', feedback_list, name='feedback_list'),
    path('kirim/', feedback_submit, name='feedback_submit'),
    path('<int:pk>/delete/', feedback_delete, name='feedback_delete'),
]
