from django.urls import path

from .views import (
    account_settings,
    role_redirect,
    user_create,
    user_delete,
    user_list,
    user_update,
)

urlpatterns = [
    path('', role_redirect, name='home'),
    path('dashboard/', role_redirect, name='role_redirect'),
    path('users/', user_list, name='user_list'),
    path('users/new/', user_create, name='user_create'),
    path('users/<int:pk>/edit/', user_update, name='user_update'),
    path('users/<int:pk>/delete/', user_delete, name='user_delete'),
    path('akun/', account_settings, name='account_settings'),
]
