from django.urls import path

from . import views

app_name = 'property'

urlpatterns = [
    # Scheduled charges
    path('scheduled-charges/', views.charge_collection, name='charge_collection'),
    path('scheduled-charges/post-due/', views.post_due, name='post_due'),
    path('scheduled-charges/pending/', views.pending_charges, name='pending_charges'),
    path('scheduled-charges/runs/', views.charge_run_logs, name='charge_run_logs'),
    path('scheduled-charges/<int:pk>/', views.charge_detail, name='charge_detail'),
    path('scheduled-charges/<int:pk>/toggle/', views.charge_toggle, name='charge_toggle'),
    path('scheduled-charges/<int:pk>/reset/', views.charge_reset, name='charge_reset'),

    # Security deposits
    path('deposits/receive/', views.deposit_receive, name='deposit_receive'),
    path('deposits/return/', views.deposit_return, name='deposit_return'),
    path('deposits/status/<int:lease_id>/', views.deposit_status, name='deposit_status'),
]
