from django.urls import path

from . import views

app_name = 'finance'

urlpatterns = [
    path('reconciliation/', views.reconciliation_collection, name='reconciliation_collection'),
    path('reconciliation/bank-accounts/', views.bank_account_collection, name='bank_account_collection'),
    path('reconciliation/<int:pk>/', views.reconciliation_detail, name='reconciliation_detail'),
    path('reconciliation/<int:pk>/match/', views.reconciliation_match, name='reconciliation_match'),
    path('reconciliation/<int:pk>/unmatch/', views.reconciliation_unmatch, name='reconciliation_unmatch'),
    path('reconciliation/<int:pk>/exclude/', views.reconciliation_exclude, name='reconciliation_exclude'),
    path('reconciliation/<int:pk>/finalize/', views.reconciliation_finalize, name='reconciliation_finalize'),
    path('reconciliation/<int:pk>/export/', views.reconciliation_export, name='reconciliation_export'),
    path('ledger-entries/', views.ledger_entry_list, name='ledger_entry_list'),
]
