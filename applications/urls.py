from django.urls import path
from . import views

app_name = 'applications'

urlpatterns = [
    # Citizen
    path('new/', views.ApplicationCreateView.as_view(), name='create'),
    path('mine/', views.MyApplicationListView.as_view(), name='my_list'),
    path('<int:pk>/', views.ApplicationDetailView.as_view(), name='detail'),
    path('<int:pk>/cancel/', views.CancelApplicationView.as_view(), name='cancel'),
    path('<int:pk>/receipt/', views.DownloadReceiptView.as_view(), name='receipt'),
    path('<int:pk>/documents/<str:field>/', views.DocumentView.as_view(), name='document'),

    # API
    path('api/check-no-kk/', views.CheckNumberAvailabilityView.as_view(), name='check_no_kk'),

    # Admin
    path('admin/queue/', views.AdminQueueView.as_view(), name='admin_queue'),
    path('admin/<int:pk>/action/', views.AdminActionView.as_view(), name='admin_action'),
]
