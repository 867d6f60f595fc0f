from django.urls import path
from django.contrib.auth import views as auth_views
from . import views

urlpatterns = [
    path('login/', views.PortalLoginView.as_view(), name='login'),
    path('logout/', auth_views.LogoutView.as_view(), name='logout'),
    path('register/', views.RegisterView.as_view(), name='register'),

    # Email verification
    path('verify-email/', views.verify_email, name='verify_email'),
    path('verify-email/resend/', views.resend_otp, name='resend_otp'),

    path('whoami/', views.who_am_i, name='who_am_i'),
]
