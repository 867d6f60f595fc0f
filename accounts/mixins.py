from django.contrib.auth.mixins import AccessMixin
from django.shortcuts import redirect
from django.contrib import messages


class AdminRequiredMixin(AccessMixin):
    """Verify that the current user carries the administrator role."""
    def dispatch(self, request, *args, **kwargs):
        if not request.user.is_authenticated:
            return self.handle_no_permission()

        if not request.user.is_administrator:
            messages.error(request, "You do not have permission to access this page.")
            return redirect('dashboard')

        return super().dispatch(request, *args, **kwargs)


class CitizenRequiredMixin(AccessMixin):
    """Logged-in, non-admin user whose email address has been verified."""
    def dispatch(self, request, *args, **kwargs):
        if not request.user.is_authenticated:
            return self.handle_no_permission()

        if request.user.is_administrator:
            messages.error(request, "Administrators cannot submit applications.")
            return redirect('dashboard')

        if not request.user.email_verified:
            messages.warning(request, "Please verify your email address first.")
            return redirect('verify_email')

        return super().dispatch(request, *args, **kwargs)
