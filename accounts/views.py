import logging

from django.contrib import messages
from django.contrib.auth import login
from django.contrib.auth.decorators import login_required
from django.contrib.auth.views import LoginView
from django.http import JsonResponse
from django.shortcuts import redirect, render
from django.views.decorators.http import require_POST
from django.views.generic import CreateView

from .forms import CitizenRegistrationForm, EmailOTPForm, LoginForm
from .utils import issue_email_otp, verify_email_otp

logger = logging.getLogger(__name__)


class PortalLoginView(LoginView):
    authentication_form = LoginForm
    redirect_authenticated_user = True
    template_name = 'registration/login.html'


class RegisterView(CreateView):
    form_class = CitizenRegistrationForm
    template_name = 'accounts/register.html'

    def form_valid(self, form):
        user = form.save()
        login(self.request, user, backend='django.contrib.auth.backends.ModelBackend')
        try:
            issue_email_otp(user)
        except OSError:
            # Account exists; the user can ask for a new code from the verify page.
            logger.exception("Could not send OTP to new user %s", user.pk)
            messages.warning(self.request, "We could not send the verification code. Please request a new one.")
        else:
            messages.success(self.request, f"A verification code was sent to {user.email}.")
        return redirect('verify_email')


@login_required
def verify_email(request):
    if request.user.email_verified:
        return redirect('dashboard')

    if request.method == 'POST':
        form = EmailOTPForm(request.POST)
        if form.is_valid():
            if verify_email_otp(request.user, form.cleaned_data['code']):
                messages.success(request, "Email verified. You can now submit an application.")
                return redirect('dashboard')
            form.add_error('code', "Invalid or expired code.")
    else:
        form = EmailOTPForm()

    return render(request, 'accounts/verify_email.html', {'form': form})


@login_required
@require_POST
def resend_otp(request):
    if request.user.email_verified:
        return redirect('dashboard')
    try:
        issue_email_otp(request.user)
    except OSError:
        logger.exception("Could not resend OTP to user %s", request.user.pk)
        messages.error(request, "We could not send the verification code. Please try again later.")
    else:
        messages.success(request, f"A new code was sent to {request.user.email}.")
    return redirect('verify_email')


@login_required
def who_am_i(request):
    user = request.user
    data = {
        "username": user.username,
        "email": user.email,
        "role": user.role,
        "is_administrator": user.is_administrator,
        "email_verified": user.email_verified,
    }
    return JsonResponse(data)
