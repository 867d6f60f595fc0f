import logging
import os

from django.contrib import messages
from django.contrib.auth.mixins import LoginRequiredMixin
from django.db.models import Q
from django.http import FileResponse, Http404, JsonResponse
from django.shortcuts import get_object_or_404, redirect, render
from django.urls import reverse
from django.views import View
from django.views.generic import DetailView, ListView

from accounts.mixins import AdminRequiredMixin, CitizenRequiredMixin
from . import services
from .exceptions import (
    ApplicationError,
    DuplicateActiveApplication,
    InvalidFormat,
    ValidationFailed,
)
from .forms import AdminActionForm, ApplicationForm, FamilyMemberFormSet
from .models import KKApplication
from .utils import generate_receipt_image

logger = logging.getLogger(__name__)


def visible_applications(user):
    """Administrators see every application, citizens only their own."""
    if user.is_administrator:
        return KKApplication.objects.all()
    return KKApplication.objects.filter(owner=user)


# --- CITIZEN VIEWS ---

class ApplicationCreateView(CitizenRequiredMixin, View):
    template_name = 'applications/application_form.html'

    def get(self, request):
        active = services.get_active_application(request.user)
        if active:
            messages.info(request, f"Your application {active.application_number} is still being processed.")
            return redirect('applications:detail', pk=active.pk)

        form = ApplicationForm()
        formset = FamilyMemberFormSet(instance=KKApplication())
        return render(request, self.template_name, {'form': form, 'formset': formset})

    def post(self, request):
        form = ApplicationForm(request.POST, request.FILES)
        formset = FamilyMemberFormSet(request.POST, instance=KKApplication())

        if form.is_valid() and formset.is_valid():
            members = [f.cleaned_data for f in formset.forms if f.cleaned_data]
            try:
                application = services.create_application(
                    owner=request.user,
                    data=form.application_data(),
                    members=members,
                    documents=form.document_uploads(),
                )
            except DuplicateActiveApplication as e:
                messages.error(request, e.message)
                return redirect('applications:my_list')
            except ValidationFailed as e:
                for field, errors in e.errors.items():
                    target = field if field in form.fields else None
                    for error in errors:
                        form.add_error(target, error)
            except ApplicationError as e:
                messages.error(request, e.message)
            else:
                messages.success(request, f"Application {application.application_number} submitted.")
                return redirect('applications:detail', pk=application.pk)

        return render(request, self.template_name, {'form': form, 'formset': formset})


class MyApplicationListView(LoginRequiredMixin, ListView):
    template_name = 'applications/my_applications.html'
    context_object_name = 'applications'
    paginate_by = 20

    def get_queryset(self):
        return KKApplication.objects.filter(owner=self.request.user).order_by('-submitted_at')


class ApplicationDetailView(LoginRequiredMixin, DetailView):
    template_name = 'applications/application_detail.html'
    context_object_name = 'application'

    def get_queryset(self):
        return visible_applications(self.request.user).prefetch_related('members', 'logs')

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        application = self.object
        if self.request.user.is_administrator:
            actions = application.available_actions(self.request.user)
            context['action_form'] = AdminActionForm(actions=actions) if actions else None
        context['can_cancel'] = application.owner_id == self.request.user.pk and application.is_cancellable
        return context


class CancelApplicationView(LoginRequiredMixin, View):
    def post(self, request, pk):
        try:
            number = services.cancel_application(request.user, pk)
        except ApplicationError as e:
            messages.error(request, e.message)
            if KKApplication.objects.filter(pk=pk, owner=request.user).exists():
                return redirect('applications:detail', pk=pk)
            return redirect('applications:my_list')

        messages.success(request, f"Application {number} has been cancelled.")
        return redirect('applications:my_list')


class DownloadReceiptView(LoginRequiredMixin, View):
    def get(self, request, pk):
        application = get_object_or_404(visible_applications(request.user), pk=pk)
        tracking_url = request.build_absolute_uri(
            f"{reverse('track_status')}?q={application.application_number}"
        )
        buffer = generate_receipt_image(application, tracking_url)
        return FileResponse(buffer, as_attachment=True, filename=f"Receipt_{application.application_number}.jpg")


class DocumentView(LoginRequiredMixin, View):
    """Streams an uploaded document to its owner or an administrator."""
    def get(self, request, pk, field):
        if field not in KKApplication.DOCUMENT_FIELDS:
            raise Http404("Unknown document")
        application = get_object_or_404(visible_applications(request.user), pk=pk)
        document = getattr(application, field)
        if not document:
            raise Http404("Document not uploaded")
        try:
            handle = document.open('rb')
        except OSError:
            logger.exception("Document %s of application %s is missing from storage", field, application.pk)
            raise Http404("Document not available")
        return FileResponse(handle, filename=os.path.basename(document.name))


class CheckNumberAvailabilityView(LoginRequiredMixin, View):
    def get(self, request):
        candidate = request.GET.get('no_kk', '')
        try:
            exists = services.check_application_number_availability(candidate)
        except InvalidFormat as e:
            return JsonResponse({'valid': False, 'detail': e.message}, status=400)
        return JsonResponse({'valid': True, 'exists': exists, 'available': not exists})


# --- ADMIN VIEWS ---

class AdminQueueView(AdminRequiredMixin, ListView):
    template_name = 'applications/admin/queue.html'
    context_object_name = 'applications'
    paginate_by = 25

    def get_queryset(self):
        qs = KKApplication.objects.select_related('owner')

        status = self.request.GET.get('status')
        if status in KKApplication.Status.values:
            qs = qs.filter(status=status)
        elif not status:
            qs = qs.filter(status__in=KKApplication.ACTIVE_STATUSES)

        query = self.request.GET.get('q', '').strip()
        if query:
            qs = qs.filter(
                Q(application_number__icontains=query) |
                Q(no_kk__icontains=query) |
                Q(head_name__icontains=query) |
                Q(head_nik__icontains=query)
            )
        return qs.order_by('submitted_at')

    def get_context_data(self, **kwargs):
        context = super().get_context_data(**kwargs)
        context['statuses'] = KKApplication.Status.choices
        context['current_status'] = self.request.GET.get('status', '')
        context['query'] = self.request.GET.get('q', '')
        return context


class AdminActionView(AdminRequiredMixin, View):
    def post(self, request, pk):
        application = get_object_or_404(KKApplication, pk=pk)
        form = AdminActionForm(request.POST, actions=application.available_actions(request.user))

        if not form.is_valid():
            for errors in form.errors.values():
                for error in errors:
                    messages.error(request, error)
            return redirect('applications:detail', pk=pk)

        try:
            application = services.transition_application(
                request.user,
                pk,
                form.cleaned_data['action'],
                note=form.cleaned_data['note'],
            )
        except ApplicationError as e:
            messages.error(request, e.message)
        else:
            messages.success(
                request,
                f"Application {application.application_number} is now {application.get_status_display()}."
            )
        return redirect('applications:detail', pk=pk)
