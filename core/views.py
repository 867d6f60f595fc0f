from django.contrib.auth.decorators import login_required
from django.shortcuts import redirect, render

from applications.models import KKApplication
from applications.services import get_active_application


def landing(request):
    """
    Public Home Page
    """
    context = {
        'announcements': [
            'Layanan permohonan Kartu Keluarga dapat diajukan secara online.',
            'Siapkan Akta Kelahiran dan fotokopi KTP Kepala Keluarga (maks. 2 MB per berkas).',
            'Status permohonan dapat dilacak dengan nomor permohonan.',
        ]
    }
    return render(request, 'home.html', context)


@login_required
def dashboard(request):
    """
    Role based landing after login.
    """
    if request.user.is_administrator:
        counts = {
            status: KKApplication.objects.filter(status=status).count()
            for status in KKApplication.Status.values
        }
        kpis = [
            {'status': value, 'label': label, 'count': counts[value]}
            for value, label in KKApplication.Status.choices
        ]
        return render(request, 'dashboard_admin.html', {'kpis': kpis})

    if not request.user.email_verified:
        return redirect('verify_email')

    context = {
        'active_application': get_active_application(request.user),
        'recent_applications': KKApplication.objects.filter(owner=request.user)[:5],
    }
    return render(request, 'dashboard_home.html', context)


def track_status(request):
    """
    Public view to track an application by its number.
    Only the status information is shown, never personal data.
    """
    query = request.GET.get('q', '').strip()
    result = None

    if query:
        application = KKApplication.objects.filter(application_number__iexact=query).first()
        if application:
            result = {
                'ref': application.application_number,
                'status': application.get_status_display(),
                'badge': application.status_badge,
                'date': application.submitted_at,
                'completed_at': application.completed_at,
                'note': application.note if application.status == KKApplication.Status.REJECTED else '',
            }

    context = {
        'query': query,
        'result': result,
        'searched': bool(query),
    }
    return render(request, 'track_status.html', context)
