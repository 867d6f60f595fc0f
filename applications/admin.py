from django.contrib import admin
from .models import ApplicationLog, FamilyMember, KKApplication, MonthlySequence


class FamilyMemberInline(admin.TabularInline):
    model = FamilyMember
    extra = 0


@admin.register(KKApplication)
class KKApplicationAdmin(admin.ModelAdmin):
    list_display = ('application_number', 'head_name', 'no_kk', 'owner', 'status', 'submitted_at', 'completed_at')
    list_filter = ('status', 'submitted_at')
    search_fields = ('application_number', 'no_kk', 'head_name', 'head_nik', 'owner__username')
    # Status changes go through the workflow views so every move is logged.
    readonly_fields = ('application_number', 'status', 'submitted_at', 'completed_at', 'owner')
    inlines = [FamilyMemberInline]


@admin.register(ApplicationLog)
class ApplicationLogAdmin(admin.ModelAdmin):
    list_display = ('application_number', 'action', 'from_status', 'to_status', 'by_user', 'timestamp')
    list_filter = ('action', 'timestamp')
    search_fields = ('application_number', 'remarks')


@admin.register(MonthlySequence)
class MonthlySequenceAdmin(admin.ModelAdmin):
    list_display = ('year', 'month', 'last_seq')
    list_filter = ('year',)
