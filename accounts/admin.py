from django.contrib import admin
from django.contrib.auth.admin import UserAdmin
from .models import User, EmailOTP


@admin.register(User)
class PortalUserAdmin(UserAdmin):
    list_display = ('username', 'email', 'role', 'email_verified', 'is_active', 'is_staff')
    list_filter = ('role', 'email_verified', 'is_active', 'is_staff')
    search_fields = ('username', 'email', 'first_name')
    fieldsets = UserAdmin.fieldsets + (
        ('Portal Role', {'fields': ('role', 'email_verified')}),
    )
    add_fieldsets = UserAdmin.add_fieldsets + (
        ('Portal Role', {'fields': ('email', 'role')}),
    )


@admin.register(EmailOTP)
class EmailOTPAdmin(admin.ModelAdmin):
    list_display = ('user', 'created_at', 'expires_at', 'used_at')
    list_filter = ('created_at',)
    search_fields = ('user__username', 'user__email')
    readonly_fields = ('code', 'created_at')
