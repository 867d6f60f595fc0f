from django import template

register = template.Library()


@register.filter
def short_number(value):
    """
    Extracts the monthly sequence from 'KK-YYYYMM-NNNN'.
    Example: 'KK-202403-0004' -> '0004'
    """
    if not value or '-' not in value:
        return value
    return value.rsplit('-', 1)[-1]


@register.inclusion_tag('applications/_status_badge.html')
def status_badge(application):
    return {
        'label': application.get_status_display(),
        'css': application.status_badge,
    }
