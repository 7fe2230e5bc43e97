import calendar
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP


def get_locale():
    """Language selector function for Babel - returns locale string"""
    from flask import current_app, has_request_context, request
    
    supported = current_app.config.get('BABEL_SUPPORTED_LOCALES', ['fr'])
    if has_request_context():
        lang = request.accept_languages.best_match(supported)
        if lang:
            return lang
    # Default to French
    return current_app.config.get('BABEL_DEFAULT_LOCALE', 'fr')

def utcnow():
    """Naive UTC timestamp, matching the DateTime columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)

def to_cents(amount):
    """
    Convert a euro amount (str, int, float or Decimal) to integer cents.
    Returns None when the value is not a number.
    """
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not value.is_finite():
        return None
    return int((value * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))

def add_months(moment, months):
    """Shift a datetime by whole months, clamping the day to the target month length"""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)

def pagination_meta(page_obj):
    """Metadata block for paginated JSON responses"""
    return {
        'total': page_obj.total,
        'page': page_obj.page,
        'limit': page_obj.per_page,
        'total_pages': page_obj.pages,
    }

def pagination_args(default_limit=20, max_limit=100):
    """page / limit query arguments of the current request"""
    from flask import request
    
    page = max(request.args.get('page', 1, type=int) or 1, 1)
    limit = request.args.get('limit', default_limit, type=int) or default_limit
    return page, min(max(limit, 1), max_limit)

def optional_id(value):
    """Parse an optional integer identifier from a JSON body; None when absent"""
    from app.errors import InvalidRequest
    
    if value in (None, ''):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidRequest(value=value)
