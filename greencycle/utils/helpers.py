"""
Helper utilities
"""
import math
from datetime import datetime, date


def round_half_up(value):
    """
    Round to the nearest integer, halves away from zero

    Python's round() uses banker's rounding; values, points and percentages
    here follow the usual commercial rule instead.

    Args:
        value: Numeric value

    Returns:
        int: Rounded value
    """
    if value < 0:
        return -int(math.floor(-value + 0.5))
    return int(math.floor(value + 0.5))


def parse_date(value, format='%Y-%m-%d'):
    """
    Parse a date string (or pass a date through)

    Args:
        value: date, datetime or date string
        format (str): strptime format string

    Returns:
        date: Date object or None if invalid
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(value, format).date()
    except (ValueError, TypeError):
        return None


def paginate_query(query, page=1, per_page=20, max_per_page=100):
    """Helper to paginate SQLAlchemy queries"""
    page = max(1, page)
    per_page = min(max_per_page, max(1, per_page))

    paginated = query.paginate(page=page, per_page=per_page, error_out=False)

    return {
        'items': paginated.items,
        'total': paginated.total,
        'page': page,
        'per_page': per_page,
        'pages': paginated.pages,
        'has_next': paginated.has_next,
        'has_prev': paginated.has_prev
    }
