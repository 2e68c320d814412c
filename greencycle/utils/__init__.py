"""Utilities package"""
from .validators import validate_coordinates, to_float, to_int, clean_text
from .helpers import round_half_up, parse_date, paginate_query

__all__ = [
    'validate_coordinates',
    'to_float',
    'to_int',
    'clean_text',
    'round_half_up',
    'parse_date',
    'paginate_query',
]
