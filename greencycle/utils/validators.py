"""
Validation utilities
"""
import html


def to_float(value):
    """Coerce to float, or None when not numeric"""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def to_int(value):
    """Coerce an integer or integral string to int, or None otherwise"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def validate_coordinates(lat, lon):
    """
    Validate a latitude/longitude pair

    Returns:
        bool: True if both are numeric and within range
    """
    lat = to_float(lat)
    lon = to_float(lon)
    if lat is None or lon is None:
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


def clean_text(value, max_length=None):
    """
    Escape HTML entities in user-supplied free text and trim it

    Non-string values are returned unchanged. Empty strings become None.
    """
    if not isinstance(value, str):
        return value
    value = html.escape(value.strip(), quote=True)
    if max_length is not None:
        value = value[:max_length]
    return value or None
