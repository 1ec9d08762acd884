from .errors import ValidationError


def require_text(value, field: str) -> str:
    """Return the stripped value, or raise ValidationError when blank."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f'{field} is required.')
    return value.strip()


def parse_flag(value, default: bool = False) -> bool:
    """Read a boolean sent as JSON, a form field or a query string."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    if isinstance(value, (int, float)):
        return value != 0
    return default


def require_confirmation(confirm) -> bool:
    return parse_flag(confirm)
