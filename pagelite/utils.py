from urllib.parse import urlparse

SIZE_UNITS = "KMGTPE"


def is_valid_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def normalize_server_url(value: str) -> str:
    """Trim whitespace and one trailing slash, the way server URLs are stored."""
    value = value.strip()
    return value[:-1] if value.endswith("/") else value


def format_size(size: int) -> str:
    """Human readable size: ``512 B``, ``1.5 KB``, ``3.0 MB``."""
    unit = 1024
    if size < unit:
        return f"{size} B"
    div, exp = unit, 0
    n = size // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{size / div:.1f} {SIZE_UNITS[exp]}B"
