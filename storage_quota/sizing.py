"""
Size estimation heuristic shared by the breakdown and the cleanup paths

Character length of the body stands in for its byte size, so every figure
here is an approximation.
"""

# Typical stored email: ~10KB plain text, ~50KB with HTML
MIN_ESTIMATED_SIZE_BYTES = 50 * 1024

KB = 1024
MB = 1024 * KB

_UNITS = ['Bytes', 'KB', 'MB', 'GB', 'TB']


def raw_size(document) -> int:
    """Body length plus attachment sizes, no floor"""
    body = getattr(document, 'body', None)
    body_size = 0
    if body is not None:
        body_size = len(body.html or '') + len(body.text or '')
    attachments = getattr(document, 'attachments', None) or []
    return body_size + sum(att.size or 0 for att in attachments)


def estimate_size(document) -> int:
    """raw_size floored at MIN_ESTIMATED_SIZE_BYTES"""
    return max(raw_size(document), MIN_ESTIMATED_SIZE_BYTES)


def format_bytes(num_bytes: float) -> str:
    """Human-readable size, e.g. 1536 -> '1.5 KB'"""
    if num_bytes < 0:
        raise ValueError(f"num_bytes must be non-negative, got {num_bytes}")
    if num_bytes == 0:
        return '0 Bytes'

    exponent = 0
    scaled = float(num_bytes)
    while scaled >= 1024 and exponent < len(_UNITS) - 1:
        scaled /= 1024
        exponent += 1
    value = f"{scaled:.2f}".rstrip('0').rstrip('.')
    return f"{value} {_UNITS[exponent]}"
