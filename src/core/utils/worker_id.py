"""Worker ID generation using coolnames for memorable identifiers."""

from coolname import generate_slug


def generate_worker_id(prefix: str = "") -> str:
    """Generate a unique, memorable worker ID.

    Examples:
        >>> generate_worker_id()
        'brave-golden-tiger'
        >>> generate_worker_id("gateway-router-0")
        'gateway-router-0-swift-blue-falcon'
    """
    slug = generate_slug(3)
    return f"{prefix}-{slug}" if prefix else slug
