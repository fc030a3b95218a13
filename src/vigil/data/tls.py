"""TLS trust material for database connections."""

from __future__ import annotations

import ssl
from pathlib import Path


def create_ssl_context(ca_file: Path) -> ssl.SSLContext:
    """Build a verifying client context that trusts only ``ca_file``.

    Raises:
        OSError: If the file cannot be read.
        ssl.SSLError: If it does not contain a usable certificate.

    """
    context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH, cafile=str(ca_file))
    context.check_hostname = True
    context.verify_mode = ssl.CERT_REQUIRED
    return context
