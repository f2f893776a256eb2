# HTTP Helper for chart tool stream connections
# TLS-aware aiohttp session configuration for ws:// and wss:// streams

import aiohttp
import ssl
import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

def create_stream_session(
    connect_timeout_seconds: float = 10,
    ssl_verify: bool = True,
    ca_cert_path: Optional[str] = None
) -> aiohttp.ClientSession:
    """
    Create properly configured aiohttp session for the chart tool stream
    The stream is long-lived, so only the connect phase is bounded by a timeout
    """
    if ssl_verify:
        ssl_context = ssl.create_default_context()
        ssl_context.check_hostname = True
        ssl_context.verify_mode = ssl.CERT_REQUIRED

        if ca_cert_path:
            ca_path = Path(ca_cert_path)
            if ca_path.exists():
                ssl_context.load_verify_locations(ca_path)
                logger.info(f"Loaded custom CA certificate: {ca_path}")
            else:
                logger.warning(f"CA certificate not found: {ca_path}")
    else:
        # Self-signed tool certificates on the local network
        ssl_context = ssl.create_default_context()
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE
        logger.warning("Stream TLS verification disabled")

    connector = aiohttp.TCPConnector(
        ssl=ssl_context,            # Only consulted for wss:// URLs
        force_close=True,           # Never pool the upgraded connection
        enable_cleanup_closed=True
    )

    return aiohttp.ClientSession(
        connector=connector,
        timeout=aiohttp.ClientTimeout(
            total=None,
            connect=connect_timeout_seconds,
            sock_connect=connect_timeout_seconds
        )
    )
