"""
UDP broadcast discovery for the chart tool
"""

import json
import socket
import ipaddress
import logging
from typing import Callable, Dict, List, Optional

import psutil

from config_loader import DEFAULT_DISCOVER_TOKEN
from error_helper import describe_exception
from .models import DiscoveredServer, DiscoveryError

logger = logging.getLogger(__name__)

GLOBAL_BROADCAST = "255.255.255.255"

DiagnosticSink = Callable[[str], None]

class NetworkDiscovery:
    """Sends the discovery token to every broadcast address and waits for the first answer"""

    def __init__(self, config: Optional[Dict] = None):
        config = config or {}
        self.token = config.get('token', DEFAULT_DISCOVER_TOKEN)
        self.buffer_size = config.get('buffer_size', 2048)
        self.extra_targets = list(config.get('extra_targets', []))

    def discover(self, port: int, timeout_ms: int,
                 log: Optional[DiagnosticSink] = None) -> Optional[DiscoveredServer]:
        """
        Broadcast one discovery datagram and wait for a single response.
        Returns None when nothing usable arrives within timeout_ms.
        Raises DiscoveryError when the UDP socket cannot be set up.
        """
        sink = log or (lambda message: None)
        self._note(sink, f"Starting UDP discover: port={port}, timeout={timeout_ms}ms")

        targets = self.broadcast_targets(sink)
        self._note(sink, f"Broadcast targets: {', '.join(targets)}")

        payload = self.token.encode('utf-8')

        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        except OSError as e:
            raise DiscoveryError(f"Cannot allocate UDP socket: {e}") from e

        try:
            try:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
                sock.bind(('', 0))
                sock.settimeout(timeout_ms / 1000.0)
            except OSError as e:
                raise DiscoveryError(f"Cannot configure UDP socket: {e}") from e

            for address in targets:
                target = f"{address}:{port}"
                self._note(sink, f"Sending broadcast to {target}")
                try:
                    sock.sendto(payload, (address, port))
                except OSError as e:
                    self._note(sink, f"Send failed to {target}: {describe_exception(e)}", logging.WARNING)
            self._note(sink, "All broadcasts sent, waiting for response...")

            # Only the first datagram is consulted, later answers die with the socket
            try:
                data, sender = sock.recvfrom(self.buffer_size)
            except socket.timeout:
                self._note(sink, f"Timeout: no UDP response within {timeout_ms}ms", logging.WARNING)
                return None
            except OSError as e:
                self._note(sink, f"Discover exception: {describe_exception(e)}", logging.ERROR)
                return None

            return self.parse_response(data, sender[0], sink)
        finally:
            sock.close()

    def broadcast_targets(self, log: Optional[DiagnosticSink] = None) -> List[str]:
        """Global broadcast plus the broadcast address of every active non-loopback IPv4 interface"""
        sink = log or (lambda message: None)
        targets = [GLOBAL_BROADCAST]

        try:
            stats = psutil.net_if_stats()
            for name, addresses in psutil.net_if_addrs().items():
                if_stats = stats.get(name)
                if if_stats is None or not if_stats.isup:
                    continue
                for addr in addresses:
                    if addr.family != socket.AF_INET or not addr.broadcast:
                        continue
                    if ipaddress.IPv4Address(addr.address).is_loopback:
                        continue
                    targets.append(addr.broadcast)
        except Exception as e:
            self._note(sink, f"Failed to enumerate network interfaces: {describe_exception(e)}", logging.WARNING)

        targets.extend(self.extra_targets)

        # dict preserves insertion order, so the first occurrence wins
        return list(dict.fromkeys(targets))

    def parse_response(self, data: bytes, sender_ip: str,
                       log: Optional[DiagnosticSink] = None) -> Optional[DiscoveredServer]:
        """Parse a JSON discovery response, None unless it carries a non-blank ws_url"""
        sink = log or (lambda message: None)
        try:
            text = data.decode('utf-8')
            self._note(sink, f"Received response from {sender_ip}: {text}")
            response = json.loads(text)
        except (UnicodeDecodeError, ValueError) as e:
            self._note(sink, f"Discover exception: {describe_exception(e)}", logging.ERROR)
            return None

        if not isinstance(response, dict):
            self._note(sink, f"Discover response from {sender_ip} is not a JSON object", logging.WARNING)
            return None

        stream_url = response.get('ws_url')
        if not isinstance(stream_url, str) or not stream_url.strip():
            return None

        return DiscoveredServer(
            stream_url=stream_url.strip(),
            info_url=_optional_str(response.get('http_info_url')),
            name=_optional_str(response.get('name')),
            version=_optional_str(response.get('version')),
            address=sender_ip
        )

    def _note(self, sink: DiagnosticSink, message: str, level: int = logging.DEBUG):
        logger.log(level, message)
        sink(message)

def _optional_str(value) -> Optional[str]:
    return value if isinstance(value, str) and value else None
