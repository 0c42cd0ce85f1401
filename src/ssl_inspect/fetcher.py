# src/ssl_inspect/fetcher.py

"""
Certificate retrieval over a single TLS handshake.

Peer verification is disabled on purpose: the whole point of the tool is to
look at certificates that may be expired, self-signed or otherwise untrusted,
so a verification failure must never stop the handshake. Do not "fix" this by
turning verification on.
"""

import ipaddress
import logging
import socket
import time
from typing import List

from cryptography import x509
from OpenSSL import SSL

# --- Configuration ---
CONNECT_PORT = 443
CONNECT_TIMEOUT = 2  # Seconds, one deadline for TCP connection establishment across all addresses

NO_CERTIFICATE_MESSAGE = "unable to retrieve SSL certificate information"

logger = logging.getLogger(__name__)


class CertificateFetchError(ConnectionError):
    """The TLS dial or handshake with the remote host could not complete."""


class NoCertificateError(CertificateFetchError):
    """The handshake completed but the peer presented no certificate."""

    def __init__(self, message: str = NO_CERTIFICATE_MESSAGE):
        super().__init__(message)


def _make_context() -> SSL.Context:
    context = SSL.Context(SSL.TLS_CLIENT_METHOD)
    # Inspection, not validation: accept whatever the peer sends.
    context.set_verify(SSL.VERIFY_NONE, lambda *args: True)
    return context


def _server_name(hostname: str):
    """SNI value for hostname, or None for IP literals (RFC 6066 allows DNS names only)."""
    hostname = hostname.rstrip(".")
    try:
        ipaddress.ip_address(hostname)
    except ValueError:
        return hostname.encode("idna")
    return None


def _dial(hostname: str, port: int, timeout: float) -> socket.socket:
    """
    Connect to the first reachable address of hostname:port.

    The timeout is a single deadline shared by every resolved address, not a
    per-address budget. The last connect error is raised when all fail.
    """
    deadline = time.monotonic() + timeout
    last_error = None
    for family, socktype, proto, _, address in socket.getaddrinfo(hostname, port, type=socket.SOCK_STREAM):
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        sock = socket.socket(family, socktype, proto)
        sock.settimeout(remaining)
        try:
            sock.connect(address)
            return sock
        except OSError as e:
            logger.debug(f"Connect to {address} failed: {e}")
            sock.close()
            last_error = e
    if last_error is None:
        raise socket.timeout("timed out")
    raise last_error


def _peer_chain(hostname: str, port: int, timeout: float) -> List[x509.Certificate]:
    """
    Perform one handshake with hostname:port and return the peer chain, leaf first.

    The connection is always closed before returning. Any failure on the way is
    re-raised as CertificateFetchError carrying the original error text.
    """
    logger.debug(f"Connecting to {hostname}:{port} (timeout={timeout}s)...")
    sock = None
    conn = None
    try:
        sock = _dial(hostname, port, timeout)
        # The timeout covers the connect only; pyOpenSSL needs a blocking socket.
        sock.setblocking(True)
        conn = SSL.Connection(_make_context(), sock)
        server_name = _server_name(hostname)
        if server_name is not None:
            conn.set_tlsext_host_name(server_name)
        conn.set_connect_state()
        conn.do_handshake()
        chain = conn.get_peer_cert_chain() or []
        certs = [cert.to_cryptography() for cert in chain]
        logger.info(f"Received {len(certs)} certificate(s) from {hostname}:{port} "
                    f"({conn.get_protocol_version_name()}, {conn.get_cipher_name()})")
        return certs
    except (OSError, SSL.Error, UnicodeError) as e:
        logger.debug(f"TLS dial to {hostname}:{port} failed: {e}")
        raise CertificateFetchError(str(e)) from e
    finally:
        if conn is not None:
            try: conn.shutdown()
            except (OSError, SSL.Error): pass
        if sock is not None:
            sock.close()


def fetch_certificate_chain(hostname: str, port: int = CONNECT_PORT,
                            timeout: float = CONNECT_TIMEOUT) -> List[x509.Certificate]:
    """
    Fetch the certificate chain exactly as presented by the peer.

    Order is preserved, leaf first. An empty chain is returned as an empty
    list rather than an error.
    """
    return _peer_chain(hostname, port, timeout)


def fetch_leaf_certificate(hostname: str, port: int = CONNECT_PORT,
                           timeout: float = CONNECT_TIMEOUT) -> x509.Certificate:
    """Fetch only the end-entity certificate, the first one the peer presents."""
    chain = _peer_chain(hostname, port, timeout)
    if not chain:
        logger.debug(f"No certificate received from server {hostname}.")
        raise NoCertificateError()
    return chain[0]
