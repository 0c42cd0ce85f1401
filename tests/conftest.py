import datetime
import socket
import ssl
import threading
from datetime import timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from ssl_inspect.web_server import create_app

NOW = datetime.datetime.now(timezone.utc).replace(microsecond=0)


def make_certificate(common_name, issuer=None, dns_names=(), ca=False,
                     not_before=None, not_after=None):
    """
    Build a certificate signed by issuer, a (certificate, key) pair, or self-signed.

    Returns (certificate, private_key).
    """
    key = ec.generate_private_key(ec.SECP256R1())
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    if issuer is None:
        issuer_name, signing_key = subject, key
    else:
        issuer_name, signing_key = issuer[0].subject, issuer[1]

    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer_name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before or NOW - datetime.timedelta(days=1))
        .not_valid_after(not_after or NOW + datetime.timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=0 if ca else None), critical=True)
    )
    if dns_names:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(name) for name in dns_names]), critical=False)
    if not ca:
        builder = builder.add_extension(
            x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
    return builder.sign(signing_key, hashes.SHA256()), key


@pytest.fixture(scope="session")
def ca():
    return make_certificate("Test Intermediate CA", ca=True)


@pytest.fixture(scope="session")
def leaf(ca):
    return make_certificate("www.example.test", issuer=ca,
                            dns_names=["www.example.test", "example.test"])


@pytest.fixture(scope="session")
def expired_leaf():
    return make_certificate("expired.example.test", dns_names=["expired.example.test"],
                            not_before=NOW - datetime.timedelta(days=60),
                            not_after=NOW - datetime.timedelta(days=1))


class LocalTLSServer:
    """Accepts TLS connections on 127.0.0.1 and presents a fixed certificate chain."""

    def __init__(self, chain, key, tmp_path):
        certfile = tmp_path / "chain.pem"
        keyfile = tmp_path / "key.pem"
        certfile.write_bytes(b"".join(c.public_bytes(serialization.Encoding.PEM) for c in chain))
        keyfile.write_bytes(key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ))
        self.context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        self.context.load_cert_chain(str(certfile), str(keyfile))
        self.server_names = []
        self.context.sni_callback = lambda sslobj, name, context: self.server_names.append(name)

        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.listen(5)
        self.sock.settimeout(0.2)
        self.port = self.sock.getsockname()[1]
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._serve, daemon=True)

    def _serve(self):
        while not self._stop.is_set():
            try:
                conn, _ = self.sock.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            conn.settimeout(5)
            try:
                with self.context.wrap_socket(conn, server_side=True):
                    pass
            except (ssl.SSLError, OSError):
                conn.close()

    def __enter__(self):
        self._thread.start()
        return self

    def __exit__(self, *exc):
        self._stop.set()
        self._thread.join(timeout=5)
        self.sock.close()


@pytest.fixture
def tls_server(tmp_path, leaf, ca):
    with LocalTLSServer([leaf[0], ca[0]], leaf[1], tmp_path) as server:
        yield server


@pytest.fixture
def expired_tls_server(tmp_path, expired_leaf):
    with LocalTLSServer([expired_leaf[0]], expired_leaf[1], tmp_path) as server:
        yield server


@pytest.fixture
def closed_port():
    """A local port with nothing listening on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@pytest.fixture
def app():
    app = create_app()
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
