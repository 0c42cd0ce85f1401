# src/ssl_inspect/projections.py

"""
Response projections over fetched certificates.

Three shapes are produced: the raw leaf certificate, the validity summary of
the leaf, and the raw chain. Only the summary computes validity; the raw
shapes report the certificate timestamps as they are.
"""

import datetime
import logging
from datetime import timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed448, ed25519, rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, ExtensionOID, NameOID

logger = logging.getLogger(__name__)

SCT_OID = x509.ObjectIdentifier("1.3.6.1.4.1.11129.2.4.2")


# --- Field helpers ---

def get_common_name(subject: x509.Name) -> str:
    """Extracts the Common Name (CN) from a subject, or '' when there is none."""
    cn_list = subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    return str(cn_list[0].value) if cn_list else ""


def extract_dns_names(cert: x509.Certificate) -> List[str]:
    """Extract the DNS names of the Subject Alternative Name extension."""
    try:
        ext = cert.extensions.get_extension_for_oid(ExtensionOID.SUBJECT_ALTERNATIVE_NAME)
    except x509.ExtensionNotFound:
        return []
    return ext.value.get_values_for_type(x509.DNSName)


def get_validity_window(cert: x509.Certificate) -> Tuple[datetime.datetime, datetime.datetime]:
    """Return (not_before, not_after) as timezone-aware UTC datetimes."""
    return cert.not_valid_before_utc, cert.not_valid_after_utc


def format_timestamp(value: datetime.datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def get_sha256_fingerprint(cert: x509.Certificate) -> str:
    """Calculates the SHA-256 fingerprint of the certificate."""
    return cert.fingerprint(hashes.SHA256()).hex()


def get_public_key_details(cert: x509.Certificate) -> Tuple[str, Optional[int]]:
    """Extracts the public key algorithm and size."""
    public_key = cert.public_key()
    if isinstance(public_key, rsa.RSAPublicKey):
        return "RSA", public_key.key_size
    elif isinstance(public_key, ec.EllipticCurvePublicKey):
        return f"ECDSA ({public_key.curve.name})", public_key.curve.key_size
    elif isinstance(public_key, dsa.DSAPublicKey):
        return "DSA", public_key.key_size
    elif isinstance(public_key, ed25519.Ed25519PublicKey):
        return "Ed25519", 256
    elif isinstance(public_key, ed448.Ed448PublicKey):
        return "Ed448", 456
    return type(public_key).__name__, None


def get_signature_algorithm(cert: x509.Certificate) -> str:
    """Name of the signature algorithm, falling back to its dotted OID."""
    oid = cert.signature_algorithm_oid
    return getattr(oid, "_name", None) or oid.dotted_string


def get_basic_constraints(cert: x509.Certificate) -> Tuple[bool, Optional[int]]:
    try:
        bc = cert.extensions.get_extension_for_oid(ExtensionOID.BASIC_CONSTRAINTS).value
    except x509.ExtensionNotFound:
        return False, None
    return bc.ca, bc.path_length


def has_scts(cert: x509.Certificate) -> bool:
    """Checks if the certificate has Signed Certificate Timestamps (SCTs)."""
    try:
        cert.extensions.get_extension_for_oid(SCT_OID)
        return True
    except x509.ExtensionNotFound:
        return False


def detect_profile(cert: x509.Certificate) -> str:
    """
    Detect the intended usage profile of a certificate from its EKU and KU extensions.
    """
    try:
        usages = list(cert.extensions.get_extension_for_oid(ExtensionOID.EXTENDED_KEY_USAGE).value)
    except x509.ExtensionNotFound:
        usages = []
    if ExtendedKeyUsageOID.SERVER_AUTH in usages: return "TLS Server"
    if ExtendedKeyUsageOID.CLIENT_AUTH in usages: return "TLS Client"
    if ExtendedKeyUsageOID.EMAIL_PROTECTION in usages: return "Email Protection (S/MIME)"
    if ExtendedKeyUsageOID.CODE_SIGNING in usages: return "Code Signing"
    if usages: return f"Custom/Other EKU ({', '.join(oid.dotted_string for oid in usages)})"

    try:
        key_usage = cert.extensions.get_extension_for_oid(ExtensionOID.KEY_USAGE).value
    except x509.ExtensionNotFound:
        return "Legacy / Incomplete (No KU/EKU extensions)"
    if key_usage.key_cert_sign: return "CA / Certificate Signing"
    if key_usage.crl_sign: return "CRL Signing"
    if key_usage.digital_signature: return "Digital Signature (Generic)"
    return "Unknown / Undetermined"


# --- Projections ---

def certificate_to_dict(cert: x509.Certificate) -> Dict[str, Any]:
    """
    Raw projection of a certificate: every field the parsed certificate exposes.

    No validity computation happens here; not_before and not_after are the
    certificate's own timestamps.
    """
    not_before, not_after = get_validity_window(cert)
    key_algo, key_size = get_public_key_details(cert)
    is_ca, path_len = get_basic_constraints(cert)
    return {
        "subject": cert.subject.rfc4514_string(),
        "issuer": cert.issuer.rfc4514_string(),
        "common_name": get_common_name(cert.subject),
        "serial_number": hex(cert.serial_number),
        "version": cert.version.name,
        "not_before": format_timestamp(not_before),
        "not_after": format_timestamp(not_after),
        "dns_names": extract_dns_names(cert),
        "sha256_fingerprint": get_sha256_fingerprint(cert),
        "signature_algorithm": get_signature_algorithm(cert),
        "public_key_algorithm": key_algo,
        "public_key_size_bits": key_size,
        "is_ca": is_ca,
        "path_length_constraint": path_len,
        "has_scts": has_scts(cert),
        "profile": detect_profile(cert),
        "pem": cert.public_bytes(serialization.Encoding.PEM).decode("ascii"),
    }


def chain_to_list(chain: Sequence[x509.Certificate]) -> List[Dict[str, Any]]:
    """Raw projection of every certificate in the chain, order preserved."""
    return [certificate_to_dict(cert) for cert in chain]


def is_within_validity(not_before: datetime.datetime, not_after: datetime.datetime,
                       now: datetime.datetime) -> bool:
    # Open interval: a certificate is not valid at the exact boundary instants.
    return not_before < now < not_after


def build_ssl_summary(website: str, cert: x509.Certificate,
                      now: Optional[datetime.datetime] = None) -> Dict[str, Any]:
    """
    Build the SSL Summary of a leaf certificate.

    Parameters:
        website (str): hostname the certificate was fetched from.
        cert (x509.Certificate): the leaf certificate.
        now (datetime, optional): reference instant; defaults to the current
            UTC time, taken when the summary is built rather than at handshake.

    Returns:
        dict: website, common_name, dns_names, not_before, not_after, is_valid.
    """
    if now is None:
        now = datetime.datetime.now(timezone.utc)
    not_before, not_after = get_validity_window(cert)
    is_valid = is_within_validity(not_before, not_after, now)
    logger.debug(f"{website}: window {not_before} -> {not_after}, now {now}, valid={is_valid}")
    return {
        "website": website,
        "common_name": get_common_name(cert.subject),
        "dns_names": extract_dns_names(cert),
        "not_before": format_timestamp(not_before),
        "not_after": format_timestamp(not_after),
        "is_valid": is_valid,
    }
