# src/ssl_inspect/web_server.py

"""
HTTP JSON API over the certificate fetcher.

All three endpoints run the same pipeline: check the 'website' query
parameter, fetch, project, respond. They differ only by the inspection
function plugged into it.
"""

import logging
from typing import Any, Callable, Dict

from flask import Flask, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from ssl_inspect.fetcher import (
    CONNECT_TIMEOUT,
    CertificateFetchError,
    fetch_certificate_chain,
    fetch_leaf_certificate,
)
from ssl_inspect.projections import build_ssl_summary, certificate_to_dict, chain_to_list

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080

MISSING_WEBSITE_MESSAGE = "Missing 'website' parameter"

logger = logging.getLogger(__name__)


# --- Inspections: one fetch, one projection each ---

def inspect_info(website: str, timeout: float = CONNECT_TIMEOUT) -> Dict[str, Any]:
    return certificate_to_dict(fetch_leaf_certificate(website, timeout=timeout))


def inspect_dates(website: str, timeout: float = CONNECT_TIMEOUT) -> Dict[str, Any]:
    cert = fetch_leaf_certificate(website, timeout=timeout)
    # is_valid is evaluated now, after the handshake has finished.
    return build_ssl_summary(website, cert)


def inspect_chain(website: str, timeout: float = CONNECT_TIMEOUT) -> list:
    return chain_to_list(fetch_certificate_chain(website, timeout=timeout))


INSPECTIONS: Dict[str, Callable[..., Any]] = {
    "info": inspect_info,
    "dates": inspect_dates,
    "chain": inspect_chain,
}

ROUTES = (
    ("/ssl-info", "info"),
    ("/ssl-dates", "dates"),
    ("/ssl-chain", "chain"),
)


def error_response(message: str, status: int):
    return jsonify({"error": message}), status


def make_view(view_name: str) -> Callable:
    """Bind the shared validate -> fetch -> project -> respond pipeline to one inspection."""

    def view():
        website = request.args.get("website", "")
        if not website:
            return error_response(MISSING_WEBSITE_MESSAGE, 400)

        inspect = INSPECTIONS[view_name]
        try:
            payload = inspect(website, timeout=current_app.config["CONNECT_TIMEOUT"])
        except CertificateFetchError as e:
            logger.warning(f"{request.path}: lookup of {website} failed: {e}")
            return error_response(str(e), 500)
        logger.info(f"{request.path}: served {website}")
        return jsonify(payload)

    view.__name__ = f"ssl_{view_name}"
    return view


def handle_http_error(e: HTTPException):
    """Render routing and unexpected errors as JSON like every other response."""
    if e.code == 500:
        original = getattr(e, "original_exception", None)
        if original is not None:
            logger.error(f"Unhandled error on {request.path}: {original}", exc_info=original)
    return error_response(e.description or e.name, e.code or 500)


def create_app(connect_timeout: float = CONNECT_TIMEOUT) -> Flask:
    """
    Build the Flask application.

    The route table and configuration are fixed here, once, and not mutated
    afterwards. Also usable as a factory for WSGI servers.
    """
    app = Flask(__name__)
    app.config["CONNECT_TIMEOUT"] = connect_timeout
    app.json.sort_keys = False

    for path, view_name in ROUTES:
        app.add_url_rule(path, view_func=make_view(view_name), methods=["GET"],
                         provide_automatic_options=False)
    app.register_error_handler(HTTPException, handle_http_error)
    return app


def run_server(host: str = DEFAULT_HOST, port: int = DEFAULT_PORT,
               connect_timeout: float = CONNECT_TIMEOUT) -> None:
    """
    Run the HTTP API with Flask's threaded server; each request is handled independently.
    """
    app = create_app(connect_timeout=connect_timeout)
    logger.info(f"Starting Flask server on http://{host}:{port}")
    app.run(host=host, port=port, threaded=True)
