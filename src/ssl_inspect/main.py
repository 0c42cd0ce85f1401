# src/ssl_inspect/main.py

import argparse
import json
import logging
import sys

import coloredlogs
import shtab

from ssl_inspect import __version__
from ssl_inspect.fetcher import CONNECT_TIMEOUT, CertificateFetchError
from ssl_inspect.web_server import DEFAULT_HOST, DEFAULT_PORT, INSPECTIONS, run_server

LOG_FORMAT = '%(asctime)s [%(levelname)-8s] %(name)s: %(message)s'
DEBUG_LOG_FORMAT = '%(asctime)s [%(levelname)-8s] %(name)s (%(filename)s:%(lineno)d): %(message)s'


def create_parser():
    """
    Create the command-line argument parser.

    Returns:
        argparse.ArgumentParser: The configured argument parser.
    """
    parser = argparse.ArgumentParser(
        prog='ssl-inspect',
        description="Inspect the TLS certificate served by a host, as a one-shot lookup or as an HTTP API.",
        formatter_class=argparse.RawTextHelpFormatter
    )
    parser.add_argument('-V', '--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('domains', nargs='*',
                        help="Hostnames to inspect on port 443 (required unless running in server mode).")
    parser.add_argument('-v', '--view', choices=sorted(INSPECTIONS), default='dates',
                        help="One-shot output:\n info: raw leaf certificate\n dates: validity summary (default)\n chain: raw certificate chain")
    parser.add_argument('-t', '--timeout', type=float, default=CONNECT_TIMEOUT,
                        help=f"TCP connect timeout in seconds (default: {CONNECT_TIMEOUT}).")
    parser.add_argument('-s', '--server', action='store_true',
                        help="Run the HTTP API (/ssl-info, /ssl-dates, /ssl-chain).")
    parser.add_argument('-H', '--host', default=DEFAULT_HOST,
                        help=f"Address to bind in server mode (default: {DEFAULT_HOST}).")
    parser.add_argument('-p', '--port', type=int, default=DEFAULT_PORT,
                        help=f"Port to listen on in server mode (default: {DEFAULT_PORT}).")
    parser.add_argument('-l', '--loglevel', type=str, choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='WARNING', help="Set log level (default: WARNING).")

    shtab.add_argument_to(parser, ['--print-completion'])
    return parser


def setup_logging(level_name: str) -> None:
    """Configure the package logger, colored when stderr is a terminal."""
    level = getattr(logging, level_name.upper(), logging.WARNING)
    log_format = LOG_FORMAT if level > logging.DEBUG else DEBUG_LOG_FORMAT
    logger = logging.getLogger('ssl_inspect')
    logger.propagate = False
    if not logger.handlers:
        if hasattr(sys.stderr, 'isatty') and sys.stderr.isatty():
            coloredlogs.install(level=level, logger=logger, fmt=log_format, stream=sys.stderr)
        else:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(logging.Formatter(log_format))
            logger.addHandler(handler)
    logger.setLevel(level)


def run_lookups(domains, view: str, timeout: float, out=None) -> int:
    """
    Inspect each domain in turn and print one JSON document per domain.

    Returns:
        int: 0 when every lookup succeeded, 1 otherwise.
    """
    out = out or sys.stdout
    inspect = INSPECTIONS[view]
    status = 0
    for domain in domains:
        try:
            payload = inspect(domain, timeout=timeout)
        except CertificateFetchError as e:
            payload = {"error": str(e)}
            status = 1
        json.dump(payload, out, indent=2, ensure_ascii=False)
        out.write("\n")
    return status


def main(argv=None):
    """ Entry point for the ssl-inspect command. """
    parser = create_parser()
    args = parser.parse_args(argv)
    setup_logging(args.loglevel)
    logger = logging.getLogger(__name__)

    if args.server:
        if args.domains:
            logger.warning("Domain arguments are ignored when running in server mode (--server).")
        run_server(host=args.host, port=args.port, connect_timeout=args.timeout)
        return 0
    if not args.domains:
        parser.error("the following arguments are required: domains (or use --server)")
    return run_lookups(args.domains, args.view, args.timeout)


if __name__ == "__main__":
    sys.exit(main())
