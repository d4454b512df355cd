"""Command-line entry points for the admission webhook and the controller."""

import argparse
import os
import sys
from pathlib import Path

import uvicorn

from habitat.core.config import get_settings


def build_admission_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        prog="habitat-admission",
        description="Serve the habitat Job admission webhook over TLS.",
    )
    parser.add_argument("--ip-addr", default=settings.host, help="Server addr")
    parser.add_argument("--port", type=int, default=settings.port, help="Server port")
    parser.add_argument(
        "--cert-path",
        type=Path,
        default=settings.tls_cert_path,
        required=settings.tls_cert_path is None,
        help="Specify the file path to read the certificate",
    )
    parser.add_argument(
        "--key-path",
        type=Path,
        default=settings.tls_key_path,
        required=settings.tls_key_path is None,
        help="Specify the file path to read the private key",
    )
    return parser


def build_controller_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        prog="habitat-controller",
        description="Run the habitat Job controller and its diagnostics server.",
    )
    parser.add_argument("--ip-addr", default=settings.host, help="Diagnostics server addr")
    parser.add_argument("--port", type=int, default=8080, help="Diagnostics server port")
    parser.add_argument(
        "--namespace",
        default=settings.namespace,
        help="Only watch Jobs in this namespace (default: all namespaces)",
    )
    parser.add_argument(
        "--workers", type=int, default=settings.workers, help="Concurrent reconciles"
    )
    return parser


def _override_settings(**values: object) -> None:
    """Push CLI values into the environment read by the app's Settings."""
    for name, value in values.items():
        if value is not None:
            os.environ[f"HABITAT_{name.upper()}"] = str(value)
    get_settings.cache_clear()


def admission_main(argv: list[str] | None = None) -> None:
    parser = build_admission_parser()
    args = parser.parse_args(argv)

    for flag, path in (("--cert-path", args.cert_path), ("--key-path", args.key_path)):
        if not path.is_file():
            parser.error(f"{flag}: no such file: {path}")

    _override_settings(tls_cert_path=args.cert_path, tls_key_path=args.key_path)
    uvicorn.run(
        "habitat.webhook:app",
        host=args.ip_addr,
        port=args.port,
        ssl_certfile=str(args.cert_path),
        ssl_keyfile=str(args.key_path),
        log_level=get_settings().log_level.lower(),
    )


def controller_main(argv: list[str] | None = None) -> None:
    parser = build_controller_parser()
    args = parser.parse_args(argv)
    if args.workers < 1:
        parser.error("--workers must be at least 1")

    _override_settings(namespace=args.namespace, workers=args.workers)
    uvicorn.run(
        "habitat.main:app",
        host=args.ip_addr,
        port=args.port,
        log_level=get_settings().log_level.lower(),
    )


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "controller":
        controller_main(sys.argv[2:])
    else:
        admission_main(sys.argv[1:])
