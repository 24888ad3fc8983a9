"""Command-line interface for vaultbridge.

Provides the main entry point for serving the loopback dispatcher behind
a quick tunnel, or provisioning the cloudflared binary on its own.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="vaultbridge",
        description="Publish a loopback content server through a cloudflared quick tunnel",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/vaultbridge.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Start the dispatcher and open a tunnel")
    serve_parser.add_argument(
        "--port", type=int, default=None,
        help="Loopback port (overrides server.port)",
    )
    serve_parser.add_argument(
        "--managed-only", action="store_true",
        help="Ignore system cloudflared; use or download the managed copy",
    )
    serve_parser.add_argument(
        "--no-tunnel", action="store_true",
        help="Serve on 127.0.0.1 only, without a public tunnel",
    )

    provision_parser = subparsers.add_parser(
        "provision", help="Locate or download cloudflared and print its path",
    )
    provision_parser.add_argument(
        "--managed-only", action="store_true",
        help="Ignore system cloudflared; use or download the managed copy",
    )

    return parser.parse_args(argv)


def _print_progress(percent: int) -> None:
    sys.stderr.write(f"\rDownloading cloudflared... {percent}%")
    if percent >= 100:
        sys.stderr.write("\n")
    sys.stderr.flush()


def _build_provisioner(settings):  # type: ignore[no-untyped-def]
    from vaultbridge.tunnel.provisioner import BinaryProvisioner

    cfg = settings.provisioner
    return BinaryProvisioner(
        data_dir=cfg.data_dir,
        release_base_url=cfg.release_base_url,
        verify_timeout=cfg.verify_timeout,
        download_timeout=cfg.download_timeout,
        max_redirects=cfg.max_redirects,
        on_progress=_print_progress,
    )


async def _serve(settings, args) -> None:
    """Run the dispatcher (and tunnel) until the server is shut down."""
    from vaultbridge.errors import TunnelError
    from vaultbridge.server.dispatcher import Dispatcher
    from vaultbridge.server.status import register_status_routes
    from vaultbridge.tunnel.supervisor import TunnelSupervisor

    dispatcher = Dispatcher()
    port = args.port if args.port is not None else settings.server.port

    supervisor = None
    if not args.no_tunnel:
        # Status routes must exist before the dispatcher starts; the real
        # port is handed over once it has bound (port 0 picks a free one)
        supervisor = TunnelSupervisor(
            port=port,
            provisioner=_build_provisioner(settings),
            acquisition_timeout=settings.tunnel.acquisition_timeout,
            diagnostic_buffer_size=settings.tunnel.diagnostic_buffer_size,
            hostname_suffix=settings.tunnel.hostname_suffix,
        )
    register_status_routes(dispatcher, supervisor)

    await dispatcher.start(port)
    print(f"Local:  http://127.0.0.1:{dispatcher.port}")

    try:
        if supervisor is not None:
            supervisor.port = dispatcher.port  # type: ignore[assignment]
            prefer_managed = args.managed_only or settings.tunnel.prefer_managed_only
            try:
                public_url = await supervisor.start(prefer_managed_only=prefer_managed)
                print(f"Public: {public_url}")
            except TunnelError as e:
                # The dispatcher stays usable locally when the tunnel fails
                logger.error("Could not open tunnel: %s", e)

        await dispatcher.wait_closed()
    finally:
        if supervisor is not None:
            await supervisor.stop()
        await dispatcher.stop()


async def _provision(settings, args) -> None:
    """Resolve the cloudflared binary and print where it came from."""
    provisioner = _build_provisioner(settings)
    prefer_managed = args.managed_only or settings.tunnel.prefer_managed_only
    location = await provisioner.resolve(prefer_managed_only=prefer_managed)
    print(f"{location.path} ({location.origin.value})")


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the vaultbridge CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return

    from vaultbridge.config.settings import load_settings
    from vaultbridge.errors import VaultBridgeError
    from vaultbridge.utils.logging import setup_logging

    settings = load_settings(args.config)

    if args.verbose:
        settings.logging.level = "DEBUG"

    setup_logging(settings.logging)

    try:
        if args.command == "serve":
            logger.info("Starting dispatcher")
            asyncio.run(_serve(settings, args))

        elif args.command == "provision":
            logger.info("Provisioning cloudflared")
            asyncio.run(_provision(settings, args))

    except VaultBridgeError as e:
        logger.error("%s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
