#!/usr/bin/env python3
import argparse
import asyncio
import os
import signal

from . import __version__
from .config_loader import RETENTION_SECONDS, Config
from .logging_setup import get_logger, setup_logging
from .monitor import SpotMonitor
from .radio import create_radio_controller
from .rbn_client import RbnClient
from .spot_store import SpotStore

VERSION = f"v{__version__}"

# Module logger
logger = get_logger(__name__)


def build_monitor(cfg: Config) -> SpotMonitor:
    """Wire client, store and radio from the configuration."""
    store = SpotStore(
        min_snr=cfg.filters.min_snr,
        max_age_minutes=cfg.filters.max_age_minutes,
        merge_policy=cfg.filters.merge_policy,
    )
    client = RbnClient(host=cfg.rbn.host, port=cfg.rbn.port)
    radio = create_radio_controller(
        cfg.radio.backend,
        rigctld_host=cfg.radio.rigctld_host,
        rigctld_port=cfg.radio.rigctld_port,
        omnirig_rig=cfg.radio.omnirig_rig,
    )
    return SpotMonitor(
        client,
        store,
        callsign=cfg.call_sign,
        radio=radio,
        purge_interval=cfg.filters.purge_interval_seconds,
    )


async def main(cfg: Config) -> None:
    monitor = build_monitor(cfg)
    await monitor.start()

    display = None
    if cfg.web.enabled:
        from .sse_handler import DisplayServer
        display = DisplayServer(cfg.web.host, cfg.web.port, monitor)
        await display.start()

    if cfg.rbn.auto_connect:
        if cfg.call_sign:
            await monitor.connect()
        else:
            logger.warning("AUTO_CONNECT set but no CALL_SIGN configured")

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def handle_shutdown(signum=None, frame=None):
        logger.info("Signal %s received, stopping ..", signum or 'SIGINT')
        if stop_event.is_set():
            logger.warning("Force shutdown - second signal received")
            os._exit(1)
        stop_event.set()

    try:
        loop.add_signal_handler(signal.SIGINT, handle_shutdown)
        loop.add_signal_handler(signal.SIGTERM, handle_shutdown)
    except NotImplementedError:
        signal.signal(signal.SIGINT, handle_shutdown)
        signal.signal(signal.SIGTERM, handle_shutdown)

    await stop_event.wait()

    logger.info("Stopping rbnvfd ..")

    if display:
        await display.stop(timeout=5.0)

    try:
        await asyncio.wait_for(monitor.stop(), timeout=3.0)
    except asyncio.TimeoutError:
        logger.warning("Monitor stop timeout")

    logger.info("Shutdown complete")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="rbnvfd", description="Reverse Beacon Network spot monitor")
    parser.add_argument("--config", help="Path to config.json")
    parser.add_argument("--callsign", help="Login callsign (overrides config)")
    parser.add_argument("--connect", action="store_true", help="Connect on startup")
    parser.add_argument("--no-web", action="store_true", help="Do not start the display API")
    parser.add_argument("--log-file", help="Also write the log to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--version", action="version", version=VERSION)
    return parser.parse_args(argv)


def run(argv: list[str] | None = None):
    """Entry point for rbnvfd CLI."""
    args = parse_args(argv)

    is_dev = os.getenv("RBNVFD_ENV") == "dev"
    setup_logging(verbose=args.verbose or is_dev, log_file=args.log_file)

    if is_dev:
        logger.info("*** Debug and DEV Environment detected ***")

    cfg = Config.load(args.config)
    if args.callsign:
        cfg.call_sign = args.callsign.strip().upper()
    if args.connect:
        cfg.rbn.auto_connect = True
    if args.no_web:
        cfg.web.enabled = False

    logger.info("rbnvfd %s, feed %s:%d as %s", VERSION, cfg.rbn.host, cfg.rbn.port,
                cfg.call_sign or "(no callsign)")
    logger.info(
        "Filter: SNR >= %d dB, age <= %d min, retention %d min, merge %s",
        cfg.filters.min_snr,
        cfg.filters.max_age_minutes,
        RETENTION_SECONDS // 60,
        cfg.filters.merge_policy.value,
    )
    logger.info("Radio: %s", cfg.radio.backend.value)

    try:
        asyncio.run(main(cfg))
    except KeyboardInterrupt:
        logger.info("Manually stopped with Ctrl+C")
    except Exception as e:
        logger.exception("Unexpected error: %s", e)


if __name__ == "__main__":
    run()
