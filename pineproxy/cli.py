"""
PineProxy CLI
=============
Command-line entry point: loads the interceptors, starts the proxy and keeps
it running until interrupted.
"""

from __future__ import annotations

import sys
import threading
import time
from pathlib import Path

import click
from dotenv import load_dotenv

from pineproxy import __version__
from pineproxy.config import CONFIG_FILE, PineProxyConfig, load_config, save_config
from pineproxy.core.interceptors import InterceptorLoader
from pineproxy.core.proxy import ProxyServer
from pineproxy.logger import build_logger
from pineproxy.ui import (
    print_error,
    print_info,
    print_success,
    print_warning,
    show_banner,
    show_config_status,
    show_interceptors,
)

load_dotenv()


def _run_proxy(config: PineProxyConfig, idle_interval: float = 1.0) -> int:
    """Start the proxy and block until Ctrl+C. Returns the exit status."""
    log = build_logger(config.logging.verbose, config.logging.logfile or None)

    loader = InterceptorLoader(config.modules.path, logger=log)
    count = loader.discover()
    log.info(f"Loaded {count} interceptor(s) from {loader.modules_dir}")
    for err in loader.get_load_errors():
        log.warning(f"Skipped {err['file']}: {err['error']}")

    proxy = ProxyServer(
        config.proxy.address,
        config.proxy.port,
        pipeline=loader.pipeline(),
        logger=log,
    )
    result = proxy.start()
    if not result["ok"]:
        print_error(result["error"])
        return 1

    try:
        while proxy.is_running:
            log.debug(f"{threading.active_count()} THREADS")
            time.sleep(idle_interval)
    except KeyboardInterrupt:
        log.warning("Stopping proxy ...")
    finally:
        proxy.stop()
    return 0


def _config_summary(config: PineProxyConfig) -> dict:
    return {
        "address": config.proxy.address,
        "port": config.proxy.port,
        "modules": config.modules.path,
        "verbose": config.logging.verbose,
        "logfile": config.logging.logfile,
    }


# ── Commands ─────────────────────────────────────────────────────────────────

@click.group(invoke_without_command=True)
@click.option("--address", "-a", default=None, help="Address to bind (default 0.0.0.0)")
@click.option("--port", "-p", type=int, default=None, help="Port to listen on (default 8080)")
@click.option("--modules", "-m", default=None, help="Directory of interceptor modules")
@click.option("--verbose", "-v", is_flag=True, help="Log debug messages")
@click.option("--logfile", "-l", default=None, help="Also write the log to this file")
@click.option("--no-banner", is_flag=True, help="Skip banner display")
@click.version_option(__version__, prog_name="pineproxy")
@click.pass_context
def main(ctx, address, port, modules, verbose, logfile, no_banner):
    """PineProxy: intercepting HTTP proxy"""
    ctx.ensure_object(dict)

    config = load_config()

    # Apply CLI overrides
    if address:
        config.proxy.address = address
    if port is not None:
        config.proxy.port = port
    if modules:
        config.modules.directory = modules
    if verbose:
        config.logging.verbose = True
    if logfile:
        config.logging.logfile = logfile
    if no_banner:
        config.ui.show_banner = False

    ctx.obj["config"] = config

    if ctx.invoked_subcommand is None:
        if config.ui.show_banner:
            show_banner()
        sys.exit(_run_proxy(config))


@main.command()
@click.pass_context
def modules(ctx):
    """List the interceptors found in the modules directory."""
    config = ctx.obj["config"]
    loader = InterceptorLoader(config.modules.path)
    count = loader.discover()
    if not count and not loader.get_load_errors():
        print_info(f"No interceptors in {loader.modules_dir}")
        return
    show_interceptors(loader.list_interceptors(), loader.get_load_errors())


@main.command(name="config")
@click.option("--save", is_flag=True, help="Write the effective configuration to disk")
@click.pass_context
def show_config(ctx, save):
    """Show the effective configuration."""
    config = ctx.obj["config"]
    show_config_status(_config_summary(config))
    if save:
        path = save_config(config)
        print_success(f"Configuration saved to {path}")
    else:
        print_info(f"Config file: {Path(CONFIG_FILE)}")
        if not config.modules.path.exists():
            print_warning(f"Modules directory does not exist: {config.modules.path}")


if __name__ == "__main__":
    main()
