#!/usr/bin/env python3
"""
MACWATCH - Passive ARP / NDP Address Watcher
============================================

Main entry point for the MACWATCH system.

Listens for ARP replies (and optionally IPv6 Neighbor/Router Discovery) on
one or more interfaces, remembers which MAC address answers for every IP
address, and raises alerts when:
- an address is seen for the first time
- an address moves to a different MAC address
- an ARP reply's sender MAC disagrees with the Ethernet source

Usage:
    sudo python main.py                          # Interfaces from config
    sudo python main.py -i eth0,eth1 --ndp       # Watch two interfaces, IPv4 + IPv6
    sudo python main.py --alert-cmd ./alert.sh   # Run a command on every alert
    python main.py --debug                       # Enable debug logging

License: MIT
"""

import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional

import click
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from werkzeug.serving import make_server

from macwatch.alerting import AlertRunner
from macwatch.binding_store import BindingDatabase, ReconciliationStore
from macwatch.capture import CaptureSource, open_capture_sources
from macwatch.config import load_config, parse_interfaces
from macwatch.dispatcher import EffectDispatcher
from macwatch.engine import ReconciliationEngine
from macwatch.metrics import MetricsRegistry
from macwatch.persistence import PersistenceWorker
from api.app import create_app

PROJECT_ROOT = Path(__file__).parent

# Rich console for pretty output
console = Console()


def setup_logging(config: dict) -> None:
    """Configure logging based on config."""
    log_config = config.get("logging", {})
    log_level = config.get("general", {}).get("log_level", "INFO")
    log_file = Path(log_config.get("file", "data/logs/macwatch.log"))
    if not log_file.is_absolute():
        log_file = PROJECT_ROOT / log_file

    # Ensure log directory exists
    log_file.parent.mkdir(parents=True, exist_ok=True)

    # Remove default logger and add custom configuration
    logger.remove()
    logger.add(
        sys.stderr,
        level=log_level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan> | <level>{message}</level>"
    )
    logger.add(
        str(log_file),
        level=log_level,
        rotation=log_config.get("max_size", "10 MB"),
        retention=log_config.get("backup_count", 5),
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name} | {message}"
    )


def print_summary(config: dict) -> None:
    """Print the effective configuration."""
    capture = config["capture"]
    table = Table(show_header=False, box=None)
    table.add_row("Interfaces", ", ".join(capture["interfaces"]))
    table.add_row("BPF filter", capture.get("bpf") or "[dim]none[/dim]")
    table.add_row("Promiscuous", str(capture.get("promiscuous", False)))
    table.add_row("NDP checking", str(capture.get("ndp", False)))
    table.add_row("Alert command", config["alerting"].get("command") or "[dim]none[/dim]")
    table.add_row("Database", str(config["database"]["path"]))
    if config["api"].get("enabled", True):
        table.add_row("Metrics", f"http://{config['api']['host']}:{config['api']['port']}/metrics")

    console.print(Panel(table, title="[bold white]MACWATCH[/bold white]", border_style="cyan"))


class MacwatchOrchestrator:
    """
    Wires MACWATCH components together and owns their lifecycle.

    Components:
    - BindingDatabase / ReconciliationStore: durable and live bindings
    - ReconciliationEngine: single-consumer classification loop
    - EffectDispatcher: counters, persistence worker, alert runner
    - CaptureSource: one scapy sniffer per interface
    - Flask API: /metrics and status endpoints

    Raises:
        BindingStoreError: If the database cannot be opened or loaded
    """

    def __init__(self, config: dict):
        self.config = config
        self.running = False
        self._stop_event = threading.Event()
        self._stopped = False

        logger.info("Initializing MACWATCH components...")

        self.metrics = MetricsRegistry()

        db_path = config.get("database", {}).get("path", "./macs.db")
        logger.info(f"Setting up db at {db_path}")
        self.database = BindingDatabase(db_path)
        self.database.setup()

        self.store = ReconciliationStore(self.database)
        logger.info("Loading all MACs from db")
        self.store.load()

        self.persistence = PersistenceWorker(
            self.database,
            metrics=self.metrics,
            queue_size=config.get("persistence", {}).get("queue_size", 10000),
        )

        alert_config = config.get("alerting", {})
        self.alert_runner: Optional[AlertRunner] = None
        if alert_config.get("command"):
            self.alert_runner = AlertRunner(
                alert_config["command"],
                metrics=self.metrics,
                max_concurrent=alert_config.get("max_concurrent", 8),
                max_pending=alert_config.get("max_pending", 1000),
                timeout=alert_config.get("timeout", 30),
            )

        self.dispatcher = EffectDispatcher(
            self.metrics,
            persistence=self.persistence,
            alert_runner=self.alert_runner,
        )

        capture_config = config.get("capture", {})
        self.engine = ReconciliationEngine(
            self.store,
            self.dispatcher,
            metrics=self.metrics,
            check_ipv6_mismatch=config.get("detection", {}).get("ipv6_mismatch", False),
            queue_size=capture_config.get("queue_size", 0),
        )

        self.capture_sources: List[CaptureSource] = []
        self.app = create_app(config, orchestrator=self)
        self._api_server = None
        self._api_thread: Optional[threading.Thread] = None

        logger.info("All components initialized")

    def start(self, block: bool = True):
        """
        Start the writer, classification loop, capture sources and API.

        Raises:
            CaptureError: If any interface cannot be opened
        """
        capture_config = self.config.get("capture", {})
        interfaces = capture_config.get("interfaces", [])
        logger.info(f"Starting up on interfaces {interfaces}")
        logger.info(f"Alert command: {self.config.get('alerting', {}).get('command', '')}")
        logger.info(f"BPF filter: {capture_config.get('bpf', '')}")
        logger.info(f"Promiscuous mode: {capture_config.get('promiscuous', False)}")

        self.persistence.start()
        self.engine.start()

        try:
            self.capture_sources = open_capture_sources(
                interfaces,
                self.engine.submit,
                bpf=capture_config.get("bpf", ""),
                ndp_enabled=capture_config.get("ndp", False),
                promiscuous=capture_config.get("promiscuous", False),
            )
        except RuntimeError:
            self.stop()
            raise

        if self.config.get("api", {}).get("enabled", True):
            self._start_api()

        self.running = True
        console.print("[bold green]MACWATCH started[/bold green]")

        if block:
            self._stop_event.wait()

    def _start_api(self):
        """Serve the Flask app on a background thread."""
        host = self.config.get("api", {}).get("host", "0.0.0.0")
        port = self.config.get("api", {}).get("port", 2114)

        self._api_server = make_server(host, port, self.app, threaded=True)
        self._api_thread = threading.Thread(
            target=self._api_server.serve_forever,
            daemon=True,
            name="Metrics-API"
        )
        self._api_thread.start()
        logger.info(f"Metrics endpoint listening on http://{host}:{port}/metrics")

    def stop(self):
        """
        Stop all components.

        Capture stops first, then the classification loop drains what was
        already captured, then pending binding writes and alerts finish.
        """
        if self._stopped:
            return
        self._stopped = True

        logger.info("Stopping MACWATCH...")
        self.running = False

        for source in self.capture_sources:
            source.stop()

        self.engine.stop()
        self.dispatcher.close()

        if self._api_server is not None:
            self._api_server.shutdown()
            self._api_server = None

        self._stop_event.set()
        logger.info("MACWATCH stopped")

    def get_status(self) -> dict:
        """Get current system status."""
        return {
            "running": self.running,
            "interfaces": [
                {
                    "name": s.interface,
                    "running": s.is_running,
                    "frames_seen": s.frames_seen,
                    "filter": s.filter,
                }
                for s in self.capture_sources
            ],
            "bindings": len(self.store),
            "observations_processed": self.engine.processed_count,
            "observation_queue": self.engine.observations.qsize(),
            "pending_writes": self.persistence.pending,
            "alert_command": bool(self.alert_runner),
            "counters": self.metrics.snapshot(),
        }


@click.command()
@click.option("--config", "-c", "config_path", default=None, help="Path to config file (default: config/config.yaml)")
@click.option("--interface", "-i", default=None, help="Network interfaces to listen on, separated by commas")
@click.option("--alert-cmd", default=None, help="Command to run when an address is new, changed or mismatched")
@click.option("--bpf", default=None, help="BPF filter ANDed with 'arp'")
@click.option("--db-path", default=None, help="Path to the database file")
@click.option("--promisc", is_flag=True, help="Enable promiscuous mode")
@click.option("--ndp", is_flag=True, help="Check IPv6 NDP packets")
@click.option("--metrics-port", type=int, default=None, help="Port for the /metrics endpoint")
@click.option("--no-api", is_flag=True, help="Do not serve /metrics")
@click.option("--debug", "-d", is_flag=True, help="Enable debug logging")
def main(config_path, interface, alert_cmd, bpf, db_path, promisc, ndp, metrics_port, no_api, debug):
    """
    MACWATCH - passive ARP / NDP address watcher.

    Tracks which MAC address answers for each IP address and alerts on new
    addresses, MAC changes and ARP/Ethernet MAC mismatches.
    """
    # Load configuration
    try:
        if config_path is None:
            default_path = PROJECT_ROOT / "config" / "config.yaml"
            cfg = load_config(default_path if default_path.exists() else None)
        else:
            cfg = load_config(config_path)
    except FileNotFoundError as e:
        logger.error(str(e))
        sys.exit(1)

    # Override config with CLI options
    if interface is not None:
        cfg["capture"]["interfaces"] = parse_interfaces(interface)
    else:
        cfg["capture"]["interfaces"] = parse_interfaces(cfg["capture"].get("interfaces"))
    if alert_cmd is not None:
        cfg["alerting"]["command"] = alert_cmd
    if bpf is not None:
        cfg["capture"]["bpf"] = bpf
    if db_path is not None:
        cfg["database"]["path"] = db_path
    if promisc:
        cfg["capture"]["promiscuous"] = True
    if ndp:
        cfg["capture"]["ndp"] = True
    if metrics_port is not None:
        cfg["api"]["port"] = metrics_port
    if no_api:
        cfg["api"]["enabled"] = False
    if debug:
        cfg["general"]["debug"] = True
        cfg["general"]["log_level"] = "DEBUG"

    if not cfg["capture"]["interfaces"]:
        console.print("[bold red]ERROR: no interfaces configured[/bold red]")
        sys.exit(1)

    # Setup logging
    setup_logging(cfg)
    print_summary(cfg)

    # Create orchestrator
    try:
        orchestrator = MacwatchOrchestrator(cfg)
    except RuntimeError as e:
        console.print(f"[bold red]ERROR: {e}[/bold red]")
        sys.exit(1)

    # Handle shutdown signals
    def signal_handler(signum, frame):
        console.print("\n[yellow]Shutting down MACWATCH...[/yellow]")
        orchestrator.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    # Start the system
    try:
        orchestrator.start()
    except KeyboardInterrupt:
        orchestrator.stop()
    except RuntimeError as e:
        console.print(f"[bold red]ERROR: {e}[/bold red]")
        sys.exit(1)
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        orchestrator.stop()
        sys.exit(1)


if __name__ == "__main__":
    main()
