"""Live statistics panel for the SOCKS5 server CLI."""

import threading
import time

from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from easy_socks5.core.lib.proxy_stats import ProxyStats, proxy_stats
from easy_socks5.core.utils.utils import format_bytes

console = Console()

REFRESH_INTERVAL = 0.5  # Seconds


class ProxyUI:
    """Renders ``ProxyStats`` in a rich panel until stopped."""

    def __init__(self, host: str, port: int, stats: ProxyStats = proxy_stats) -> None:
        self.host = host
        self.port = port
        self.stats = stats
        self._stop = threading.Event()

    def generate_table(self) -> Table:
        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column("Property", style="cyan", no_wrap=True)
        table.add_column("Value", style="green", no_wrap=True)

        table.add_row("Bandwidth", f"{format_bytes(self.stats.get_bandwidth())}/s")
        table.add_row("Active Connections", str(self.stats.active_connections))
        table.add_row(
            "Handshakes",
            f"{self.stats.handshakes_completed} ok / {self.stats.handshakes_failed} failed",
        )
        table.add_row("Client -> Target", format_bytes(self.stats.total_bytes_sent))
        table.add_row("Target -> Client", format_bytes(self.stats.total_bytes_received))
        table.add_row("Uptime", f"{self.stats.uptime:.0f}s")
        return table

    def generate_display(self) -> Panel:
        title = Text(f"SOCKS5 Proxy: {self.host}:{self.port}", style="bold cyan")
        return Panel(
            self.generate_table(),
            title=title,
            subtitle="Press Ctrl+C to exit",
            border_style="blue",
            padding=(1, 2),
        )

    def run(self) -> None:
        with Live(self.generate_display(), console=console, auto_refresh=False) as live:
            while not self._stop.wait(REFRESH_INTERVAL):
                live.update(self.generate_display(), refresh=True)

    def stop(self) -> None:
        self._stop.set()


def create_proxy_ui(host: str, port: int, stats: ProxyStats = proxy_stats) -> tuple[ProxyUI, threading.Thread]:
    """Create the UI and the daemon thread that runs it."""
    ui = ProxyUI(host, port, stats)
    return ui, threading.Thread(target=ui.run, name="socks5-ui", daemon=True)
