"""Command-line interface for the SOCKS5 engine.

Two commands wrap the engine:
- ``serve`` runs a proxy server that accepts "no authentication" clients
- ``connect`` opens a CONNECT tunnel through a proxy, writes a message and
  prints whatever the destination answers

Example:
    $ easy-socks5 serve --port 1080 --ui
    $ easy-socks5 connect 127.0.0.1:1080 example.com:80 --message "HEAD / HTTP/1.0\\r\\n\\r\\n"
"""

import contextlib
import socket

import typer
from loguru import logger
from rich.console import Console

from easy_socks5 import __version__
from easy_socks5.core.config import (
    DEFAULT_BUFFER_SIZE,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_HOST,
    DEFAULT_PORT,
    ProxyConfig,
)
from easy_socks5.core.exceptions import DialError, HandshakeError, ListenError
from easy_socks5.core.proxy import connect, listen
from easy_socks5.core.utils.log_config import LOG_DIR, setup_logging
from easy_socks5.core.utils.proxy_ui import create_proxy_ui

console = Console()
app = typer.Typer(help="SOCKS5 proxy server and client")

RESPONSE_TIMEOUT = 5.0  # Seconds to wait for the destination's answer


@app.callback(invoke_without_command=True)
def version_callback(ctx: typer.Context):
    """Show version information."""
    if ctx.invoked_subcommand is None:
        console.print(f"[cyan]easy-socks5 v{__version__}[/cyan]")


@app.command(name="serve")
def serve(
    host: str = typer.Option(DEFAULT_HOST, "--host", help="Address to listen on"),
    port: int = typer.Option(DEFAULT_PORT, "--port", "-p", help="Port to listen on"),
    connect_timeout: float = typer.Option(
        DEFAULT_CONNECT_TIMEOUT, "--connect-timeout", help="Seconds allowed for dialing a target"
    ),
    idle_timeout: float | None = typer.Option(
        None, "--idle-timeout", help="Close tunnels idle for this many seconds"
    ),
    buffer_size: int = typer.Option(DEFAULT_BUFFER_SIZE, "--buffer-size", help="Relay read size in bytes"),
    report_bound_address: bool = typer.Option(
        False, "--report-bound-address", help="Reply with the outbound socket's local address"
    ),
    refine_dial_errors: bool = typer.Option(
        False, "--refine-dial-errors", help="Report refused/unreachable/timeout dial failures distinctly"
    ),
    ui: bool = typer.Option(False, "--ui", help="Show live statistics"),
    log_file: bool = typer.Option(True, "--log-file/--no-log-file", help=f"Also log to {LOG_DIR}"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """Start the SOCKS5 proxy server."""
    setup_logging("DEBUG" if debug else "INFO", LOG_DIR / "proxy.log" if log_file else None)

    try:
        config = ProxyConfig(
            host=host,
            port=port,
            connect_timeout=connect_timeout,
            idle_timeout=idle_timeout,
            buffer_size=buffer_size,
            report_bound_address=report_bound_address,
            refine_dial_errors=refine_dial_errors,
        )
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e

    try:
        server = listen(config.address, config=config)
    except ListenError as e:
        console.print(f"[red]Error: {e}")
        raise typer.Exit(1) from e

    proxy_ui = None
    if ui:
        proxy_ui, ui_thread = create_proxy_ui(host, port)
        ui_thread.start()
    else:
        console.print(f"[bold green]SOCKS5 proxy listening on {host}:{port}")

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Received shutdown signal")
        console.print("\n[yellow]Shutting down proxy server...")
    finally:
        if proxy_ui:
            proxy_ui.stop()
        with contextlib.suppress(OSError):
            server.server_close()


def exchange(conn: socket.socket, message: bytes, timeout: float = RESPONSE_TIMEOUT) -> bytes:
    """Write ``message`` through the tunnel and collect the answer until EOF or timeout."""
    chunks: list[bytes] = []
    try:
        conn.sendall(message)
        conn.settimeout(timeout)
        while data := conn.recv(DEFAULT_BUFFER_SIZE):
            chunks.append(data)
    except TimeoutError:
        logger.debug("No more data from the destination")
    finally:
        conn.close()
    return b"".join(chunks)


@app.command(name="connect")
def connect_command(
    proxy: str = typer.Argument(..., help="Proxy address as host:port"),
    target: str = typer.Argument(..., help="Destination as host:port"),
    message: str = typer.Option("hello", "--message", "-m", help="Text to send, backslash escapes allowed"),
    timeout: float = typer.Option(RESPONSE_TIMEOUT, "--timeout", help="Seconds to wait for the answer"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """Open a tunnel through a SOCKS5 proxy and exchange one message."""
    setup_logging("DEBUG" if debug else "WARNING")
    payload = message.encode().decode("unicode_escape").encode("latin-1")

    try:
        response = connect(proxy, target, lambda conn: exchange(conn, payload, timeout))
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e
    except DialError as e:
        console.print(f"[red]Cannot reach proxy {proxy}: {e}")
        raise typer.Exit(1) from e
    except HandshakeError as e:
        console.print(f"[red]Tunnel to {target} refused: {e}")
        raise typer.Exit(2) from e

    console.print(f"[green]Tunnel to {target} established, {len(response)} bytes received")
    if response:
        console.print(response.decode("utf-8", errors="replace"), markup=False, highlight=False)


if __name__ == "__main__":
    app()
