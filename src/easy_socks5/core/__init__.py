"""Core SOCKS5 protocol engine.

This package contains the protocol components:
- Wire codec for every SOCKS5 handshake message
- Server-side and client-side handshake state machines
- Bidirectional relay used once a tunnel is established
- Default TCP transport and DNS resolution
- Exception hierarchy and configuration

The command-line interface lives in ``easy_socks5.cmd`` and only wires these
components together.
"""
