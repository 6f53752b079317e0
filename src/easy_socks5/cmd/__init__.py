"""Command line interface modules.

This package provides the command-line tools for:
- Running a SOCKS5 proxy server
- Opening a tunnel through a SOCKS5 proxy and exchanging a message
- Logging setup and error reporting
"""
