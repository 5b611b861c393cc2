"""
quicktunnel - lifecycle manager for short-lived Cloudflare quick tunnels.
"""

__version__ = "1.0.0"
