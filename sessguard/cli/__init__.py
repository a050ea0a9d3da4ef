"""
sessguard CLI - maintenance of file-backed session stores.

Usage:
    sessguard list
    sessguard inspect <session-id>
    sessguard delete <session-id>
    sessguard purge --idle-ttl 1800
    sessguard keygen
"""

__version__ = "0.1.0"
__cli_name__ = "sessguard"
