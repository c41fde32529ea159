"""
Remote connections.
"""

from fleetback.connections.sftp import SFTPConnection

__all__ = ["SFTPConnection"]
