"""File Replicator — mirror one local file to a remote host over SFTP.

Watches a single source file for writes and, once the minimum update
period has elapsed, pushes a full copy of it to the configured remote
destination.
"""

__version__ = "1.1.0"
__app_name__ = "File Replicator"
