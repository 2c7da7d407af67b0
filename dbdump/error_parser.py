# dbdump/error_parser.py
from .models import EngineKind


def parse_backup_error(stderr: str, engine: EngineKind) -> str:
    """
    Parses the stderr output from a dump command and returns a human-readable summary.
    """
    stderr = (stderr or "").lower()

    if engine == EngineKind.MYSQL:
        if "access denied" in stderr:
            return "Authentication Error: The username or password was rejected."
        if "unknown database" in stderr:
            return "Database Error: The specified database does not exist."
        if "can't connect" in stderr or "connection refused" in stderr:
            return "Connection Error: Could not connect to the database server. Check host and port."
        if "unknown mysql server host" in stderr or "unknown server host" in stderr:
            return "Connection Error: The host name could not be resolved. Check the server address."
        if "lock tables" in stderr or "privilege" in stderr:
            return "Permission Error: The user lacks the privileges required for the dump."

    elif engine == EngineKind.POSTGRES:
        if "password authentication failed" in stderr:
            return "Authentication Error: The supplied password was rejected."
        if "authentication failed" in stderr:
            return "Authentication Error: The username or password is incorrect."
        if "does not exist" in stderr and "database" in stderr:
            return "Database Error: The specified database does not exist."
        if "connection refused" in stderr:
            return "Connection Error: Could not connect to the database server. Check host and port."
        if "could not translate host name" in stderr:
            return "Connection Error: The host name could not be resolved. Check the server address."
        if "timeout expired" in stderr:
            return "Connection Error: Timed out while connecting to the server."
        if "server version mismatch" in stderr:
            return "Version Error: pg_dump is older than the server. Upgrade the client tools."
        if "permission denied" in stderr:
            return "Permission Error: The user lacks the privileges required for the dump."

    elif engine == EngineKind.MONGO:
        if "authentication failed" in stderr:
            return "Authentication Error: The username or password is incorrect."
        if "could not connect to server" in stderr:
            return "Connection Error: Could not connect to the server. Check address and port."
        if "failed to connect" in stderr:
            return "Connection Error: Failed to connect to the server. Check the network configuration."

    return "Unknown Error: The backup failed for an unidentified reason. Check the full log for details."
