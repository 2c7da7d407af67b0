class DbDumpError(Exception):
    """Base class for errors raised by dbdump."""


class ConfigMissing(DbDumpError):
    def __init__(self, path):
        self.path = path
        super().__init__(f"Config file not found: {path}")


class ConfigInvalid(DbDumpError):
    pass


class ConfigIncomplete(DbDumpError):
    pass


class DumpFailed(DbDumpError):
    def __init__(self, message: str, stderr: str = "", summary: str = None):
        self.stderr = stderr
        self.summary = summary
        super().__init__(message)


class RemoteRunFailed(DbDumpError):
    def __init__(self, exit_code):
        self.exit_code = exit_code
        if exit_code is None:
            message = "Backup failed: remote command exited without an exit code"
        else:
            message = f"Backup failed with exit code {exit_code}"
        super().__init__(message)


class RemoteRunTimeout(DbDumpError):
    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Remote backup did not finish within {timeout_seconds:.0f}s")
