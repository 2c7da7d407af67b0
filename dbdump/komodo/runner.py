import threading
import time
from enum import Enum
from typing import Callable, Optional

from ..exceptions import RemoteRunFailed, RemoteRunTimeout
from ..logger import get_logger
from .client import KomodoClient
from .job import JobConfig, build_docker_command

logger = get_logger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    TERMINAL_CREATED = "terminal_created"
    RUNNING = "running"
    FINISHED = "finished"
    CLEANED = "cleaned"


class RemoteBackupRunner:
    """
    Runs the backup container on a Komodo server through a temporary terminal.

    The terminal is created fresh (recreate Always), the docker command is
    executed with its output forwarded line by line, and the terminal is
    deleted on every exit path. A non-zero exit code raises RemoteRunFailed
    once cleanup is done.
    """

    def __init__(self, client: KomodoClient, job: JobConfig,
                 log_sink: Optional[Callable[[str], None]] = None, sleep=time.sleep):
        self.client = client
        self.job = job
        self.log_sink = log_sink or (lambda line: logger.info(f"[remote] {line}"))
        self.sleep = sleep
        self.state = RunState.IDLE
        self.exit_code: Optional[int] = None

    def run(self) -> int:
        job = self.job
        logger.info(f"Starting dbdump backup on server: {job.server_name}")
        try:
            self.client.create_terminal(job.server_name, job.terminal_name, command="bash", recreate="Always")
            self.state = RunState.TERMINAL_CREATED
            logger.info("Terminal created, starting backup...")

            self.exit_code = self._execute(build_docker_command(job))
            self.state = RunState.FINISHED

            if self.exit_code != 0:
                raise RemoteRunFailed(self.exit_code)
            logger.info(f"Backup completed successfully, dumps saved to {job.dump_path}")
            return self.exit_code
        except Exception as e:
            logger.error(f"Remote backup failed: {e}")
            raise
        finally:
            self._cleanup()

    def _execute(self, command: str) -> Optional[int]:
        finished = threading.Event()
        outcome = {}

        def on_finish(code):
            outcome["code"] = code
            logger.info(f"Process finished with exit code: {code}")
            finished.set()

        def worker():
            try:
                self.client.execute_terminal(
                    self.job.server_name, self.job.terminal_name, command,
                    on_line=self.log_sink, on_finish=on_finish,
                )
            except Exception as e:
                outcome["error"] = e
                finished.set()

        thread = threading.Thread(target=worker, name="komodo-terminal", daemon=True)
        self.state = RunState.RUNNING
        thread.start()

        timeout = self.job.timeout_seconds or None
        if not finished.wait(timeout):
            raise RemoteRunTimeout(timeout)
        if "error" in outcome:
            raise outcome["error"]
        return outcome.get("code")

    def _cleanup(self) -> None:
        job = self.job
        logger.info("Cleaning up terminal resources...")
        try:
            self.client.execute_terminal(
                job.server_name, job.terminal_name, "exit 0",
                on_line=lambda line: None, on_finish=lambda code: None,
                read_timeout=max(job.grace_seconds, 1.0) * 10,
            )
        except Exception as e:
            logger.warning(f"Cleanup note: could not send exit to terminal: {e}")

        self.sleep(job.grace_seconds)

        try:
            self.client.delete_terminal(job.server_name, job.terminal_name)
            logger.info("Terminal resource removed.")
        except Exception as e:
            logger.warning(f"Cleanup note: terminal was closed forcefully or was already gone ({e})")
        self.state = RunState.CLEANED
