from typing import Callable, Optional

import requests

from ..logger import get_logger

logger = get_logger(__name__)

EXIT_CODE_PREFIX = "__KOMODO_EXIT_CODE"


def parse_exit_code(line: str) -> Optional[int]:
    # "__KOMODO_EXIT_CODE:3" -> 3
    _, _, value = line.partition(":")
    try:
        return int(value.strip())
    except ValueError:
        return None


class KomodoClient:
    """Minimal client for the Komodo core API: terminals only."""

    def __init__(self, base_url: str, api_key: str, api_secret: str, timeout_seconds: int = 10):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.api_secret = api_secret
        self.timeout_seconds = timeout_seconds
        self.session = requests.Session()

    def _headers(self) -> dict:
        return {
            "X-Api-Key": self.api_key,
            "X-Api-Secret": self.api_secret,
            "Content-Type": "application/json",
        }

    def write(self, request_type: str, params: dict) -> dict:
        url = f"{self.base_url}/write"
        payload = {"type": request_type, "params": params}
        response = self.session.post(url, json=payload, headers=self._headers(), timeout=self.timeout_seconds)
        response.raise_for_status()
        return response.json() if response.content else {}

    def create_terminal(self, server: str, name: str, command: str = "bash", recreate: str = "Always") -> dict:
        return self.write("CreateTerminal", {
            "server": server,
            "name": name,
            "command": command,
            "recreate": recreate,
        })

    def delete_terminal(self, server: str, name: str) -> dict:
        return self.write("DeleteTerminal", {"server": server, "name": name})

    def execute_terminal(
        self,
        server: str,
        terminal: str,
        command: str,
        on_line: Callable[[str], None],
        on_finish: Callable[[Optional[int]], None],
        read_timeout: Optional[float] = None,
    ) -> None:
        """
        Runs a command in an existing terminal and streams its output.

        on_line receives every output line; on_finish receives the exit code,
        or None when the stream ends without reporting one.
        """
        url = f"{self.base_url}/terminal/execute"
        payload = {"server": server, "terminal": terminal, "command": command}
        with self.session.post(
            url,
            json=payload,
            headers=self._headers(),
            stream=True,
            timeout=(self.timeout_seconds, read_timeout),
        ) as response:
            response.raise_for_status()
            if response.encoding is None:
                response.encoding = "utf-8"
            for line in response.iter_lines(decode_unicode=True):
                if line is None:
                    continue
                if line.startswith(EXIT_CODE_PREFIX):
                    on_finish(parse_exit_code(line))
                    return
                on_line(line)
        on_finish(None)
