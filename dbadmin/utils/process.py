"""
External tool processes with a cancellation handle and a completion future
"""

import os
import shutil
import subprocess
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import List, Optional

from ..errors import ExternalToolError
from .logger import get_logger

logger = get_logger(__name__)


@dataclass
class ProcessResult:
    returncode: int
    stderr: str
    cancelled: bool = False


def extended_path(tool_paths: List[str]) -> str:
    """Prepend well-known tool directories to the inherited PATH"""
    current = os.environ.get('PATH', '')
    return os.pathsep.join([p for p in tool_paths if p] + ([current] if current else []))


class ProcessHandle:
    """Owns one spawned tool; completion is delivered through ``future``"""

    def __init__(self, tool: str, args: List[str], env: Optional[dict] = None,
                 tool_paths: Optional[List[str]] = None, stdin_path: Optional[str] = None,
                 stdout_path: Optional[str] = None):
        self.tool = tool
        self.args = args
        self.stdin_path = stdin_path
        self.stdout_path = stdout_path
        self.search_path = extended_path(tool_paths or [])
        self.env = {**os.environ, **(env or {}), 'PATH': self.search_path}
        self.future: Future = Future()
        self._process: Optional[subprocess.Popen] = None
        self._cancel_requested = threading.Event()
        self._lock = threading.Lock()

    def start(self) -> "ProcessHandle":
        executable = shutil.which(self.tool, path=self.search_path)
        if executable is None:
            raise ExternalToolError(
                self.tool,
                f"{self.tool} not found. Install it or add its directory to DBADMIN_TOOL_PATHS.",
            )
        thread = threading.Thread(target=self._run, args=(executable,), name=f"tool-{self.tool}", daemon=True)
        thread.start()
        return self

    def _run(self, executable: str) -> None:
        stdin = stdout = None
        try:
            stdin = open(self.stdin_path, 'rb') if self.stdin_path else subprocess.DEVNULL
            stdout = open(self.stdout_path, 'wb') if self.stdout_path else subprocess.DEVNULL
            with self._lock:
                if self._cancel_requested.is_set():
                    self.future.set_result(ProcessResult(-1, '', cancelled=True))
                    return
                self._process = subprocess.Popen(
                    [executable] + self.args,
                    stdin=stdin,
                    stdout=stdout,
                    stderr=subprocess.PIPE,
                    env=self.env,
                )
            _, stderr = self._process.communicate()
            self.future.set_result(ProcessResult(
                returncode=self._process.returncode,
                stderr=stderr.decode('utf-8', errors='replace'),
                cancelled=self._cancel_requested.is_set(),
            ))
        except Exception as e:
            self.future.set_exception(e)
        finally:
            for stream in (stdin, stdout):
                if hasattr(stream, 'close'):
                    stream.close()

    def cancel(self) -> bool:
        """Terminate the process; returns False when it already finished"""
        if self.future.done():
            return False
        with self._lock:
            self._cancel_requested.set()
            process = self._process
        if process is not None and process.poll() is None:
            logger.info(f"Terminating {self.tool} (pid {process.pid})")
            process.terminate()
        return True

    def wait(self, timeout: Optional[float] = None) -> ProcessResult:
        return self.future.result(timeout)
