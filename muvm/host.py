"""Hosts that carry out the side effects a running program asks for."""

from __future__ import annotations

import subprocess
import sys
import urllib.error
import urllib.parse
import urllib.request
from abc import ABC, abstractmethod
from typing import Sequence

from muvm.values import VmError


class HostError(Exception):
    """A recoverable side-effect failure, surfaced to programs as an Er value."""


class VmHost(ABC):
    """The side effects available to a running program."""

    @abstractmethod
    def io_print(self, text: str) -> None:
        """Write text without a trailing newline."""

    @abstractmethod
    def io_println(self, text: str) -> None:
        """Write text followed by a newline."""

    @abstractmethod
    def io_readln(self) -> str:
        """Read one line without its line ending."""

    @abstractmethod
    def fs_read_to_string(self, path: str) -> str:
        """Read a whole file as text."""

    @abstractmethod
    def fs_write_string(self, path: str, data: str) -> None:
        """Replace a file's contents with text."""

    @abstractmethod
    def proc_run(self, cmd: str, args: Sequence[str]) -> int:
        """Run a command and return its exit status."""

    @abstractmethod
    def http_get(self, url: str) -> str:
        """Fetch a URL and return the response body."""


class RealHost(VmHost):
    """A host backed by the console, the file system, processes and HTTP."""

    def io_print(self, text: str) -> None:
        sys.stdout.write(text)
        sys.stdout.flush()

    def io_println(self, text: str) -> None:
        sys.stdout.write(text + "\n")
        sys.stdout.flush()

    def io_readln(self) -> str:
        try:
            line = sys.stdin.readline()
        except (OSError, ValueError) as exc:
            raise VmError(f"readln failed: {exc}") from exc
        if line.endswith("\n"):
            line = line[:-1]
            if line.endswith("\r"):
                line = line[:-1]
        return line

    def fs_read_to_string(self, path: str) -> str:
        try:
            with open(path, encoding="utf-8", newline="") as handle:
                return handle.read()
        except (OSError, UnicodeDecodeError) as exc:
            raise HostError(f"read failed: {exc}") from exc

    def fs_write_string(self, path: str, data: str) -> None:
        try:
            with open(path, "w", encoding="utf-8", newline="") as handle:
                handle.write(data)
        except OSError as exc:
            raise HostError(f"write failed: {exc}") from exc

    def proc_run(self, cmd: str, args: Sequence[str]) -> int:
        try:
            completed = subprocess.run([cmd, *args], check=False)
        except (OSError, ValueError) as exc:
            raise HostError(f"run failed: {exc}") from exc
        # A negative code means the process was killed by a signal.
        return completed.returncode if completed.returncode >= 0 else -1

    def http_get(self, url: str) -> str:
        scheme = urllib.parse.urlsplit(url).scheme.lower()
        if scheme not in ("http", "https"):
            raise HostError(f"get failed: unsupported url scheme: {url}")
        try:
            with urllib.request.urlopen(url) as response:
                raw = response.read()
        except (urllib.error.URLError, OSError, ValueError) as exc:
            raise HostError(f"get failed: {exc}") from exc
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise HostError(f"get body read failed: {exc}") from exc


class FuzzHost(VmHost):
    """A host that discards output and refuses every other side effect."""

    def io_print(self, text: str) -> None:
        return None

    def io_println(self, text: str) -> None:
        return None

    def io_readln(self) -> str:
        raise VmError("fuzz host: readln disabled")

    def fs_read_to_string(self, path: str) -> str:
        raise HostError("fuzz host: fs read disabled")

    def fs_write_string(self, path: str, data: str) -> None:
        raise HostError("fuzz host: fs write disabled")

    def proc_run(self, cmd: str, args: Sequence[str]) -> int:
        raise HostError("fuzz host: proc run disabled")

    def http_get(self, url: str) -> str:
        raise HostError("fuzz host: http get disabled")