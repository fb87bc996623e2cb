"""Per-run diagnostics accumulator.

Every pipeline stage takes an optional ``sink``; nothing is written to
process-wide state, so two runs never share a log.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}


@dataclass(frozen=True)
class LogEntry:
    timestamp: str
    level: str
    message: str


class DiagnosticsSink:
    def __init__(self, echo: bool = False, max_entries: int = 100):
        self.echo = echo
        self.max_entries = max_entries
        self._entries: List[LogEntry] = []

    @property
    def entries(self) -> List[LogEntry]:
        return list(self._entries)

    def log(self, level: str, message: str) -> None:
        entry = LogEntry(datetime.now().strftime("%H:%M:%S.%f")[:-3], level, message)
        self._entries.append(entry)
        if len(self._entries) > self.max_entries:
            del self._entries[0]
        logger.log(_LEVELS.get(level, logging.INFO), message)
        if self.echo:
            print(f"[{level}] {message}")

    def debug(self, message: str) -> None:
        self.log("DEBUG", message)

    def info(self, message: str) -> None:
        self.log("INFO", message)

    def warning(self, message: str) -> None:
        self.log("WARN", message)

    def error(self, message: str) -> None:
        self.log("ERROR", message)

    def messages(self, level: Optional[str] = None) -> List[str]:
        return [e.message for e in self._entries if level is None or e.level == level]

    def clear(self) -> None:
        self._entries.clear()

    def formatted(self) -> str:
        return "\n".join(f"[{e.timestamp}] {e.level}: {e.message}" for e in self._entries)


def ensure_sink(sink: Optional[DiagnosticsSink]) -> DiagnosticsSink:
    return sink if sink is not None else DiagnosticsSink()
