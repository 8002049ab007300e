"""Session counts as reported by logind."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from nodestats.helper import NAMESPACE, Desc, Metric, ValueType, build_fq_name

SUBSYSTEM = "logind"

# Known values as of systemd v229; "other" is the fallback for unknown ones.
ATTR_REMOTE_VALUES = ("true", "false")
ATTR_TYPE_VALUES = ("other", "unspecified", "tty", "x11", "wayland", "mir", "web")
ATTR_CLASS_VALUES = ("other", "user", "greeter", "lock-screen", "background")

SESSIONS_DESC = Desc(
    build_fq_name(NAMESPACE, SUBSYSTEM, "sessions"),
    "Number of sessions registered in logind.",
    ("seat", "remote", "type", "class"),
)


@dataclass(frozen=True)
class LogindSession:
    """Attributes by which sessions are counted."""

    seat: str
    remote: str
    session_type: str
    session_class: str


@dataclass(frozen=True)
class LogindSessionEntry:
    """One entry of the session list."""

    session_id: str
    user_id: int
    user_name: str
    seat_id: str
    session_object_path: str


class _LogindSource(Protocol):
    def list_seats(self) -> Sequence[str]: ...

    def list_sessions(self) -> Sequence[LogindSessionEntry]: ...

    def get_session(self, entry: LogindSessionEntry) -> Optional[LogindSession]: ...


def known_string_or_other(value: str, known: Sequence[str]) -> str:
    """Return value if it is known, otherwise "other"."""
    return value if value in known else "other"


def collect_metrics(source: _LogindSource) -> list[Metric]:
    """Count sessions for every combination of seat, remote, type and class."""
    try:
        seats = list(source.list_seats())
    except Exception as err:
        raise RuntimeError(f"unable to get seats: {err}") from err
    try:
        entries = list(source.list_sessions())
    except Exception as err:
        raise RuntimeError(f"unable to get sessions: {err}") from err

    sessions: Counter[LogindSession] = Counter()
    for entry in entries:
        session = source.get_session(entry)
        if session is not None:
            sessions[session] += 1

    metrics = []
    for remote in ATTR_REMOTE_VALUES:
        for session_type in ATTR_TYPE_VALUES:
            for session_class in ATTR_CLASS_VALUES:
                for seat in seats:
                    count = sessions[LogindSession(seat, remote, session_type, session_class)]
                    metrics.append(
                        SESSIONS_DESC.metric(
                            ValueType.GAUGE, float(count), seat, remote, session_type, session_class
                        )
                    )
    return metrics