"""
Filesystem sandboxing for local plugins.

Every local plugin path is checked against a single base directory before
any code at that path is touched. The check rejects absolute paths,
traversal out of the base directory and symlinks whose real target lies
outside it.

Security Measures:
    - Empty paths, NUL bytes and fullwidth dot/solidus characters rejected
    - Absolute paths rejected (POSIX and Windows forms)
    - Unicode normalization (NFC) before resolution
    - Lexical boundary check after collapsing ``.`` and ``..``
    - Real-path boundary check after resolving symlinks
    - Component-wise containment, so ``/base-evil`` is never inside ``/base``

Example:
    from folio.plugins.sandbox import PathSandbox

    sandbox = PathSandbox("/srv/book")

    approved = sandbox.validate("plugins/callouts.py")
    sandbox.validate("../../etc/passwd")   # raises SecurityViolation
"""

from __future__ import annotations

import os
import threading
import unicodedata
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path, PureWindowsPath
from typing import Any
import logging

from folio.plugins.errors import SecurityViolation
from folio.plugins.sdk import Provenance

logger = logging.getLogger(__name__)

# U+FF0E fullwidth full stop, U+FF0F fullwidth solidus
FORBIDDEN_CHARACTERS = ("\0", "．", "／")


@dataclass
class SandboxViolation:
    """Record of a rejected path.

    Attributes:
        violation_type: Type of violation.
        message: Description of the violation.
        path: The rejected path as requested.
        boundary: The base directory in force.
        timestamp: When the violation was detected.
    """

    violation_type: str
    message: str
    path: str
    boundary: str
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "violation_type": self.violation_type,
            "message": self.message,
            "path": self.path,
            "boundary": self.boundary,
            "timestamp": self.timestamp.isoformat(),
        }


def is_within(path: Path, directory: Path) -> bool:
    """Whether *path* equals or descends from *directory* (component-wise)."""
    return path == directory or directory in path.parents


class PathSandbox:
    """Trust boundary for local plugin paths.

    Attributes:
        _base_dir: The configured base directory, made absolute.
        _violations: Violations recorded so far.
        _checks: Number of validations performed.

    Example:
        sandbox = PathSandbox("./book")
        path = sandbox.validate("plugins/local.py")
    """

    def __init__(self, base_dir: str | os.PathLike[str]):
        """Initialize the sandbox.

        Args:
            base_dir: Directory all local plugin paths must stay within.
        """
        self._base_dir = Path(os.path.abspath(base_dir))
        self._violations: list[SandboxViolation] = []
        self._checks = 0
        self._lock = threading.Lock()

    @property
    def base_dir(self) -> Path:
        """Get the configured base directory."""
        return self._base_dir

    def validate(
        self,
        raw_path: str,
        plugin_name: str | None = None,
        provenance: Provenance = Provenance.LOCAL,
    ) -> Path:
        """Validate a local plugin path.

        Args:
            raw_path: The path as written in configuration.
            plugin_name: Name to report in errors. Defaults to the path.
            provenance: Provenance to report in errors.

        Returns:
            The approved absolute real path.

        Raises:
            SecurityViolation: If the path is not inside the base directory.
        """
        with self._lock:
            self._checks += 1
        name = plugin_name or raw_path or "unknown"

        def reject(violation_type: str, message: str) -> None:
            self._reject(violation_type, message, raw_path, name, provenance)

        if not raw_path or not raw_path.strip():
            reject("empty_path", "Path cannot be empty")

        if any(char in raw_path for char in FORBIDDEN_CHARACTERS):
            reject("invalid_characters", "Path contains invalid characters")

        windows_path = PureWindowsPath(raw_path)
        if (
            os.path.isabs(raw_path)
            or windows_path.is_absolute()
            or windows_path.drive
            or raw_path.startswith(("/", "\\"))
        ):
            reject("absolute_path", "Plugin paths must be relative")

        normalized = unicodedata.normalize("NFC", raw_path)

        # Lexical check: collapse . and .. without touching the filesystem
        candidate = Path(os.path.normpath(os.path.join(self._base_dir, normalized)))
        if not is_within(candidate, self._base_dir):
            reject("path_traversal", "Path is outside allowed directory")

        # Real-path check: follow symlinks on both sides
        real_base = Path(os.path.realpath(self._base_dir))
        real_path = Path(os.path.realpath(candidate))
        if not is_within(real_path, real_base):
            reject("symlink_escape", "Path resolves outside allowed directory")

        logger.debug(f"Approved plugin path {raw_path!r} -> {real_path}")
        return real_path

    def is_allowed(self, raw_path: str) -> bool:
        """Check a path without raising."""
        try:
            self.validate(raw_path)
        except SecurityViolation:
            return False
        return True

    def _reject(
        self,
        violation_type: str,
        message: str,
        raw_path: str,
        name: str,
        provenance: Provenance,
    ) -> None:
        violation = SandboxViolation(
            violation_type=violation_type,
            message=message,
            path=raw_path,
            boundary=str(self._base_dir),
        )
        with self._lock:
            self._violations.append(violation)
        logger.warning(
            f"Sandbox rejected plugin path {raw_path!r}: {message} "
            f"(boundary: {self._base_dir})"
        )
        raise SecurityViolation(
            name,
            message,
            path=raw_path,
            boundary=str(self._base_dir),
            provenance=provenance,
        )

    def get_stats(self) -> dict[str, Any]:
        """Get sandbox statistics."""
        with self._lock:
            violations = list(self._violations)
            checks = self._checks

        counts: dict[str, int] = {}
        for violation in violations:
            vtype = violation.violation_type
            counts[vtype] = counts.get(vtype, 0) + 1

        return {
            "checks": checks,
            "total_violations": len(violations),
            "violations_by_type": counts,
        }

    def clear_violations(self) -> None:
        """Clear recorded violations."""
        with self._lock:
            self._violations.clear()

    def get_recent_violations(self, limit: int = 100) -> list[SandboxViolation]:
        """Get recent violations.

        Args:
            limit: Maximum number of violations to return.

        Returns:
            List of recent violations.
        """
        with self._lock:
            return self._violations[-limit:]

    def __repr__(self) -> str:
        return (
            f"<PathSandbox base={self._base_dir} "
            f"checks={self._checks} violations={len(self._violations)}>"
        )
