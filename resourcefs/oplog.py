"""Append-only diagnostic log of remote operations.

Every remote mutation the filesystem performs (create, update, delete,
publish, rename) is recorded as one JSON line, successful or not. The log is
meant for debugging and for spotting the partial failures a rename can leave
behind.

Stored as: ~/.resourcefs/operations.jsonl (configurable)
"""

import hashlib
import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass
class OperationRecord:
    """Record of one remote operation."""

    op_id: str
    op_type: str  # "create", "update", "delete", "publish", "rename"
    path: str
    status: str  # "success", "failed"
    error: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "op_id": self.op_id,
            "op_type": self.op_type,
            "path": self.path,
            "status": self.status,
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


class OperationLog:
    """JSONL operation log."""

    def __init__(self, log_file: Path):
        """Initialize operation log.

        Args:
            log_file: Path of the JSONL file (created on first write)
        """
        self.log_file = Path(log_file).expanduser()

    def log_operation(
        self,
        op_type: str,
        path: str,
        status: str,
        error: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Append an operation record.

        Args:
            op_type: Operation type ("create", "update", "delete", ...)
            path: Filesystem path the operation applied to
            status: "success" or "failed"
            error: Error message if failed
            metadata: Additional details such as identifiers

        Returns:
            Operation ID
        """
        self.log_file.parent.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now(timezone.utc)
        op_id = f"{int(timestamp.timestamp() * 1000)}_{hashlib.md5(path.encode()).hexdigest()[:8]}"

        record = OperationRecord(
            op_id=op_id,
            op_type=op_type,
            path=path,
            status=status,
            error=error,
            timestamp=timestamp,
            metadata=metadata or {},
        )

        try:
            with open(self.log_file, "a") as f:
                f.write(json.dumps(record.to_dict()) + "\n")
        except OSError as e:
            logger.error(f"Failed to write to operation log: {e}")
            raise

        logger.debug(f"Logged {op_type} operation: {path} ({status})")
        return op_id

    def _read_all_operations(self) -> list[OperationRecord]:
        if not self.log_file.exists():
            return []

        operations = []
        try:
            with open(self.log_file, "r") as f:
                for line in f:
                    if not line.strip():
                        continue
                    try:
                        entry = json.loads(line)
                        operations.append(
                            OperationRecord(
                                op_id=entry["op_id"],
                                op_type=entry["op_type"],
                                path=entry["path"],
                                status=entry["status"],
                                error=entry.get("error"),
                                timestamp=datetime.fromisoformat(entry["timestamp"]),
                                metadata=entry.get("metadata", {}),
                            )
                        )
                    except (json.JSONDecodeError, KeyError) as e:
                        logger.warning(f"Skipping invalid log entry: {e}")
        except OSError as e:
            logger.error(f"Failed to read operation log: {e}")
            return []

        return operations

    def _filter_operations(
        self, predicate: Callable[[OperationRecord], bool]
    ) -> list[OperationRecord]:
        return [op for op in self._read_all_operations() if predicate(op)]

    def get_failed_operations(self) -> list[OperationRecord]:
        return self._filter_operations(lambda op: op.status == "failed")

    def get_operations_for_path(self, path: str) -> list[OperationRecord]:
        """Records touching ``path`` or anything below it, oldest first.

        Renames are matched on their destination as well as their source.
        """
        prefix = path.rstrip("/") + "/"

        def touches(op: OperationRecord) -> bool:
            candidates = [op.path, op.metadata.get("new_path") or ""]
            return any(c == path or c.startswith(prefix) for c in candidates)

        return self._filter_operations(touches)

    def get_recent_operations(self, limit: int = 50) -> list[OperationRecord]:
        """Get recent operations, newest first."""
        operations = self._read_all_operations()
        return operations[-limit:][::-1]

    def get_statistics(self) -> dict[str, Any]:
        """Summarize the log.

        Returns:
            Dict with ``total_operations``, ``by_type`` and ``by_status`` counts,
            and ``unresolved``: paths whose latest operation failed
        """
        operations = self._read_all_operations()

        latest: dict[str, OperationRecord] = {}
        for op in operations:
            latest[op.path] = op

        return {
            "total_operations": len(operations),
            "by_type": dict(Counter(op.op_type for op in operations)),
            "by_status": dict(Counter(op.status for op in operations)),
            "unresolved": sorted(
                path for path, op in latest.items() if op.status == "failed"
            ),
        }

    def prune(self, keep_days: int = 7) -> int:
        """Rewrite the log without successful records older than ``keep_days``.

        Failed records are kept regardless of age.

        Returns:
            Number of records removed
        """
        operations = self._read_all_operations()
        cutoff = datetime.now(timezone.utc) - timedelta(days=keep_days)
        kept = [op for op in operations if op.status == "failed" or op.timestamp > cutoff]

        removed = len(operations) - len(kept)
        if not removed:
            return 0

        with open(self.log_file, "w") as f:
            f.writelines(json.dumps(op.to_dict()) + "\n" for op in kept)
        logger.info(f"Pruned {removed} records from {self.log_file}")
        return removed
