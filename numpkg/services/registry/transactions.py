# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Transaction Logger

Single responsibility: Log and retrieve transactions (append-only JSONL)
"""

import json
import logging
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import List, Dict, Any, Iterator, Optional
from datetime import datetime, UTC

from numpkg.models.registry_models import (
    Installer,
    TransactionRecord,
    TransactionOperation,
    TransactionStatus
)

logger = logging.getLogger(__name__)


class TransactionLogger:
    """Manages transaction logging to append-only JSONL file"""

    def __init__(self, log_file: Optional[Path]):
        """
        Initialize transaction logger.

        Args:
            log_file: Path to transactions.jsonl, None disables logging
        """
        self.log_file = Path(log_file) if log_file else None

    def create_transaction(
        self,
        operation: TransactionOperation,
        package_name: str,
        version: Optional[str] = None,
        installer: Optional[Installer] = None
    ) -> TransactionRecord:
        """
        Create a new transaction record.

        Args:
            operation: Type of operation
            package_name: Package name
            version: Package version
            installer: Registry the operation touches

        Returns:
            New transaction record
        """
        return TransactionRecord(
            id=f"txn-{uuid.uuid4().hex[:12]}",
            operation=operation,
            package_name=package_name,
            version=version,
            installer=installer,
            status=TransactionStatus.PENDING,
            started_at=datetime.now(UTC)
        )

    def log(self, transaction: TransactionRecord):
        """
        Append transaction to JSONL log file.

        Args:
            transaction: Transaction record to log
        """
        if self.log_file is None:
            return
        try:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_file, "a") as f:
                f.write(json.dumps(transaction.to_dict()) + "\n")
        except OSError as e:
            # Logging failures do not fail the operation
            logger.warning(f"Failed to write transaction log {self.log_file}: {e}")

    @contextmanager
    def track(
        self,
        operation: TransactionOperation,
        package_name: str,
        version: Optional[str] = None,
        installer: Optional[Installer] = None
    ) -> Iterator[TransactionRecord]:
        """
        Log a transaction around a block: in_progress, then completed or failed.

        Exceptions raised by the block are recorded and re-raised.
        """
        transaction = self.create_transaction(operation, package_name, version, installer)
        transaction.status = TransactionStatus.IN_PROGRESS
        self.log(transaction)
        try:
            yield transaction
        except Exception as e:
            transaction.status = TransactionStatus.FAILED
            transaction.error = str(e)
            transaction.completed_at = datetime.now(UTC)
            self.log(transaction)
            raise
        transaction.status = TransactionStatus.COMPLETED
        transaction.completed_at = datetime.now(UTC)
        self.log(transaction)

    def list_transactions(self, limit: int = 50) -> List[Dict[str, Any]]:
        """
        List recent transactions from log.

        Args:
            limit: Maximum number of transactions to return

        Returns:
            List of transaction records (most recent first)
        """
        if self.log_file is None or not self.log_file.exists():
            return []

        transactions = []
        with open(self.log_file, "r") as f:
            for line in f:
                if not line.strip():
                    continue
                try:
                    transactions.append(json.loads(line))
                except json.JSONDecodeError as e:
                    logger.error(f"Failed to parse transaction log line: {e}")

        return list(reversed(transactions[-limit:]))
