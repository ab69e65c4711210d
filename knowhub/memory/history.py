"""History recorder for answered questions.

Append-only: records are written once per answered question and read back
newest first.
"""
from typing import List, Optional
import structlog

from knowhub import config, db
from knowhub.models import QueryRecord

logger = structlog.get_logger()


class HistoryRecorder:
    """Appends and lists question/answer interactions."""

    def __init__(self, default_limit: int = None):
        """Initialize the recorder.

        Args:
            default_limit: Number of records recent() returns (default from config)
        """
        self.default_limit = default_limit or config.HISTORY_LIMIT

    def record(
        self,
        question: str,
        answer: str,
        context_documents: List[str],
        created_at: Optional[str] = None,
    ) -> QueryRecord:
        """Append one interaction.

        Raises:
            StorageError: If the write fails
        """
        row = db.insert_query_record(question, answer, context_documents, created_at)
        logger.info(
            "query_recorded",
            query_id=row["id"],
            source_count=len(context_documents),
        )
        return QueryRecord.from_row(row)

    def recent(self, limit: Optional[int] = None) -> List[QueryRecord]:
        """Most recent interactions, newest first."""
        limit = limit or self.default_limit
        records = [QueryRecord.from_row(row) for row in db.get_recent_query_records(limit)]
        logger.debug("query_history_retrieved", count=len(records))
        return records
