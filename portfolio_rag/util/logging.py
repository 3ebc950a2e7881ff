"""
Structured logging for the portfolio RAG subsystem.
Index synchronization, relevance analysis and retrieval all report through here.
"""

import logging
from typing import Any, Dict, List

MAX_DETAIL_LENGTH = 100


def _truncate(value: Any) -> Any:
    if isinstance(value, str) and len(value) > MAX_DETAIL_LENGTH:
        return value[:MAX_DETAIL_LENGTH - 3] + "..."
    return value


class StructuredLogger:
    """Structured logger for index, analysis and retrieval operations."""

    def __init__(self, name: str = "portfolio_rag"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None, level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            truncated = {k: _truncate(v) for k, v in details.items()}
            message += f", Details: {truncated}"

        self.logger.log(level, message)

    def log_vector_operation(self, operation: str, document_id: str, details: Dict[str, Any] = None, status: str = "success"):
        """Log a vector store operation."""
        log_details = {"document_id": document_id}
        if details:
            log_details.update(details)

        level = logging.INFO if status == "success" else logging.WARNING
        self.log_operation(f"vector.{operation}", status, log_details, level)

    def log_sync_job(self, source_type: str, source_id: Any, state: str, details: Dict[str, Any] = None):
        """Log the terminal state of an index sync job."""
        log_details = {"source_type": source_type, "source_id": source_id}
        if details:
            log_details.update(details)

        level = logging.ERROR if state == "failed" else logging.INFO
        self.log_operation("sync.job", state, log_details, level)

    def log_sync_batch(self, scope: str, synced: int, errors: int, total: int, skipped: int = 0):
        """Log the outcome of a batch sync pass."""
        self.log_operation(f"sync.{scope}", "completed", {
            "synced": synced,
            "errors": errors,
            "skipped": skipped,
            "total": total
        }, logging.WARNING if errors else logging.INFO)

    def log_analysis(self, source: str, should_retrieve: bool, confidence: float, keywords: List[str], reasoning: str = ""):
        """Log a relevance decision."""
        self.log_operation("analysis.decision", source, {
            "should_retrieve": should_retrieve,
            "confidence": round(confidence, 3),
            "keywords": ", ".join(keywords),
            "reasoning": reasoning
        })

    def log_retrieval(self, status: str, search_query: str = "", k: int = 0, result_count: int = 0, details: Dict[str, Any] = None):
        """Log a retrieval pass."""
        log_details = {"search_query": search_query, "k": k, "results": result_count}
        if details:
            log_details.update(details)

        level = logging.WARNING if status == "failed" else logging.INFO
        self.log_operation("retrieval", status, log_details, level)

    def log_reconciliation(self, findings: Dict[str, int], applied: bool, details: Dict[str, Any] = None):
        """Log a reconciliation pass between the content store and the index."""
        log_details = dict(findings)
        log_details["applied"] = applied
        if details:
            log_details.update(details)

        self.log_operation("reconcile", "applied" if applied else "detected", log_details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()
