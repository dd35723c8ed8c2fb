"""High-level exports for the result retrieval workflows."""

from .errors import NetworkFailure, ParseFailure, ResultError, RetrievalFailure, UpstreamFailure
from .monitor import HealthMetrics, HealthStatus, OperationalMonitor
from .records import Board, Exam, ResultQuery, ResultRecord, Subject
from .result_cache import ResultCache
from .retriever import DEFAULT_POLICY, ResultRetriever, RetrievalPolicy, fetch_result, load_policy_from_env

__all__ = [
    "DEFAULT_POLICY",
    "RetrievalPolicy",
    "ResultRetriever",
    "fetch_result",
    "load_policy_from_env",
    "Board",
    "Exam",
    "ResultQuery",
    "ResultRecord",
    "Subject",
    "ResultCache",
    "OperationalMonitor",
    "HealthMetrics",
    "HealthStatus",
    "ResultError",
    "NetworkFailure",
    "UpstreamFailure",
    "ParseFailure",
    "RetrievalFailure",
]
