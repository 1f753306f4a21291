"""
Storage subpackage - record store and job queue persistence.
"""

from .job_queue import JobQueue, SqliteJobQueue
from .record_store import RecordStore, SqliteRecordStore
from .sql_job_queue import QueueConfig, SqlJobQueue

__all__ = [
    "JobQueue",
    "SqliteJobQueue",
    "RecordStore",
    "SqliteRecordStore",
    "QueueConfig",
    "SqlJobQueue",
]
