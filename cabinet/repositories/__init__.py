"""Persistence for durable memory records and meeting snapshots."""

from cabinet.repositories.meeting_repo import MeetingRepository
from cabinet.repositories.memory_store import MemoryRecordStore, RecordStore

__all__ = ["MeetingRepository", "MemoryRecordStore", "RecordStore"]
