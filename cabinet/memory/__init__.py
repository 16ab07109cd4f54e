"""Meeting memory: compression, retrieval and post-meeting records.

Provides:
- ContextCompressor: bounded rewrite of long histories
- ContextRetriever: token-capped context packages from prior records
- MeetingSummarizer: summary, decision and controversy records
- MemoryManager: session records and lessons learned
- MemorySearch: keyword search over stored records
"""

from cabinet.memory.compressor import ContextCompressor
from cabinet.memory.manager import MemoryManager
from cabinet.memory.retriever import ContextRetriever
from cabinet.memory.scoring import HeuristicRelevanceScorer, RelevanceScorer
from cabinet.memory.search import MemorySearch
from cabinet.memory.summarizer import MeetingSummarizer

__all__ = [
    "ContextCompressor",
    "ContextRetriever",
    "RelevanceScorer",
    "HeuristicRelevanceScorer",
    "MeetingSummarizer",
    "MemoryManager",
    "MemorySearch",
]
