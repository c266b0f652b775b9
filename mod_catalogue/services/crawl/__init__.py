"""Workshop crawling subsystem.

Structure:
- mass_requester.py: chunked, retrying, bounded-concurrency execution of async calls
- parser.py: listing/item page extraction (selectolax)
- fetcher.py: workshop-specific crawler built on the requester and parser
- pipeline.py: persists streamed chunks into a ModStore and tallies the results
- runner.py: small CLI entrypoint for manual runs
"""

from .fetcher import WorkshopFetcher
from .mass_requester import ChunkStream, FetchError, MassRequester
from .parser import WorkshopParser

__all__ = [
    "ChunkStream",
    "FetchError",
    "MassRequester",
    "WorkshopFetcher",
    "WorkshopParser",
]
