from .client import ChartRepoClient, index_url, archive_url, read_chart_archive
from .session import SessionManager

__all__ = [
    "ChartRepoClient",
    "SessionManager",
    "index_url",
    "archive_url",
    "read_chart_archive",
]
