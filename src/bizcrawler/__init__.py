from .models import BusinessProfile, Page, PageFailure
from .pipeline import CrawlRun, ProfilePipeline, start_crawl

__all__ = [
    "BusinessProfile",
    "CrawlRun",
    "Page",
    "PageFailure",
    "ProfilePipeline",
    "start_crawl",
]
