from typing import List, Optional


class CrawlError(Exception):
    """Base class for every error raised by the acquisition pipeline."""


class MalformedUrlError(CrawlError):
    def __init__(self, url: Optional[str]):
        self.url = url
        super().__init__(f"Malformed URL: {url!r}")


class NavigationTimeout(CrawlError):
    def __init__(self, url: str, detail: str = ""):
        self.url = url
        self.detail = detail
        super().__init__(f"Navigation timed out for {url}: {detail}")


class RenderFailure(CrawlError):
    def __init__(self, url: str, detail: str = ""):
        self.url = url
        self.detail = detail
        super().__init__(f"Render failed for {url}: {detail}")


class LlmExtractionFailure(CrawlError):
    pass


class SitemapUnavailable(CrawlError):
    pass


class CrawlInitializationError(CrawlError):
    pass


class NoPagesCollectedError(CrawlError):
    def __init__(self, url: str, failures: Optional[List] = None):
        self.url = url
        self.failures = list(failures or [])
        super().__init__(f"Could not collect any pages from {url} ({len(self.failures)} failed)")
