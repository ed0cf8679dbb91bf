"""Venue catalog crawler.

Walks paginated, JavaScript-rendered venue directories page by page,
decides when the catalog is exhausted, deduplicates listings within a run
and delivers each page's records to a webhook sink.

Key modules:
    models       -- CatalogDescriptor, RunState, Record, DeliveryBatch, RunSummary dataclasses
    catalogs     -- descriptor table keyed by source id (TagVenue, HireSpace)
    controller   -- CrawlController: traversal, stopping policy, per-page delivery
    governor     -- ConcurrencyGovernor: bounded FIFO pools for listing and detail work
    batching     -- run-level dedup and batch assembly
    delivery     -- DeliveryClient implementations and the BatchDeliverer retry policy
    renderer     -- PageRenderer base class and the curl_cffi HttpRenderer
    browser      -- Playwright BrowserRenderer
    extraction   -- ExtractionAdapter over BeautifulSoup
    backoff      -- BackoffStrategy and RetryPolicy
    progress     -- ProgressReporter for structured page/summary events
    artifacts    -- DebugArtifacts for saved markup and screenshots
    config       -- Settings and the argparse/env configuration surface
    orchestrator -- run(): wires sources, shards and collaborators
"""
