from .metrics import AggregatedView, Summary, UsageRecord, aggregate, summarize

__version__ = "0.1.0"
