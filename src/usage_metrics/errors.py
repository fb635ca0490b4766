"""
Exceptions raised by the usage-metrics pipeline
"""

class UsageMetricsError(Exception):
    """Base exception for usage-metrics operations"""
    pass

class FetchError(UsageMetricsError):
    """Raised when the CSV cannot be retrieved (bad status, network or file error)"""
    pass

class ParseError(UsageMetricsError):
    """Raised when the CSV yields no usable records or lacks required columns"""
    pass

class RenderError(UsageMetricsError):
    """Raised when a chart cannot be placed into its target"""
    pass

class ProbeError(UsageMetricsError):
    """Raised when the HTTP probe does not get a 200 back"""
    pass

class ConfigError(UsageMetricsError):
    """Raised for invalid configuration values"""
    pass
