"""
cronspine - deferred and recurring job scheduling over a shared job store.

- cronspine.core: records, time expressions, locks, runner
- cronspine.cli: ``cronspine`` command line
"""

__version__ = "0.1.0"
