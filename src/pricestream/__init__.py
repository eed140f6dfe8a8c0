"""Price publishing and threshold alert pipeline.

Fetches asset prices from off-chain providers, publishes one canonical quote
per symbol to a data-streams ledger through a single writer identity, and
evaluates user alerts against every published quote.
"""

__version__ = "0.1.0"
