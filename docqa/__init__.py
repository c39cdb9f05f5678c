"""docqa - question answering over a private document corpus."""

__version__ = "0.1.0"
