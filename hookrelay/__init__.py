"""hookrelay: outbound webhook dispatch and inbound REST route processing."""

__version__ = "1.0.0"
