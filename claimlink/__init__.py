"""claimlink: link pre-authentication records to authenticated accounts."""

__version__ = "0.1.0"
