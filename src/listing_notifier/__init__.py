"""Poll a classifieds listing page and forward new entries to Telegram."""

__version__ = "0.1.0"
