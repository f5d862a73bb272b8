"""Match Notifier - capture the match report page and post it to a chat webhook."""

__version__ = "0.1.0"
