# utils/application_performance/exceptions.py
"""Errors raised by the application performance collaborators."""


class DataSourceError(Exception):
    """A persistence collaborator could not answer a read."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"{source}: {message}")
