"""gcodesplit — split a sliced print into resumable parts."""

__version__ = "1.0.0"
