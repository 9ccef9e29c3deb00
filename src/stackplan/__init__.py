"""Change planning for declared infrastructure stacks."""

__version__ = "0.1.0"
