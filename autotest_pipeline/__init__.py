"""Automated unit-test pipeline: container bootstrap, context gathering, test generation and PR creation."""

__version__ = "0.1.0"
