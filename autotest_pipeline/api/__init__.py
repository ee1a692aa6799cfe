"""HTTP entry point for starting pipeline runs."""

from autotest_pipeline.api.app import create_app

__all__ = ["create_app"]
