"""REST client for the datamodels V2 API."""

from dmlib.api.client import DatamodelsClient

__all__ = ["DatamodelsClient"]
