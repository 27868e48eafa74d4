"""HTTP surface of the BFF service."""

from moscowvitz_bff.api.app import create_app

__all__ = ["create_app"]
