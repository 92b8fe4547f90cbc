"""OpenID Connect relying party for ProConnect with step-up authentication."""

__version__ = "0.1.0"
