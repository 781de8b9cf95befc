"""Authentication module exports"""

from . import dependencies

__all__ = ["dependencies"]
