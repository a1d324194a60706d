"""Pydantic schemas for request/response validation."""

from .booking import *  # noqa: F403
from .collaboration import *  # noqa: F403
from .common import *  # noqa: F403
