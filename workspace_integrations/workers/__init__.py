"""Background workers."""

from .poller import PollLoop

__all__ = ["PollLoop"]
