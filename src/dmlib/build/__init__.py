"""Build job completion polling."""

from dmlib.build.poller import BuildPoller, is_terminal

__all__ = ["BuildPoller", "is_terminal"]
