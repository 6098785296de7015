"""Top-level package for voicememo."""

from . import client, config, recorder, storage

__all__ = ["client", "config", "recorder", "storage"]
