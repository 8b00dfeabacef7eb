"""
TubeVault acquisition service.

Orchestrates media acquisition jobs: spawns the fetcher (yt-dlp), tracks
progress in a persisted job store, reconciles produced files into the
library and pushes lifecycle events to connected observers.
"""

__version__ = "0.1.0"
__app_name__ = "TubeVault Acquisition Service"
