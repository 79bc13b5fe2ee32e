"""arq worker settings module.

Import path for arq CLI: arq soltap.workers.settings.WorkerSettings
"""

from __future__ import annotations

from soltap.workers.season_worker import WorkerSettings

__all__ = ["WorkerSettings"]
