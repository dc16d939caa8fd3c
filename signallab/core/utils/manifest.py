"""Run manifests: one JSON record per backtest run, written success or not."""

from __future__ import annotations

import json
import platform
import sys
import traceback
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

MANIFEST_VERSION = 2
MANIFEST_NAME = "run_manifest.json"


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _path_or_none(path: Path | None) -> str | None:
    return str(path.resolve()) if path is not None else None


@dataclass
class RunManifestWriter:
    """
    Collects what a run used and produced, then writes it beside the artifacts.

    A manifest starts in ``running`` status and ends in ``success`` or
    ``failed``. Sections are replaced wholesale by their setters, so calling
    ``set_context`` again after data loading narrows the recorded assets.
    """

    output_dir: Path
    command: str
    run_id: str
    manifest_name: str = MANIFEST_NAME
    started_at: datetime = field(default_factory=_utc_now)
    _payload: dict[str, Any] = field(init=False)

    def __post_init__(self) -> None:
        self._payload = {
            "manifest_version": MANIFEST_VERSION,
            "run_id": self.run_id,
            "command": self.command,
            "status": "running",
            "started_at": self.started_at.isoformat(),
            "finished_at": None,
            "duration_seconds": None,
            "environment": {
                "python_version": sys.version.split()[0],
                "platform": platform.platform(),
            },
            "inputs": {},
            "engine": {},
            "context": {},
            "result": {},
            "failure": {},
        }

    @property
    def status(self) -> str:
        """Current manifest status."""
        return str(self._payload["status"])

    @property
    def path(self) -> Path:
        """Where ``write`` puts the manifest."""
        return self.output_dir / self.manifest_name

    def set_inputs(
        self,
        config_path: Path | None = None,
        data_dir: Path | None = None,
        strategy_source: str | None = None,
    ) -> None:
        """Record where the run's configuration, data and strategy came from."""
        self._payload["inputs"] = {
            "config_path": _path_or_none(config_path),
            "data_dir": _path_or_none(data_dir),
            "strategy_source": strategy_source,
        }

    def set_engine(self, settings: Mapping[str, Any]) -> None:
        """Record engine settings (seed, fill mode, drawdown policy, benchmark)."""
        self._payload["engine"] = json.loads(json.dumps(dict(settings), default=str))

    def set_context(
        self,
        strategy_id: str,
        start: str,
        end: str,
        initial_capital: float,
        assets: list[str] | None = None,
    ) -> None:
        """Record the strategy, simulated period and asset universe."""
        self._payload["context"] = {
            "strategy_id": strategy_id,
            "period": {"start": start, "end": end},
            "initial_capital": float(initial_capital),
            "assets": sorted(assets) if assets is not None else None,
        }

    def mark_success(
        self,
        metrics: Mapping[str, float],
        artifact_paths: list[str],
        extra: Mapping[str, Any] | None = None,
    ) -> None:
        """Mark the run successful with its headline metrics and artifacts."""
        self._payload["status"] = "success"
        self._payload["failure"] = {}
        self._payload["result"] = {
            "metrics": dict(metrics),
            "artifact_paths": sorted({str(path) for path in artifact_paths}),
            "extra": dict(extra or {}),
        }

    def mark_failure(self, exc: BaseException) -> None:
        """Mark the run failed; typed errors also record their codes."""
        self._payload["status"] = "failed"
        self._payload["result"] = {}
        self._payload["failure"] = {
            "exception_type": type(exc).__name__,
            "error_code": getattr(exc, "error_code", None),
            "exit_code": getattr(exc, "exit_code", None),
            "message": str(exc),
            "traceback": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        }

    def to_dict(self) -> dict[str, Any]:
        """Return a copy of the current payload."""
        return json.loads(json.dumps(self._payload))

    def write(self) -> Path:
        """Stamp the finish time, persist the manifest and return its path."""
        finished_at = _utc_now()
        self._payload["finished_at"] = finished_at.isoformat()
        self._payload["duration_seconds"] = (finished_at - self.started_at).total_seconds()

        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(self._payload, indent=2, sort_keys=True) + "\n",
            encoding="utf-8",
        )
        return self.path
