import time
from typing import Any, Dict, List, Optional

from pulse.core.metrics import snapshot_job_windows_total
from pulse.core.metrics_store import log_json
from pulse.services.pulse_service import PulseService, get_pulse_service, validate_date_key
from worker.app import app


def run_daily_pulse_snapshots(date_key: Optional[str] = None, service: Optional[PulseService] = None) -> Dict[str, Any]:
    """
    Regenerate the snapshot for every configured window.

    Each window is independent: a failure is recorded and the next window
    still runs. Windows that succeeded keep their persisted snapshot.
    """
    start = time.perf_counter()
    service = service or get_pulse_service()
    date_key = validate_date_key(date_key) if date_key is not None else service.today()
    windows = list(service.cfg.window_sizes)

    results: Dict[str, Dict[str, Any]] = {}
    failed: List[int] = []

    log_json(stage="pulse.job.start", date_key=date_key, windows=windows)

    for window_days in windows:
        try:
            snapshot = service.compute_and_cache_snapshot(window_days, date_key, force_regen=True)
        except Exception as e:
            failed.append(window_days)
            results[str(window_days)] = {"success": False, "error": f"{type(e).__name__}: {str(e)[:200]}"}
            snapshot_job_windows_total.labels(window_days=str(window_days), result="error").inc()
            log_json(
                stage="pulse.job.window_failed",
                date_key=date_key,
                window_days=window_days,
                error=f"{type(e).__name__}: {str(e)[:200]}",
                level="error",
            )
            continue

        results[str(window_days)] = {
            "success": True,
            "total_topics": snapshot.total_topics,
            "narrative": snapshot.narrative is not None,
        }
        snapshot_job_windows_total.labels(window_days=str(window_days), result="ok").inc()

    elapsed_ms = int((time.perf_counter() - start) * 1000)
    summary = {
        "success": not failed,
        "date_key": date_key,
        "windows": results,
        "failed_windows": failed,
        "duration_ms": elapsed_ms,
    }
    log_json(
        stage="pulse.job.done",
        date_key=date_key,
        succeeded=len(windows) - len(failed),
        failed_windows=failed,
        duration_ms=elapsed_ms,
        level="error" if failed else "info",
    )
    return summary


@app.task(name="worker.jobs.pulse_snapshots.daily_pulse_snapshots")
def daily_pulse_snapshots(date_key: Optional[str] = None):
    return run_daily_pulse_snapshots(date_key)
