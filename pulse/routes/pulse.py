from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from pulse.core.errors import PulseError
from pulse.core.metrics_store import log_json
from pulse.schemas.pulse import (
    PulseSnapshot,
    SignalsResult,
    ToggleResult,
    TopicDetail,
    WatchlistResponse,
)
from pulse.services.drilldown import TopicDrilldownResolver
from pulse.services.pulse_service import PulseService, get_pulse_service, validate_date_key
from pulse.services.watchlist import WatchlistEnricher

router = APIRouter(prefix="/pulse", tags=["pulse"])


def get_service() -> PulseService:
    return get_pulse_service()


def get_drilldown(service: PulseService = Depends(get_service)) -> TopicDrilldownResolver:
    return TopicDrilldownResolver(service.store, service.cfg, service.canonicalizer)


def get_watchlist_enricher(service: PulseService = Depends(get_service)) -> WatchlistEnricher:
    return WatchlistEnricher(service.store, service.cfg, service.canonicalizer)


def _http_error(stage: str, e: Exception) -> HTTPException:
    if isinstance(e, PulseError):
        log_json(stage=stage, code=e.code, error=e.message[:200], level="warning" if e.status_code < 500 else "error")
        return HTTPException(status_code=e.status_code, detail=e.to_detail())
    log_json(stage=stage, error=f"{type(e).__name__}: {str(e)[:200]}", level="error")
    return HTTPException(status_code=500, detail={"code": "internal", "error": "Pulse computation failed"})


@router.get("/snapshot", response_model=PulseSnapshot)
def get_snapshot(
    window_days: Optional[str] = Query(None, alias="windowDays"),
    service: PulseService = Depends(get_service),
):
    """Current snapshot for the window, recomputed when missing or stale"""
    try:
        return service.get_or_compute_snapshot(window_days)
    except Exception as e:
        raise _http_error("pulse.snapshot.error", e)


@router.post("/snapshot/regenerate", response_model=PulseSnapshot)
def regenerate_snapshot(
    window_days: Optional[str] = Query(None, alias="windowDays"),
    date_key: Optional[str] = Query(None, alias="dateKey"),
    service: PulseService = Depends(get_service),
):
    """Force a recompute, bypassing the freshness check"""
    try:
        key = validate_date_key(date_key) if date_key is not None else service.today()
        return service.compute_and_cache_snapshot(window_days, key, force_regen=True)
    except Exception as e:
        raise _http_error("pulse.snapshot.error", e)


@router.get("/signals", response_model=SignalsResult)
def get_signals(
    window_days: Optional[str] = Query(None, alias="windowDays"),
    date_key: Optional[str] = Query(None, alias="dateKey"),
    service: PulseService = Depends(get_service),
):
    try:
        return service.get_signals(window_days, date_key)
    except Exception as e:
        raise _http_error("pulse.signals.error", e)


@router.get("/topics/{topic_key}", response_model=TopicDetail)
def get_topic_detail(
    topic_key: str,
    window_days: Optional[str] = Query(None, alias="windowDays"),
    resolver: TopicDrilldownResolver = Depends(get_drilldown),
):
    try:
        return resolver.get_topic_detail(window_days, topic_key)
    except Exception as e:
        raise _http_error("pulse.drilldown.error", e)


@router.post("/watchlist/{topic_key}", response_model=ToggleResult)
def toggle_watchlist(
    topic_key: str,
    window_days: Optional[str] = Query(None, alias="windowDays"),
    x_user_id: Optional[str] = Header(None),
    enricher: WatchlistEnricher = Depends(get_watchlist_enricher),
):
    try:
        return enricher.toggle_watchlist(x_user_id, topic_key, window_days)
    except Exception as e:
        raise _http_error("pulse.watchlist.error", e)


@router.get("/watchlist", response_model=WatchlistResponse)
def get_watchlist(
    window_days: Optional[str] = Query(None, alias="windowDays"),
    x_user_id: Optional[str] = Header(None),
    enricher: WatchlistEnricher = Depends(get_watchlist_enricher),
):
    try:
        return enricher.get_watchlist(x_user_id, window_days)
    except Exception as e:
        raise _http_error("pulse.watchlist.error", e)
