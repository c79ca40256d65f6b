"""Starlette ASGI application exposing the query layer as JSON."""

from __future__ import annotations

import time
from typing import Any

from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from ..exceptions import StorageUnavailableError
from ..logging_config import get_logger
from ..persistence import IndexerDB, IndexQuery
from .serializers import (
    contract_to_dict,
    event_to_dict,
    expiring_to_dict,
    member_to_dict,
    role_to_dict,
    status_to_dict,
    summary_to_dict,
)

logger = get_logger(__name__)

MAX_ACTIVITY_LIMIT = 500


def _contract_id(request: Request) -> str:
    contract_id = request.query_params.get("contractId", "").strip()
    if not contract_id:
        raise HTTPException(status_code=400, detail="contractId is required")
    return contract_id


def _int_param(request: Request, name: str, default: int, low: int, high: int) -> int:
    raw = request.query_params.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{name} must be an integer")
    if not low <= value <= high:
        raise HTTPException(status_code=400, detail=f"{name} must be between {low} and {high}")
    return value


def create_app(db_path: str, expiring_window_hours: int = 24) -> Starlette:
    """Build the read API over the indexer database at *db_path*.

    Every request opens its own read-only connection, so the API can run
    beside a live poller. Until the database exists, data routes answer
    202 with ``{"status": "no_data"}``.

    Args:
        db_path: SQLite file written by the poller
        expiring_window_hours: Default window for ``/expiring`` and ``/stats``
    """

    def _open() -> IndexerDB:
        return IndexerDB(db_path, read_only=True)

    def api_contracts(request: Request) -> JSONResponse:
        with _open() as db:
            contracts = IndexQuery(db.conn).list_contracts()
        return JSONResponse({"contracts": [contract_to_dict(c) for c in contracts]})

    def api_contract(request: Request) -> JSONResponse:
        contract_id = _contract_id(request)
        now = int(time.time())
        with _open() as db:
            query = IndexQuery(db.conn)
            status = query.get_sync_status(contract_id)
            if not status.tracked:
                raise HTTPException(status_code=404, detail=f"Contract {contract_id} is not tracked")
            summary = query.get_summary(
                contract_id, now=now, window_seconds=expiring_window_hours * 3600
            )
        return JSONResponse(
            {
                "contract_id": contract_id,
                "status": status_to_dict(status, now=now),
                "summary": summary_to_dict(summary),
            }
        )

    def api_roles(request: Request) -> JSONResponse:
        contract_id = _contract_id(request)
        with _open() as db:
            roles = IndexQuery(db.conn).list_roles(contract_id)
        return JSONResponse({"roles": [role_to_dict(r) for r in roles]})

    def api_members(request: Request) -> JSONResponse:
        contract_id = _contract_id(request)
        role = request.path_params["role"]
        with _open() as db:
            query = IndexQuery(db.conn)
            if not query.role_exists(contract_id, role):
                raise HTTPException(status_code=404, detail=f"Role {role} not found")
            members = query.list_members(contract_id, role)
        return JSONResponse({"role": role, "members": [member_to_dict(m) for m in members]})

    def api_expiring(request: Request) -> JSONResponse:
        contract_id = _contract_id(request)
        hours = _int_param(request, "hours", expiring_window_hours, 1, 24 * 365)
        with _open() as db:
            grants = IndexQuery(db.conn).list_expiring(contract_id, within_seconds=hours * 3600)
        return JSONResponse({"hours": hours, "expiring": [expiring_to_dict(g) for g in grants]})

    def api_stats(request: Request) -> JSONResponse:
        contract_id = _contract_id(request)
        with _open() as db:
            summary = IndexQuery(db.conn).get_summary(
                contract_id, window_seconds=expiring_window_hours * 3600
            )
        return JSONResponse(summary_to_dict(summary))

    def api_activity(request: Request) -> JSONResponse:
        contract_id = _contract_id(request)
        limit = _int_param(request, "limit", 20, 1, MAX_ACTIVITY_LIMIT)
        with _open() as db:
            events = IndexQuery(db.conn).list_recent_events(contract_id, limit=limit)
        return JSONResponse({"events": [event_to_dict(e) for e in events]})

    def api_status(request: Request) -> JSONResponse:
        contract_id = _contract_id(request)
        with _open() as db:
            status = IndexQuery(db.conn).get_sync_status(contract_id)
        return JSONResponse(status_to_dict(status, now=int(time.time())))

    async def http_error(request: Request, exc: Any) -> JSONResponse:
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code)

    async def no_data(request: Request, exc: Any) -> JSONResponse:
        logger.debug("Read API has no database yet: %s", exc)
        return JSONResponse({"status": "no_data"}, status_code=202)

    routes = [
        Route("/api/indexer/contracts", api_contracts),
        Route("/api/indexer/contract", api_contract),
        Route("/api/indexer/roles", api_roles),
        Route("/api/indexer/roles/{role}/members", api_members),
        Route("/api/indexer/expiring", api_expiring),
        Route("/api/indexer/stats", api_stats),
        Route("/api/indexer/activity", api_activity),
        Route("/api/indexer/status", api_status),
    ]

    return Starlette(
        routes=routes,
        exception_handlers={
            HTTPException: http_error,
            StorageUnavailableError: no_data,
        },
    )
