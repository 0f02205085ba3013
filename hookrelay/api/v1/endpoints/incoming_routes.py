"""API endpoint serving user-defined inbound REST routes."""

import json
import logging
import time
from typing import Any, Dict
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from hookrelay.api.deps import get_executor, get_scheduler
from hookrelay.core.config import settings
from hookrelay.db.session import get_db
from hookrelay.repositories import RestRouteRepository
from hookrelay.services import events
from hookrelay.services.action_processor import ActionProcessor
from hookrelay.services.http_executor import HttpExecutor

logger = logging.getLogger(__name__)
router = APIRouter()

ROUTE_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


def envelope(status_code: int, success: bool, message: str = None, data: Any = None) -> JSONResponse:
    content: Dict[str, Any] = {"success": success}
    if message is not None:
        content["message"] = message
    if data is not None:
        content["data"] = data
    return JSONResponse(status_code=status_code, content=content)


def parse_body(raw: bytes, content_type: str) -> Any:
    """JSON or form-encoded body; anything unparseable is treated as empty."""
    if not raw:
        return {}
    if "application/x-www-form-urlencoded" in content_type:
        return dict(parse_qsl(raw.decode("utf-8", errors="replace"), keep_blank_values=True))
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("Inbound body is neither JSON nor form data, ignoring it")
        return {}


@router.api_route("/{route_path:path}", methods=ROUTE_METHODS)
async def handle_incoming(
    route_path: str,
    request: Request,
    db: Session = Depends(get_db),
    scheduler=Depends(get_scheduler),
    executor: HttpExecutor = Depends(get_executor)
):
    """
    Receive a call on a user-defined route and run its action chain.

    Args:
        route_path: Route path below the incoming prefix
        request: FastAPI request object
        db: Database session
        scheduler: Scheduler used for async routes
        executor: Transport used by http_request actions

    Returns:
        JSON envelope: 202 when queued, 200 when processed, 403 on a bad
        secret, 404 for unknown routes, 405 for a disallowed method
    """
    try:
        route = RestRouteRepository(db).find_by_path(route_path)
        if not route or not route.is_active:
            logger.warning(f"Inbound call to unknown or inactive route {route_path!r}")
            return envelope(status.HTTP_404_NOT_FOUND, False, "Route not found.")

        if request.method not in (route.methods or []):
            return envelope(status.HTTP_405_METHOD_NOT_ALLOWED, False, "Method not allowed.")

        body = parse_body(await request.body(), request.headers.get("content-type", ""))
        query = dict(request.query_params)

        if route.secret_key:
            provided = request.headers.get(settings.incoming_secret_header) or query.get("secret")
            if provided is None and isinstance(body, dict):
                provided = body.get("secret")
            if provided != route.secret_key:
                logger.warning(f"Rejected call to route {route.route_path}: invalid secret")
                return envelope(status.HTTP_403_FORBIDDEN, False, "Invalid secret key.")

        headers = {
            name: value for name, value in request.headers.items()
            if name.lower() != settings.incoming_secret_header.lower()
        }
        data = {
            "body": body,
            "query": query,
            "headers": headers,
            "params": {**query, **(body if isinstance(body, dict) else {}), "route_path": route.route_path},
        }

        events.rest_route_received.send(
            sender=handle_incoming,
            route={"id": route.id, "name": route.name, "path": route.route_path},
            request=data,
        )

        if route.is_async:
            scheduler.run_at(time.time(), "process_rest_route", [route.id, data])
            logger.info(f"Queued route {route.route_path} for processing")
            return envelope(
                status.HTTP_202_ACCEPTED, True, "Request received and queued for processing."
            )

        processor = ActionProcessor(db, executor=executor)
        results = await run_in_threadpool(processor.process, route.actions or [], data)
        logger.info(f"Processed route {route.route_path}: {len(results)} runs")

        return envelope(
            status.HTTP_200_OK,
            all(result.success for result in results),
            "Request processed successfully.",
            {
                "results": [result.model_dump(mode="json") for result in results],
                "batch": len(results) > 1,
            },
        )

    except Exception as e:
        logger.error(f"Error handling inbound route {route_path!r}: {e}", exc_info=True)
        return envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, False, "Internal error processing request.")
