"""
Celery task for asynchronous REST route processing.
"""
import logging
from typing import Any, Dict

from hookrelay.celery_app import celery_app
from hookrelay.repositories import RestRouteRepository
from hookrelay.services.action_processor import ActionProcessor
from hookrelay.tasks.webhook_tasks import DatabaseTask

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    base=DatabaseTask,
    name="hookrelay.tasks.route_tasks.process_rest_route"
)
def process_rest_route(self, route_id: int, request_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Run a route's action chain for a request accepted with 202.

    Args:
        route_id: REST route ID
        request_data: Request context captured by the endpoint

    Returns:
        Dict with per-run execution results
    """
    try:
        route = RestRouteRepository(self.db).find(route_id)
        if not route or not route.is_active:
            logger.warning(f"Route {route_id} not found or inactive, request dropped")
            return {"success": False, "route_id": route_id, "error": "Route not found or inactive"}

        results = ActionProcessor(self.db).process(route.actions or [], request_data)
        logger.info(f"Processed route {route.route_path}: {len(results)} runs")

        return {
            "success": all(result.success for result in results),
            "route_id": route_id,
            "results": [result.model_dump(mode="json") for result in results],
            "batch": len(results) > 1,
        }
    except Exception as exc:
        logger.error(f"Error processing route {route_id}: {exc}", exc_info=True)
        return {"success": False, "route_id": route_id, "error": str(exc)}
