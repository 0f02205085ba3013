"""
Inbound route action chains.

Runs a route's ordered actions against request data. ``current_data``
starts as the request context (body, query, headers, params) and flows
through the chain; a transform may replace it. A failing action is
recorded in the trace and the chain moves on.
"""
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel
from simpleeval import EvalWithCompoundTypes, InvalidExpression
from sqlalchemy.orm import Session

from hookrelay.core.config import settings
from hookrelay.repositories import RecordRepository
from hookrelay.schemas.rest_route_schemas import ActionResult, ExecutionResult
from hookrelay.services import events, template_engine
from hookrelay.services.http_executor import HttpExecutor

logger = logging.getLogger(__name__)

ActionHandler = Callable[[Dict[str, Any], Any], Tuple[ActionResult, Any]]

# Functions available to transform expressions
SAFE_FUNCTIONS = {
    "len": len,
    "abs": abs,
    "min": min,
    "max": max,
    "round": round,
    "sum": sum,
    "sorted": sorted,
    "lower": lambda s: s.lower() if isinstance(s, str) else s,
    "upper": lambda s: s.upper() if isinstance(s, str) else s,
    "strip": lambda s: s.strip() if isinstance(s, str) else s,
    "split": lambda s, sep=None: s.split(sep) if isinstance(s, str) else s,
    "join": lambda sep, items: str(sep).join(str(item) for item in items),
    "get": lambda d, key, default=None: d.get(key, default) if isinstance(d, dict) else default,
    "merge": lambda *dicts: {k: v for d in dicts if isinstance(d, dict) for k, v in d.items()},
    "int": int,
    "float": float,
    "str": str,
    "bool": bool,
}


def is_batch(body: Any) -> bool:
    return isinstance(body, list) and len(body) > 0


class ActionProcessor:
    """Executes route action chains."""

    def __init__(self, db: Session, executor: Optional[HttpExecutor] = None):
        self.db = db
        self.record_repo = RecordRepository(db)
        self.executor = executor or HttpExecutor()
        self.handlers: Dict[str, ActionHandler] = {
            "transform": self._transform,
            "event": self._event,
            "create_record": self._create_record,
            "update_record": self._update_record,
            "http_request": self._http_request,
        }

    def process(
        self,
        actions: List[Union[Dict[str, Any], BaseModel]],
        request_data: Dict[str, Any]
    ) -> List[ExecutionResult]:
        """
        Run the chain once, or once per item when the body is a list.

        Args:
            actions: Ordered ``{type, config}`` actions
            request_data: Request context with ``body``, ``query``, ``headers``, ``params``

        Returns:
            One ExecutionResult per run
        """
        body = request_data.get("body")
        if is_batch(body):
            logger.info(f"Processing batch of {len(body)} items through {len(actions)} actions")
            return [
                self.execute_chain(actions, {**request_data, "body": item})
                for item in body
            ]
        return [self.execute_chain(actions, request_data)]

    def execute_chain(
        self,
        actions: List[Union[Dict[str, Any], BaseModel]],
        request_data: Dict[str, Any]
    ) -> ExecutionResult:
        current_data: Any = request_data
        trace: List[ActionResult] = []

        for position, action in enumerate(actions, start=1):
            if isinstance(action, BaseModel):
                action = action.model_dump()
            action_type = action.get("type") or ""
            config = action.get("config") or {}

            handler = self.handlers.get(action_type)
            if handler is None:
                result = ActionResult(type=action_type, success=False,
                                      error=f"Invalid action type: {action_type!r}")
            else:
                try:
                    result, current_data = handler(config, current_data)
                except Exception as e:
                    logger.error(f"Action {position} ({action_type}) raised: {e}", exc_info=True)
                    result = ActionResult(type=action_type, success=False, error=str(e))

            if result.success:
                logger.info(f"Action {position} ({action_type}) succeeded")
            else:
                logger.warning(f"Action {position} ({action_type}) failed: {result.error}")
            trace.append(result)

        return ExecutionResult(
            success=all(result.success for result in trace),
            actions=trace,
            data=current_data,
        )

    # ==================== Actions ====================

    def _transform(self, config: Dict[str, Any], current_data: Any) -> Tuple[ActionResult, Any]:
        """Evaluate an expression; a dict or list result replaces ``current_data``."""
        expression = (config.get("expression") or "").strip()
        if not expression:
            return ActionResult(type="transform", success=False,
                                error="Transform expression is missing."), current_data

        output: List[str] = []

        def emit(*values):
            output.append(" ".join(template_engine.to_text(value) for value in values))

        names = dict(current_data) if isinstance(current_data, dict) else {}
        names["data"] = current_data

        evaluator = EvalWithCompoundTypes(names=names, functions={**SAFE_FUNCTIONS, "emit": emit})
        try:
            result = evaluator.eval(expression)
        except (InvalidExpression, SyntaxError) as e:
            return ActionResult(type="transform", success=False,
                                error=f"Invalid expression: {e}",
                                output="\n".join(output) or None), current_data
        except (KeyError, IndexError, TypeError, ValueError, ZeroDivisionError, AttributeError) as e:
            return ActionResult(type="transform", success=False,
                                error=f"Expression evaluation error: {e}",
                                output="\n".join(output) or None), current_data

        if isinstance(result, (dict, list)):
            current_data = result

        return ActionResult(
            type="transform",
            success=True,
            data=result,
            output="\n".join(output) or None,
        ), current_data

    def _event(self, config: Dict[str, Any], current_data: Any) -> Tuple[ActionResult, Any]:
        name = (config.get("event") or "").strip()
        if not name:
            return ActionResult(type="event", success=False,
                                error="Event name is missing."), current_data

        events.internal_event(name).send(sender=self.__class__, data=current_data)
        return ActionResult(type="event", success=True, message=f"Event {name} sent"), current_data

    def _create_record(self, config: Dict[str, Any], current_data: Any) -> Tuple[ActionResult, Any]:
        record_type = (config.get("record_type") or "").strip()
        if not record_type:
            return ActionResult(type="create_record", success=False,
                                error="Record type is missing."), current_data

        fields = template_engine.process(config.get("mapping") or {}, current_data)
        status = template_engine.replace_merge_tags(str(config.get("status") or "draft"), current_data)

        try:
            record = self.record_repo.create(record_type, fields, status=status)
        except Exception as e:
            logger.error(f"Failed to create {record_type} record: {e}", exc_info=True)
            return ActionResult(type="create_record", success=False,
                                error=f"Record could not be created: {e}"), current_data

        return ActionResult(type="create_record", success=True,
                            data={"record_id": record.id}), current_data

    def _update_record(self, config: Dict[str, Any], current_data: Any) -> Tuple[ActionResult, Any]:
        rendered_id = template_engine.replace_merge_tags(str(config.get("record_id") or ""), current_data)
        try:
            record_id = int(rendered_id.strip())
        except ValueError:
            record_id = 0
        if record_id <= 0:
            return ActionResult(type="update_record", success=False,
                                error="Record ID not found from template."), current_data

        fields = template_engine.process(config.get("mapping") or {}, current_data)
        status = config.get("status")
        if status:
            status = template_engine.replace_merge_tags(str(status), current_data)

        try:
            record = self.record_repo.update(record_id, fields, status=status)
        except Exception as e:
            logger.error(f"Failed to update record {record_id}: {e}", exc_info=True)
            return ActionResult(type="update_record", success=False,
                                error=f"Record could not be updated: {e}"), current_data

        if record is None:
            return ActionResult(type="update_record", success=False,
                                error=f"Record {record_id} not found."), current_data

        return ActionResult(type="update_record", success=True,
                            data={"record_id": record.id}), current_data

    def _http_request(self, config: Dict[str, Any], current_data: Any) -> Tuple[ActionResult, Any]:
        url = template_engine.replace_merge_tags(str(config.get("url") or ""), current_data).strip()
        if not url:
            return ActionResult(type="http_request", success=False,
                                error="Request URL is missing."), current_data

        method = str(config.get("method") or "POST").upper()
        headers = {
            str(name): template_engine.to_text(value)
            for name, value in template_engine.process(config.get("headers") or {}, current_data).items()
        }

        body = config.get("body")
        if isinstance(body, (dict, list)):
            body = json.dumps(template_engine.process(body, current_data))
            if not any(name.lower() == "content-type" for name in headers):
                headers["Content-Type"] = "application/json"
        elif body is not None:
            body = template_engine.replace_merge_tags(str(body), current_data)

        response = self.executor.send(url, method, headers, body)
        result = ActionResult(
            type="http_request",
            success=response.is_success,
            data={
                "code": response.code,
                "body": response.body[:settings.response_body_limit],
            },
            error=response.error or (None if response.is_success else f"HTTP {response.code}"),
        )
        return result, current_data
