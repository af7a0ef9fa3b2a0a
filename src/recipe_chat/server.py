"""FastAPI application exposing the recipe chat endpoint."""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .agent import create_agent_from_config
from .config import load_config
from .types import ChatErrorResponse, ChatRequest, ChatSuccessResponse
from .workflow import RECIPE_CHAT_STEP_ID, Agent, DelegationStep, Step, StepRegistry, run_step

logger = logging.getLogger(__name__)

SERVICE_UNAVAILABLE = "Service temporarily unavailable, please try again later"


# -----------------------------
# Utilities
# -----------------------------
def _error(message: str, status_code: int, **extra: Any) -> JSONResponse:
    body = ChatErrorResponse(error=message, **extra).model_dump(exclude_none=True)
    return JSONResponse(body, status_code=status_code)


def _join_issues(exc: ValidationError) -> str:
    issues = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        issues.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return ", ".join(issues)


def _default_steps(cfg: Dict[str, Any], agent: Optional[Agent]) -> StepRegistry:
    if agent is not None:
        step = DelegationStep(agent)
    else:
        step = DelegationStep(agent_factory=lambda: create_agent_from_config(cfg))
    return StepRegistry({RECIPE_CHAT_STEP_ID: step})


# -----------------------------
# App factory
# -----------------------------
def create_app(
    config_path: Optional[str] = None,
    agent: Optional[Agent] = None,
    steps: Optional[Mapping[str, Step]] = None,
) -> FastAPI:
    cfg = load_config(config_path)
    cors_origins = cfg.get("server", {}).get("cors_origins", ["*"])

    app = FastAPI(title="Recipe Chat Server", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.steps = steps if steps is not None else _default_steps(cfg, agent)

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"ok": True, "steps": sorted(app.state.steps)}

    @app.post("/api/chat")
    async def chat(request: Request) -> JSONResponse:
        try:
            body = await request.json()
            chat_request = ChatRequest.model_validate(body)

            step = app.state.steps.get(RECIPE_CHAT_STEP_ID)
            if step is None:
                return _error(f"Workflow {RECIPE_CHAT_STEP_ID} is not registered", 500)

            # Agent calls block; keep them off the event loop.
            run = await run_in_threadpool(run_step, step, chat_request.messages)
            if run.status != "success" or run.result is None:
                return _error("Workflow execution failed", 500, status=run.status)

            logger.info("Run %s answered %d messages", run.run_id, len(chat_request.messages))
            response = ChatSuccessResponse(
                message=run.result.message,
                usage=run.result.usage,
                runId=run.result.runId or run.run_id,
            )
            return JSONResponse(response.model_dump(exclude_none=True))
        except ValidationError as e:
            return _error(_join_issues(e), 400)
        except Exception:
            logger.exception("[chat-api] request failed")
            return _error(SERVICE_UNAVAILABLE, 500)

    return app
