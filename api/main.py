"""
FastAPI Application — REST API for the set-variable engine.

Provides:
- Execution of set-variable blocks against a session snapshot
- Commit of values reported back by clients (client-side actions)
- Authoring-time validation of block descriptors
- Ad-hoc sandboxed expression evaluation

The engine is synchronous (the sandbox may block on `fetch`), so the
execution endpoints are plain functions run in FastAPI's threadpool.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog

# Load .env before any config is read
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from config.settings import get_settings
from models.schemas import CamelModel, SessionState, Variable
from set_variable import (
    InvalidTimeZone,
    SetVariableBlock,
    SetVariableEvaluator,
    SetVariableExecutor,
    SetVariableOptions,
    validate_set_variable_options,
)

logger = structlog.get_logger()

# ──────────────────────────────────────────────────────────────
#  Bootstrap
# ──────────────────────────────────────────────────────────────

settings = get_settings()
executor = SetVariableExecutor(settings)
evaluator: SetVariableEvaluator = executor.evaluator


# ──────────────────────────────────────────────────────────────
#  App
# ──────────────────────────────────────────────────────────────

app = FastAPI(
    title="FlowVars API",
    description="Set-variable resolution and sandboxed expression evaluation",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(InvalidTimeZone)
async def invalid_time_zone_handler(request: Request, exc: InvalidTimeZone):
    logger.warning("invalid_time_zone", path=request.url.path, time_zone=exc.name)
    return JSONResponse(status_code=422, content={"detail": str(exc)})


# ──────────────────────────────────────────────────────────────
#  Request/Response Models
# ──────────────────────────────────────────────────────────────

class ExecuteBlockRequest(CamelModel):
    state: SessionState
    block: SetVariableBlock


class ClientReplyRequest(CamelModel):
    state: SessionState
    block: SetVariableBlock
    reply: Any = None


class ValidateOptionsRequest(CamelModel):
    options: SetVariableOptions


class EvaluateExpressionRequest(BaseModel):
    expression: str
    variables: list[Variable] = []


# ══════════════════════════════════════════════════════════════
#  HEALTH
# ══════════════════════════════════════════════════════════════

@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "app": settings.app_name,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ══════════════════════════════════════════════════════════════
#  SET VARIABLE BLOCKS
# ══════════════════════════════════════════════════════════════

@app.post("/api/blocks/set-variable/execute")
def execute_block(req: ExecuteBlockRequest):
    response = executor.execute(req.state, req.block)
    return response.model_dump(by_alias=True, exclude_none=True)


@app.post("/api/blocks/set-variable/reply")
def apply_reply(req: ClientReplyRequest):
    """Commit the value a client computed for a client-side setVariable action."""
    response = executor.apply_client_reply(req.state, req.block, req.reply)
    return response.model_dump(by_alias=True, exclude_none=True)


@app.post("/api/blocks/set-variable/validate")
async def validate_block(req: ValidateOptionsRequest):
    errors = validate_set_variable_options(req.options)
    return {"valid": not errors, "errors": errors}


# ══════════════════════════════════════════════════════════════
#  EXPRESSIONS
# ══════════════════════════════════════════════════════════════

@app.post("/api/expressions/evaluate")
def evaluate_expression(req: EvaluateExpressionRequest):
    return {"value": evaluator.evaluate(req.expression, req.variables)}


# ══════════════════════════════════════════════════════════════
#  Entry Point
# ══════════════════════════════════════════════════════════════

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
