"""
Treatment Train Engine - API Entry Point

FastAPI application exposing the wastewater treatment-train engine:
unit catalog, presets, effluent standards, train evaluation and
cost, sludge and energy estimates.
"""
import json
import os
import re
import logging
from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from treatment_app.api.routes import api_router

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("treatment-train")

# ---------------------------------------------------------------------------
# camelCase keys for plain dict payloads
# ---------------------------------------------------------------------------

_SNAKE_RE = re.compile(r"_([a-z0-9])")


def _camel_keys(obj):
    if isinstance(obj, dict):
        return {_SNAKE_RE.sub(lambda m: m.group(1).upper(), k): _camel_keys(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_camel_keys(item) for item in obj]
    return obj


class CamelCaseMiddleware(BaseHTTPMiddleware):
    """Rewrite /api/ JSON bodies with camelCase keys.

    Pydantic responses already serialise by alias. The routes that return
    plain dicts (catalog metadata, resolved design params, design values)
    rely on this pass for the same key style.
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        if not request.url.path.startswith("/api/"):
            return response
        if "application/json" not in response.headers.get("content-type", ""):
            return response

        body = b"".join([
            chunk if isinstance(chunk, bytes) else chunk.encode("utf-8")
            async for chunk in response.body_iterator
        ])
        headers = dict(response.headers)
        headers.pop("content-length", None)
        try:
            content = json.dumps(_camel_keys(json.loads(body)))
        except json.JSONDecodeError:
            content = body
        return Response(
            content=content,
            status_code=response.status_code,
            headers=headers,
            media_type="application/json",
        )


app = FastAPI(
    title="Treatment Train Engine",
    description="Wastewater treatment-train design checks, effluent compliance and resource estimates",
    version="1.0.0",
)

app.add_middleware(CamelCaseMiddleware)
app.include_router(api_router)


@app.get("/")
async def root():
    return {
        "status": "running",
        "message": "Treatment Train Engine API is running.",
        "docs": "/docs",
    }


@app.on_event("startup")
async def startup_event():
    logger.info("Treatment Train Engine starting up...")
    logger.info("Default effluent standard: %s", os.environ.get("DEFAULT_EFFLUENT_STANDARD", "community"))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
    )
