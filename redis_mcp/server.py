"""Plain HTTP shim over the same functions the MCP tools call.
Kept tiny; scrapes are serialized by the lock inside mcp_app.
"""
from typing import Optional

from fastapi import FastAPI, HTTPException
from redis_mcp import mcp_app

app = FastAPI(title="redis-info-mcp-shim")

@app.get("/")
def root():
    return {"status": "ok", "service": "redis-info-mcp-shim"}

@app.get("/healthz")
def healthz():
    return mcp_app.health()

@app.post("/scrape")
def scrape():
    result = mcp_app.scrape_once()
    if 'error' in result:
        raise HTTPException(status_code=502, detail=result)
    return result

@app.get("/metrics/last")
def metrics_last(metric_prefix: Optional[str] = None, limit: int = 500):
    return mcp_app.last_batch(metric_prefix, limit)
