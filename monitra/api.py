"""HTTP API exposing extraction and the learned locator store."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List

from fastapi import Depends, FastAPI, HTTPException
from loguru import logger
from pydantic import BaseModel, Field

from monitra import __version__
from monitra.config_loader import get_currency_config, load_config
from monitra.currency import build_rate_table
from monitra.errors import AIExtractionError, ExtractionError, FetchError
from monitra.models import get_engine, get_session_factory, init_db
from monitra.pipeline import ExtractionOrchestrator, build_orchestrator
from monitra.repositories import DomainLocatorStore, domain_from_url

app = FastAPI(title="Monitra API", version=__version__)


class ExtractRequest(BaseModel):
    url: str = Field(..., min_length=1)
    canonical: bool = False


@lru_cache(maxsize=1)
def get_config() -> dict:
    try:
        return load_config()
    except FileNotFoundError:
        fallback = Path(__file__).resolve().parents[1] / "config.yaml"
        return load_config(str(fallback))


@lru_cache(maxsize=1)
def _session_factory():
    engine = get_engine(get_config())
    init_db(engine)
    return get_session_factory(engine)


def get_store() -> DomainLocatorStore:
    return DomainLocatorStore(_session_factory())


def get_orchestrator():
    orchestrator = build_orchestrator(get_config(), session_factory=_session_factory())
    try:
        yield orchestrator
    finally:
        orchestrator.close()


def get_rates():
    return build_rate_table(get_currency_config(get_config()).get("rates"))


@app.post("/extract")
def post_extract(
    request: ExtractRequest,
    orchestrator: ExtractionOrchestrator = Depends(get_orchestrator),
    rates=Depends(get_rates),
):
    try:
        outcome = orchestrator.run(request.url)
    except FetchError as e:
        raise HTTPException(status_code=502, detail=f"Page fetch failed: {e}")
    except AIExtractionError as e:
        raise HTTPException(status_code=502, detail=f"AI extraction failed: {e}")
    except ExtractionError as e:
        raise HTTPException(status_code=422, detail=str(e))

    item = outcome.record.as_dict()
    if request.canonical:
        item["canonical_price"] = str(outcome.record.canonical_price(rates))
    logger.info("API extraction for {} via {}", request.url, outcome.method)
    return {
        "item": item,
        "method": outcome.method,
        "states": [state.value for state in outcome.states],
    }


@app.get("/locators")
def get_locators(store: DomainLocatorStore = Depends(get_store)):
    items: List[dict] = store.list_all()
    return {"items": items, "total": len(items)}


@app.get("/locators/{domain}")
def get_locator(domain: str, store: DomainLocatorStore = Depends(get_store)):
    key = domain_from_url(domain)
    pair = store.get(key)
    if pair is None:
        raise HTTPException(status_code=404, detail=f"No locators stored for {key}")
    return {"item": {"domain": key, "name_locator": pair.name_locator, "price_locator": pair.price_locator}}
