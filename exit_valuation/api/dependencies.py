import os
from functools import lru_cache
from fastapi import HTTPException
from exit_valuation.services.llm_service import LLMService
from exit_valuation.services.market_data_service import MarketDataService
from exit_valuation.services.db_service import DBService
from exit_valuation.services.cache_service import SqlKeyValueCache
from exit_valuation.services.comparable_service import ComparableEngine, LLMComparableEstimator
from exit_valuation.pipeline.orchestrator import RecalculationPipeline
from exit_valuation.valuation.calculator import ALPHA
from exit_valuation.valuation.errors import (
    CompanyNotFoundError, NotComputableError, ServiceUnavailableError,
    SnapshotNotFoundError, ValidationFailedError, ValuationEngineError,
)


def http_error(e: ValuationEngineError) -> HTTPException:
    if isinstance(e, (CompanyNotFoundError, SnapshotNotFoundError)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, NotComputableError):
        return HTTPException(status_code=422, detail={"message": str(e), "missing_fields": e.missing_fields})
    if isinstance(e, ValidationFailedError):
        return HTTPException(status_code=422, detail={"message": str(e), "fields": e.fields})
    if isinstance(e, ServiceUnavailableError):
        return HTTPException(status_code=503, detail={"message": str(e), "retryable": e.retryable})
    return HTTPException(status_code=500, detail=str(e))


@lru_cache
def get_llm_service() -> LLMService:
    return LLMService()


@lru_cache
def get_market_data_service() -> MarketDataService:
    return MarketDataService()


@lru_cache
def get_db_service() -> DBService:
    return DBService()


@lru_cache
def get_comparable_engine() -> ComparableEngine:
    return ComparableEngine(
        estimator=LLMComparableEstimator(get_llm_service(), get_market_data_service()),
        cache=SqlKeyValueCache(get_db_service()),
    )


def get_pipeline() -> RecalculationPipeline:
    try:
        return RecalculationPipeline(
            db=get_db_service(),
            comparables=get_comparable_engine(),
            alpha=os.getenv("VALUATION_ALPHA", str(ALPHA)),
        )
    except ValidationFailedError as e:
        raise http_error(e)
