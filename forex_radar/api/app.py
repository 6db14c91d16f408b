"""
HTTP API for ForexRadar.

Exposes chart analysis, usage metering and the server-time countdown
as JSON endpoints.
"""

import logging
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config.loader import AppConfig, create_client, default_app_config
from ..core.analysis import AnalysisContentError, ChartAnalyzer, ChartInput, ChartValidationError
from ..core.plans import ModeNotAvailable, analysis_modes
from ..core.server_time import compute_server_time
from ..core.trading_pairs import CURRENCY_PAIRS, TIMEFRAMES, TRADING_TECHNIQUES
from ..core.usage import UsageLimitExceeded
from ..sdk.deepseek_client import AnalysisAPIError
from ..storage.repository import UsageRepository

logger = logging.getLogger(__name__)


class AnalyzeChartRequest(BaseModel):
    base64Image: str
    pairName: str = ""
    timeframe: str = ""
    userId: Optional[str] = None


class TimeframeChart(BaseModel):
    base64Image: str
    timeframe: str = ""
    pairName: str = ""


class AnalyzeMultiTimeframeRequest(BaseModel):
    charts: List[TimeframeChart]
    technique: str = "general"
    userId: Optional[str] = None


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def create_app(
    config: Optional[AppConfig] = None,
    analyzer: Optional[ChartAnalyzer] = None,
    repository: Optional[UsageRepository] = None,
) -> FastAPI:
    """Build the API application.

    Args:
        config: Application configuration (defaults to built-in defaults)
        analyzer: Chart analyzer; built from the provider config when omitted
        repository: Usage repository; built from the database path when omitted

    Returns:
        FastAPI application
    """
    config = config or default_app_config()
    if repository is None:
        repository = UsageRepository(config.database_path, config.plans)
        repository.initialize()
    if analyzer is None:
        analyzer = ChartAnalyzer(
            client=create_client(config.provider),
            model=config.provider.model,
            repository=repository,
        )

    app = FastAPI(title="ForexRadar API", version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        fields = sorted({".".join(str(part) for part in error["loc"][1:]) for error in exc.errors()})
        return _error(400, "Invalid request body", fields=fields)

    @app.exception_handler(ChartValidationError)
    async def handle_validation_error(request: Request, exc: ChartValidationError):
        return _error(400, str(exc))

    @app.exception_handler(UsageLimitExceeded)
    async def handle_usage_limit(request: Request, exc: UsageLimitExceeded):
        return _error(403, str(exc), usage=exc.usage.to_dict())

    @app.exception_handler(ModeNotAvailable)
    async def handle_mode_not_available(request: Request, exc: ModeNotAvailable):
        return _error(403, str(exc))

    @app.exception_handler(AnalysisAPIError)
    async def handle_api_error(request: Request, exc: AnalysisAPIError):
        logger.error("Analysis API failure: %s", exc)
        return _error(502, str(exc))

    @app.exception_handler(AnalysisContentError)
    async def handle_content_error(request: Request, exc: AnalysisContentError):
        return _error(502, str(exc))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        return _error(500, str(exc) or "An unknown error occurred")

    @app.get("/server-time")
    def server_time():
        return compute_server_time()

    @app.get("/catalog")
    def catalog():
        return {
            "pairs": CURRENCY_PAIRS,
            "timeframes": TIMEFRAMES,
            "techniques": TRADING_TECHNIQUES,
        }

    @app.get("/usage/{user_id}")
    def usage(user_id: str):
        return repository.check_usage_limits(user_id).to_dict()

    @app.get("/modes/{user_id}")
    def modes(user_id: str):
        tier = repository.get_subscription_tier(user_id)
        return {"subscription_tier": tier.value, "modes": analysis_modes(tier)}

    @app.post("/analyze-chart")
    def analyze_chart(body: AnalyzeChartRequest):
        result = analyzer.analyze_chart(
            body.base64Image,
            pair_name=body.pairName,
            timeframe=body.timeframe,
            user_id=body.userId,
        )
        return result.to_dict()

    @app.post("/analyze-multi-timeframe")
    def analyze_multi_timeframe(body: AnalyzeMultiTimeframeRequest):
        charts = [
            ChartInput(base64_image=chart.base64Image, timeframe=chart.timeframe, pair_name=chart.pairName)
            for chart in body.charts
        ]
        result = analyzer.analyze_multi_timeframe(charts, technique=body.technique, user_id=body.userId)
        return result.to_dict()

    return app
