"""
AI 分析路由
GET  /api/analysis/{ticker}           - 分析（kind / provider / force_refresh）
POST /api/analysis/{ticker}/refresh   - 清空内存缓存后重新分析
GET  /api/analysis/{ticker}/patterns  - 形态识别
GET  /api/analysis/{ticker}/insights  - 简要洞察
POST /api/analysis/{ticker}/question  - 问答
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from market_service.container import ServiceContainer
from market_service.models.analysis import AIProviderId, AnalysisKind
from market_service.models.response import ApiResponse
from market_service.routers.deps import dump, get_container

router = APIRouter(prefix="/api/analysis", tags=["AI 分析"])


class QuestionRequest(BaseModel):
    question: str
    context: str = ""


@router.get("/{ticker}", response_model=ApiResponse)
async def analyze(
    ticker: str,
    kind: AnalysisKind = Query(default=AnalysisKind.GENERAL),
    provider: Optional[AIProviderId] = Query(default=None, description="指定分析服务，默认自动选择"),
    force_refresh: bool = Query(default=False),
    container: ServiceContainer = Depends(get_container),
):
    analysis = await container.analysis.analyze(
        ticker, kind, force_provider=provider, force_refresh=force_refresh
    )
    return ApiResponse.ok(data=dump(analysis), message=kind.label)


@router.post("/{ticker}/refresh", response_model=ApiResponse)
async def refresh_analysis(
    ticker: str,
    kind: AnalysisKind = Query(default=AnalysisKind.GENERAL),
    provider: Optional[AIProviderId] = Query(default=None),
    container: ServiceContainer = Depends(get_container),
):
    analysis = await container.analysis.refresh(ticker, kind, force_provider=provider)
    return ApiResponse.ok(data=dump(analysis), message=kind.label)


@router.get("/{ticker}/patterns", response_model=ApiResponse)
async def detect_patterns(
    ticker: str,
    provider: Optional[AIProviderId] = Query(default=None),
    container: ServiceContainer = Depends(get_container),
):
    patterns = await container.analysis.patterns(ticker, force_provider=provider)
    return ApiResponse.ok(data={"count": len(patterns), "patterns": dump(patterns)})


@router.get("/{ticker}/insights", response_model=ApiResponse)
async def insights(
    ticker: str,
    provider: Optional[AIProviderId] = Query(default=None),
    container: ServiceContainer = Depends(get_container),
):
    text = await container.analysis.insights(ticker, force_provider=provider)
    return ApiResponse.ok(data={"ticker": ticker.upper(), "insights": text})


@router.post("/{ticker}/question", response_model=ApiResponse)
async def ask_question(
    ticker: str,
    body: QuestionRequest,
    provider: Optional[AIProviderId] = Query(default=None),
    container: ServiceContainer = Depends(get_container),
):
    answer = await container.analysis.answer(
        ticker, body.question, body.context, force_provider=provider
    )
    return ApiResponse.ok(data={"ticker": ticker.upper(), "question": body.question, "answer": answer})
