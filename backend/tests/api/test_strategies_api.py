"""
策略推荐 API 测试
"""

import pytest
from fastapi.testclient import TestClient

from automation.agent.base import StaticAgentProvider
from automation.api.app import app
from automation.api.auth import create_access_token
from automation.api.dependencies import init_services, reset_services
from automation.common.config import Settings
from automation.engine.runner import PipelineRunner
from automation.engine.scheduler import PipelineScheduler
from automation.pipeline.service import PipelineService
from automation.pipeline.storage import InMemoryPipelineStore
from automation.strategy.analysis import MarketSnapshot
from automation.strategy.planner import StrategyPlanner
from tests.mocks.agent import MockExecutionAgent, MockMarketDataProvider


class TestStrategiesAPI:
    """策略推荐端点测试"""

    @pytest.fixture
    def agent(self):
        return MockExecutionAgent()

    @pytest.fixture
    def market(self):
        return MockMarketDataProvider(
            MarketSnapshot(token="SEI", current_price=0.5, price_change_24h=-12.0, volume_24h=20_000_000)
        )

    @pytest.fixture
    def client(self, agent, market):
        store = InMemoryPipelineStore()
        scheduler = PipelineScheduler(PipelineRunner(store, StaticAgentProvider(agent)))
        init_services(
            pipeline_service=PipelineService(store, scheduler),
            strategy_planner=StrategyPlanner(market),
            settings=Settings(),
        )
        with TestClient(app) as client:
            yield client
        reset_services()

    @pytest.fixture
    def headers(self, client):
        return {"Authorization": f"Bearer {create_access_token('alice')}"}

    def test_requires_auth(self, client):
        response = client.post("/api/v1/strategies/recommend", json={"budget": 100})

        assert response.status_code == 401

    def test_recommend(self, client, headers, agent):
        response = client.post(
            "/api/v1/strategies/recommend",
            headers=headers,
            json={"token": "SEI", "budget": 300, "duration": "1 week"},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["strategy"] == "DCA"
        assert data["parameters"]["intervals"] == 7
        assert data["marketConditions"]["trend"] == "bearish"
        assert data["marketConditions"]["riskLevel"] == "high"
        assert data["fallback"] is False
        # 推荐模式不交易
        assert agent.calls == []

    def test_explicit_type(self, client, headers):
        response = client.post(
            "/api/v1/strategies/recommend",
            headers=headers,
            json={"budget": 300, "strategyType": "Grid Trading"},
        )

        assert response.json()["data"]["strategy"] == "Grid Trading"

    def test_fallback_without_market_data(self, client, headers, market):
        market.snapshot = None

        response = client.post(
            "/api/v1/strategies/recommend",
            headers=headers,
            json={"budget": 200, "strategyType": "momentum"},
        )

        data = response.json()["data"]
        assert data["strategy"] == "Balanced DCA"
        assert data["fallback"] is True
        assert data["parameters"]["weeklyAmount"] == 50

    def test_invalid_budget(self, client, headers):
        response = client.post("/api/v1/strategies/recommend", headers=headers, json={"budget": 0})

        assert response.status_code == 422
