"""
Test configuration and fixtures for the ClinicAI visibility pipeline.

Provider traffic is served by an httpx.MockTransport that speaks the
OpenAI-compatible chat completions wire format, so the real openai SDK
client code runs in every test without touching the network.
"""

import json
from typing import Any, Callable, Dict, List, Optional, Union

import httpx
import pytest
import pytest_asyncio

from clinicai.config import PipelineConfig


Reply = Union[httpx.Response, Exception, str, Callable[[Dict[str, Any]], Any]]


class FakeProviders:
    """
    Scripted provider backend.

    Requests are routed to one of four queues: "scan_a" (OpenAI scan),
    "scan_b" (Perplexity scan), "parser" (visibility extraction) and
    "competitors" (competitor detail extraction). A queue entry is a string
    (returned as message content), an httpx.Response, an exception to raise,
    or a callable taking the request body and returning one of those. The
    last entry of a queue is reused once the others are consumed.
    """

    def __init__(self):
        self.routes: Dict[str, List[Reply]] = {
            "scan_a": [],
            "scan_b": [],
            "parser": [],
            "competitors": [],
        }
        self.requests: List[Dict[str, Any]] = []

    def on(self, route: str, *replies: Reply) -> "FakeProviders":
        self.routes[route].extend(replies)
        return self

    def calls(self, route: str) -> List[Dict[str, Any]]:
        return [r for r in self.requests if r["route"] == route]

    @staticmethod
    def completion(content: Optional[str], model: str = "gpt-4o") -> httpx.Response:
        return httpx.Response(200, json={
            "id": "chatcmpl-test",
            "object": "chat.completion",
            "created": 1700000000,
            "model": model,
            "choices": [{
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }],
            "usage": {"prompt_tokens": 10, "completion_tokens": 20, "total_tokens": 30},
        })

    @staticmethod
    def api_error(
        status: int,
        message: str = "error",
        error_type: str = "invalid_request_error",
        code: Optional[str] = None,
    ) -> httpx.Response:
        return httpx.Response(status, json={
            "error": {"message": message, "type": error_type, "code": code},
        })

    def _route_for(self, request: httpx.Request, body: Dict[str, Any]) -> str:
        if request.url.host == "api.perplexity.ai":
            return "scan_b"
        messages = body.get("messages", [])
        user_content = messages[-1]["content"] if messages else ""
        if "Extract detailed information about each competitor" in user_content:
            return "competitors"
        if "Extract the following information in JSON format" in user_content:
            return "parser"
        return "scan_a"

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        route = self._route_for(request, body)
        self.requests.append({
            "route": route,
            "host": request.url.host,
            "path": request.url.path,
            "authorization": request.headers.get("authorization"),
            "body": body,
        })

        queue = self.routes[route]
        if not queue:
            return self.api_error(500, f"no reply scripted for {route}", "server_error")
        reply = queue.pop(0) if len(queue) > 1 else queue[0]

        if callable(reply) and not isinstance(reply, (httpx.Response, Exception)):
            reply = reply(body)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, httpx.Response):
            return reply
        return self.completion(reply, body.get("model", "gpt-4o"))


@pytest.fixture
def fake_providers() -> FakeProviders:
    return FakeProviders()


@pytest_asyncio.fixture
async def http_client(fake_providers):
    """httpx client whose transport is the scripted provider backend."""
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake_providers.handler)) as client:
        yield client


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    """Default models and endpoints with retry delays disabled."""
    return PipelineConfig(
        provider_a_base_url="https://api.openai.com/v1",
        provider_b_base_url="https://api.perplexity.ai",
        initial_retry_delay=0,
    )


@pytest.fixture
def parser_json() -> Callable[..., str]:
    """Build the JSON the parser model is expected to return."""

    def _build(
        domain_present: bool,
        rank: Optional[int] = None,
        competitors: Optional[List[str]] = None,
        trust_score: int = 0,
        local_score: int = 0,
        raw_analysis: str = "analysis",
    ) -> str:
        return json.dumps({
            "domainPresent": domain_present,
            "rank": rank,
            "competitors": competitors or [],
            "rawAnalysis": raw_analysis,
            "trustScore": trust_score,
            "localScore": local_score,
        })

    return _build
