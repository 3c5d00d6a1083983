"""
FastAPI dependencies for app-scoped services.

Services live on ``app.state`` so each app instance (and each test) gets
its own observability client, health cache and database.
"""
import httpx
from fastapi import Request

from pmcopilot.observability import ObservabilityClient
from pmcopilot.providers import OpenAICompatProvider
from pmcopilot.server.services.prd_service import PRDService
from pmcopilot.storage import PRDRepository


def get_observability(request: Request) -> ObservabilityClient:
    return request.app.state.observability


def get_prd_service(request: Request) -> PRDService:
    return request.app.state.prd_service


def get_repository(request: Request) -> PRDRepository:
    return request.app.state.repository


def get_provider(request: Request) -> OpenAICompatProvider:
    return request.app.state.provider


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client
