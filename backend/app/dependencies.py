"""
DocBridge Backend — Route Dependencies
========================================

What:  FastAPI dependencies resolving the services built by create_app().
Why:   Routes never import service singletons; tests swap services by
       passing their own instances to create_app().
"""

from fastapi import Request

from app.config import Settings
from app.services.google_service import GoogleWorkspaceService
from app.services.object_store import ObjectStore


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_object_store(request: Request) -> ObjectStore:
    return request.app.state.object_store


def get_google_service(request: Request) -> GoogleWorkspaceService:
    return request.app.state.google_service
