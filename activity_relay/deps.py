import httpx
from fastapi import Request

from .config import Settings
from .datastore import Datastore
from .sync import ActivitySync

# FastAPI dependencies. Everything is built once in create_app and read from app.state.

def get_settings(request: Request) -> Settings:
    return request.app.state.settings

def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http

def get_datastore(request: Request) -> Datastore:
    return request.app.state.datastore

def get_sync(request: Request) -> ActivitySync:
    return request.app.state.sync
