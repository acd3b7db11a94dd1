from fastapi import Request

from vidstream.config import Settings
from vidstream.services.jobs import JobRunner
from .registry import JobRegistry


def get_registry(request: Request) -> JobRegistry:
    return request.app.state.jobs


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_runner(request: Request) -> JobRunner:
    return request.app.state.runner
