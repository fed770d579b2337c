from typing import Optional

from fastapi import Request
from swapstudio.core.client_config import ClientConfig
from swapstudio.pipeline.executor import PipelineExecutor


def get_client_config(request: Request) -> Optional[ClientConfig]:
    """Dependency to get the shared client configuration (None before startup completes)."""
    return getattr(request.app.state, "client_config", None)


def get_swap_executor(request: Request) -> PipelineExecutor:
    """Dependency to get the swap executor for the configured prompt variant (structured or direct)."""
    settings = request.app.state.client_config.settings
    return request.app.state.executors[settings.swap_mode]


def get_scene_executor(request: Request) -> PipelineExecutor:
    """Dependency to get the shared scene generation PipelineExecutor instance."""
    return request.app.state.executors["scene"]


def get_object_executor(request: Request) -> PipelineExecutor:
    """Dependency to get the shared object generation PipelineExecutor instance."""
    return request.app.state.executors["object"]


def get_pose_executor(request: Request) -> PipelineExecutor:
    """Dependency to get the shared pose PipelineExecutor instance."""
    return request.app.state.executors["pose"]
