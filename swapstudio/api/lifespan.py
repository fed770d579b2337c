import os
from contextlib import asynccontextmanager
from fastapi import FastAPI
from swapstudio.core.client_config import ClientConfig
from swapstudio.pipeline.executor import PipelineExecutor, FALLBACK_STAGE_ORDER
import logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events - startup and shutdown."""
    # Startup
    logger.info("🚀 Starting SwapStudio API...")

    try:
        client_config = ClientConfig(env_path=os.getenv("ENV_FILE"))
        app.state.client_config = client_config

        # One executor per pipeline mode, all sharing the same settings and gateway
        logger.info("🔧 Initializing shared PipelineExecutor instances...")
        app.state.executors = {
            mode: PipelineExecutor(mode, client_config.settings, client_config.gateway)
            for mode in FALLBACK_STAGE_ORDER
        }

        summary = client_config.get_client_summary()
        if summary["gateway_ready"]:
            logger.info(f"🎯 All executors ready: {list(app.state.executors)} (swap mode: {client_config.settings.swap_mode})")
        else:
            logger.warning("⚠️ Executors created without a generation gateway; generation endpoints will answer 503")

    except Exception as e:
        logger.error(f"❌ Failed to initialize PipelineExecutors: {e}")
        raise  # Fail fast - don't start the app if executors can't be created

    logger.info("🎉 Application startup completed successfully")

    yield

    # Shutdown
    logger.info("🛑 Shutting down SwapStudio API...")
    logger.info("✅ Application shutdown completed")
