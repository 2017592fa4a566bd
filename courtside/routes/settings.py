"""Settings API routes

Runtime pipeline knobs stored in the database.

Changes apply to the next stage each recording runs; no restart needed.
"""
from fastapi import APIRouter
from dataclasses import asdict
import logging

from courtside.models.schemas import PipelineSettings, PipelineSettingsUpdate
from courtside.services.settings_service import settings_service

router = APIRouter(prefix="/api/settings", tags=["settings"])
logger = logging.getLogger(__name__)

# Field name -> settings table key
_KEYS = {
    "segment_minutes": "SEGMENT_MINUTES",
    "max_retries": "MAX_RETRIES",
    "poll_timeout_seconds": "POLL_TIMEOUT_SECONDS",
    "consolidation_method": "CONSOLIDATION_METHOD",
    "delete_local_after_upload": "DELETE_LOCAL_AFTER_UPLOAD",
}


@router.get("/pipeline", response_model=PipelineSettings)
async def get_pipeline_settings():
    config = await settings_service.get_pipeline_config()
    return PipelineSettings(**asdict(config))


@router.put("/pipeline", response_model=PipelineSettings)
async def update_pipeline_settings(data: PipelineSettingsUpdate):
    """Update any subset of the pipeline settings"""
    updates = {}
    for field, value in data.model_dump(exclude_none=True).items():
        if isinstance(value, bool):
            value = "true" if value else "false"
        updates[_KEYS[field]] = str(value)
    if updates:
        await settings_service.set_many(updates)
        logger.info(f"Pipeline settings updated: {sorted(updates)}")
    config = await settings_service.get_pipeline_config()
    return PipelineSettings(**asdict(config))
