from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse
import logging

from lifelog.api.dependencies import get_pipeline_config
from lifelog.services.pipeline import PipelineConfig
from lifelog.utils.storage import media_type_for, resolve_upload_path

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/{file_path:path}")
async def get_uploaded_file(file_path: str, config: PipelineConfig = Depends(get_pipeline_config)):
    """Serve a stored file by its path relative to the uploads directory."""
    try:
        full_path = resolve_upload_path(config.uploads_dir, file_path)
    except ValueError:
        logger.warning("Rejected upload path '%s' (outside the uploads directory).", file_path)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid file path.")

    if not full_path.is_file():
        logger.warning("Uploaded file '%s' not found at '%s'.", file_path, full_path)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found.")

    media_type = media_type_for(full_path)
    logger.info("Serving uploaded file '%s' as %s.", full_path, media_type)
    return FileResponse(path=full_path, media_type=media_type, filename=full_path.name)
