from fastapi import APIRouter, Depends

from ..config import Settings
from ..dependencies import get_settings


router = APIRouter()


@router.get("/health")
def health(settings: Settings = Depends(get_settings)):
	# Report presence only, never the values
	return {
		"success": True,
		"status": "ok",
		"sftpConfigured": settings.sftp_configured,
	}
