# appointment_desk/health.py
from fastapi import APIRouter

from appointment_desk.config import get_settings

router = APIRouter()


@router.get("/health")
def health():
    settings = get_settings()
    return {"ok": True, "mock_backend": settings.use_mock_data or not settings.backend_base_url}
