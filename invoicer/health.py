# invoicer/health.py
from fastapi import APIRouter

from invoicer.config import get_settings

router = APIRouter()


@router.get("/health")
def health():
    return {"ok": True, "mock_data": get_settings().use_mock_data}
