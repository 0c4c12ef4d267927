"""Liveness route for the hosting platform."""

from fastapi import APIRouter

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict[str, str]:
    # Process-level only: Meta and Google are not contacted
    return {"status": "ok"}
