"""
User preference API endpoints.
"""
from fastapi import APIRouter, Body, Depends, HTTPException

from aggregator.models.preferences import COUNTRIES, UserPreferences
from aggregator.services.preference_filter import PreferencesService, get_preferences_service

router = APIRouter(prefix="/api/preferences", tags=["preferences"])


@router.get("", response_model=UserPreferences)
async def get_preferences(service: PreferencesService = Depends(get_preferences_service)):
    return await service.get()


@router.patch("", response_model=UserPreferences)
async def update_preferences(
    updates: dict = Body(..., description="Partial preferences, merged section by section"),
    service: PreferencesService = Depends(get_preferences_service),
):
    try:
        return await service.update(updates)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/countries")
async def list_countries():
    """Countries that can be detected in channel names."""
    return {"countries": list(COUNTRIES.values())}


@router.post("/onboarding", response_model=UserPreferences)
async def complete_onboarding(service: PreferencesService = Depends(get_preferences_service)):
    return await service.complete_onboarding()


@router.patch("/{section}", response_model=UserPreferences)
async def update_section(
    section: str,
    updates: dict = Body(...),
    service: PreferencesService = Depends(get_preferences_service),
):
    """Update the ``channels``, ``movies`` or ``series`` section."""
    try:
        return await service.update_section(section, updates)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("", response_model=UserPreferences)
async def reset_preferences(service: PreferencesService = Depends(get_preferences_service)):
    """Restore the default preferences."""
    return await service.reset()
