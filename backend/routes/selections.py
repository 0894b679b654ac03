"""
Selection routes — the dashboard's saved filter selection.
"""

from fastapi import APIRouter, Depends, HTTPException

from core.selections import (
    DEFAULT_SELECTION,
    SelectionRepository,
    reset_selection,
    restore_selection,
    storage_from_env,
)

router = APIRouter()


def get_repository() -> SelectionRepository:
    return SelectionRepository(storage_from_env())


@router.get("")
async def get_selection(repository: SelectionRepository = Depends(get_repository)):
    """Saved selection merged over the defaults."""
    saved = repository.load()
    return {"saved": saved is not None, "selection": restore_selection(saved)}


@router.put("")
async def save_selection(payload: dict, repository: SelectionRepository = Depends(get_repository)):
    """Persist a selection. Nothing is stored until an academic year is chosen."""
    if not isinstance(payload, dict) or not payload:
        raise HTTPException(400, "No selection provided.")
    unknown = sorted(set(payload) - set(DEFAULT_SELECTION))
    if unknown:
        raise HTTPException(400, f"Unknown selection fields: {', '.join(unknown)}")

    saved = repository.save(payload)
    return {"saved": saved is not None, "selection": restore_selection(saved or payload)}


@router.delete("")
async def clear_selection(repository: SelectionRepository = Depends(get_repository)):
    """Forget the saved selection and return the defaults."""
    return {"saved": False, "selection": reset_selection(repository)}
