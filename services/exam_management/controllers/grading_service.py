from fastapi import APIRouter, Depends, HTTPException, status
from uuid import UUID
import logging

from shared.auth import get_current_actor
from services.exam_management.repository import ExamRepository, get_repository
from services.exam_management.engine.authorization import authorize_admin
from services.exam_management.engine.errors import AuthError, DenyReason, NotFound
from services.exam_management.engine.grading import PRESETS, validate_bands
from services.exam_management.engine.records import Actor
from services.exam_management.schemas.grading import (
    GradingSystemCreate,
    GradingSystemOut,
    GradeBandOut,
)

router = APIRouter(prefix="/grading-systems", tags=["Grading Systems"])
logger = logging.getLogger(__name__)


def _system_out(system_id, name, school_id, bands) -> GradingSystemOut:
    ordered = sorted(bands, key=lambda band: band.lower, reverse=True)
    return GradingSystemOut(
        id=system_id,
        name=name,
        school_id=school_id,
        bands=[
            GradeBandOut(
                lower=band.lower,
                upper=band.upper,
                grade=band.label,
                points=band.points,
                remarks=band.remarks,
            )
            for band in ordered
        ],
    )


# --- CREATE GRADING SYSTEM ---
@router.post("", response_model=GradingSystemOut, status_code=status.HTTP_201_CREATED)
async def create_grading_system(
    payload: GradingSystemCreate,
    repository: ExamRepository = Depends(get_repository),
    actor: Actor = Depends(get_current_actor)
):
    school_id = payload.school_id or actor.school_id
    if school_id is None:
        # Shared presets (no school) are for global admins only
        if not actor.is_global:
            raise AuthError(DenyReason.WRONG_ROLE)
    else:
        authorize_admin(actor, school_id)

    if payload.preset:
        if payload.preset not in PRESETS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown preset '{payload.preset}', expected one of {sorted(PRESETS)}"
            )
        default_name, bands = PRESETS[payload.preset]
        name = payload.name or default_name
    else:
        if not payload.name:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A grading system needs a name"
            )
        name = payload.name
        bands = [band.to_band() for band in payload.bands]

    ordered = validate_bands(bands)
    system_id = await repository.create_grading_system(school_id, name, ordered)
    logger.info("Grading system %s created for school %s", system_id, school_id)
    return _system_out(system_id, name, school_id, ordered)


# --- GET GRADING SYSTEM ---
@router.get("/{system_id}", response_model=GradingSystemOut)
async def get_grading_system(
    system_id: UUID,
    repository: ExamRepository = Depends(get_repository),
    actor: Actor = Depends(get_current_actor)
):
    system = await repository.get_grading_system(system_id)
    if system is None:
        raise NotFound(f"Grading system {system_id} not found")

    name, school_id, bands = system
    if school_id is not None and not actor.is_global and not actor.in_school(school_id):
        raise AuthError(DenyReason.NOT_IN_SCHOOL)
    return _system_out(system_id, name, school_id, bands)
