"""
Admin API - contact duplicate scrub.

GET  previews duplicate groups (read-only).
POST merges them; requires {"execute": true}.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from api.services.admin_auth import require_admin
from crm.deduplication import (
    DuplicateScrubber,
    LockContentionError,
    ValidationError,
)

logger = logging.getLogger(__name__)
router = APIRouter(dependencies=[Depends(require_admin)])


class ScrubExecuteRequest(BaseModel):
    """Body for the merge call. ``execute`` is not coerced; the scrubber accepts only a literal true."""
    execute: Any = None
    groupsToMerge: Optional[list[str]] = Field(
        default=None,
        description="Match keys to merge; omit or leave empty to merge every group",
    )


def get_scrubber() -> DuplicateScrubber:
    """Dependency returning the scrubber bound to the application database."""
    return DuplicateScrubber()


@router.get("")
def preview_duplicates(
    limit: Optional[int] = Query(None, description="Groups to return (0 = all)"),
    scrubber: DuplicateScrubber = Depends(get_scrubber),
):
    """
    Preview duplicate contact groups.

    Groups are matched on phone (last 10 digits) or, for contacts without a
    phone, on name + city + state. The first contact of each group is the
    one that will be kept.
    """
    try:
        preview = scrubber.preview(limit=limit)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Duplicate preview failed")
        raise HTTPException(status_code=500, detail="Duplicate preview failed")

    return {"success": True, "preview": preview.to_dict()}


@router.post("")
def execute_merge(
    body: ScrubExecuteRequest = ScrubExecuteRequest(),
    scrubber: DuplicateScrubber = Depends(get_scrubber),
):
    """
    Merge every duplicate group found by a fresh scan.

    Groups that fail are rolled back individually and listed in
    ``summary.failures``; the rest of the batch still merges.
    """
    try:
        result = scrubber.execute(execute=body.execute, group_keys=body.groupsToMerge)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LockContentionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception:
        logger.exception("Duplicate merge failed")
        raise HTTPException(status_code=500, detail="Duplicate merge failed")

    return {"success": True, "summary": result.to_dict()}
