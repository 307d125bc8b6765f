"""
api/routes/v1/records.py -- The signed-in account's health record.

Routes:
  GET /api/v1/records/me   -- current record; 404 if never written
  PUT /api/v1/records/me   -- replace the record (upsert, last-write-wins)

Authorization: the account id always comes from get_current_account(), i.e.
from a currently valid session. There is no route that takes an account id
from the client, so one account can never read or write another's record.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import RecordResponse, RecordSaved, RecordWrite
from auth.dependencies import get_current_account
from auth.models import Account
from records.store import HealthRecordStore

router = APIRouter()


@router.get("/records/me", response_model=RecordResponse)
def get_my_record(request: Request, current: Account = Depends(get_current_account)) -> RecordResponse:
    """Return the signed-in account's health record."""
    records: HealthRecordStore = request.app.state.records
    record = records.get(current.id)
    if record is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "No health record has been saved yet."},
        )
    return RecordResponse.from_record(record)


@router.put("/records/me", response_model=RecordSaved)
def put_my_record(
    request: Request,
    body: RecordWrite,
    current: Account = Depends(get_current_account),
) -> RecordSaved:
    """Create or replace the signed-in account's health record.

    No merge: the body replaces whatever was stored. Clients that need
    optimistic concurrency can carry their own version field inside payload.
    """
    records: HealthRecordStore = request.app.state.records
    updated_at = records.save(current.id, body.payload)
    return RecordSaved(updated_at=updated_at)
