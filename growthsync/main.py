import logging
from typing import List
from urllib.parse import quote

from fastapi import Depends, FastAPI, File, HTTPException, Response, UploadFile

from .age import with_age
from .csv_codec import encode_csv, export_file_name, import_csv_bytes
from .deps import get_store
from .errors import ImportFailed, NoDataFound, NotFound, SyncFormatError
from .models import (
    AgedRecord,
    ChildCreate,
    ChildProfile,
    ChildUpdate,
    GrowthRecord,
    HealthResponse,
    ImportFailureResponse,
    ImportResponse,
    RecordCreate,
    RecordUpdate,
    SyncCode,
    SyncResult,
)
from .rules import EXPORT_MIME_TYPE
from .store import GrowthStore
from .sync import export_sync_code, import_sync_code

logger = logging.getLogger("growthsync")
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

app = FastAPI(
    title="growthsync",
    description="Growth-record CSV import/export and device sync codes",
    version="0.1.0",
)


def _not_found(exc: NotFound) -> HTTPException:
    return HTTPException(status_code=404, detail=str(exc))


@app.get("/health", response_model=HealthResponse)
def health():
    return {"ok": True}


# --- children ---


@app.get("/children", response_model=List[ChildProfile])
def list_children(store: GrowthStore = Depends(get_store)):
    return store.list_children()


@app.post("/children", response_model=ChildProfile, status_code=201)
def add_child(body: ChildCreate, store: GrowthStore = Depends(get_store)):
    return store.add_child(body.name, body.birth_date)


@app.get("/children/{child_id}", response_model=ChildProfile)
def get_child(child_id: str, store: GrowthStore = Depends(get_store)):
    try:
        return store.get_child(child_id)
    except NotFound as exc:
        raise _not_found(exc)


@app.put("/children/{child_id}", response_model=ChildProfile)
def update_child(child_id: str, body: ChildUpdate, store: GrowthStore = Depends(get_store)):
    try:
        return store.update_child(child_id, name=body.name, birth_date=body.birth_date)
    except NotFound as exc:
        raise _not_found(exc)


@app.delete("/children/{child_id}", status_code=204)
def delete_child(child_id: str, store: GrowthStore = Depends(get_store)):
    try:
        store.delete_child(child_id)
    except NotFound as exc:
        raise _not_found(exc)
    return Response(status_code=204)


# --- records ---


@app.get("/children/{child_id}/records", response_model=List[AgedRecord])
def list_records(child_id: str, store: GrowthStore = Depends(get_store)):
    try:
        child = store.get_child(child_id)
        return [with_age(record, child.birth_date) for record in store.records(child_id)]
    except NotFound as exc:
        raise _not_found(exc)


@app.post("/children/{child_id}/records", response_model=GrowthRecord, status_code=201)
def add_record(child_id: str, body: RecordCreate, store: GrowthStore = Depends(get_store)):
    try:
        return store.add_record(child_id, body.timestamp, body.height, body.weight)
    except NotFound as exc:
        raise _not_found(exc)


@app.put("/children/{child_id}/records/{record_id}", response_model=GrowthRecord)
def update_record(child_id: str, record_id: str, body: RecordUpdate, store: GrowthStore = Depends(get_store)):
    try:
        return store.update_record(
            child_id, record_id, timestamp=body.timestamp, height=body.height, weight=body.weight
        )
    except NotFound as exc:
        raise _not_found(exc)


@app.delete("/children/{child_id}/records/{record_id}", status_code=204)
def delete_record(child_id: str, record_id: str, store: GrowthStore = Depends(get_store)):
    try:
        store.delete_record(child_id, record_id)
    except NotFound as exc:
        raise _not_found(exc)
    return Response(status_code=204)


# --- CSV ---


@app.post("/children/{child_id}/import", response_model=ImportResponse)
async def import_csv(child_id: str, file: UploadFile = File(...), store: GrowthStore = Depends(get_store)):
    if not file.filename or not file.filename.lower().endswith(".csv"):
        raise HTTPException(status_code=422, detail="Only CSV files are supported")
    try:
        store.get_child(child_id)
    except NotFound as exc:
        raise _not_found(exc)

    raw = await file.read()
    try:
        parsed = import_csv_bytes(raw)
    except ImportFailed as exc:
        failure = ImportFailureResponse(
            message="import failed; no records were saved",
            total_errors=exc.report.total_errors,
            errors=exc.report.errors,
        )
        raise HTTPException(status_code=422, detail=failure.model_dump())
    except NoDataFound as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    merged = store.merge_records(child_id, parsed.records, strategy="replace")
    return ImportResponse(
        child_id=child_id,
        child_name=parsed.child_name,
        added=merged.added,
        replaced=merged.replaced,
        encoding=parsed.encoding,
    )


@app.get("/children/{child_id}/export")
def export_csv(child_id: str, store: GrowthStore = Depends(get_store)):
    try:
        child = store.get_child(child_id)
        records = store.records(child_id)
    except NotFound as exc:
        raise _not_found(exc)
    if not records:
        raise HTTPException(status_code=404, detail="No records to export")

    file_name = export_file_name(child.name)
    return Response(
        content=encode_csv(records, child.name),
        media_type=f"{EXPORT_MIME_TYPE}; charset=utf-8",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(file_name)}"},
    )


# --- sync ---


@app.get("/children/{child_id}/sync-code", response_model=SyncCode)
def sync_code(child_id: str, store: GrowthStore = Depends(get_store)):
    try:
        return {"code": export_sync_code(store, child_id)}
    except NotFound as exc:
        raise _not_found(exc)


@app.post("/sync/import", response_model=SyncResult)
def sync_import(body: SyncCode, store: GrowthStore = Depends(get_store)):
    try:
        return import_sync_code(store, body.code)
    except SyncFormatError as exc:
        logger.warning("Rejected sync code: %s", exc)
        raise HTTPException(status_code=422, detail=str(exc))
