"""
Statement Import API Endpoints
Upload -> parse -> categorize -> review -> commit
"""

import asyncio
import json
import logging
from typing import List

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import StreamingResponse

from spendlog.api.deps import get_import_service
from spendlog.models import StatementImport
from spendlog.schemas.statement_import import (
    CategorizeResponse,
    CommitRequest,
    CommitResponse,
    ExtractedTransactionResponse,
    ExtractedTransactionUpdate,
    ParseRequest,
    ParseResponse,
    StatementImportResponse
)
from spendlog.services.import_polling import ImportStatusPoller, next_poll_delay
from spendlog.services.statement_import import (
    CommitSelection,
    StatementImportService,
    validate_statement_upload
)

logger = logging.getLogger(__name__)

router = APIRouter()

def import_response(statement_import: StatementImport) -> StatementImportResponse:
    response = StatementImportResponse.model_validate(statement_import)
    response.poll_after_ms = next_poll_delay(statement_import.status)
    return response

@router.post("/", response_model=StatementImportResponse)
async def upload_statement(
    file: UploadFile = File(...),
    service: StatementImportService = Depends(get_import_service)
):
    """
    Upload a PDF bank statement; creates a pending import
    """
    # Size is known up front for multipart uploads; checked before reading
    if file.size is not None:
        validate_statement_upload(file.filename or "", file.content_type, file.size)

    data = await file.read()
    validate_statement_upload(file.filename or "", file.content_type, len(data))

    statement_import = await service.upload(file.filename, file.content_type, data)
    return import_response(statement_import)

@router.get("/", response_model=List[StatementImportResponse])
async def list_imports(
    service: StatementImportService = Depends(get_import_service)
):
    return [import_response(i) for i in await service.list_imports()]

@router.get("/{import_id}", response_model=StatementImportResponse)
async def get_import(
    import_id: int,
    service: StatementImportService = Depends(get_import_service)
):
    """
    Current import status; poll_after_ms is set while work is in progress
    """
    return import_response(await service.get_import(import_id))

@router.get("/{import_id}/events")
async def stream_import_status(
    import_id: int,
    request: Request,
    service: StatementImportService = Depends(get_import_service)
):
    """
    Server-sent events with the import status until it stops changing
    """
    # 404 before the stream opens
    await service.get_import(import_id)

    async def fetch():
        service.db.expire_all()
        return await service.get_import(import_id)

    queue: asyncio.Queue = asyncio.Queue()

    async def on_update(statement_import):
        await queue.put(import_response(statement_import).model_dump(mode="json"))

    async def events():
        poller = ImportStatusPoller(fetch, on_update)
        task = poller.start()
        try:
            while True:
                if await request.is_disconnected():
                    logger.debug("Import %s status stream closed by client", import_id)
                    break
                try:
                    payload = await asyncio.wait_for(queue.get(), timeout=1.0)
                except asyncio.TimeoutError:
                    if task.done() and queue.empty():
                        break
                    continue
                yield f"event: status\ndata: {json.dumps(payload)}\n\n"
                if payload["poll_after_ms"] is None and queue.empty():
                    break
        finally:
            poller.cancel()
            await poller.wait()

    return StreamingResponse(events(), media_type="text/event-stream")

@router.post("/{import_id}/parse", response_model=ParseResponse)
async def parse_statement(
    import_id: int,
    request: ParseRequest = ParseRequest(),
    service: StatementImportService = Depends(get_import_service)
):
    """
    Extract transactions from the uploaded PDF. Password protected files
    come back with password_required until the right password is sent.
    """
    result = await service.parse(import_id, password=request.password)

    return ParseResponse(
        success=result.success,
        password_required=result.password_required,
        message=result.message,
        bank_name=result.bank_name,
        transaction_count=result.transaction_count,
        period_start=result.period_start,
        period_end=result.period_end
    )

@router.post("/{import_id}/categorize", response_model=CategorizeResponse)
async def categorize_statement(
    import_id: int,
    service: StatementImportService = Depends(get_import_service)
):
    result = await service.categorize(import_id)

    return CategorizeResponse(
        total_transactions=result.total_transactions,
        categorized_count=result.categorized_count,
        avg_confidence=result.avg_confidence,
        suggested_categories=result.suggested_categories
    )

@router.get("/{import_id}/transactions", response_model=List[ExtractedTransactionResponse])
async def get_extracted_transactions(
    import_id: int,
    service: StatementImportService = Depends(get_import_service)
):
    return await service.list_transactions(import_id)

@router.patch("/transactions/{transaction_id}", response_model=ExtractedTransactionResponse)
async def update_extracted_transaction(
    transaction_id: int,
    transaction_update: ExtractedTransactionUpdate,
    service: StatementImportService = Depends(get_import_service)
):
    """
    Change selection or category during review
    """
    changes = transaction_update.model_dump(exclude_unset=True)
    return await service.update_transaction(transaction_id, **changes)

@router.post("/{import_id}/commit", response_model=CommitResponse)
async def commit_import(
    import_id: int,
    request: CommitRequest = CommitRequest(),
    service: StatementImportService = Depends(get_import_service)
):
    """
    Turn the selected rows into expenses
    """
    selections = None
    if request.selections is not None:
        selections = [
            CommitSelection(transaction_id=item.transaction_id, category_id=item.category_id)
            for item in request.selections
        ]

    result = await service.commit(import_id, selections)
    return CommitResponse(
        imported_count=result.imported_count,
        total_transactions=result.total_transactions
    )

@router.delete("/{import_id}")
async def cancel_import(
    import_id: int,
    service: StatementImportService = Depends(get_import_service)
):
    await service.cancel(import_id)
    return {"message": "Import cancelled"}
