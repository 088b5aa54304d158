from __future__ import annotations

import logging
from dataclasses import asdict, is_dataclass
from typing import Any

from fastapi import FastAPI, File, Form, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from lectern import __version__
from lectern.application.services.project_service import ProjectService
from lectern.application.wiring import ServiceBundle, build_services
from lectern.core.config import AppPaths, read_bool_env
from lectern.core.errors import (
    DocumentNotFoundError,
    FetchError,
    JobNotFoundError,
    LecternError,
    ValidationError,
)
from lectern.domain.models.ingestion import IngestionJob

logger = logging.getLogger(__name__)


class ImportUrlRequest(BaseModel):
    url: str
    title: str | None = None
    subject: str | None = None
    education_level: str | None = None
    specialization: str | None = None
    year_number: int | None = None
    edition: str | None = None


class SearchRequest(BaseModel):
    query: str
    limit: int = 8
    document_id: str | None = None
    page_start: int | None = None
    page_end: int | None = None
    education_level: str | None = None


class ReapRequest(BaseModel):
    timeout_seconds: float | None = None


def _jsonable(value: Any) -> Any:
    if is_dataclass(value):
        return asdict(value)
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return value


def _job_payload(job: IngestionJob | None) -> dict[str, Any] | None:
    if job is None:
        return None
    payload = asdict(job)
    payload["progress_percent"] = job.progress_percent
    return payload


def _http_error(exc: LecternError) -> HTTPException:
    if isinstance(exc, (DocumentNotFoundError, JobNotFoundError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, FetchError):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def create_app(paths: AppPaths, services: ServiceBundle | None = None) -> FastAPI:
    app = FastAPI(title="Lectern", version=__version__)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    project_service = ProjectService(paths)
    if services is None:
        project_service.init_project()
        services = build_services(paths)
    reaper_enabled = read_bool_env("LECTERN_STALL_REAPER_ENABLED", True)

    @app.on_event("startup")
    def _start_background_ingestion() -> None:
        if reaper_enabled:
            services.reaper.start()
        try:
            services.dispatcher.dispatch_next()
        except Exception:
            logger.exception("Startup dispatch failed")

    @app.on_event("shutdown")
    def _stop_background_ingestion() -> None:
        services.reaper.shutdown()

    @app.post("/api/init")
    def api_init() -> dict[str, Any]:
        result = project_service.init_project()
        return {
            "ok": True,
            "db_path": str(result.db_path),
            "paths_created": [str(p) for p in result.paths_created],
        }

    @app.post("/api/documents/upload")
    async def api_upload(
        file: UploadFile = File(...),
        title: str | None = Form(default=None),
        subject: str | None = Form(default=None),
        education_level: str | None = Form(default=None),
        specialization: str | None = Form(default=None),
        year_number: int | None = Form(default=None),
        edition: str | None = Form(default=None),
        source_url: str | None = Form(default=None),
    ) -> dict[str, Any]:
        content = await file.read()
        try:
            result = services.documents.upload(
                content=content,
                filename=file.filename or "upload.pdf",
                title=title,
                subject=subject,
                education_level=education_level,
                specialization=specialization,
                year_number=year_number,
                edition=edition,
                source_url=source_url,
            )
        except LecternError as exc:
            raise _http_error(exc) from exc
        if result.status == "queued":
            services.dispatcher.dispatch_next()
        return {
            "ok": True,
            "status": result.status,
            "document": _jsonable(result.document),
            "job": _job_payload(result.job),
        }

    @app.post("/api/documents/import-url")
    def api_import_url(req: ImportUrlRequest) -> dict[str, Any]:
        metadata = req.model_dump(exclude={"url"})
        try:
            result = services.documents.import_from_url(req.url, **metadata)
        except LecternError as exc:
            raise _http_error(exc) from exc
        if result.status == "queued":
            services.dispatcher.dispatch_next()
        return {
            "ok": True,
            "status": result.status,
            "document": _jsonable(result.document),
            "job": _job_payload(result.job),
        }

    @app.get("/api/documents")
    def api_documents(
        limit: int = Query(default=100, ge=1, le=10000),
        status: str | None = Query(default=None),
    ) -> dict[str, Any]:
        documents = services.documents.list_documents(limit, status=status)
        return {"ok": True, "count": len(documents), "documents": _jsonable(documents)}

    @app.get("/api/documents/{document_id}")
    def api_document_detail(document_id: str) -> dict[str, Any]:
        try:
            detail = services.documents.get_document_detail(document_id)
        except LecternError as exc:
            raise _http_error(exc) from exc
        return {
            "ok": True,
            "document": _jsonable(detail.document),
            "jobs": [_job_payload(job) for job in detail.jobs],
            "chunk_count": detail.chunk_count,
        }

    @app.delete("/api/documents/{document_id}")
    def api_delete_document(document_id: str) -> dict[str, Any]:
        if not services.documents.delete_document(document_id):
            raise HTTPException(status_code=404, detail=f"Document not found: {document_id}")
        return {"ok": True, "deleted": document_id}

    @app.get("/api/jobs")
    def api_jobs(
        limit: int = Query(default=100, ge=1, le=10000),
        status: str | None = Query(default=None),
    ) -> dict[str, Any]:
        jobs = services.job_repo.list(limit=limit, status=status)
        return {
            "ok": True,
            "count": len(jobs),
            "counts": services.job_repo.count_by_status(),
            "jobs": [_job_payload(job) for job in jobs],
        }

    @app.get("/api/jobs/{job_id}")
    def api_job_detail(job_id: str) -> dict[str, Any]:
        job = services.job_repo.get_by_id(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail=f"Ingestion job not found: {job_id}")
        return {"ok": True, "job": _job_payload(job)}

    @app.post("/api/jobs/dispatch")
    def api_dispatch() -> dict[str, Any]:
        job = services.dispatcher.dispatch_next()
        return {"ok": True, "dispatched": job is not None, "job": _job_payload(job)}

    @app.post("/api/jobs/{job_id}/requeue")
    def api_requeue(job_id: str) -> dict[str, Any]:
        current = services.job_repo.get_by_id(job_id)
        if current is None:
            raise HTTPException(status_code=404, detail=f"Ingestion job not found: {job_id}")
        job = services.job_repo.requeue(job_id)
        if job is None:
            raise HTTPException(
                status_code=409,
                detail=f"Job {job_id} is {current.status}; only PAUSED or FAILED jobs can be requeued.",
            )
        services.dispatcher.dispatch_next()
        refreshed = services.job_repo.get_by_id(job_id) or job
        return {"ok": True, "job": _job_payload(refreshed)}

    @app.post("/api/jobs/reap")
    def api_reap(req: ReapRequest | None = None) -> dict[str, Any]:
        if req is not None and req.timeout_seconds:
            stalled = services.job_repo.mark_stalled(req.timeout_seconds)
            return {"ok": True, "stalled": stalled, "requeued": 0}
        report = services.reaper.reap_once()
        return {"ok": True, "stalled": report.stalled, "requeued": report.requeued}

    @app.post("/api/search")
    def api_search(req: SearchRequest) -> dict[str, Any]:
        try:
            results = services.retrieval.search(
                req.query,
                limit=req.limit,
                document_id=req.document_id,
                page_start=req.page_start,
                page_end=req.page_end,
                education_level=req.education_level,
            )
        except LecternError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, "count": len(results), "results": [item.to_dict() for item in results]}

    return app
