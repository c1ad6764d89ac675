"""CSV import API routes."""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.database import get_db
from app.imports.engine import CsvImportEngine, CsvImportError, ImportJobNotFound
from app.imports.schemas import ImportJobCreate, ImportJobResponse, ImportRequest, ImportResponse
from app.models import ImportJob, ImportJobStatus, User, generate_id

router = APIRouter()


@router.post("/import-jobs", response_model=ImportJobResponse)
async def create_import_job(
    data: ImportJobCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Create a queued import job before the file is uploaded."""
    job = ImportJob(
        id=generate_id("import"),
        user_id=current_user.id,
        file_name=data.file_name,
        status=ImportJobStatus.QUEUED.value,
    )
    db.add(job)
    await db.commit()
    await db.refresh(job)
    return job


@router.get("/import-jobs/{job_id}", response_model=ImportJobResponse)
async def get_import_job(
    job_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Current progress of an import job."""
    result = await db.execute(
        select(ImportJob).where(
            ImportJob.id == job_id,
            ImportJob.user_id == current_user.id,
        )
    )
    job = result.scalar_one_or_none()
    if not job:
        raise HTTPException(status_code=404, detail="Import job not found")
    return job


@router.post("/process-csv-import", response_model=ImportResponse)
async def process_csv_import(
    data: ImportRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Import a bank statement CSV into the user's transactions."""
    engine = CsvImportEngine(db, current_user.id)
    mapping = data.mapping_config.to_patterns() if data.mapping_config else None

    try:
        result = await engine.run(data.job_id, data.csv_content, mapping=mapping)
    except ImportJobNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CsvImportError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return result.to_dict()
