"""
FastAPI dependency providers.

The record store and the pipeline dispatcher are built once per process on
first use. Tests replace them through app.dependency_overrides.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from question_seeker.core.config import Settings, get_settings
from question_seeker.db.session import get_session_factory
from question_seeker.services.records import RecordStore
from question_seeker.workers.dispatch import PipelineDispatcher


@lru_cache(maxsize=1)
def get_records() -> RecordStore:
    return RecordStore(get_session_factory())


@lru_cache(maxsize=1)
def get_pipeline_dispatcher() -> PipelineDispatcher:
    from question_seeker.services.pipeline import build_pipeline
    from question_seeker.workers.dispatch import get_dispatcher

    settings = get_settings()
    pipeline = build_pipeline(settings, records=get_records())
    return get_dispatcher(settings, pipeline)


Records     = Annotated[RecordStore,        Depends(get_records)]
Dispatcher  = Annotated[PipelineDispatcher, Depends(get_pipeline_dispatcher)]
AppSettings = Annotated[Settings,           Depends(get_settings)]
