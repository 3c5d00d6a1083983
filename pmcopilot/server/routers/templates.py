"""
Template endpoints.

GET /templates               - All templates with their sections
GET /templates/{template_id} - One template
"""
from typing import List

from fastapi import APIRouter, Depends

from pmcopilot.server.deps import get_repository
from pmcopilot.server.exceptions import NotFoundError
from pmcopilot.server.schemas import TemplateRecord
from pmcopilot.storage import PRDRepository


router = APIRouter(prefix="/templates", tags=["templates"])


@router.get("", response_model=List[TemplateRecord])
def list_templates(repository: PRDRepository = Depends(get_repository)) -> List[TemplateRecord]:
    return [TemplateRecord.model_validate(t) for t in repository.list_templates()]


@router.get("/{template_id}", response_model=TemplateRecord)
def get_template(
    template_id: str, repository: PRDRepository = Depends(get_repository)
) -> TemplateRecord:
    template = repository.get_template(template_id)
    if template is None:
        raise NotFoundError("Template not found")
    return TemplateRecord.model_validate(template)
