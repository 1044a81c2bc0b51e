import logging
from sqlalchemy.ext.asyncio import AsyncSession
from branchqueue.core.errors import ValidationError
from branchqueue.modules.catalog.models import Service
from branchqueue.modules.forms.repository import FormRepository
from branchqueue.modules.forms.validation import validate_form, FormValidationResult

logger = logging.getLogger(__name__)

class FormBindingService:
    def __init__(self, s: AsyncSession):
        self.s = s
        self.repo = FormRepository(s)

    async def check(self, service: Service, form_data: dict | None) -> FormValidationResult:
        if service.form_id is None:
            return FormValidationResult()
        form = await self.repo.get_form(service.form_id)
        if form is None or not form.is_active:
            return FormValidationResult()
        fields = await self.repo.list_fields(form.id)
        return validate_form(fields, form_data)

    async def require_valid(self, service: Service, form_data: dict | None) -> FormValidationResult:
        result = await self.check(service, form_data)
        if not result.ok:
            raise ValidationError(
                "Missing or invalid form fields",
                details={"fields": [e.as_dict() for e in result.errors]},
            )
        if result.warnings:
            logger.info(f"Form warnings for service {service.id}: {[w.field for w in result.warnings]}")
        return result
