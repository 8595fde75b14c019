"""
Fields API Endpoints
Field CRUD and the resumable field creation wizard
"""

from functools import lru_cache

from fastapi import APIRouter, Depends

from cropgenius.core.auth import require_auth
from cropgenius.core.serializers import prepare_response
from cropgenius.schemas.fields import FieldCreate, FieldUpdate, WizardStart, WizardUpdate
from cropgenius.services.field_wizard import FieldWizard
from cropgenius.services.fields_service import FieldService

router = APIRouter()

FIELD_IDS = ["id", "user_id", "farm_id"]


@lru_cache()
def get_field_service() -> FieldService:
    return FieldService()


def get_field_wizard(fields: FieldService = Depends(get_field_service)) -> FieldWizard:
    return FieldWizard(fields=fields)


# ---- Wizard (declared before /{field_id}) ----

@router.post("/wizard/start")
async def wizard_start(
    body: WizardStart,
    current_user: dict = Depends(require_auth),
    wizard: FieldWizard = Depends(get_field_wizard),
):
    """Resume the farmer's draft or start a new one at step 1"""
    location = body.default_location.model_dump() if body.default_location else None
    return prepare_response(wizard.start(current_user["id"], location))


@router.get("/wizard")
async def wizard_state(
    current_user: dict = Depends(require_auth),
    wizard: FieldWizard = Depends(get_field_wizard),
):
    return prepare_response(wizard.start(current_user["id"]))


@router.put("/wizard/step")
async def wizard_update(
    body: WizardUpdate,
    current_user: dict = Depends(require_auth),
    wizard: FieldWizard = Depends(get_field_wizard),
):
    return prepare_response(wizard.update(current_user["id"], body.step, body.data))


@router.post("/wizard/next")
async def wizard_next(current_user: dict = Depends(require_auth), wizard: FieldWizard = Depends(get_field_wizard)):
    return prepare_response(wizard.next(current_user["id"]))


@router.post("/wizard/back")
async def wizard_back(current_user: dict = Depends(require_auth), wizard: FieldWizard = Depends(get_field_wizard)):
    return prepare_response(wizard.back(current_user["id"]))


@router.post("/wizard/skip")
async def wizard_skip(current_user: dict = Depends(require_auth), wizard: FieldWizard = Depends(get_field_wizard)):
    return prepare_response(wizard.skip(current_user["id"]))


@router.post("/wizard/submit")
async def wizard_submit(current_user: dict = Depends(require_auth), wizard: FieldWizard = Depends(get_field_wizard)):
    """Create the field from the draft and clear the draft"""
    return prepare_response(wizard.submit(current_user["id"]), id_fields=FIELD_IDS)


@router.delete("/wizard")
async def wizard_discard(current_user: dict = Depends(require_auth), wizard: FieldWizard = Depends(get_field_wizard)):
    return {"discarded": wizard.discard(current_user["id"])}


# ---- Fields ----

@router.get("")
async def list_fields(current_user: dict = Depends(require_auth), service: FieldService = Depends(get_field_service)):
    return prepare_response(service.list_for_user(current_user["id"]), id_fields=FIELD_IDS)


@router.post("")
async def create_field(
    body: FieldCreate,
    current_user: dict = Depends(require_auth),
    service: FieldService = Depends(get_field_service),
):
    return prepare_response(service.create(current_user["id"], body.model_dump()), id_fields=FIELD_IDS)


@router.get("/{field_id}")
async def get_field(
    field_id: str,
    current_user: dict = Depends(require_auth),
    service: FieldService = Depends(get_field_service),
):
    return prepare_response(service.get(field_id, current_user["id"]), id_fields=FIELD_IDS)


@router.patch("/{field_id}")
async def update_field(
    field_id: str,
    body: FieldUpdate,
    current_user: dict = Depends(require_auth),
    service: FieldService = Depends(get_field_service),
):
    updated = service.update(field_id, current_user["id"], body.model_dump(exclude_none=True))
    return prepare_response(updated, id_fields=FIELD_IDS)


@router.delete("/{field_id}")
async def delete_field(
    field_id: str,
    current_user: dict = Depends(require_auth),
    service: FieldService = Depends(get_field_service),
):
    return {"deleted": service.delete(field_id, current_user["id"])}
